"""Utility helpers for the market data distribution layer."""
