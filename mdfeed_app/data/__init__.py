"""Data models, wire messages and frame parsing."""
