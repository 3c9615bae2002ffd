"""
MDFeed App - Real-time Market Data Distribution Layer

A streaming market-data client that keeps a resilient connection to a quote
feed, multiplexes stock/index/market subscriptions over it, and feeds every
tick into an incremental technical-indicator engine (RSI, MACD, Bollinger
Bands, support/resistance) whose results fan out to registered consumers.
"""

__version__ = "0.1.0"
__author__ = "MDFeed Team"
