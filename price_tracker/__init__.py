"""Price Tracker - price history and alerts for tracked marketplace products."""

__version__ = "1.0.0"
