"""housing-pulse: housing-market data providers with an async-safe cache."""

__version__ = "0.1.0"
