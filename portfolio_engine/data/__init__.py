"""Market data collaborators."""

from portfolio_engine.data.market_data import MarketDataClient

__all__ = ["MarketDataClient"]
