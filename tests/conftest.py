"""
Pytest configuration and fixtures.

Shared fixtures for all tests.
"""

import pytest
import os

# Keep local .env files and settings overrides out of the tests
for key in list(os.environ):
    if key.startswith("PORTFOLIO_ENGINE_"):
        del os.environ[key]


@pytest.fixture
def sample_portfolio():
    """AAPL and BOND, 2000 each: equal weights."""
    from portfolio_engine.portfolio.asset import Asset
    from portfolio_engine.portfolio.portfolio import Portfolio
    
    p = Portfolio()
    p.add_position(Asset("AAPL", 200.0, 0.10, 0.20), 10.0)
    p.add_position(Asset("BOND", 100.0, 0.02, 0.05), 20.0)
    return p


@pytest.fixture
def three_asset_portfolio():
    """Three assets with unequal weights."""
    from portfolio_engine.portfolio.asset import Asset
    from portfolio_engine.portfolio.portfolio import Portfolio
    
    p = Portfolio()
    p.add_position(Asset("MSFT", 400.0, 0.12, 0.25), 5.0)
    p.add_position(Asset("AAPL", 200.0, 0.10, 0.20), 10.0)
    p.add_position(Asset("GLD", 180.0, 0.04, 0.15), 12.0)
    return p


@pytest.fixture
def identity_2x2():
    return [[1.0, 0.0], [0.0, 1.0]]


@pytest.fixture
def correlated_3x3():
    """Valid matrix in lexical order AAPL, GLD, MSFT."""
    return [
        [1.0, 0.1, 0.6],
        [0.1, 1.0, -0.2],
        [0.6, -0.2, 1.0],
    ]


@pytest.fixture
def sample_history():
    """Factory of yfinance-like history frames (random walk closes)."""
    import pandas as pd
    import numpy as np
    from datetime import datetime, timedelta
    
    def make(days: int = 250, seed: int = 42, start_price: float = 100.0):
        dates = pd.date_range(
            start=datetime(2024, 1, 1),
            end=datetime(2024, 1, 1) + timedelta(days=days - 1),
            freq="D",
        )
        rng = np.random.default_rng(seed)
        prices = start_price * np.exp(np.cumsum(rng.normal(0.0005, 0.01, len(dates))))
        return pd.DataFrame({
            "Open": prices,
            "High": prices * 1.01,
            "Low": prices * 0.99,
            "Close": prices,
            "Volume": rng.integers(1_000_000, 5_000_000, len(dates)),
        }, index=dates)
    
    return make


@pytest.fixture
def fake_yfinance(monkeypatch):
    """
    Patch yfinance.Ticker inside the market data module.
    
    Returns a dict ticker -> history DataFrame (or Exception to raise)
    that tests fill in.
    """
    import pandas as pd
    from portfolio_engine.data import market_data
    
    histories = {}
    
    class FakeTicker:
        def __init__(self, ticker):
            self.ticker = ticker
        
        def history(self, **kwargs):
            value = histories.get(self.ticker, pd.DataFrame())
            if isinstance(value, Exception):
                raise value
            return value
    
    monkeypatch.setattr(market_data.yf, "Ticker", FakeTicker)
    return histories
