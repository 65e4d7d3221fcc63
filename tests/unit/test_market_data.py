"""
Market data client tests.

yfinance is replaced by the fake_yfinance fixture; no network access.
"""

import math

import numpy as np
import pandas as pd
import pytest

from portfolio_engine.config import EngineSettings
from portfolio_engine.data.market_data import MarketDataClient
from portfolio_engine.errors import DataError, InvalidInputError
from portfolio_engine.portfolio.correlation_matrix import validate_correlation_matrix


@pytest.fixture
def client():
    return MarketDataClient()


class TestCloses:
    """Test history retrieval and return construction."""
    
    def test_empty_history(self, client, fake_yfinance):
        with pytest.raises(DataError):
            client.fetch_closes("NOPE")
    
    def test_provider_error_wrapped(self, client, fake_yfinance):
        fake_yfinance["AAPL"] = ConnectionError("timeout")
        
        with pytest.raises(DataError, match="AAPL"):
            client.fetch_closes("AAPL")
    
    def test_missing_close_column(self, client, fake_yfinance, sample_history):
        fake_yfinance["AAPL"] = sample_history().drop(columns=["Close"])
        
        with pytest.raises(DataError):
            client.fetch_closes("AAPL")
    
    def test_too_few_closes(self, client, fake_yfinance, sample_history):
        fake_yfinance["AAPL"] = sample_history(days=29)
        
        with pytest.raises(DataError, match="not enough close prices"):
            client.fetch_closes("AAPL")
    
    def test_empty_ticker(self, client):
        with pytest.raises(InvalidInputError):
            client.fetch_closes("")
    
    def test_non_positive_closes_skipped(self, client):
        closes = pd.Series([100.0, 101.0, 0.0, 102.0, 103.0] + [104.0 + i for i in range(30)])
        
        returns = client.daily_log_returns(closes)
        
        # The two returns touching the zero close are dropped
        assert len(returns) == len(closes) - 1 - 2
        assert returns.iloc[0] == pytest.approx(math.log(101.0 / 100.0))
        assert returns.iloc[1] == pytest.approx(math.log(103.0 / 102.0))
    
    def test_too_few_returns(self, client):
        closes = pd.Series([100.0 + i for i in range(15)])
        
        with pytest.raises(DataError, match="not enough valid returns"):
            client.daily_log_returns(closes)


class TestAsset:
    """Test Asset construction from history."""
    
    def test_fetch_asset(self, client, fake_yfinance, sample_history):
        history = sample_history(seed=7)
        fake_yfinance["MSFT"] = history
        
        asset = client.fetch_asset("MSFT")
        
        closes = history["Close"].to_numpy()
        log_returns = np.log(closes[1:] / closes[:-1])
        assert asset.name == "MSFT"
        assert asset.price == pytest.approx(closes[-1])
        assert asset.expected_return == pytest.approx(log_returns.mean() * 252)
        assert asset.volatility == pytest.approx(log_returns.std(ddof=1) * math.sqrt(252))
    
    def test_flat_prices_have_zero_volatility(self, client, fake_yfinance):
        fake_yfinance["CASH"] = pd.DataFrame({"Close": [1.0] * 40})
        
        asset = client.fetch_asset("CASH")
        
        assert asset.expected_return == 0.0
        assert asset.volatility == 0.0
    
    def test_from_settings(self):
        settings = EngineSettings(data_period="2y", trading_days=260)
        
        client = MarketDataClient.from_settings(settings)
        
        assert client.period == "2y"
        assert client.trading_days == 260


class TestCorrelationMatrix:
    """Test matrix construction in caller order."""
    
    def test_order_follows_tickers(self, client, fake_yfinance, sample_history):
        fake_yfinance["AAPL"] = sample_history(seed=1)
        fake_yfinance["BOND"] = sample_history(seed=2)
        fake_yfinance["GLD"] = sample_history(seed=3)
        
        forward = client.fetch_correlation_matrix(["AAPL", "BOND", "GLD"])
        backward = client.fetch_correlation_matrix(["GLD", "BOND", "AAPL"])
        
        validate_correlation_matrix(forward, 3)
        assert forward[0][1] == pytest.approx(backward[2][1])
        assert forward[0][2] == pytest.approx(backward[2][0])
    
    def test_identical_series_fully_correlated(self, client, fake_yfinance, sample_history):
        fake_yfinance["A"] = sample_history(seed=5)
        fake_yfinance["B"] = sample_history(seed=5, start_price=50.0)
        
        matrix = client.fetch_correlation_matrix(["A", "B"])
        
        assert matrix[0][1] == pytest.approx(1.0)
        assert matrix[0][0] == 1.0
    
    def test_series_aligned_on_most_recent(self, client, fake_yfinance, sample_history):
        long_history = sample_history(days=250, seed=9)
        fake_yfinance["LONG"] = long_history
        fake_yfinance["SHORT"] = long_history.iloc[-60:]
        
        matrix = client.fetch_correlation_matrix(["LONG", "SHORT"])
        
        assert matrix[0][1] == pytest.approx(1.0)
    
    def test_failing_ticker(self, client, fake_yfinance, sample_history):
        fake_yfinance["AAPL"] = sample_history()
        
        with pytest.raises(DataError):
            client.fetch_correlation_matrix(["AAPL", "MISSING"])
    
    def test_no_tickers(self, client):
        assert client.fetch_correlation_matrix([]) == []
