"""
Market data client (yfinance, no API key needed).

Turns daily closes into the engine's inputs:
- an Asset (last close, annualized mean/stdev of daily log returns)
- a correlation matrix in a caller-supplied ticker order

Failures are raised as DataError; nothing is retried here.
"""

from typing import Sequence
import math
import structlog

import numpy as np
import pandas as pd
import yfinance as yf

from portfolio_engine.config import (
    DEFAULT_DATA_INTERVAL,
    DEFAULT_DATA_PERIOD,
    MIN_CLOSES,
    MIN_RETURNS,
    TRADING_DAYS_PER_YEAR,
)
from portfolio_engine.errors import DataError, InvalidInputError
from portfolio_engine.portfolio.asset import Asset
from portfolio_engine.portfolio.correlation_matrix import correlation_from_returns

logger = structlog.get_logger(__name__)


class MarketDataClient:
    """
    Builds assets and correlation matrices from historical closes.
    """
    
    def __init__(
        self,
        period: str = DEFAULT_DATA_PERIOD,
        interval: str = DEFAULT_DATA_INTERVAL,
        trading_days: int = TRADING_DAYS_PER_YEAR,
        min_closes: int = MIN_CLOSES,
        min_returns: int = MIN_RETURNS,
    ):
        """
        Initialize market data client.
        
        Args:
            period: yfinance history period (e.g. "1y")
            interval: yfinance bar interval (e.g. "1d")
            trading_days: Annualization factor
            min_closes: Minimum closes required per ticker
            min_returns: Minimum usable returns per ticker (and aligned)
        """
        self.period = period
        self.interval = interval
        self.trading_days = trading_days
        self.min_closes = min_closes
        self.min_returns = min_returns
        
        logger.info(
            "market_data_client_initialized",
            period=period,
            interval=interval,
        )
    
    @classmethod
    def from_settings(cls, settings) -> "MarketDataClient":
        return cls(
            period=settings.data_period,
            interval=settings.data_interval,
            trading_days=settings.trading_days,
            min_closes=settings.min_closes,
            min_returns=settings.min_returns,
        )
    
    def fetch_closes(self, ticker: str) -> pd.Series:
        """Daily closes for *ticker*, oldest first, missing values dropped."""
        if not ticker:
            raise InvalidInputError("ticker must be non-empty.")
        
        try:
            history = yf.Ticker(ticker).history(
                period=self.period,
                interval=self.interval,
                auto_adjust=False,
            )
        except Exception as e:
            logger.warning("yfinance_failed", ticker=ticker, error=str(e))
            raise DataError(f"could not fetch history for {ticker}: {e}") from e
        
        if history is None or history.empty or "Close" not in history.columns:
            raise DataError(f"no price history returned for {ticker}.")
        
        closes = history["Close"].dropna()
        if len(closes) < self.min_closes:
            raise DataError(
                f"not enough close prices for {ticker} "
                f"({len(closes)}, need {self.min_closes})."
            )
        
        logger.debug("closes_fetched", ticker=ticker, count=len(closes))
        return closes
    
    def daily_log_returns(self, closes: pd.Series) -> pd.Series:
        """Log returns between consecutive positive closes."""
        values = closes.to_numpy(dtype=float)
        previous, current = values[:-1], values[1:]
        valid = (previous > 0.0) & (current > 0.0)
        
        returns = np.log(current[valid] / previous[valid])
        if len(returns) < self.min_returns:
            raise DataError(
                f"not enough valid returns ({len(returns)}, need {self.min_returns})."
            )
        return pd.Series(returns, index=closes.index[1:][valid])
    
    def fetch_daily_log_returns(self, ticker: str) -> pd.Series:
        return self.daily_log_returns(self.fetch_closes(ticker))
    
    def annualized_stats(self, returns: pd.Series) -> tuple[float, float]:
        """(mean * trading_days, sample stdev * sqrt(trading_days))."""
        mean = float(returns.mean())
        stdev = float(returns.std(ddof=1))
        if math.isnan(stdev):
            stdev = 0.0
        return mean * self.trading_days, stdev * math.sqrt(self.trading_days)
    
    def fetch_asset(self, ticker: str) -> Asset:
        """
        Build an Asset for *ticker*.
        
        Returns:
            Asset with price = last close and annualized mu/sigma
        """
        closes = self.fetch_closes(ticker)
        returns = self.daily_log_returns(closes)
        mu, sigma = self.annualized_stats(returns)
        
        asset = Asset(ticker, float(closes.iloc[-1]), mu, sigma)
        
        logger.info(
            "asset_fetched",
            ticker=ticker,
            price=asset.price,
            expected_return=mu,
            volatility=sigma,
        )
        return asset
    
    def fetch_correlation_matrix(self, tickers: Sequence[str]) -> list[list[float]]:
        """
        Correlation matrix of daily log returns, in exactly the given order.
        
        Series are aligned by keeping each ticker's most recent
        observations, as many as the shortest series has.
        """
        tickers = list(tickers)
        if not tickers:
            return []
        
        series = [self.fetch_daily_log_returns(t).to_numpy() for t in tickers]
        
        min_len = min(len(s) for s in series)
        if min_len < self.min_returns:
            raise DataError("not enough aligned returns to compute correlation matrix.")
        
        aligned = pd.DataFrame(
            {ticker: s[-min_len:] for ticker, s in zip(tickers, series)},
            columns=tickers,
        )
        correlation = correlation_from_returns(aligned)
        
        logger.info("correlation_matrix_fetched", tickers=tickers, observations=min_len)
        
        return correlation.loc[tickers, tickers].to_numpy(dtype=float).tolist()
