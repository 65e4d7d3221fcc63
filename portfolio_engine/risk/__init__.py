"""
Risk module.

Handles:
- Portfolio variance and volatility under a correlation matrix
- Euler risk-contribution decomposition
"""

from portfolio_engine.risk.risk_engine import (
    risk_shares,
    variance,
    variance_contributions,
    volatility,
)

__all__ = ["variance", "volatility", "variance_contributions", "risk_shares"]
