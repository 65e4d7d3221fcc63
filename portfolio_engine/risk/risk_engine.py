"""
Correlation-aware portfolio risk.

Variance of a long portfolio with weights w, volatilities s and
correlations p:

    var = sum_i sum_j w_i w_j p_ij s_i s_j

The Euler decomposition splits that quadratic form into per-asset
contributions w_i * (C w)_i whose sum is exactly the variance.
All vectors follow the portfolio's canonical (lexical) asset order.
"""

from typing import Optional, Sequence, TYPE_CHECKING
import math
import structlog

import numpy as np

from portfolio_engine.portfolio.correlation_matrix import (
    as_array,
    validate_correlation_matrix,
)

if TYPE_CHECKING:
    from portfolio_engine.portfolio.portfolio import Portfolio

logger = structlog.get_logger(__name__)


# ── Weight-level formulas (shared with the allocator) ────────────────

def covariance_from_correlation(
    sigma: Sequence[float],
    matrix: Sequence[Sequence[float]],
) -> np.ndarray:
    """Build the covariance matrix p_ij * s_i * s_j."""
    sigma = np.asarray(sigma, dtype=float)
    return as_array(matrix) * np.outer(sigma, sigma)


def weights_expected_return(weights: Sequence[float], mu: Sequence[float]) -> float:
    return float(np.asarray(weights, dtype=float) @ np.asarray(mu, dtype=float))


def weights_variance(
    weights: Sequence[float],
    sigma: Sequence[float],
    matrix: Sequence[Sequence[float]],
) -> float:
    """Variance of a weight vector (matrix assumed validated)."""
    w = np.asarray(weights, dtype=float)
    cov = covariance_from_correlation(sigma, matrix)
    return float(w @ cov @ w)


def weights_volatility(
    weights: Sequence[float],
    sigma: Sequence[float],
    matrix: Sequence[Sequence[float]],
) -> float:
    """Volatility of a weight vector, with round-off below zero clamped."""
    return math.sqrt(max(0.0, weights_variance(weights, sigma, matrix)))


def batch_statistics(
    weight_rows: np.ndarray,
    mu: Sequence[float],
    sigma: Sequence[float],
    matrix: Sequence[Sequence[float]],
) -> tuple[np.ndarray, np.ndarray]:
    """
    Expected returns and volatilities for many weight vectors at once.
    
    Args:
        weight_rows: (k, n) array, one allocation per row
    
    Returns:
        (expected_returns, volatilities), each of shape (k,)
    """
    weight_rows = np.asarray(weight_rows, dtype=float)
    cov = covariance_from_correlation(sigma, matrix)
    
    returns = weight_rows @ np.asarray(mu, dtype=float)
    variances = np.einsum("ij,jk,ik->i", weight_rows, cov, weight_rows)
    volatilities = np.sqrt(np.maximum(0.0, variances))
    
    return returns, volatilities


# ── Portfolio-level risk ─────────────────────────────────────────────

def _weights_and_sigma(portfolio: "Portfolio") -> tuple[np.ndarray, np.ndarray]:
    total = portfolio.total_value()
    positions = list(portfolio)
    w = np.array([p.value / total for p in positions], dtype=float)
    sigma = np.array([p.asset.volatility for p in positions], dtype=float)
    return w, sigma


def variance(portfolio: "Portfolio", matrix: Sequence[Sequence[float]]) -> float:
    """
    Portfolio variance under a correlation matrix.
    
    The matrix is validated against the current asset count on every
    call. Returns 0 for an empty portfolio or one with zero total value.
    """
    validate_correlation_matrix(matrix, len(portfolio))
    
    if len(portfolio) == 0 or portfolio.total_value() <= 0.0:
        return 0.0
    
    w, sigma = _weights_and_sigma(portfolio)
    return weights_variance(w, sigma, matrix)


def volatility(portfolio: "Portfolio", matrix: Sequence[Sequence[float]]) -> float:
    """sqrt(max(0, variance)); negative round-off on near-singular matrices maps to 0."""
    return math.sqrt(max(0.0, variance(portfolio, matrix)))


def variance_contributions(
    portfolio: "Portfolio",
    matrix: Sequence[Sequence[float]],
) -> list[float]:
    """
    Euler decomposition of the portfolio variance.
    
    contribution_i = w_i * sum_j p_ij s_i s_j w_j
    
    The contributions sum to variance(portfolio, matrix). A portfolio
    with zero total value yields all-zero contributions.
    """
    validate_correlation_matrix(matrix, len(portfolio))
    
    n = len(portfolio)
    if n == 0:
        return []
    if portfolio.total_value() <= 0.0:
        return [0.0] * n
    
    w, sigma = _weights_and_sigma(portfolio)
    cov = covariance_from_correlation(sigma, matrix)
    marginal = cov @ w
    
    return [float(x) for x in w * marginal]


def risk_shares(
    portfolio: "Portfolio",
    matrix: Sequence[Sequence[float]],
) -> Optional[dict[str, float]]:
    """
    Fraction of total variance attributable to each asset.
    
    Returns:
        {name: share} summing to 1, or None when the variance is not positive
    """
    contributions = variance_contributions(portfolio, matrix)
    total = variance(portfolio, matrix)
    
    if total <= 0.0:
        logger.debug("risk_shares_unavailable", variance=total)
        return None
    
    return {
        name: contribution / total
        for name, contribution in zip(portfolio.asset_order(), contributions)
    }
