"""
Portfolio module.

Handles:
- Asset / position data model
- Portfolio valuation and weighting
- Correlation matrix validation
- Monte-Carlo allocation search
- CSV import/export
"""

from portfolio_engine.portfolio.asset import Asset, Position
from portfolio_engine.portfolio.correlation_matrix import validate_correlation_matrix
from portfolio_engine.portfolio.portfolio import Portfolio
from portfolio_engine.portfolio.allocator import (
    AllocationOptimizer,
    CandidatePoint,
    Objective,
    OptimizationResult,
    optimize_portfolio,
)

__all__ = [
    "Asset",
    "Position",
    "Portfolio",
    "validate_correlation_matrix",
    "AllocationOptimizer",
    "CandidatePoint",
    "Objective",
    "OptimizationResult",
    "optimize_portfolio",
]
