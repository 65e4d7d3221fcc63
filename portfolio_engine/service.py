"""
Portfolio service.

Owns the shared mutable state of a running engine:
- the Portfolio
- the last correlation matrix (with the asset order it was built for)
- the last optimization result

All of it sits behind one lock, always taken with a `with` block so
it is released on every exit path. Slow work (market-data fetches and
the Monte-Carlo search) runs on snapshots outside the lock; results are
published afterwards only if the portfolio did not change meanwhile.
"""

from dataclasses import dataclass, field
from threading import Lock
from typing import Optional, Sequence, Union
import structlog

from portfolio_engine.config import EngineSettings
from portfolio_engine.data.market_data import MarketDataClient
from portfolio_engine.errors import DataError, InvalidInputError
from portfolio_engine.portfolio.allocator import (
    AllocationOptimizer,
    Objective,
    OptimizationResult,
    optimize_portfolio,
)
from portfolio_engine.portfolio.asset import Asset, Position
from portfolio_engine.portfolio.correlation_matrix import validate_correlation_matrix
from portfolio_engine.portfolio.csv_io import portfolio_from_csv, portfolio_to_csv
from portfolio_engine.portfolio.portfolio import Portfolio
from portfolio_engine.risk import risk_engine

logger = structlog.get_logger(__name__)


@dataclass
class PortfolioMetrics:
    """Headline numbers for the current portfolio."""
    total_value: float
    expected_return: float
    asset_order: list[str]
    weights: dict[str, float] = field(default_factory=dict)
    variance: Optional[float] = None  # None when no matching matrix is cached
    volatility: Optional[float] = None
    risk_shares: Optional[dict[str, float]] = None
    matrix_source: Optional[str] = None


@dataclass
class WhatIfResult:
    """Metrics of a hypothetical quantity change (portfolio untouched)."""
    name: str
    quantity_delta: float
    total_value: float
    expected_return: float
    volatility: Optional[float] = None
    risk_shares: Optional[dict[str, float]] = None


class PortfolioService:
    """
    Thread-safe facade over one portfolio and its cached matrix.
    """
    
    def __init__(
        self,
        portfolio: Optional[Portfolio] = None,
        market_data: Optional[MarketDataClient] = None,
        optimizer: Optional[AllocationOptimizer] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.settings = settings or EngineSettings()
        self.market_data = market_data or MarketDataClient.from_settings(self.settings)
        self.optimizer = optimizer or AllocationOptimizer(
            num_candidates=self.settings.num_candidates,
            seed=self.settings.seed,
            weight_floor=self.settings.weight_floor,
        )
        
        self._lock = Lock()
        self._portfolio = portfolio.copy() if portfolio is not None else Portfolio()
        self._version = 0
        
        self._matrix: Optional[list[list[float]]] = None
        self._matrix_labels: list[str] = []
        self._matrix_source: Optional[str] = None
        
        self._last_optimization: Optional[OptimizationResult] = None
        
        logger.info("portfolio_service_initialized", assets=len(self._portfolio))
    
    # ── Internal helpers (call with the lock held) ───────────────────
    
    def _mark_mutated(self) -> None:
        self._version += 1
        self._last_optimization = None
    
    def _compatible_matrix(self, portfolio: Portfolio) -> Optional[list[list[float]]]:
        if self._matrix is None or self._matrix_labels != portfolio.asset_order():
            return None
        return self._matrix
    
    def _store_matrix(self, matrix: Sequence[Sequence[float]], labels: list[str], source: str) -> None:
        self._matrix = [[float(x) for x in row] for row in matrix]
        self._matrix_labels = list(labels)
        self._matrix_source = source
    
    # ── Positions ────────────────────────────────────────────────────
    
    def add_position(self, asset: Asset, quantity: float) -> None:
        with self._lock:
            self._portfolio.add_position(asset, quantity)
            self._mark_mutated()
        logger.info("position_added", asset=asset.name, quantity=quantity)
    
    def add_from_market(self, ticker: str, quantity: float) -> Asset:
        """Fetch *ticker* from market data, then add it. Returns the fetched asset."""
        if quantity <= 0.0:
            raise InvalidInputError("add_from_market: quantity must be > 0.")
        
        asset = self.market_data.fetch_asset(ticker)
        self.add_position(asset, quantity)
        return asset
    
    def remove_position(self, name: str, quantity: float) -> None:
        with self._lock:
            self._portfolio.remove_position(name, quantity)
            self._mark_mutated()
        logger.info("position_removed", asset=name, quantity=quantity)
    
    def lookup(self, name: str) -> Position:
        """A copy of the held position."""
        with self._lock:
            return self._portfolio.lookup(name).copy()
    
    def snapshot(self) -> Portfolio:
        with self._lock:
            return self._portfolio.copy()
    
    def asset_order(self) -> list[str]:
        with self._lock:
            return self._portfolio.asset_order()
    
    # ── Correlation matrix cache ─────────────────────────────────────
    
    def set_correlation_matrix(
        self,
        matrix: Sequence[Sequence[float]],
        source: str = "manual",
    ) -> None:
        """Validate *matrix* against the current asset order and cache it."""
        with self._lock:
            order = self._portfolio.asset_order()
            validate_correlation_matrix(matrix, len(order))
            self._store_matrix(matrix, order, source)
            self._mark_mutated()
        logger.info("correlation_matrix_set", source=source, assets=order)
    
    def refresh_correlation_matrix(self) -> list[list[float]]:
        """
        Rebuild the matrix from market data for the current assets.
        
        Raises:
            DataError: Fetch failed, or the asset set changed during the fetch
        """
        with self._lock:
            order = self._portfolio.asset_order()
        
        if not order:
            raise InvalidInputError("Portfolio empty.")
        
        matrix = self.market_data.fetch_correlation_matrix(order)
        
        with self._lock:
            if self._portfolio.asset_order() != order:
                logger.warning("correlation_refresh_stale", assets=order)
                raise DataError("portfolio assets changed while fetching correlations.")
            validate_correlation_matrix(matrix, len(order))
            self._store_matrix(matrix, order, "market")
            self._mark_mutated()
        
        logger.info("correlation_matrix_refreshed", assets=order)
        return [list(row) for row in matrix]
    
    def correlation_matrix(self) -> Optional[list[list[float]]]:
        """Cached matrix if it matches the current asset order, else None."""
        with self._lock:
            matrix = self._compatible_matrix(self._portfolio)
            return [list(row) for row in matrix] if matrix is not None else None
    
    # ── Analytics ────────────────────────────────────────────────────
    
    def metrics(self) -> PortfolioMetrics:
        with self._lock:
            portfolio = self._portfolio
            total = portfolio.total_value()
            result = PortfolioMetrics(
                total_value=total,
                expected_return=portfolio.expected_return(),
                asset_order=portfolio.asset_order(),
                weights=(
                    dict(zip(portfolio.asset_order(), portfolio.weights()))
                    if total > 0.0 else {}
                ),
            )
            
            matrix = self._compatible_matrix(portfolio)
            if matrix is not None:
                result.variance = risk_engine.variance(portfolio, matrix)
                result.volatility = risk_engine.volatility(portfolio, matrix)
                result.risk_shares = risk_engine.risk_shares(portfolio, matrix)
                result.matrix_source = self._matrix_source
        
        return result
    
    def what_if(self, name: str, quantity_delta: float) -> WhatIfResult:
        """
        Evaluate a quantity change on a copy of the portfolio.
        
        Positive deltas add to the held asset, negative ones remove.
        
        Raises:
            InvalidInputError: Zero delta, or removal beyond the held quantity
            NotFoundError: Asset not held
        """
        if quantity_delta == 0.0:
            raise InvalidInputError("what_if: quantity delta must be non-zero.")
        
        with self._lock:
            simulated = self._portfolio.copy()
            if quantity_delta > 0.0:
                held = simulated.lookup(name)
                simulated.add_position(held.asset, quantity_delta)
            else:
                simulated.remove_position(name, abs(quantity_delta))
            
            result = WhatIfResult(
                name=name,
                quantity_delta=quantity_delta,
                total_value=simulated.total_value(),
                expected_return=simulated.expected_return(),
            )
            
            matrix = self._compatible_matrix(simulated)
            if matrix is not None:
                result.volatility = risk_engine.volatility(simulated, matrix)
                result.risk_shares = risk_engine.risk_shares(simulated, matrix)
        
        logger.info("what_if_computed", asset=name, quantity_delta=quantity_delta)
        return result
    
    # ── Optimization ─────────────────────────────────────────────────
    
    def optimize(
        self,
        objective: Union[str, Objective, None] = None,
        target_return: Optional[float] = None,
        max_volatility: Optional[float] = None,
        risk_aversion: Optional[float] = None,
    ) -> OptimizationResult:
        """
        Run the allocation search on a snapshot of the portfolio.
        
        The search runs without holding the lock. The result is kept as
        last_optimization only if the portfolio is unchanged when it ends.
        
        Raises:
            InvalidInputError: Fewer than 2 assets or no matching matrix
            InfeasibleError: No candidate meets the constraints
        """
        objective = Objective.parse(objective or self.settings.objective)
        if risk_aversion is None:
            risk_aversion = self.settings.risk_aversion
        
        with self._lock:
            if len(self._portfolio) < 2:
                raise InvalidInputError("Need at least 2 assets to optimize.")
            matrix = self._compatible_matrix(self._portfolio)
            if matrix is None:
                raise InvalidInputError(
                    "Compute correlation matrix first (auto or manual) before optimization."
                )
            snapshot = self._portfolio.copy()
            matrix = [list(row) for row in matrix]
            version = self._version
        
        result = optimize_portfolio(
            snapshot,
            matrix,
            objective=objective,
            target_return=target_return,
            max_volatility=max_volatility,
            risk_aversion=risk_aversion,
            optimizer=self.optimizer,
        )
        
        with self._lock:
            if self._version == version:
                self._last_optimization = result
            else:
                logger.warning("optimization_result_stale", objective=objective.value)
        
        return result
    
    @property
    def last_optimization(self) -> Optional[OptimizationResult]:
        with self._lock:
            return self._last_optimization
    
    # ── CSV exchange ─────────────────────────────────────────────────
    
    def import_csv(self, text: str) -> None:
        """Replace the portfolio with CSV content; clears cached matrix and results."""
        imported = portfolio_from_csv(text)
        
        with self._lock:
            self._portfolio = imported
            self._matrix = None
            self._matrix_labels = []
            self._matrix_source = None
            self._mark_mutated()
        
        logger.info("portfolio_replaced_from_csv", assets=imported.asset_order())
    
    def export_csv(self) -> str:
        with self._lock:
            return portfolio_to_csv(self._portfolio, self._compatible_matrix(self._portfolio))
