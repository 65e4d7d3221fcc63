"""
Portfolio of positions keyed by asset name.

Positions are always iterated in ascending lexical order of their
names. That order is the axis order of every correlation matrix and
weight vector the engine accepts.
"""

from typing import Iterator, Optional, Sequence
import structlog

import pandas as pd

from portfolio_engine.errors import InvalidInputError, NotFoundError
from portfolio_engine.portfolio.asset import Asset, Position
from portfolio_engine.risk import risk_engine

logger = structlog.get_logger(__name__)

# Same-name assets must agree on mu/sigma within this tolerance to merge
PARAMETER_TOLERANCE = 1e-12


class Portfolio:
    """
    Ordered collection of positions.
    
    A portfolio never holds a zero or negative quantity: removing the
    full quantity of a position deletes it.
    """
    
    def __init__(self, positions: Optional[Sequence[Position]] = None):
        self._positions: dict[str, Position] = {}
        
        for position in positions or []:
            self.add_position(position.asset, position.quantity)
    
    # ── Mutation ─────────────────────────────────────────────────────
    
    def add_position(self, asset: Asset, quantity: float) -> None:
        """
        Add quantity of an asset.
        
        If the name is already held, the new asset's expected return and
        volatility must match the held ones; quantities are then summed
        and the held asset's price is kept (the supplied price is ignored).
        
        Raises:
            InvalidInputError: quantity <= 0, or parameter mismatch
        """
        if quantity <= 0.0:
            raise InvalidInputError("add_position: quantity must be > 0.")
        
        existing = self._positions.get(asset.name)
        if existing is None:
            self._positions[asset.name] = Position(asset=asset.copy(), quantity=quantity)
            logger.debug("position_added", asset=asset.name, quantity=quantity)
            return
        
        held = existing.asset
        if (
            abs(held.expected_return - asset.expected_return) > PARAMETER_TOLERANCE
            or abs(held.volatility - asset.volatility) > PARAMETER_TOLERANCE
        ):
            raise InvalidInputError(
                f"add_position: asset parameters mismatch for {asset.name!r} (mu/sigma)."
            )
        
        existing.quantity += float(quantity)
        logger.debug(
            "position_increased",
            asset=asset.name,
            quantity=quantity,
            total_quantity=existing.quantity,
        )
    
    def remove_position(self, name: str, quantity: float) -> None:
        """
        Remove quantity of a held asset; removing all of it deletes the entry.
        
        Raises:
            InvalidInputError: quantity <= 0 or more than held
            NotFoundError: name not held
        """
        if quantity <= 0.0:
            raise InvalidInputError("remove_position: quantity must be > 0.")
        
        position = self._positions.get(name)
        if position is None:
            raise NotFoundError(f"remove_position: asset not found: {name}")
        
        if quantity > position.quantity:
            raise InvalidInputError("remove_position: quantity exceeds current position.")
        
        position.quantity -= quantity
        if position.quantity <= 0.0:
            del self._positions[name]
            logger.debug("position_closed", asset=name)
    
    def merge(self, other: "Portfolio") -> None:
        """
        Add every position of *other* into this portfolio.
        
        Applies add_position rules to each position. On a parameter
        mismatch nothing is merged.
        """
        merged = self.copy()
        for position in other:
            merged.add_position(position.asset, position.quantity)
        self._positions = merged._positions
    
    def __add__(self, other: "Portfolio") -> "Portfolio":
        if not isinstance(other, Portfolio):
            return NotImplemented
        out = self.copy()
        out.merge(other)
        return out
    
    # ── Access ───────────────────────────────────────────────────────
    
    def lookup(self, name: str) -> Position:
        """
        Return the held position for *name* (mutable).
        
        Raises:
            NotFoundError: name not held
        """
        position = self._positions.get(name)
        if position is None:
            raise NotFoundError(f"lookup: asset not found: {name}")
        return position
    
    def __getitem__(self, name: str) -> Position:
        return self.lookup(name)
    
    def __contains__(self, name: object) -> bool:
        return name in self._positions
    
    def __len__(self) -> int:
        return len(self._positions)
    
    def __iter__(self) -> Iterator[Position]:
        for name in self.asset_order():
            yield self._positions[name]
    
    def asset_order(self) -> list[str]:
        """Canonical axis order for correlation matrices and weight vectors."""
        return sorted(self._positions)
    
    def asset_names(self) -> set[str]:
        return set(self._positions)
    
    def copy(self) -> "Portfolio":
        """Deep copy (positions and assets are not shared)."""
        out = Portfolio()
        out._positions = {name: p.copy() for name, p in self._positions.items()}
        return out
    
    # ── Valuation ────────────────────────────────────────────────────
    
    def total_value(self) -> float:
        return sum(p.value for p in self)
    
    def weights(self) -> list[float]:
        """
        Value weights in canonical order.
        
        Raises:
            InvalidInputError: total value is zero (weights undefined)
        """
        total = self.total_value()
        if total <= 0.0:
            raise InvalidInputError("weights: portfolio has zero total value.")
        return [p.value / total for p in self]
    
    def weight(self, name: str) -> float:
        position = self.lookup(name)
        total = self.total_value()
        if total <= 0.0:
            raise InvalidInputError("weight: portfolio has zero total value.")
        return position.value / total
    
    def expected_return(self) -> float:
        """Value-weighted expected return; 0 when the portfolio has no value."""
        total = self.total_value()
        if total <= 0.0:
            return 0.0
        return sum((p.value / total) * p.asset.expected_return for p in self)
    
    # ── Risk (delegates to the risk engine) ──────────────────────────
    
    def variance(self, matrix: Sequence[Sequence[float]]) -> float:
        return risk_engine.variance(self, matrix)
    
    def volatility(self, matrix: Sequence[Sequence[float]]) -> float:
        return risk_engine.volatility(self, matrix)
    
    def variance_contributions(self, matrix: Sequence[Sequence[float]]) -> list[float]:
        return risk_engine.variance_contributions(self, matrix)
    
    # ── Display ──────────────────────────────────────────────────────
    
    def to_frame(self) -> pd.DataFrame:
        """Positions as a DataFrame indexed by name, in canonical order."""
        total = self.total_value()
        rows = [
            {
                "name": p.asset.name,
                "quantity": p.quantity,
                "price": p.asset.price,
                "mu": p.asset.expected_return,
                "sigma": p.asset.volatility,
                "value": p.value,
                "weight": p.value / total if total > 0 else 0.0,
            }
            for p in self
        ]
        columns = ["name", "quantity", "price", "mu", "sigma", "value", "weight"]
        return pd.DataFrame(rows, columns=columns).set_index("name")
    
    def __repr__(self) -> str:
        return f"Portfolio(assets={self.asset_order()}, total_value={self.total_value()})"
