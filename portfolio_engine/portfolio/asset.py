"""
Asset and position data model.

An Asset carries identity plus annualized risk/return parameters.
Only its price may change after construction.
"""

from dataclasses import dataclass

from portfolio_engine.errors import InvalidInputError


class Asset:
    """
    A tradable asset.
    
    Args:
        name: Unique, non-empty identifier (usually the ticker)
        price: Last price (>= 0)
        expected_return: Annualized expected return (may be negative)
        volatility: Annualized volatility (>= 0)
    """
    
    __slots__ = ("_name", "_price", "_expected_return", "_volatility")
    
    def __init__(
        self,
        name: str,
        price: float,
        expected_return: float,
        volatility: float,
    ):
        if not name:
            raise InvalidInputError("Asset: name must be non-empty.")
        # NaN fails every comparison, so test for membership instead
        if not price >= 0.0:
            raise InvalidInputError("Asset: price must be >= 0.")
        if not volatility >= 0.0:
            raise InvalidInputError("Asset: volatility must be >= 0.")
        
        self._name = name
        self._price = float(price)
        self._expected_return = float(expected_return)
        self._volatility = float(volatility)
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def price(self) -> float:
        return self._price
    
    @price.setter
    def price(self, value: float) -> None:
        self.set_price(value)
    
    @property
    def expected_return(self) -> float:
        return self._expected_return
    
    @property
    def volatility(self) -> float:
        return self._volatility
    
    def set_price(self, price: float) -> None:
        """Update the price in place (same validation as construction)."""
        if not price >= 0.0:
            raise InvalidInputError("Asset.set_price: price must be >= 0.")
        self._price = float(price)
    
    def copy(self) -> "Asset":
        return Asset(self._name, self._price, self._expected_return, self._volatility)
    
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Asset):
            return NotImplemented
        return (
            self._name == other._name
            and self._price == other._price
            and self._expected_return == other._expected_return
            and self._volatility == other._volatility
        )
    
    def __hash__(self) -> int:
        return hash(self._name)
    
    def __repr__(self) -> str:
        return (
            f"Asset(name={self._name!r}, price={self._price}, "
            f"expected_return={self._expected_return}, volatility={self._volatility})"
        )


@dataclass
class Position:
    """An asset held in a strictly positive quantity."""
    asset: Asset
    quantity: float
    
    def __post_init__(self):
        if self.quantity <= 0.0:
            raise InvalidInputError("Position: quantity must be > 0.")
        self.quantity = float(self.quantity)
    
    @property
    def value(self) -> float:
        """Market value (price x quantity)."""
        return self.asset.price * self.quantity
    
    def copy(self) -> "Position":
        return Position(asset=self.asset.copy(), quantity=self.quantity)
