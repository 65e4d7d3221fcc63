"""
Error taxonomy for the portfolio engine.

Every failure is local to the call that raised it: no retries happen
inside the engine and no partially-applied mutation is left behind.
"""


class PortfolioEngineError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidInputError(PortfolioEngineError, ValueError):
    """Malformed argument (empty name, non-positive quantity, parameter mismatch...)."""
    pass


class NotFoundError(PortfolioEngineError, LookupError):
    """Lookup or removal of an asset that is not held."""
    pass


class CorrelationMatrixError(PortfolioEngineError, ValueError):
    """Correlation matrix shape or content violation."""
    pass


class DimensionError(CorrelationMatrixError):
    """Row count or row width does not match the asset count."""
    pass


class DiagonalError(CorrelationMatrixError):
    """A diagonal entry is not 1."""
    pass


class BoundsError(CorrelationMatrixError):
    """An off-diagonal entry lies outside [-1, 1]."""
    pass


class SymmetryError(CorrelationMatrixError):
    """M[i][j] and M[j][i] disagree."""
    pass


class InfeasibleError(PortfolioEngineError):
    """No optimizer candidate satisfies the active constraints."""
    pass


class DataError(PortfolioEngineError):
    """Market data could not be fetched or is insufficient."""
    pass


class ConfigurationError(PortfolioEngineError):
    """
    Raised when the settings file is corrupted or contains invalid values.
    
    Missing files fall back to defaults; unreadable or invalid ones never do.
    """
    pass
