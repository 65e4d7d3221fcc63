"""
Correlation matrix validation and construction.

Every matrix handed to the risk engine is indexed in the portfolio's
canonical (lexical) asset order and must pass validate_correlation_matrix
before any variance is computed.
"""

from typing import Sequence
import structlog

import numpy as np
import pandas as pd

from portfolio_engine.errors import (
    BoundsError,
    DiagonalError,
    DimensionError,
    InvalidInputError,
    SymmetryError,
)

logger = structlog.get_logger(__name__)

DIAGONAL_TOLERANCE = 1e-10
SYMMETRY_TOLERANCE = 1e-10


def validate_correlation_matrix(matrix: Sequence[Sequence[float]], n: int) -> None:
    """
    Validate a correlation matrix against an asset count.
    
    Checks run in a fixed order so that a matrix with several defects
    always reports the same error:
        1. row count == n                      (DimensionError)
        2. every row has width n               (DimensionError)
        3. for each i: M[i][i] == 1            (DiagonalError)
           for each j > i: both entries in [-1, 1]  (BoundsError)
                           M[i][j] == M[j][i]       (SymmetryError)
    
    The diagonal of row i is checked before the pairs (i, j > i), and
    bounds are checked before symmetry for any pair.
    
    Args:
        matrix: Square sequence of rows (lists, tuples or a numpy array)
        n: Expected dimension (current asset count)
    """
    if len(matrix) != n:
        raise DimensionError(
            f"correlation matrix has {len(matrix)} rows, expected {n}."
        )
    for row in matrix:
        if len(row) != n:
            raise DimensionError(
                f"correlation matrix row has {len(row)} columns, expected {n}."
            )
    
    for i in range(n):
        if not abs(float(matrix[i][i]) - 1.0) <= DIAGONAL_TOLERANCE:
            raise DiagonalError(
                f"correlation matrix diagonal must be 1 (entry {i} is {matrix[i][i]})."
            )
        for j in range(i + 1, n):
            a = float(matrix[i][j])
            b = float(matrix[j][i])
            
            # NaN fails both comparisons, so test for membership instead
            if not (-1.0 <= a <= 1.0 and -1.0 <= b <= 1.0):
                raise BoundsError(
                    f"correlation ({i}, {j}) must be in [-1, 1], got {a} / {b}."
                )
            if abs(a - b) > SYMMETRY_TOLERANCE:
                raise SymmetryError(
                    f"correlation matrix must be symmetric at ({i}, {j}): {a} != {b}."
                )


def as_array(matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """Copy a (validated) matrix into a float array."""
    return np.array([[float(x) for x in row] for row in matrix], dtype=float)


def correlation_from_returns(returns_data: pd.DataFrame) -> pd.DataFrame:
    """
    Calculate a correlation matrix from aligned returns.
    
    Args:
        returns_data: DataFrame with columns = symbols, rows = observations
    
    Returns:
        Correlation matrix (symmetric, 1.0 on diagonal, entries in [-1, 1])
    """
    if returns_data.empty:
        return pd.DataFrame()
    
    correlation = returns_data.corr()
    
    # A constant series has no defined correlation; treat it as uncorrelated
    correlation = correlation.fillna(0.0).clip(lower=-1.0, upper=1.0)
    
    # Asset perfectly correlated with itself
    values = correlation.to_numpy(copy=True)
    np.fill_diagonal(values, 1.0)
    correlation = pd.DataFrame(values, index=correlation.index, columns=correlation.columns)
    
    logger.debug("correlation_calculated", symbols=len(correlation.columns))
    
    return correlation


def identify_highly_correlated(
    matrix: Sequence[Sequence[float]],
    labels: Sequence[str],
    threshold: float = 0.7,
) -> list[tuple[str, str, float]]:
    """
    Identify pairs of highly correlated assets.
    
    Returns:
        List of (symbol1, symbol2, correlation) tuples with |corr| >= threshold
    """
    validate_correlation_matrix(matrix, len(labels))
    
    highly_correlated = []
    
    for i, symbol1 in enumerate(labels):
        for j in range(i + 1, len(labels)):
            corr = float(matrix[i][j])
            
            if abs(corr) >= threshold:
                highly_correlated.append((symbol1, labels[j], corr))
    
    return highly_correlated


def parse_correlation_matrix(text: str) -> list[list[float]]:
    """
    Parse a matrix typed as text.
    
    Rows are separated by newlines and values by spaces and/or commas;
    blank lines are ignored. Shape is not checked here.
    
    Example:
        1 0.2 0.6
        0.2 1 0.1
        0.6 0.1 1
    """
    rows = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        tokens = line.replace(",", " ").split()
        if not tokens:
            continue
        try:
            rows.append([float(token) for token in tokens])
        except ValueError as e:
            raise InvalidInputError(
                f"matrix line {line_number}: invalid numeric value."
            ) from e
    return rows
