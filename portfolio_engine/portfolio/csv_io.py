"""
Portfolio CSV exchange (spreadsheet-compatible).

Import format, one position per row, optional header:
    name,price,mu,sigma,qty
Semicolons are accepted as the delimiter when the first line contains
more semicolons than commas.

Export writes a positions table followed by a metrics table.
"""

import io
from typing import Optional, Sequence
import structlog

import pandas as pd

from portfolio_engine.errors import InvalidInputError
from portfolio_engine.portfolio.asset import Asset
from portfolio_engine.portfolio.portfolio import Portfolio
from portfolio_engine.risk import risk_engine

logger = structlog.get_logger(__name__)

EXPORT_COLUMNS = ["name", "qty", "price", "mu", "sigma", "value"]


def _detect_delimiter(first_line: str) -> str:
    return ";" if first_line.count(";") > first_line.count(",") else ","


def _parse_float(cell: str) -> float:
    return float(cell.strip())


def portfolio_from_csv(text: str) -> Portfolio:
    """
    Build a portfolio from CSV text.
    
    Rows sharing a name are merged with Portfolio.add_position rules.
    
    Raises:
        InvalidInputError: Empty text, no data row, short row, bad number,
            or any Asset/Position validation failure
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise InvalidInputError("CSV empty.")
    
    delimiter = _detect_delimiter(lines[0])
    table = pd.read_csv(
        io.StringIO("\n".join(lines)),
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        names=list(range(max(line.count(delimiter) for line in lines) + 1)),
    ).fillna("")
    
    first = [str(cell).strip() for cell in table.iloc[0] if str(cell).strip()]
    has_header = len(first) >= 5 and first[0].lower() in ("name", "asset")
    
    imported = Portfolio()
    row_count = 0
    start = 1 if has_header else 0
    
    for i in range(start, len(table)):
        line_number = i + 1
        cells = [str(cell).strip() for cell in table.iloc[i]]
        # Trailing empty cells come from ragged rows
        while cells and cells[-1] == "":
            cells.pop()
        
        if len(cells) < 5:
            raise InvalidInputError(
                f"CSV line {line_number}: expected 5 columns (name,price,mu,sigma,qty)."
            )
        
        try:
            price, mu, sigma, qty = (_parse_float(c) for c in cells[1:5])
        except ValueError as e:
            raise InvalidInputError(f"CSV line {line_number}: invalid numeric value.") from e
        
        imported.add_position(Asset(cells[0], price, mu, sigma), qty)
        row_count += 1
    
    if row_count == 0:
        raise InvalidInputError("CSV contains no data row.")
    
    logger.info("portfolio_imported", rows=row_count, assets=len(imported))
    return imported


def portfolio_to_csv(
    portfolio: Portfolio,
    matrix: Optional[Sequence[Sequence[float]]] = None,
) -> str:
    """
    Export positions and headline metrics.
    
    When a matrix is given it is validated, and volatility plus one
    risk_share_<name> row per asset (when variance > 0) are appended.
    """
    positions = pd.DataFrame(
        [
            {
                "name": p.asset.name,
                "qty": p.quantity,
                "price": p.asset.price,
                "mu": p.asset.expected_return,
                "sigma": p.asset.volatility,
                "value": p.value,
            }
            for p in portfolio
        ],
        columns=EXPORT_COLUMNS,
    )
    
    metrics = [
        ("total_value", portfolio.total_value()),
        ("expected_return", portfolio.expected_return()),
    ]
    if matrix is not None:
        metrics.append(("volatility", risk_engine.volatility(portfolio, matrix)))
        shares = risk_engine.risk_shares(portfolio, matrix)
        if shares is not None:
            metrics.extend((f"risk_share_{name}", share) for name, share in shares.items())
    
    metrics_frame = pd.DataFrame(metrics, columns=["metric", "value"])
    
    buffer = io.StringIO()
    positions.to_csv(buffer, index=False, lineterminator="\n")
    buffer.write("\n")
    metrics_frame.to_csv(buffer, index=False, lineterminator="\n")
    return buffer.getvalue()
