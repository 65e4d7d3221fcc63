#!/usr/bin/env python3
"""
Analyze a portfolio and search for a better allocation.

Usage:
    python scripts/optimize_portfolio.py --csv portfolio.csv --corr corr.txt
    
    # Correlations from market data
    python scripts/optimize_portfolio.py --csv portfolio.csv --auto-corr
    
    # Constrained search
    python scripts/optimize_portfolio.py --csv portfolio.csv --corr corr.txt \
        --objective max_score --lambda 0.8 --target-return 0.05 --max-vol 0.25
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import structlog

from portfolio_engine.config import load_settings
from portfolio_engine.errors import PortfolioEngineError
from portfolio_engine.portfolio.correlation_matrix import parse_correlation_matrix
from portfolio_engine.service import PortfolioService

logger = structlog.get_logger(__name__)


def setup_logging(level: str = "INFO"):
    """Configure logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def print_metrics(service: PortfolioService):
    metrics = service.metrics()
    
    print("\n--- Portfolio ---")
    print(service.snapshot().to_frame().to_string())
    print(f"\nTotal value:     {metrics.total_value:,.2f}")
    print(f"Expected return: {metrics.expected_return:.2%}")
    if metrics.volatility is not None:
        print(f"Volatility:      {metrics.volatility:.2%} ({metrics.matrix_source} correlations)")
    if metrics.risk_shares:
        print("\nRisk contribution (share of total variance):")
        for name, share in metrics.risk_shares.items():
            print(f"  {name:<10} {share:.2%}")


def main():
    parser = argparse.ArgumentParser(description="Portfolio risk analysis and allocation search")
    parser.add_argument("--csv", required=True, help="Portfolio CSV (name,price,mu,sigma,qty)")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--corr", help="Correlation matrix file (rows of numbers, lexical asset order)")
    source.add_argument("--auto-corr", action="store_true", help="Build correlations from market data")
    parser.add_argument("--objective", choices=["min_variance", "max_return", "max_score"])
    parser.add_argument("--target-return", type=float, help="Minimum expected return")
    parser.add_argument("--max-vol", type=float, help="Maximum volatility")
    parser.add_argument("--lambda", dest="risk_aversion", type=float, help="Risk aversion for max_score")
    parser.add_argument("--config", default=None, help="Settings YAML")
    parser.add_argument("--no-optimize", action="store_true", help="Only print metrics")
    
    args = parser.parse_args()
    
    try:
        settings = load_settings(args.config)
    except PortfolioEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    setup_logging(settings.log_level)
    
    service = PortfolioService(settings=settings)
    
    try:
        service.import_csv(Path(args.csv).read_text())
        
        if args.auto_corr:
            service.refresh_correlation_matrix()
        else:
            service.set_correlation_matrix(
                parse_correlation_matrix(Path(args.corr).read_text()),
                source="file",
            )
        
        print_metrics(service)
        
        if args.no_optimize:
            return 0
        
        result = service.optimize(
            objective=args.objective,
            target_return=args.target_return,
            max_volatility=args.max_vol,
            risk_aversion=args.risk_aversion,
        )
    except (PortfolioEngineError, OSError) as e:
        logger.error("portfolio_engine_failed", error=str(e), error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    
    print(f"\n--- Optimization ({result.objective.value}) ---")
    print(f"Candidates: {len(result.candidates)} (eligible: {result.eligible_count})")
    print(
        f"Current: return={result.current.expected_return:.2%} "
        f"vol={result.current.volatility:.2%}"
    )
    print(
        f"Best:    return={result.best.expected_return:.2%} "
        f"vol={result.best.volatility:.2%} score={result.best.score:.4f}"
    )
    print("Weights:")
    for name, weight in result.best.weight_map(result.asset_order).items():
        print(f"  {name:<10} {weight:.2%}")
    
    return 0


if __name__ == "__main__":
    sys.exit(main())
