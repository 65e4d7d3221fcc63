"""
Monte-Carlo allocation optimizer.

Searches long-only weight vectors for a better allocation than the
current one:
- The current allocation is always the first candidate
- Random candidates come from a pinned, seeded generator, so the
  candidate sequence is identical on every run
- Optional constraints: minimum expected return, maximum volatility
- Objectives: minimum volatility, maximum return, maximum
  return - lambda * volatility

This is a randomized search, not an exact solver.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union
import math
import structlog

import numpy as np

from portfolio_engine.config import (
    DEFAULT_NUM_CANDIDATES,
    DEFAULT_RISK_AVERSION,
    DEFAULT_SEED,
    DEFAULT_WEIGHT_FLOOR,
)
from portfolio_engine.errors import InfeasibleError, InvalidInputError
from portfolio_engine.portfolio.correlation_matrix import validate_correlation_matrix
from portfolio_engine.risk import risk_engine

logger = structlog.get_logger(__name__)

_LCG_MULTIPLIER = 6364136223846793005
_LCG_INCREMENT = 1
_MASK_64 = (1 << 64) - 1
_MASK_53 = (1 << 53) - 1
_TWO_53 = float(1 << 53)

WEIGHT_SUM_TOLERANCE = 1e-9


class Objective(str, Enum):
    """Selection objectives."""
    MIN_VARIANCE = "min_variance"
    MAX_RETURN = "max_return"
    MAX_SCORE = "max_score"  # return - lambda * volatility
    
    @classmethod
    def parse(cls, value: Union[str, "Objective"]) -> "Objective":
        if isinstance(value, Objective):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InvalidInputError(f"unknown objective: {value!r}") from e


@dataclass
class CandidatePoint:
    """One evaluated allocation."""
    weights: list[float]
    expected_return: float
    volatility: float
    score: float
    
    def weight_map(self, asset_order: Sequence[str]) -> dict[str, float]:
        return dict(zip(asset_order, self.weights))


@dataclass
class OptimizationResult:
    """Selected allocation plus every candidate considered (current first)."""
    best: CandidatePoint
    current: CandidatePoint
    candidates: list[CandidatePoint]
    objective: Objective
    asset_order: list[str]
    eligible_count: int = 0
    constraints: dict = field(default_factory=dict)


class LinearCongruentialGenerator:
    """
    64-bit LCG producing doubles in [0, 1).
        
        state = state * 6364136223846793005 + 1   (mod 2**64)
        value = top 53 bits of state / 2**53
    
    The recurrence and seed are part of the optimizer's contract: the
    same seed always yields the same candidate sequence.
    """
    
    def __init__(self, seed: int = DEFAULT_SEED):
        self.state = seed & _MASK_64
    
    def random(self) -> float:
        self.state = (self.state * _LCG_MULTIPLIER + _LCG_INCREMENT) & _MASK_64
        return ((self.state >> 11) & _MASK_53) / _TWO_53


def random_long_only_weights(
    n: int,
    rng: LinearCongruentialGenerator,
    floor: float = DEFAULT_WEIGHT_FLOOR,
) -> list[float]:
    """Draw floor + U[0, 1) per asset and normalize to sum to 1 (never exactly 0)."""
    raw = [floor + rng.random() for _ in range(n)]
    total = sum(raw)
    return [x / total for x in raw]


class AllocationOptimizer:
    """
    Seeded Monte-Carlo search over long-only allocations.
    
    The optimizer is stateless between runs: each run starts a fresh
    generator from the configured seed.
    """
    
    def __init__(
        self,
        num_candidates: int = DEFAULT_NUM_CANDIDATES,
        seed: int = DEFAULT_SEED,
        weight_floor: float = DEFAULT_WEIGHT_FLOOR,
    ):
        """
        Initialize allocation optimizer.
        
        Args:
            num_candidates: Random candidates generated per run (besides the current one)
            seed: Generator seed
            weight_floor: Positive floor added to every raw draw
        """
        if num_candidates < 0:
            raise InvalidInputError("num_candidates must be >= 0.")
        if weight_floor <= 0.0:
            raise InvalidInputError("weight_floor must be > 0.")
        
        self.num_candidates = num_candidates
        self.seed = seed
        self.weight_floor = weight_floor
        
        logger.info(
            "allocation_optimizer_initialized",
            num_candidates=num_candidates,
            seed=hex(seed),
        )
    
    def generate_weights(self, n: int) -> np.ndarray:
        """The random candidate weights for *n* assets, shape (num_candidates, n)."""
        rng = LinearCongruentialGenerator(self.seed)
        rows = [
            random_long_only_weights(n, rng, self.weight_floor)
            for _ in range(self.num_candidates)
        ]
        return np.array(rows, dtype=float).reshape(self.num_candidates, n)
    
    def run(
        self,
        asset_order: Sequence[str],
        mu: Sequence[float],
        sigma: Sequence[float],
        matrix: Sequence[Sequence[float]],
        objective: Union[str, Objective] = Objective.MIN_VARIANCE,
        target_return: Optional[float] = None,
        max_volatility: Optional[float] = None,
        risk_aversion: float = DEFAULT_RISK_AVERSION,
        current_weights: Optional[Sequence[float]] = None,
    ) -> OptimizationResult:
        """
        Search for the best eligible allocation.
        
        Args:
            asset_order: Asset names (canonical order, at least 2)
            mu: Expected return per asset
            sigma: Volatility per asset
            matrix: Correlation matrix in the same order
            objective: min_variance, max_return or max_score
            target_return: Minimum acceptable expected return (>= 0)
            max_volatility: Maximum acceptable volatility (> 0)
            risk_aversion: Lambda in score = return - lambda * volatility (>= 0)
            current_weights: Current allocation, long-only and summing to 1 or all
                zero (equal weights if omitted)
        
        Returns:
            OptimizationResult with the selected candidate and all candidates
        
        Raises:
            InvalidInputError: Bad arguments
            CorrelationMatrixError: Invalid matrix
            InfeasibleError: No candidate satisfies the constraints
        """
        objective = Objective.parse(objective)
        n = len(asset_order)
        
        if n < 2:
            raise InvalidInputError("Need at least 2 assets to optimize.")
        if len(mu) != n or len(sigma) != n:
            raise InvalidInputError("mu and sigma must have one entry per asset.")
        if any(s < 0.0 for s in sigma):
            raise InvalidInputError("volatilities must be >= 0.")
        if target_return is not None and target_return < 0.0:
            raise InvalidInputError("target_return must be >= 0.")
        if max_volatility is not None and max_volatility <= 0.0:
            raise InvalidInputError("max_volatility must be > 0.")
        if risk_aversion < 0.0:
            raise InvalidInputError("risk_aversion (lambda) must be >= 0.")
        
        validate_correlation_matrix(matrix, n)
        
        if current_weights is None:
            current_weights = [1.0 / n] * n
        elif len(current_weights) != n:
            raise InvalidInputError("current_weights must have one entry per asset.")
        else:
            current_weights = [float(w) for w in current_weights]
            if any(not w >= 0.0 for w in current_weights):
                raise InvalidInputError("current_weights must be >= 0 (long-only).")
            total = math.fsum(current_weights)
            # All zeros is the baseline of a portfolio with no value
            if total != 0.0 and abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
                raise InvalidInputError("current_weights must sum to 1.")
        
        weight_rows = np.vstack([
            np.asarray(current_weights, dtype=float).reshape(1, n),
            self.generate_weights(n),
        ])
        returns, vols = risk_engine.batch_statistics(weight_rows, mu, sigma, matrix)
        scores = returns - risk_aversion * vols
        
        candidates = [
            CandidatePoint(
                weights=[float(x) for x in weight_rows[k]],
                expected_return=float(returns[k]),
                volatility=float(vols[k]),
                score=float(scores[k]),
            )
            for k in range(len(weight_rows))
        ]
        
        best: Optional[CandidatePoint] = None
        eligible_count = 0
        
        for candidate in candidates:
            if not self._is_eligible(candidate, target_return, max_volatility):
                continue
            eligible_count += 1
            
            if best is None or self._improves(candidate, best, objective):
                best = candidate
        
        constraints = {
            "target_return": target_return,
            "max_volatility": max_volatility,
            "risk_aversion": risk_aversion,
        }
        
        if best is None:
            logger.warning(
                "optimization_infeasible",
                objective=objective.value,
                candidates=len(candidates),
                **constraints,
            )
            raise InfeasibleError("No candidate portfolio satisfies selected constraints.")
        
        logger.info(
            "optimization_completed",
            objective=objective.value,
            candidates=len(candidates),
            eligible=eligible_count,
            best_return=best.expected_return,
            best_volatility=best.volatility,
            kept_current=best is candidates[0],
        )
        
        return OptimizationResult(
            best=best,
            current=candidates[0],
            candidates=candidates,
            objective=objective,
            asset_order=list(asset_order),
            eligible_count=eligible_count,
            constraints=constraints,
        )
    
    @staticmethod
    def _is_eligible(
        candidate: CandidatePoint,
        target_return: Optional[float],
        max_volatility: Optional[float],
    ) -> bool:
        if target_return is not None and candidate.expected_return < target_return:
            return False
        if max_volatility is not None and candidate.volatility > max_volatility:
            return False
        return True
    
    @staticmethod
    def _improves(
        candidate: CandidatePoint,
        best: CandidatePoint,
        objective: Objective,
    ) -> bool:
        """Strict improvement only: earlier candidates win ties."""
        if objective == Objective.MAX_RETURN:
            return candidate.expected_return > best.expected_return
        if objective == Objective.MAX_SCORE:
            return candidate.score > best.score
        return candidate.volatility < best.volatility


def optimize_portfolio(
    portfolio,
    matrix: Sequence[Sequence[float]],
    objective: Union[str, Objective] = Objective.MIN_VARIANCE,
    target_return: Optional[float] = None,
    max_volatility: Optional[float] = None,
    risk_aversion: float = DEFAULT_RISK_AVERSION,
    optimizer: Optional[AllocationOptimizer] = None,
) -> OptimizationResult:
    """
    Run the optimizer on a portfolio's own assets and current weights.
    
    The portfolio is read only; applying the result is the caller's job.
    """
    optimizer = optimizer or AllocationOptimizer()
    
    positions = list(portfolio)
    total = portfolio.total_value()
    current = [p.value / total if total > 0.0 else 0.0 for p in positions]
    
    return optimizer.run(
        asset_order=portfolio.asset_order(),
        mu=[p.asset.expected_return for p in positions],
        sigma=[p.asset.volatility for p in positions],
        matrix=matrix,
        objective=objective,
        target_return=target_return,
        max_volatility=max_volatility,
        risk_aversion=risk_aversion,
        current_weights=current,
    )
