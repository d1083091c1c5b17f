"""
Budget constraint strategies.

A constraint strategy turns a raw allocation vector (one budget per arm, as
proposed by the allocation policy) into a feasible one:

  - every arm within ``[min_budget, max_budget]``
  - the vector summing to the target total (``total_budget`` when given,
    otherwise the raw total)

Feasibility problems (minimums exceeding the total, inverted bounds, ...)
are reported by ``validate_constraints`` as structured violations rather
than raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from decision_engine.config import ConstraintsConfig
from decision_engine.core.contracts import BudgetConstraints, ConstraintArm, RiskLevel
from decision_engine.core.exceptions import AllocationLengthError


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ConstraintViolation:
    type: Literal["infeasible", "conflicting", "invalid"]
    message: str
    arm_ids: list[str] = field(default_factory=list)
    suggested_fix: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "arm_ids": list(self.arm_ids),
            "suggested_fix": self.suggested_fix,
        }


@dataclass
class ConstraintWarning:
    type: Literal["suboptimal", "risky", "performance"]
    message: str
    impact: Literal["low", "medium", "high"]
    arm_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "impact": self.impact,
            "arm_ids": list(self.arm_ids),
        }


@dataclass
class ConstraintValidationResult:
    """Outcome of a feasibility check; ``valid`` iff there are no violations."""

    valid: bool
    violations: list[ConstraintViolation] = field(default_factory=list)
    warnings: list[ConstraintWarning] = field(default_factory=list)
    total_min_budget: float = 0.0
    total_max_budget: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": [w.to_dict() for w in self.warnings],
            "total_min_budget": self.total_min_budget,
            "total_max_budget": self.total_max_budget,
        }


@dataclass(frozen=True)
class ConstraintStrategyMetadata:
    name: str
    description: str
    approach: Literal["simple", "optimization", "heuristic", "ml-based"]
    complexity: Literal["low", "medium", "high"]
    performance: Literal["fast", "medium", "slow"]
    accuracy: Literal["approximate", "good", "optimal"]

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "approach": self.approach,
            "complexity": self.complexity,
            "performance": self.performance,
            "accuracy": self.accuracy,
        }


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class ConstraintStrategy(ABC):
    """Abstract base for constraint application strategies."""

    @abstractmethod
    def apply_constraints(
        self,
        raw_allocations: Sequence[float],
        constraints: BudgetConstraints,
        arms: Sequence[ConstraintArm],
    ) -> list[float]:
        """Project ``raw_allocations`` onto the feasible set."""
        ...

    @abstractmethod
    def validate_constraints(
        self,
        constraints: BudgetConstraints,
        arms: Sequence[ConstraintArm],
    ) -> ConstraintValidationResult:
        """Check the constraints are feasible before applying them."""
        ...

    @abstractmethod
    def get_metadata(self) -> ConstraintStrategyMetadata:
        ...


# ---------------------------------------------------------------------------
# Basic strategy
# ---------------------------------------------------------------------------

class BasicConstraintStrategy(ConstraintStrategy):
    """
    Min/max clamping with proportional rescaling and greedy redistribution.

    Steps:
      1. Clamp each arm into its bounds.
      2. Rescale proportionally to the target total and re-clamp.
      3. If the total is still off by more than ``tolerance``, move the
         residual greedily: a surplus goes to arms below their maximum,
         best conversion rate first; a deficit is taken from arms above
         their minimum, largest headroom first.

    Args:
        tolerance: Acceptable absolute error on the total.
    """

    def __init__(self, tolerance: float = 0.01):
        self.tolerance = tolerance

    @classmethod
    def from_config(cls, config: ConstraintsConfig) -> "BasicConstraintStrategy":
        return cls(tolerance=config.tolerance)

    def apply_constraints(
        self,
        raw_allocations: Sequence[float],
        constraints: BudgetConstraints,
        arms: Sequence[ConstraintArm],
    ) -> list[float]:
        check_allocation_lengths(raw_allocations, arms)

        raw = np.asarray(raw_allocations, dtype=float)
        target = (
            constraints.total_budget if constraints.total_budget is not None else float(raw.sum())
        )

        clamped = clamp_to_bounds(raw, arms)
        return self.rebalance(clamped, arms, target)

    def rebalance(
        self,
        allocations: Sequence[float],
        arms: Sequence[ConstraintArm],
        target_total: float,
    ) -> list[float]:
        """
        Move an in-bounds vector onto ``sum == target_total``.

        Exposed so other strategies can use it as their final exact
        projection.
        """
        check_allocation_lengths(allocations, arms)
        result = np.asarray(allocations, dtype=float).copy()
        current_total = float(result.sum())

        if abs(current_total - target_total) <= self.tolerance:
            return result.tolist()

        if current_total > 0:
            scaled = clamp_to_bounds(result * (target_total / current_total), arms)
            if abs(float(scaled.sum()) - target_total) <= self.tolerance:
                return scaled.tolist()
            result = scaled

        return self._redistribute(result, arms, target_total).tolist()

    def validate_constraints(
        self,
        constraints: BudgetConstraints,
        arms: Sequence[ConstraintArm],
    ) -> ConstraintValidationResult:
        violations: list[ConstraintViolation] = []
        warnings: list[ConstraintWarning] = []

        total_min = 0.0
        total_max = 0.0

        for arm in arms:
            if arm.min_budget < 0:
                violations.append(
                    ConstraintViolation(
                        type="invalid",
                        message=f"Arm {arm.label} has negative minimum budget: {arm.min_budget}",
                        arm_ids=[arm.id],
                        suggested_fix="Set minimum budget to 0 or positive value",
                    )
                )
            if arm.max_budget < arm.min_budget:
                violations.append(
                    ConstraintViolation(
                        type="invalid",
                        message=(
                            f"Arm {arm.label} has max budget ({arm.max_budget}) "
                            f"less than min budget ({arm.min_budget})"
                        ),
                        arm_ids=[arm.id],
                        suggested_fix="Increase max budget or decrease min budget",
                    )
                )
            total_min += max(0.0, arm.min_budget)
            total_max += arm.max_budget

        if constraints.min_daily_budget and arms:
            required = constraints.min_daily_budget * len(arms)
            available = constraints.total_budget or constraints.max_daily_budget or float("inf")
            if required > available:
                violations.append(
                    ConstraintViolation(
                        type="infeasible",
                        message=(
                            f"Global minimum budget per arm ({constraints.min_daily_budget}) "
                            f"x {len(arms)} arms = {required}, which exceeds available budget"
                        ),
                        suggested_fix="Reduce minimum budget per arm or increase total budget",
                    )
                )

        total = constraints.total_budget
        if total is not None and total < total_min:
            violations.append(
                ConstraintViolation(
                    type="infeasible",
                    message=(
                        f"Total budget ({total}) is less than sum of minimum budgets ({total_min})"
                    ),
                    suggested_fix=(
                        f"Increase total budget to at least {total_min} "
                        f"or reduce minimum budget constraints"
                    ),
                )
            )
        if total is not None and total > total_max:
            warnings.append(
                ConstraintWarning(
                    type="suboptimal",
                    message=f"Total budget ({total}) exceeds sum of maximum budgets ({total_max})",
                    impact="medium",
                )
            )

        high_risk = [arm for arm in arms if arm.metadata.risk_level == RiskLevel.HIGH]
        if len(high_risk) > len(arms) * 0.5:
            warnings.append(
                ConstraintWarning(
                    type="risky",
                    message=f"Over 50% of arms are high risk ({len(high_risk)}/{len(arms)})",
                    arm_ids=[arm.id for arm in high_risk],
                    impact="high",
                )
            )

        if violations:
            logger.warning(
                f"Constraint validation failed with {len(violations)} violation(s): "
                + "; ".join(v.message for v in violations)
            )

        return ConstraintValidationResult(
            valid=not violations,
            violations=violations,
            warnings=warnings,
            total_min_budget=total_min,
            total_max_budget=total_max,
        )

    def get_metadata(self) -> ConstraintStrategyMetadata:
        return ConstraintStrategyMetadata(
            name="Basic Constraint Strategy",
            description="Simple min/max budget constraints with proportional adjustment",
            approach="simple",
            complexity="low",
            performance="fast",
            accuracy="approximate",
        )

    def _redistribute(
        self,
        allocations: np.ndarray,
        arms: Sequence[ConstraintArm],
        target_total: float,
    ) -> np.ndarray:
        result = clamp_to_bounds(allocations, arms)
        remaining = target_total - float(result.sum())

        if remaining > 0:
            candidates = sorted(
                (i for i, arm in enumerate(arms) if result[i] < arm.max_budget),
                key=lambda i: arms[i].performance.conversion_rate,
                reverse=True,
            )
            for i in candidates:
                if remaining <= 0:
                    break
                step = min(remaining, arms[i].max_budget - result[i])
                result[i] += step
                remaining -= step
        elif remaining < 0:
            deficit = -remaining
            candidates = sorted(
                (i for i, arm in enumerate(arms) if result[i] > arm.min_budget),
                key=lambda i: result[i] - arms[i].min_budget,
                reverse=True,
            )
            for i in candidates:
                if deficit <= 0:
                    break
                step = min(deficit, result[i] - arms[i].min_budget)
                result[i] -= step
                deficit -= step
            remaining = -deficit

        if abs(remaining) > self.tolerance:
            logger.debug(
                f"Redistribution left {remaining:.4f} unallocated; bounds cannot reach the target"
            )
        return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def clamp_to_bounds(
    allocations: np.ndarray | Sequence[float], arms: Sequence[ConstraintArm]
) -> np.ndarray:
    """Elementwise max(min_budget, min(max_budget, x))."""
    lower = np.array([arm.min_budget for arm in arms], dtype=float)
    upper = np.array([arm.max_budget for arm in arms], dtype=float)
    return np.maximum(lower, np.minimum(upper, np.asarray(allocations, dtype=float)))


def expected_value(allocation: float, arm: ConstraintArm) -> float:
    """Expected conversion value of spending ``allocation`` on ``arm``."""
    perf = arm.performance
    return allocation / perf.cost_per_click * perf.conversion_rate * perf.average_value


def summarize_allocation(
    arms: Sequence[ConstraintArm],
    allocations: Sequence[float],
) -> pd.DataFrame:
    """
    Per-arm comparison of current vs. allocated budget.

    Returns:
        DataFrame with one row per arm: current and allocated budget, the
        change, expected conversions and expected value at the new budget.
    """
    check_allocation_lengths(allocations, arms)

    rows = []
    for arm, allocated in zip(arms, allocations):
        current = arm.current_budget
        rows.append({
            "arm_id": arm.id,
            "name": arm.label,
            "category": arm.metadata.category,
            "current_budget": current,
            "allocated_budget": float(allocated),
            "budget_change": float(allocated) - current,
            "budget_change_pct": (float(allocated) - current) / (current + 1e-8) * 100,
            "expected_conversions": (
                float(allocated) / arm.performance.cost_per_click * arm.performance.conversion_rate
            ),
            "expected_value": expected_value(float(allocated), arm),
        })

    return pd.DataFrame(rows)


def check_allocation_lengths(
    allocations: Sequence[float], arms: Sequence[ConstraintArm]
) -> None:
    if len(allocations) != len(arms):
        raise AllocationLengthError(len(allocations), len(arms))
