"""
Advanced constraint strategy: business rules plus projected gradient ascent.

Passes, in order:
  1. Seasonal adjustment: multiply by the arm's seasonality factor, clamp.
  2. Business rules: high-risk arms -10%, quality score < 3 floored at
     1.5x their minimum, then rescale to the target total.
  3. Projected finite-difference gradient ascent on the risk-adjusted
     expected value

         sum_i  x_i / cpc_i * cr_i * value_i * risk_i

     with risk_i = 0.8 (high), 0.9 (medium), 1.0 (low).
  4. Final exact projection through a ``BasicConstraintStrategy``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Sequence

import numpy as np
from loguru import logger

from decision_engine.config import ConstraintsConfig
from decision_engine.core.contracts import BudgetConstraints, ConstraintArm, RiskLevel
from decision_engine.optimization.constraints import (
    BasicConstraintStrategy,
    ConstraintStrategy,
    ConstraintStrategyMetadata,
    ConstraintValidationResult,
    ConstraintWarning,
    check_allocation_lengths,
    clamp_to_bounds,
    expected_value,
)


RISK_MULTIPLIERS = {
    RiskLevel.HIGH: 0.8,
    RiskLevel.MEDIUM: 0.9,
    RiskLevel.LOW: 1.0,
}

HIGH_RISK_REDUCTION = 0.1
LOW_QUALITY_SCORE = 3.0
LOW_QUALITY_MIN_MULTIPLIER = 1.5

CONCENTRATION_THRESHOLD = 0.8
LOW_PERFORMER_RATE = 0.01
LOW_PERFORMER_SHARE = 0.3


class AdvancedConstraintStrategy(ConstraintStrategy):
    """
    Business-rule and optimisation-based constraint strategy.

    Args:
        optimization_tolerance: Minimum objective gain to accept a step, and
                                acceptable error on the total.
        max_iterations:         Gradient ascent iteration cap.
        patience:               Stop after this many consecutive
                                non-improving iterations.
        gradient_epsilon:       Central-difference half width.
        initial_step:           Step size at iteration 0, decayed as
                                step / (1 + 0.01 k).
        projection:             Strategy used for the final exact
                                rebalancing (defaults to a basic strategy
                                at ``optimization_tolerance``).
    """

    def __init__(
        self,
        optimization_tolerance: float = 0.001,
        max_iterations: int = 100,
        patience: int = 10,
        gradient_epsilon: float = 0.01,
        initial_step: float = 0.01,
        projection: BasicConstraintStrategy | None = None,
    ):
        self.optimization_tolerance = optimization_tolerance
        self.max_iterations = max_iterations
        self.patience = patience
        self.gradient_epsilon = gradient_epsilon
        self.initial_step = initial_step
        self.projection = projection or BasicConstraintStrategy(tolerance=optimization_tolerance)

    @classmethod
    def from_config(cls, config: ConstraintsConfig) -> "AdvancedConstraintStrategy":
        return cls(
            optimization_tolerance=config.optimization_tolerance,
            max_iterations=config.max_iterations,
            patience=config.patience,
            gradient_epsilon=config.gradient_epsilon,
            initial_step=config.initial_step,
            projection=BasicConstraintStrategy(tolerance=config.optimization_tolerance),
        )

    # ------------------------------------------------------------------
    # ConstraintStrategy
    # ------------------------------------------------------------------

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
        logger.info(f"Applying advanced constraints to {len(arms)} arms (target {target:,.2f})")

        allocations = self._apply_seasonality(raw, arms)
        allocations = self._apply_business_rules(allocations, arms, target)
        allocations = self._optimize(allocations, arms, target)

        allocations = clamp_to_bounds(allocations, arms)
        if abs(float(allocations.sum()) - target) > self.optimization_tolerance:
            return self.projection.rebalance(allocations, arms, target)

        return allocations.tolist()

    def validate_constraints(
        self,
        constraints: BudgetConstraints,
        arms: Sequence[ConstraintArm],
    ) -> ConstraintValidationResult:
        """Basic validation plus portfolio concentration and performance checks."""
        basic = self.projection.validate_constraints(constraints, arms)
        extra: list[ConstraintWarning] = []

        total_current = sum(arm.current_budget for arm in arms)
        if total_current > 0:
            by_category: dict[str, float] = defaultdict(float)
            for arm in arms:
                by_category[arm.metadata.category or "uncategorized"] += arm.current_budget

            for category, spend in by_category.items():
                share = spend / total_current
                if share > CONCENTRATION_THRESHOLD:
                    extra.append(
                        ConstraintWarning(
                            type="suboptimal",
                            message=(
                                f"Category '{category}' represents {share * 100:.1f}% of budget"
                                f" - consider diversification"
                            ),
                            impact="medium",
                        )
                    )

            for arm in arms:
                share = arm.current_budget / total_current
                if share > CONCENTRATION_THRESHOLD:
                    extra.append(
                        ConstraintWarning(
                            type="suboptimal",
                            message=(
                                f"Arm '{arm.label}' represents {share * 100:.1f}% of budget"
                                f" - consider diversification"
                            ),
                            impact="medium",
                            arm_ids=[arm.id],
                        )
                    )

            low_performers = [
                arm for arm in arms if arm.performance.conversion_rate < LOW_PERFORMER_RATE
            ]
            low_share = sum(arm.current_budget for arm in low_performers) / total_current
            if low_performers and low_share > LOW_PERFORMER_SHARE:
                extra.append(
                    ConstraintWarning(
                        type="performance",
                        message=f"{low_share * 100:.1f}% of budget allocated to low-performing arms",
                        impact="high",
                        arm_ids=[arm.id for arm in low_performers],
                    )
                )

        return replace(basic, warnings=basic.warnings + extra)

    def get_metadata(self) -> ConstraintStrategyMetadata:
        return ConstraintStrategyMetadata(
            name="Advanced Constraint Strategy",
            description=(
                "Complex business rules, seasonal adjustments, and optimization-based allocation"
            ),
            approach="optimization",
            complexity="high",
            performance="slow",
            accuracy="optimal",
        )

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    def objective(self, allocations: Sequence[float], arms: Sequence[ConstraintArm]) -> float:
        """Risk-adjusted expected conversion value of an allocation."""
        total = 0.0
        for allocation, arm in zip(allocations, arms):
            risk = RISK_MULTIPLIERS.get(arm.metadata.risk_level, 1.0)
            total += expected_value(float(allocation), arm) * risk
        return total

    def _gradient(self, allocations: np.ndarray, arms: Sequence[ConstraintArm]) -> np.ndarray:
        eps = self.gradient_epsilon
        gradient = np.zeros_like(allocations)
        for i in range(len(allocations)):
            forward = allocations.copy()
            forward[i] += eps
            backward = allocations.copy()
            backward[i] -= eps
            gradient[i] = (self.objective(forward, arms) - self.objective(backward, arms)) / (2 * eps)
        return gradient

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _apply_seasonality(
        self, allocations: np.ndarray, arms: Sequence[ConstraintArm]
    ) -> np.ndarray:
        seasonality = np.array(
            [arm.metadata.seasonality if arm.metadata.seasonality is not None else 1.0 for arm in arms]
        )
        return clamp_to_bounds(allocations * seasonality, arms)

    def _apply_business_rules(
        self,
        allocations: np.ndarray,
        arms: Sequence[ConstraintArm],
        target: float,
    ) -> np.ndarray:
        result = allocations.copy()

        for i, arm in enumerate(arms):
            if arm.metadata.risk_level == RiskLevel.HIGH:
                result[i] = max(arm.min_budget, result[i] * (1 - HIGH_RISK_REDUCTION))
            if arm.performance.quality_score < LOW_QUALITY_SCORE:
                result[i] = max(result[i], arm.min_budget * LOW_QUALITY_MIN_MULTIPLIER)

        total = float(result.sum())
        if total > 0:
            scale = target / total
            if abs(scale - 1) > self.optimization_tolerance:
                result = clamp_to_bounds(result * scale, arms)

        return result

    def _optimize(
        self,
        allocations: np.ndarray,
        arms: Sequence[ConstraintArm],
        target: float,
    ) -> np.ndarray:
        current = self._project(allocations, arms, target)
        best = self.objective(current, arms)
        stale = 0

        for iteration in range(self.max_iterations):
            step = self.initial_step / (1 + iteration * 0.01)
            proposed = current + step * self._gradient(current, arms)
            projected = self._project(proposed, arms, target)

            value = self.objective(projected, arms)
            if value > best + self.optimization_tolerance:
                current, best = projected, value
                stale = 0
            else:
                stale += 1
                if stale >= self.patience:
                    logger.debug(f"Gradient ascent converged after {iteration + 1} iterations")
                    break

        logger.info(f"Optimised risk-adjusted expected value: {best:,.2f}")
        return current

    def _project(
        self,
        allocations: np.ndarray,
        arms: Sequence[ConstraintArm],
        target: float,
    ) -> np.ndarray:
        """Box clamp, proportional rescale to the target, then exact rebalance."""
        boxed = clamp_to_bounds(allocations, arms)
        total = float(boxed.sum())
        if abs(total - target) < self.optimization_tolerance:
            return boxed

        if total > 0:
            boxed = clamp_to_bounds(boxed * (target / total), arms)
            if abs(float(boxed.sum()) - target) <= self.optimization_tolerance:
                return boxed

        return np.asarray(self.projection.rebalance(boxed, arms, target))
