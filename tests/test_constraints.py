"""Tests for budget constraint strategies."""

import numpy as np
import pytest

from decision_engine.config import ConstraintsConfig
from decision_engine.core import (
    AllocationLengthError,
    ArmMetadata,
    ArmPerformance,
    BudgetConstraints,
    ConstraintArm,
    RiskLevel,
)
from decision_engine.optimization import (
    AdvancedConstraintStrategy,
    BasicConstraintStrategy,
    ConstraintStrategy,
    summarize_allocation,
)


@pytest.fixture
def arms():
    return [
        ConstraintArm(
            id="arm1",
            name="High Performer",
            min_budget=100,
            max_budget=1000,
            current_budget=500,
            performance=ArmPerformance(
                conversion_rate=0.05, average_value=150, cost_per_click=2, quality_score=8
            ),
            metadata=ArmMetadata(
                category="search", priority=1, seasonality=1.2, risk_level=RiskLevel.LOW
            ),
        ),
        ConstraintArm(
            id="arm2",
            name="Medium Performer",
            min_budget=50,
            max_budget=500,
            current_budget=200,
            performance=ArmPerformance(
                conversion_rate=0.03, average_value=100, cost_per_click=1.5, quality_score=6
            ),
            metadata=ArmMetadata(
                category="display", priority=2, seasonality=1.0, risk_level=RiskLevel.MEDIUM
            ),
        ),
        ConstraintArm(
            id="arm3",
            name="Low Performer",
            min_budget=20,
            max_budget=200,
            current_budget=50,
            performance=ArmPerformance(
                conversion_rate=0.01, average_value=80, cost_per_click=1, quality_score=4
            ),
            metadata=ArmMetadata(
                category="display", priority=3, seasonality=0.8, risk_level=RiskLevel.HIGH
            ),
        ),
    ]


@pytest.fixture
def constraints():
    return BudgetConstraints(total_budget=1000)


def assert_feasible(result, arms, total):
    assert sum(result) == pytest.approx(total, abs=0.01)
    for allocation, arm in zip(result, arms):
        assert arm.min_budget - 1e-9 <= allocation <= arm.max_budget + 1e-9


# ---------------------------------------------------------------------------
# Basic strategy
# ---------------------------------------------------------------------------

class TestBasicConstraintStrategy:
    """Test clamping, rescaling and redistribution."""

    def test_apply_within_bounds(self, arms, constraints):
        """A feasible raw split keeps the total and bounds."""
        result = BasicConstraintStrategy().apply_constraints([500, 300, 200], constraints, arms)
        assert_feasible(result, arms, 1000)

    def test_exceeding_max_without_total(self, arms):
        """Without a total the raw sum is targeted, capped by the maximums."""
        result = BasicConstraintStrategy().apply_constraints(
            [1500, 300, 200], BudgetConstraints(), arms
        )

        assert result[0] == pytest.approx(1000)
        assert result[1] == pytest.approx(500)
        assert result[2] == pytest.approx(200)
        assert sum(result) == pytest.approx(1700)

    def test_below_min_without_total(self, arms):
        """Arms below their minimum are lifted and the raw total is kept."""
        result = BasicConstraintStrategy().apply_constraints(
            [900, 30, 10], BudgetConstraints(), arms
        )

        assert result[2] >= 20
        assert result[1] >= 50
        assert sum(result) == pytest.approx(940, abs=0.01)

    def test_tight_bounds(self, arms, constraints):
        """Narrow boxes still land on the total."""
        tight = [
            arms[0].model_copy(update={"min_budget": 400, "max_budget": 600}),
            arms[1].model_copy(update={"min_budget": 300, "max_budget": 400}),
            arms[2].model_copy(update={"min_budget": 100, "max_budget": 150}),
        ]
        result = BasicConstraintStrategy().apply_constraints([700, 100, 50], constraints, tight)
        assert_feasible(result, tight, 1000)

    def test_surplus_goes_to_best_converter(self, arms):
        """From an all-zero split, the surplus fills the highest conversion rate first."""
        unfloored = [arm.model_copy(update={"min_budget": 0}) for arm in arms]
        result = BasicConstraintStrategy().apply_constraints(
            [0, 0, 0], BudgetConstraints(total_budget=1300), unfloored
        )

        assert result == pytest.approx([1000, 300, 0])

    def test_deficit_taken_from_largest_headroom(self, arms):
        """Cuts come from the arm furthest above its minimum."""
        strategy = BasicConstraintStrategy()
        result = strategy.rebalance([100, 500, 200], arms, 700)

        assert_feasible(result, arms, 700)
        assert result[0] == pytest.approx(100)

    def test_property_grid(self):
        """Random feasible problems always produce feasible allocations."""
        rng = np.random.default_rng(20260301)
        strategy = BasicConstraintStrategy(tolerance=0.01)

        for _ in range(200):
            n = int(rng.integers(1, 8))
            mins = rng.uniform(0, 100, n)
            maxs = mins + rng.uniform(0, 500, n)
            grid_arms = [
                ConstraintArm(
                    id=f"a{i}",
                    min_budget=float(mins[i]),
                    max_budget=float(maxs[i]),
                    performance=ArmPerformance(conversion_rate=float(rng.uniform(0, 0.1))),
                )
                for i in range(n)
            ]
            total = float(rng.uniform(mins.sum(), maxs.sum()))
            raw = rng.uniform(0, 600, n).tolist()

            result = strategy.apply_constraints(raw, BudgetConstraints(total_budget=total), grid_arms)

            assert_feasible(result, grid_arms, total)

    def test_idempotent(self, arms, constraints):
        """Applying the projection twice changes nothing."""
        strategy = BasicConstraintStrategy()
        once = strategy.apply_constraints([1200, 10, 300], constraints, arms)
        twice = strategy.apply_constraints(once, constraints, arms)

        assert twice == pytest.approx(once, abs=0.01)

    def test_length_mismatch(self, arms, constraints):
        """Allocation and arm counts must match."""
        with pytest.raises(AllocationLengthError, match="same length") as exc_info:
            BasicConstraintStrategy().apply_constraints([500, 300], constraints, arms)
        assert exc_info.value.code == "ALLOCATION_LENGTH_MISMATCH"

    def test_metadata(self):
        metadata = BasicConstraintStrategy().get_metadata()
        assert metadata.name == "Basic Constraint Strategy"
        assert metadata.approach == "simple"
        assert metadata.complexity == "low"
        assert metadata.performance == "fast"
        assert metadata.accuracy == "approximate"

    def test_from_config(self):
        strategy = BasicConstraintStrategy.from_config(ConstraintsConfig(tolerance=0.5))
        assert strategy.tolerance == 0.5


class TestValidation:
    """Test feasibility reporting."""

    def test_feasible(self, arms, constraints):
        """Totals of minimums and maximums are reported."""
        validation = BasicConstraintStrategy().validate_constraints(constraints, arms)

        assert validation.valid
        assert validation.violations == []
        assert validation.total_min_budget == 170
        assert validation.total_max_budget == 1700

    def test_infeasible_total(self, arms):
        """Total below the sum of minimums is infeasible."""
        validation = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(total_budget=100), arms
        )

        assert not validation.valid
        assert validation.violations[0].type == "infeasible"
        assert "170" in validation.violations[0].suggested_fix

    def test_invalid_arm_bounds(self, arms, constraints):
        """Inverted and negative bounds are invalid."""
        broken = [
            arms[0].model_copy(update={"min_budget": 1200, "max_budget": 1000}),
            arms[1].model_copy(update={"min_budget": -5}),
            arms[2],
        ]
        validation = BasicConstraintStrategy().validate_constraints(constraints, broken)

        assert not validation.valid
        invalid = [v for v in validation.violations if v.type == "invalid"]
        assert {tuple(v.arm_ids) for v in invalid} == {("arm1",), ("arm2",)}

    def test_excess_budget_warning(self, arms):
        """Total above the sum of maximums is valid but suboptimal."""
        validation = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(total_budget=2000), arms
        )

        assert validation.valid
        assert validation.warnings[0].type == "suboptimal"
        assert validation.warnings[0].impact == "medium"

    def test_global_floor(self, arms):
        """A per-arm floor times the arm count above the total is infeasible."""
        with_total = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(total_budget=1000, min_daily_budget=400), arms
        )
        with_cap = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(min_daily_budget=200, max_daily_budget=500), arms
        )
        unbounded = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(min_daily_budget=200), arms
        )

        assert not with_total.valid
        assert not with_cap.valid
        assert unbounded.valid

    def test_risky_portfolio(self, arms, constraints):
        """More than half the arms high-risk is flagged."""
        risky = [
            arm.model_copy(update={"metadata": ArmMetadata(risk_level=RiskLevel.HIGH)})
            for arm in arms[:2]
        ] + [arms[2]]
        validation = BasicConstraintStrategy().validate_constraints(constraints, risky)

        assert validation.valid
        warning = next(w for w in validation.warnings if w.type == "risky")
        assert warning.impact == "high"
        assert set(warning.arm_ids) == {"arm1", "arm2", "arm3"}

    def test_to_dict(self, arms):
        d = BasicConstraintStrategy().validate_constraints(
            BudgetConstraints(total_budget=100), arms
        ).to_dict()
        assert d["valid"] is False
        assert d["violations"][0]["type"] == "infeasible"


# ---------------------------------------------------------------------------
# Advanced strategy
# ---------------------------------------------------------------------------

class TestAdvancedConstraintStrategy:
    """Test business rules and gradient optimisation."""

    def test_implements_contract(self):
        assert isinstance(AdvancedConstraintStrategy(), ConstraintStrategy)

    def test_seasonal_adjustment(self, arms, constraints):
        """High seasonality arm ends above the low seasonality one."""
        result = AdvancedConstraintStrategy().apply_constraints([400, 300, 300], constraints, arms)

        assert_feasible(result, arms, 1000)
        assert result[0] > result[2]

    def test_risk_adjustment(self, arms, constraints):
        """High-risk arm is cut relative to an equal start."""
        result = AdvancedConstraintStrategy().apply_constraints([333, 333, 334], constraints, arms)

        assert_feasible(result, arms, 1000)
        assert result[0] > result[2]

    def test_quality_score_floor(self, arms, constraints):
        """Low quality score arms are floored at 1.5x their minimum."""
        low_qs = arms[:2] + [
            arms[2].model_copy(
                update={
                    "performance": arms[2].performance.model_copy(update={"quality_score": 2}),
                    "metadata": ArmMetadata(seasonality=1.0),
                }
            )
        ]
        result = AdvancedConstraintStrategy(max_iterations=0).apply_constraints(
            [600, 390, 10], constraints, low_qs
        )

        # Floored to 30, then rescaled with the rest from 1140 down to 1000
        assert_feasible(result, low_qs, 1000)
        assert result[2] == pytest.approx(30 * 1000 / 1140)

    def test_beats_basic_on_objective(self, arms, constraints):
        """Optimisation improves the risk-adjusted value over plain projection."""
        advanced = AdvancedConstraintStrategy()
        raw = [300, 400, 300]

        optimised = advanced.apply_constraints(raw, constraints, arms)
        basic = BasicConstraintStrategy().apply_constraints(raw, constraints, arms)

        assert_feasible(optimised, arms, 1000)
        assert advanced.objective(optimised, arms) >= advanced.objective(basic, arms)

    def test_objective(self, arms):
        """Expected value with 1.0 / 0.9 / 0.8 risk multipliers."""
        value = AdvancedConstraintStrategy().objective([500, 300, 200], arms)
        assert value == pytest.approx(1875 + 600 * 0.9 + 160 * 0.8)

    def test_without_total_keeps_raw_sum(self, arms):
        """No total budget: the raw sum is preserved."""
        result = AdvancedConstraintStrategy().apply_constraints(
            [400, 200, 100], BudgetConstraints(), arms
        )
        assert_feasible(result, arms, 700)

    def test_matches_basic_on_random_problems(self):
        """Every strategy returns feasible allocations."""
        rng = np.random.default_rng(7)
        strategies = [BasicConstraintStrategy(), AdvancedConstraintStrategy()]

        for _ in range(20):
            n = int(rng.integers(2, 6))
            mins = rng.uniform(0, 50, n)
            maxs = mins + rng.uniform(10, 400, n)
            grid_arms = [
                ConstraintArm(
                    id=f"a{i}",
                    min_budget=float(mins[i]),
                    max_budget=float(maxs[i]),
                    performance=ArmPerformance(
                        conversion_rate=float(rng.uniform(0.001, 0.1)),
                        average_value=float(rng.uniform(10, 200)),
                        cost_per_click=float(rng.uniform(0.5, 3)),
                    ),
                )
                for i in range(n)
            ]
            total = float(rng.uniform(mins.sum(), maxs.sum()))
            raw = rng.uniform(0, 300, n).tolist()

            for strategy in strategies:
                result = strategy.apply_constraints(
                    raw, BudgetConstraints(total_budget=total), grid_arms
                )
                assert_feasible(result, grid_arms, total)

    def test_length_mismatch(self, arms, constraints):
        with pytest.raises(AllocationLengthError):
            AdvancedConstraintStrategy().apply_constraints([1, 2], constraints, arms)

    def test_metadata(self):
        metadata = AdvancedConstraintStrategy().get_metadata()
        assert metadata.name == "Advanced Constraint Strategy"
        assert metadata.approach == "optimization"
        assert metadata.complexity == "high"
        assert metadata.performance == "slow"
        assert metadata.accuracy == "optimal"

    def test_from_config(self):
        config = ConstraintsConfig(optimization_tolerance=0.01, max_iterations=5, patience=2)
        strategy = AdvancedConstraintStrategy.from_config(config)

        assert strategy.max_iterations == 5
        assert strategy.patience == 2
        assert strategy.projection.tolerance == 0.01


class TestAdvancedValidation:
    """Test portfolio-level warnings."""

    def test_inherits_basic_checks(self, arms, constraints):
        """High-risk concentration is still reported."""
        risky = [
            arm.model_copy(
                update={"metadata": arm.metadata.model_copy(update={"risk_level": RiskLevel.HIGH})}
            )
            for arm in arms[:2]
        ] + [arms[2]]
        validation = AdvancedConstraintStrategy().validate_constraints(constraints, risky)

        assert validation.valid
        assert any(w.type == "risky" for w in validation.warnings)

    def test_category_concentration(self, arms, constraints):
        """One category holding > 80% of current spend is flagged."""
        concentrated = [
            arm.model_copy(
                update={
                    "current_budget": budget,
                    "metadata": arm.metadata.model_copy(update={"category": "search"}),
                }
            )
            for arm, budget in zip(arms, [900, 50, 50])
        ]
        validation = AdvancedConstraintStrategy().validate_constraints(constraints, concentrated)

        messages = [w.message for w in validation.warnings if w.type == "suboptimal"]
        assert any("Category 'search'" in m for m in messages)
        assert any("Arm 'High Performer'" in m for m in messages)

    def test_low_performers(self, arms, constraints):
        """Over 30% of spend on sub-1% converters is flagged."""
        weak = [
            arm.model_copy(
                update={
                    "current_budget": 400,
                    "performance": arm.performance.model_copy(update={"conversion_rate": 0.005}),
                }
            )
            for arm in arms
        ]
        validation = AdvancedConstraintStrategy().validate_constraints(constraints, weak)

        warning = next(w for w in validation.warnings if w.type == "performance")
        assert warning.impact == "high"
        assert len(warning.arm_ids) == 3

    def test_no_current_spend(self, arms, constraints):
        """Portfolio checks are skipped when nothing is spent yet."""
        idle = [arm.model_copy(update={"current_budget": 0}) for arm in arms]
        validation = AdvancedConstraintStrategy().validate_constraints(constraints, idle)

        assert validation.valid
        assert validation.warnings == []


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

class TestSummarizeAllocation:
    """Test the per-arm allocation summary."""

    def test_columns_and_values(self, arms):
        df = summarize_allocation(arms, [500, 300, 200])

        assert list(df["arm_id"]) == ["arm1", "arm2", "arm3"]
        assert df.loc[0, "expected_value"] == pytest.approx(1875)
        assert df.loc[1, "budget_change"] == pytest.approx(100)
        assert df.loc[2, "expected_conversions"] == pytest.approx(2.0)
        assert df.loc[0, "name"] == "High Performer"

    def test_length_mismatch(self, arms):
        with pytest.raises(AllocationLengthError):
            summarize_allocation(arms, [1.0])
