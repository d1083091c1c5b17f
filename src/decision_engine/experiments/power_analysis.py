"""
Power analysis for experiment planning.

Helps answer:
  - "How many impressions per variant do I need to detect a 10% lift?"
  - "Is my running test powered enough, and how much longer would it need?"
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from decision_engine.config import PowerConfig
from decision_engine.core.contracts import MetricData
from decision_engine.experiments.statistics import StatisticalAnalyzer


PowerRecommendation = Literal["continue", "extend", "stop_underpowered"]


@dataclass
class ExperimentPlan:
    sample_size_per_variant: int
    total_sample_size: int
    estimated_days: int
    estimated_duration: str
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sample_size_per_variant": self.sample_size_per_variant,
            "total_sample_size": self.total_sample_size,
            "estimated_days": self.estimated_days,
            "estimated_duration": self.estimated_duration,
            "recommendations": list(self.recommendations),
        }


@dataclass
class PowerAnalysisResult:
    current_power: float
    recommendation: PowerRecommendation
    # None when no effect is observable yet
    samples_needed: int | None = None
    estimated_days_remaining: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_power": self.current_power,
            "samples_needed": self.samples_needed,
            "estimated_days_remaining": self.estimated_days_remaining,
            "recommendation": self.recommendation,
        }


class PowerAnalyzer:
    """
    Experiment planning and runtime power checks on top of a
    ``StatisticalAnalyzer``.

    Daily traffic is estimated as ``typical_daily_impressions`` x baseline
    rate, a rough heuristic until real traffic history is wired in.
    """

    def __init__(
        self,
        analyzer: StatisticalAnalyzer | None = None,
        typical_daily_impressions: float = 1000,
        max_extension_days: int = 14,
    ):
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.typical_daily_impressions = typical_daily_impressions
        self.max_extension_days = max_extension_days

    @classmethod
    def from_config(
        cls, config: PowerConfig, analyzer: StatisticalAnalyzer | None = None
    ) -> "PowerAnalyzer":
        return cls(
            analyzer=analyzer,
            typical_daily_impressions=config.typical_daily_impressions,
            max_extension_days=config.max_extension_days,
        )

    def plan_experiment(
        self,
        baseline_rate: float,
        desired_relative_lift: float,
        confidence_level: float = 0.95,
        power: float = 0.8,
    ) -> ExperimentPlan:
        """
        Size an experiment before launch.

        Args:
            baseline_rate:         Expected control rate, strictly inside (0, 1).
            desired_relative_lift: Relative lift to detect (0.1 = 10%).
            confidence_level:      Two-sided confidence level.
            power:                 Target power.

        Returns:
            ExperimentPlan with sample sizes, duration and text guidance.
        """
        logger.info("Planning experiment with power analysis")

        per_variant = self.analyzer.calculate_sample_size(
            baseline_rate, desired_relative_lift, power, 1 - confidence_level
        )
        total = per_variant * 2

        daily_traffic = self._estimate_daily_traffic(baseline_rate)
        estimated_days = int(math.ceil(total / daily_traffic))
        estimated_duration = f"{estimated_days} days"

        recommendations = [
            f"Target sample size: {per_variant:,} per variant",
            f"Expected duration: {estimated_duration}",
            f"Minimum detectable effect: {desired_relative_lift * 100:.1f}%",
            "Consider increasing sample size for better power"
            if power < 0.8
            else "Power analysis looks good",
        ]

        logger.info(
            f"Experiment plan: {per_variant:,} per variant, ~{estimated_days} days"
        )

        return ExperimentPlan(
            sample_size_per_variant=per_variant,
            total_sample_size=total,
            estimated_days=estimated_days,
            estimated_duration=estimated_duration,
            recommendations=recommendations,
        )

    def check_statistical_power(
        self,
        control: MetricData,
        variant: MetricData,
        target_power: float = 0.8,
        alpha: float = 0.05,
    ) -> PowerAnalysisResult:
        """
        Runtime power check on a live test.

        Returns ``continue`` when the observed effect is already detected
        with ``target_power``; ``extend`` when the missing sample fits within
        ``max_extension_days``; ``stop_underpowered`` otherwise.
        """
        control_rate = control.rate
        variant_rate = variant.rate
        observed_effect = abs(variant_rate - control_rate)
        current_samples = min(control.trials, variant.trials)

        current_power = self.analyzer.calculate_power(
            control_rate, observed_effect, current_samples, alpha
        )

        samples_needed: int | None = None
        days_remaining: int | None = None
        target_rate = control_rate + observed_effect
        if observed_effect > 0 and 0 < control_rate < 1 and 0 < target_rate < 1:
            required = self.analyzer.calculate_sample_size(
                control_rate, observed_effect / control_rate, target_power, alpha
            )
            samples_needed = max(0, required - current_samples)
            days_remaining = int(
                math.ceil(samples_needed / self._estimate_daily_traffic(control_rate) * 2)
            )

        if current_power >= target_power:
            recommendation: PowerRecommendation = "continue"
        elif days_remaining is not None and days_remaining <= self.max_extension_days:
            recommendation = "extend"
        else:
            recommendation = "stop_underpowered"

        logger.info(
            f"Power check: power={current_power:.2f} (target {target_power:.2f}), "
            f"recommendation={recommendation}"
        )

        return PowerAnalysisResult(
            current_power=current_power,
            samples_needed=samples_needed,
            estimated_days_remaining=days_remaining,
            recommendation=recommendation,
        )

    def _estimate_daily_traffic(self, baseline_rate: float) -> float:
        return self.typical_daily_impressions * baseline_rate
