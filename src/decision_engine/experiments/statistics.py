"""
Statistical analysis of two-arm A/B experiments on rate metrics.

Provides:
  - Frequentist two-proportion z-test with a confidence interval on the
    absolute difference and an adequacy check on sample size.
  - Bayesian Beta-Binomial comparison via Monte Carlo on paired posterior
    draws (probability of being better, expected lift, credible interval,
    expected loss).
  - Sample-size and power formulas.
  - A sequential early-stopping policy combining both views.

Every verdict is one of a fixed set of labels; the analyzer never raises on
low-data inputs (zero trials, zero conversions), it reports ``continue``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
from loguru import logger

from decision_engine.config import StatisticsConfig
from decision_engine.core.contracts import MetricData
from decision_engine.core.exceptions import InvalidParameterError
from decision_engine.stats.distributions import (
    beta_random,
    make_rng,
    normal_cdf,
    normal_inverse,
)


TestRecommendation = Literal["winner", "loser", "continue", "stop_futility"]
BayesianRecommendation = Literal["winner", "loser", "continue"]
StopReason = Literal["futility", "success", "harm", "sample_size"]
EffectSize = Literal["small", "medium", "large"]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TestMetadata:
    test_type: str
    confidence_level: float
    power: float
    effect: EffectSize


@dataclass
class StatisticalTestResult:
    """Result of a frequentist two-proportion test."""

    p_value: float
    significant: bool
    uplift: float  # relative change vs. control, in %
    absolute_uplift: float
    confidence_interval: tuple[float, float]  # absolute difference, in percentage points
    sample_size_adequate: bool
    recommendation: TestRecommendation
    metadata: TestMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "p_value": self.p_value,
            "significant": self.significant,
            "uplift": self.uplift,
            "absolute_uplift": self.absolute_uplift,
            "confidence_interval": list(self.confidence_interval),
            "sample_size_adequate": self.sample_size_adequate,
            "recommendation": self.recommendation,
            "metadata": {
                "test_type": self.metadata.test_type,
                "confidence_level": self.metadata.confidence_level,
                "power": self.metadata.power,
                "effect": self.metadata.effect,
            },
        }


@dataclass
class BayesianMetadata:
    alpha: float
    beta: float
    posterior: Literal["uniform", "informative"]


@dataclass
class BayesianResult:
    """Result of a Beta-Binomial Monte Carlo comparison."""

    probability_variant_better: float
    expected_lift: float  # mean relative lift, in %
    credible_interval: tuple[float, float]  # 95% interval of relative lift, in %
    recommendation: BayesianRecommendation
    metadata: BayesianMetadata
    # Expected regret of shipping each arm
    expected_loss: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "probability_variant_better": self.probability_variant_better,
            "expected_lift": self.expected_lift,
            "credible_interval": list(self.credible_interval),
            "recommendation": self.recommendation,
            "expected_loss": dict(self.expected_loss),
            "metadata": {
                "alpha": self.metadata.alpha,
                "beta": self.metadata.beta,
                "posterior": self.metadata.posterior,
            },
        }


@dataclass
class EarlyStoppingResult:
    stop: bool
    confidence: float
    recommendation: str
    reason: StopReason | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stop": self.stop,
            "reason": self.reason,
            "confidence": self.confidence,
            "recommendation": self.recommendation,
        }


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class StatisticalAnalyzer:
    """
    Frequentist and Bayesian comparison of two rate metrics.

    The Monte Carlo analyses draw from ``rng``; pass a seed or a seeded
    ``numpy.random.Generator`` for reproducible results.

    Usage::

        analyzer = StatisticalAnalyzer(seed=7)
        result = analyzer.two_proportion_test(
            control=MetricData(successes=500, trials=10_000),
            variant=MetricData(successes=580, trials=10_000),
        )
    """

    def __init__(
        self,
        confidence_level: float = 0.95,
        power: float = 0.8,
        futility_threshold: float = 0.01,
        sample_size_mde: float = 0.1,
        monte_carlo_samples: int = 10_000,
        early_stop_sample_multiplier: float = 4.0,
        seed: int | np.random.Generator | None = None,
    ):
        self.confidence_level = confidence_level
        self.power = power
        self.futility_threshold = futility_threshold
        self.sample_size_mde = sample_size_mde
        self.monte_carlo_samples = monte_carlo_samples
        self.early_stop_sample_multiplier = early_stop_sample_multiplier
        self.rng = make_rng(seed)

    @classmethod
    def from_config(
        cls,
        config: StatisticsConfig,
        seed: int | np.random.Generator | None = None,
    ) -> "StatisticalAnalyzer":
        """Build an analyzer from a ``StatisticsConfig`` section."""
        return cls(
            confidence_level=config.confidence_level,
            power=config.power,
            futility_threshold=config.futility_threshold,
            sample_size_mde=config.sample_size_mde,
            monte_carlo_samples=config.monte_carlo_samples,
            early_stop_sample_multiplier=config.early_stop_sample_multiplier,
            seed=seed if seed is not None else config.seed,
        )

    # ------------------------------------------------------------------
    # Frequentist test
    # ------------------------------------------------------------------

    def two_proportion_test(
        self,
        control: MetricData,
        variant: MetricData,
        confidence_level: float | None = None,
    ) -> StatisticalTestResult:
        """
        Two-proportion z-test comparing the variant rate against control.

        Args:
            control:          Control arm counts.
            variant:          Variant arm counts.
            confidence_level: Two-sided confidence level (default from the
                              analyzer, 0.95).

        Returns:
            StatisticalTestResult with p-value, uplift, CI and verdict.
        """
        if confidence_level is None:
            confidence_level = self.confidence_level
        alpha = 1 - confidence_level
        logger.info("Running two-proportion z-test")

        p1 = control.rate
        p2 = variant.rate

        # Pooled standard error under H0
        total_trials = control.trials + variant.trials
        pooled = (control.successes + variant.successes) / total_trials if total_trials > 0 else 0.0
        se = _safe_sqrt(
            pooled * (1 - pooled) * (_inverse(control.trials) + _inverse(variant.trials))
        )
        z_score = (p2 - p1) / se if se > 0 else 0.0
        p_value = min(1.0, max(0.0, 2 * (1 - normal_cdf(abs(z_score)))))

        uplift = (p2 - p1) / p1 * 100 if p1 > 0 else 0.0
        absolute_uplift = p2 - p1

        # Unpooled standard error for the interval on the difference
        z_critical = normal_inverse(1 - alpha / 2)
        se_effect = _safe_sqrt(
            p1 * (1 - p1) * _inverse(control.trials) + p2 * (1 - p2) * _inverse(variant.trials)
        )
        margin = z_critical * se_effect
        confidence_interval = (
            (absolute_uplift - margin) * 100,
            (absolute_uplift + margin) * 100,
        )

        significant = p_value < alpha

        sample_size_adequate = False
        if 0 < p1 < 1 and 0 < p1 * (1 + self.sample_size_mde) < 1:
            required = self.calculate_sample_size(p1, self.sample_size_mde, self.power, alpha)
            sample_size_adequate = min(control.trials, variant.trials) >= required

        effect = _classify_effect(abs(uplift))

        if not sample_size_adequate:
            recommendation: TestRecommendation = "continue"
        elif significant and uplift > 0:
            recommendation = "winner"
        elif significant and uplift < 0:
            recommendation = "loser"
        elif abs(uplift) < self.futility_threshold * 100:
            recommendation = "stop_futility"
        else:
            recommendation = "continue"

        current_power = self.calculate_power(p1, abs(p2 - p1), control.trials, alpha)

        logger.info(
            f"z-test: uplift={uplift:.2f}%, p={p_value:.4f}, "
            f"power={current_power:.2f}, recommendation={recommendation}"
        )

        return StatisticalTestResult(
            p_value=p_value,
            significant=significant,
            uplift=uplift,
            absolute_uplift=absolute_uplift,
            confidence_interval=confidence_interval,
            sample_size_adequate=sample_size_adequate,
            recommendation=recommendation,
            metadata=TestMetadata(
                test_type="two_proportion_z_test",
                confidence_level=confidence_level,
                power=current_power,
                effect=effect,
            ),
        )

    # ------------------------------------------------------------------
    # Bayesian comparison
    # ------------------------------------------------------------------

    def bayesian_ab(
        self,
        control: MetricData,
        variant: MetricData,
        prior_alpha: float = 1.0,
        prior_beta: float = 1.0,
    ) -> BayesianResult:
        """
        Beta-Binomial comparison of variant against control.

        Posterior per arm is Beta(prior_alpha + successes,
        prior_beta + failures).  Paired draws estimate P(variant > control),
        the mean relative lift, its 95% credible interval and the expected
        loss of shipping either arm.
        """
        logger.info("Running Bayesian A/B analysis")

        control_alpha = prior_alpha + control.successes
        control_beta = prior_beta + control.trials - control.successes
        variant_alpha = prior_alpha + variant.successes
        variant_beta = prior_beta + variant.trials - variant.successes

        n = self.monte_carlo_samples
        control_draws = np.empty(n)
        variant_draws = np.empty(n)
        for i in range(n):
            control_draws[i] = beta_random(control_alpha, control_beta, self.rng)
            variant_draws[i] = beta_random(variant_alpha, variant_beta, self.rng)

        variant_better = variant_draws > control_draws
        probability_variant_better = float(np.mean(variant_better))

        diff = variant_draws - control_draws
        lift = np.zeros(n)
        nonzero = control_draws > 0
        lift[nonzero] = diff[nonzero] / control_draws[nonzero] * 100
        expected_lift = float(np.mean(lift))

        sorted_lift = np.sort(lift)
        credible_interval = (
            float(sorted_lift[int(math.floor(n * 0.025))]),
            float(sorted_lift[min(n - 1, int(math.floor(n * 0.975)))]),
        )

        expected_loss = {
            "control": float(np.sum(np.where(variant_better, diff, 0.0)) / n),
            "variant": float(np.sum(np.where(variant_better, 0.0, -diff)) / n),
        }

        if probability_variant_better > 0.95:
            recommendation: BayesianRecommendation = "winner"
        elif probability_variant_better < 0.05:
            recommendation = "loser"
        else:
            recommendation = "continue"

        posterior = "uniform" if prior_alpha == 1 and prior_beta == 1 else "informative"

        logger.info(
            f"Bayesian A/B: P(variant better)={probability_variant_better:.3f}, "
            f"expected lift={expected_lift:.2f}%"
        )

        return BayesianResult(
            probability_variant_better=probability_variant_better,
            expected_lift=expected_lift,
            credible_interval=credible_interval,
            recommendation=recommendation,
            metadata=BayesianMetadata(alpha=variant_alpha, beta=variant_beta, posterior=posterior),
            expected_loss=expected_loss,
        )

    # ------------------------------------------------------------------
    # Sample size and power
    # ------------------------------------------------------------------

    def calculate_sample_size(
        self,
        baseline_rate: float,
        relative_mde: float,
        power: float | None = None,
        significance: float = 0.05,
    ) -> int:
        """
        Required sample size per arm for a two-proportion z-test.

        n = [z_a * sqrt(2 p1 (1-p1)) + z_b * sqrt(p1 (1-p1) + p2 (1-p2))]^2 / (p2 - p1)^2
        with p2 = p1 * (1 + relative_mde).

        Args:
            baseline_rate: Control rate p1, strictly inside (0, 1).
            relative_mde:  Minimum detectable relative effect (0.1 = 10%).
            power:         1 - Type II error rate.
            significance:  Two-sided Type I error rate.

        Returns:
            Observations needed per arm, rounded up.
        """
        if power is None:
            power = self.power
        if not 0 < baseline_rate < 1:
            raise InvalidParameterError(
                f"baseline_rate must be strictly between 0 and 1, got {baseline_rate}",
                parameter="baseline_rate",
            )
        if relative_mde == 0:
            raise InvalidParameterError(
                "relative_mde must be non-zero", parameter="relative_mde"
            )

        p1 = baseline_rate
        p2 = baseline_rate * (1 + relative_mde)
        if not 0 < p2 < 1:
            raise InvalidParameterError(
                f"Target rate {p2:.4f} implied by relative_mde={relative_mde} is outside (0, 1)",
                parameter="relative_mde",
            )

        z_alpha = normal_inverse(1 - significance / 2)
        z_beta = normal_inverse(power)

        numerator = (
            z_alpha * math.sqrt(2 * p1 * (1 - p1))
            + z_beta * math.sqrt(p1 * (1 - p1) + p2 * (1 - p2))
        ) ** 2
        denominator = (p2 - p1) ** 2

        return int(math.ceil(numerator / denominator))

    def calculate_power(
        self,
        baseline_rate: float,
        absolute_effect: float,
        sample_size: float,
        alpha: float,
    ) -> float:
        """Approximate power of a two-sided z-test with ``sample_size`` per arm."""
        if sample_size <= 0:
            return 0.0

        p1 = baseline_rate
        p2 = baseline_rate + absolute_effect

        pooled = (p1 + p2) / 2
        se = _safe_sqrt(2 * pooled * (1 - pooled) / sample_size)
        se_effect = _safe_sqrt(p1 * (1 - p1) / sample_size + p2 * (1 - p2) / sample_size)

        critical_value = normal_inverse(1 - alpha / 2) * se
        if se_effect == 0:
            return 1.0 if abs(absolute_effect) > critical_value else 0.0

        z_beta = (abs(absolute_effect) - critical_value) / se_effect
        return normal_cdf(z_beta)

    # ------------------------------------------------------------------
    # Early stopping
    # ------------------------------------------------------------------

    def should_stop_early(
        self,
        control: MetricData,
        variant: MetricData,
        target_confidence: float = 0.95,
        minimum_effect: float = 0.05,
    ) -> EarlyStoppingResult:
        """
        Decide whether a running experiment can stop now.

        Checks, in order: significant benefit (success), significant harm,
        an ambiguous negligible effect (futility), and a sample-size safety
        valve at ``early_stop_sample_multiplier`` x the required sample.
        """
        logger.info("Checking early stopping conditions")

        test_result = self.two_proportion_test(control, variant, target_confidence)

        if test_result.significant and test_result.uplift > minimum_effect * 100:
            return EarlyStoppingResult(
                stop=True,
                reason="success",
                confidence=1 - test_result.p_value,
                recommendation="Deploy winning variant",
            )

        if test_result.significant and test_result.uplift < -minimum_effect * 100:
            logger.warning(
                f"Early stopping: variant is significantly worse ({test_result.uplift:.2f}%)"
            )
            return EarlyStoppingResult(
                stop=True,
                reason="harm",
                confidence=1 - test_result.p_value,
                recommendation="Stop test immediately, revert to control",
            )

        bayesian = self.bayesian_ab(control, variant)
        prob = bayesian.probability_variant_better
        certainty = max(prob, 1 - prob)

        if abs(bayesian.expected_lift) < minimum_effect * 100 and 0.3 < prob < 0.7:
            return EarlyStoppingResult(
                stop=True,
                reason="futility",
                confidence=certainty,
                recommendation="Stop test, no meaningful difference detected",
            )

        baseline = control.rate
        if 0 < baseline < 1 and 0 < baseline * (1 + minimum_effect) < 1:
            required = self.calculate_sample_size(
                baseline, minimum_effect, self.power, 1 - target_confidence
            )
            max_recommended = required * self.early_stop_sample_multiplier
            if control.trials + variant.trials > max_recommended:
                return EarlyStoppingResult(
                    stop=True,
                    reason="sample_size",
                    confidence=0.5,
                    recommendation="Sample size exceeded, make decision based on current data",
                )

        return EarlyStoppingResult(
            stop=False,
            confidence=certainty,
            recommendation="Continue test",
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _inverse(n: float) -> float:
    return 1.0 / n if n > 0 else 0.0


def _safe_sqrt(value: float) -> float:
    return math.sqrt(value) if value > 0 else 0.0


def _classify_effect(abs_uplift_pct: float) -> EffectSize:
    if abs_uplift_pct < 5:
        return "small"
    if abs_uplift_pct < 20:
        return "medium"
    return "large"
