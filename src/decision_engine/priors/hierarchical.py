"""
Hierarchical (empirical Bayes) priors.

Arms in the same category share information: each category gets a Beta
hyperprior over conversion rate and a Gamma hyperprior over average
conversion value (both by method of moments), and every arm's estimate is
shrunk toward its category in proportion to how little data the arm has
relative to the category.

    shrinkage  = n_category / (n_category + n_arm)
    posterior  = shrinkage * category + (1 - shrinkage) * arm
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import pandas as pd
from loguru import logger

from decision_engine.config import PriorsConfig
from decision_engine.core.contracts import HistoricalData, PerformanceData, PriorArm
from decision_engine.priors.base import (
    BetaParams,
    GammaParams,
    PriorDistribution,
    PriorMetadata,
    PriorStrategy,
    PriorStrategyMetadata,
    beta_from_moments,
    confidence_from_samples,
    gamma_from_moments,
    reliability_from_samples,
    utc_now,
)


_COLUMNS = ["arm_id", "category", "clicks", "conversions", "value"]

DEFAULT_VARIANCE = 0.01
MIN_RATE_VARIANCE = 1e-4


@dataclass(frozen=True)
class CategoryHyperprior:
    """Category-level Beta / Gamma hyperprior."""

    alpha: float
    beta: float
    shape: float
    rate: float
    sample_size: float
    reliability: float

    @property
    def mean_conversion_rate(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    @property
    def mean_conversion_value(self) -> float:
        return self.shape / self.rate


class HierarchicalBayesPriors(PriorStrategy):
    """
    Empirical Bayes priors sharing information across arms of a category.

    Args:
        regularization_strength: Fraction of the category sample size added
                                  to each arm's effective sample size.
    """

    def __init__(self, regularization_strength: float = 0.1):
        self.regularization_strength = regularization_strength

    @classmethod
    def from_config(cls, config: PriorsConfig) -> "HierarchicalBayesPriors":
        return cls(regularization_strength=config.regularization_strength)

    # ------------------------------------------------------------------
    # PriorStrategy
    # ------------------------------------------------------------------

    def compute_priors(
        self,
        arms: Sequence[PriorArm],
        historical_data: HistoricalData,
    ) -> list[PriorDistribution]:
        logger.info(
            f"Computing hierarchical priors for {len(arms)} arms "
            f"from {len(historical_data.arms)} historical arms"
        )

        frame = performance_frame(historical_data)
        hyperpriors = self.compute_category_hyperpriors(historical_data, frame)
        arm_totals = frame.groupby("arm_id")[["clicks", "conversions", "value"]].sum()

        priors = []
        for arm in arms:
            hyperprior = hyperpriors.get(arm.category)
            has_history = arm.id in arm_totals.index and arm_totals.at[arm.id, "clicks"] > 0
            if hyperprior is None or not has_history:
                priors.append(self._weak_prior(arm, hyperprior))
                continue

            totals = arm_totals.loc[arm.id]
            priors.append(
                self._arm_prior(
                    arm,
                    clicks=float(totals["clicks"]),
                    conversions=float(totals["conversions"]),
                    value=float(totals["value"]),
                    hyperprior=hyperprior,
                )
            )

        n_weak = sum(1 for p in priors if p.metadata.sample_size == 0)
        logger.info(f"Computed {len(priors)} priors ({n_weak} from weak fallbacks)")
        return priors

    def update_priors(
        self,
        priors: Sequence[PriorDistribution],
        new_data: Sequence[PerformanceData],
    ) -> list[PriorDistribution]:
        """
        Conjugate update per observation.

        Beta:  alpha += conversions, beta += clicks - conversions
        Gamma: shape += conversions, rate += conversions / average value
        """
        updated = {prior.arm_id: prior for prior in priors}

        for observation in new_data:
            prior = updated.get(observation.arm_id)
            if prior is None:
                logger.debug(f"Ignoring observation for unknown arm {observation.arm_id}")
                continue

            m = observation.metrics
            cr = prior.conversion_rate
            cv = prior.conversion_value

            if m.clicks > 0:
                cr = BetaParams(
                    alpha=cr.alpha + m.conversions,
                    beta=cr.beta + (m.clicks - m.conversions),
                    confidence=cr.confidence,
                )

            if m.conversions > 0 and m.conversion_value > 0:
                avg_value = m.conversion_value / m.conversions
                cv = GammaParams(
                    shape=cv.shape + m.conversions,
                    rate=cv.rate + m.conversions / avg_value,
                    confidence=cv.confidence,
                )

            sample_size = prior.metadata.sample_size + m.clicks
            metadata = PriorMetadata(
                sample_size=sample_size,
                last_updated=observation.timestamp,
                source=prior.metadata.source,
                reliability=reliability_from_samples(sample_size),
                category=prior.metadata.category,
            )
            updated[prior.arm_id] = prior.with_updates(cr, cv, metadata)

        return list(updated.values())

    def get_metadata(self) -> PriorStrategyMetadata:
        return PriorStrategyMetadata(
            name="Hierarchical Bayesian Priors",
            description="Empirical Bayes approach sharing information across similar arms",
            approach="hierarchical",
            data_requirements="moderate",
            accuracy="high",
            adaptability="dynamic",
        )

    # ------------------------------------------------------------------
    # Hyperpriors
    # ------------------------------------------------------------------

    def compute_category_hyperpriors(
        self,
        historical_data: HistoricalData,
        frame: pd.DataFrame | None = None,
    ) -> dict[str, CategoryHyperprior]:
        """
        Method-of-moments hyperpriors per category.

        The conversion-rate variance is the sample variance of per-period
        rates (periods with clicks); the value variance is that of
        per-period average values (periods with conversions).
        """
        if frame is None:
            frame = performance_frame(historical_data)

        categories = list(dict.fromkeys(arm.category for arm in historical_data.arms))
        hyperpriors: dict[str, CategoryHyperprior] = {}

        for category in categories:
            rows = frame[frame["category"] == category]
            total_clicks = float(rows["clicks"].sum())
            total_conversions = float(rows["conversions"].sum())
            total_value = float(rows["value"].sum())

            with_clicks = rows[rows["clicks"] > 0]
            rates = with_clicks["conversions"] / with_clicks["clicks"]
            with_conversions = rows[rows["conversions"] > 0]
            avg_values = with_conversions["value"] / with_conversions["conversions"]

            cr_mean = total_conversions / max(1.0, total_clicks)
            cr_var = max(_sample_variance(rates), MIN_RATE_VARIANCE)
            alpha0, beta0 = beta_from_moments(cr_mean, cr_var)

            avg_value = total_value / max(1.0, total_conversions)
            shape0, rate0 = gamma_from_moments(avg_value, max(_sample_variance(avg_values), 1.0))

            hyperpriors[category] = CategoryHyperprior(
                alpha=alpha0,
                beta=beta0,
                shape=shape0,
                rate=rate0,
                sample_size=total_clicks,
                reliability=reliability_from_samples(total_clicks),
            )
            logger.debug(
                f"Hyperprior[{category}]: Beta({alpha0:.2f}, {beta0:.2f}), "
                f"Gamma({shape0:.2f}, {rate0:.3f}), n={total_clicks:.0f}"
            )

        return hyperpriors

    # ------------------------------------------------------------------
    # Per-arm priors
    # ------------------------------------------------------------------

    def _arm_prior(
        self,
        arm: PriorArm,
        clicks: float,
        conversions: float,
        value: float,
        hyperprior: CategoryHyperprior,
    ) -> PriorDistribution:
        shrinkage = hyperprior.sample_size / (hyperprior.sample_size + clicks)

        arm_cr = conversions / max(1.0, clicks)
        posterior_cr = shrinkage * hyperprior.mean_conversion_rate + (1 - shrinkage) * arm_cr

        effective_n = clicks + hyperprior.sample_size * self.regularization_strength
        alpha = posterior_cr * effective_n + hyperprior.alpha
        beta = (1 - posterior_cr) * effective_n + hyperprior.beta

        arm_avg_value = value / max(1.0, conversions)
        posterior_avg_value = (
            shrinkage * hyperprior.mean_conversion_value + (1 - shrinkage) * arm_avg_value
        )
        shape = conversions + hyperprior.shape
        rate = (conversions / posterior_avg_value if posterior_avg_value > 0 else 0.0) + hyperprior.rate

        return PriorDistribution(
            arm_id=arm.id,
            conversion_rate=BetaParams(
                alpha=max(1.0, alpha),
                beta=max(1.0, beta),
                confidence=confidence_from_samples(clicks),
            ),
            conversion_value=GammaParams(
                shape=max(1.0, shape),
                rate=max(0.1, rate),
                confidence=confidence_from_samples(conversions),
            ),
            metadata=PriorMetadata(
                sample_size=clicks,
                last_updated=utc_now(),
                source="hierarchical",
                reliability=reliability_from_samples(clicks),
                category=arm.category,
            ),
        )

    def _weak_prior(
        self, arm: PriorArm, hyperprior: CategoryHyperprior | None
    ) -> PriorDistribution:
        """Prior for an arm with no usable history."""
        if hyperprior is not None:
            return PriorDistribution(
                arm_id=arm.id,
                conversion_rate=BetaParams(hyperprior.alpha, hyperprior.beta, confidence=0.1),
                conversion_value=GammaParams(hyperprior.shape, hyperprior.rate, confidence=0.1),
                metadata=PriorMetadata(
                    sample_size=0,
                    last_updated=utc_now(),
                    source="hierarchical",
                    reliability=0.1,
                    category=arm.category,
                ),
            )

        # ~5% conversion rate, ~100 average value
        return PriorDistribution(
            arm_id=arm.id,
            conversion_rate=BetaParams(alpha=1.0, beta=19.0, confidence=0.05),
            conversion_value=GammaParams(shape=2.0, rate=0.02, confidence=0.05),
            metadata=PriorMetadata(
                sample_size=0,
                last_updated=utc_now(),
                source="informative",
                reliability=0.05,
                category=arm.category,
            ),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def performance_frame(historical_data: HistoricalData) -> pd.DataFrame:
    """Flatten the history into one row per (arm, period)."""
    rows = [
        {
            "arm_id": arm.id,
            "category": arm.category,
            "clicks": perf.clicks,
            "conversions": perf.conversions,
            "value": perf.conversion_value,
        }
        for arm in historical_data.arms
        for perf in arm.performance
    ]
    frame = pd.DataFrame(rows, columns=_COLUMNS)
    return frame.astype({"clicks": float, "conversions": float, "value": float})


def _sample_variance(values: pd.Series) -> float:
    if len(values) < 2:
        return DEFAULT_VARIANCE
    return float(values.var(ddof=1))
