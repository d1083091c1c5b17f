"""
Base contract and value types for prior strategies.

Every prior strategy must:
  1. Implement ``compute_priors(arms, historical_data)`` to build one
     ``PriorDistribution`` per arm.
  2. Implement ``update_priors(priors, new_data)`` as a pure update that
     returns new distributions and leaves its inputs untouched.
  3. Describe itself via ``get_metadata()``.

Priors are Beta over the conversion rate and Gamma over the average
conversion value, as consumed by the downstream allocation policy.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal, Sequence

from decision_engine.core.contracts import HistoricalData, PerformanceData, PriorArm


PriorSource = Literal["empirical", "hierarchical", "informative", "noninformative"]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BetaParams:
    """Beta prior over the conversion rate."""

    alpha: float
    beta: float
    confidence: float

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)


@dataclass(frozen=True)
class GammaParams:
    """Gamma prior (shape / rate) over the average conversion value."""

    shape: float
    rate: float
    confidence: float

    @property
    def mean(self) -> float:
        return self.shape / self.rate


@dataclass(frozen=True)
class PriorMetadata:
    sample_size: float
    last_updated: datetime
    source: PriorSource
    reliability: float
    category: str | None = None


@dataclass(frozen=True)
class PriorDistribution:
    """Prior (or posterior) beliefs about one arm."""

    arm_id: str
    conversion_rate: BetaParams
    conversion_value: GammaParams
    metadata: PriorMetadata

    @property
    def mean_conversion_rate(self) -> float:
        return self.conversion_rate.mean

    @property
    def mean_conversion_value(self) -> float:
        return self.conversion_value.mean

    def with_updates(
        self,
        conversion_rate: BetaParams | None = None,
        conversion_value: GammaParams | None = None,
        metadata: PriorMetadata | None = None,
    ) -> "PriorDistribution":
        """Return a copy with the given parts replaced."""
        return replace(
            self,
            conversion_rate=conversion_rate or self.conversion_rate,
            conversion_value=conversion_value or self.conversion_value,
            metadata=metadata or self.metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "arm_id": self.arm_id,
            "conversion_rate": {
                "alpha": self.conversion_rate.alpha,
                "beta": self.conversion_rate.beta,
                "confidence": self.conversion_rate.confidence,
            },
            "conversion_value": {
                "shape": self.conversion_value.shape,
                "rate": self.conversion_value.rate,
                "confidence": self.conversion_value.confidence,
            },
            "metadata": {
                "sample_size": self.metadata.sample_size,
                "last_updated": self.metadata.last_updated.isoformat(),
                "source": self.metadata.source,
                "reliability": self.metadata.reliability,
                "category": self.metadata.category,
            },
        }


@dataclass(frozen=True)
class PriorStrategyMetadata:
    name: str
    description: str
    approach: Literal["empirical", "hierarchical", "informative", "adaptive"]
    data_requirements: Literal["minimal", "moderate", "extensive"]
    accuracy: Literal["low", "medium", "high"]
    adaptability: Literal["static", "moderate", "dynamic"]

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "approach": self.approach,
            "data_requirements": self.data_requirements,
            "accuracy": self.accuracy,
            "adaptability": self.adaptability,
        }


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class PriorStrategy(ABC):
    """Abstract base for prior computation strategies."""

    @abstractmethod
    def compute_priors(
        self,
        arms: Sequence[PriorArm],
        historical_data: HistoricalData,
    ) -> list[PriorDistribution]:
        """Compute one prior per arm, in the order of ``arms``."""
        ...

    @abstractmethod
    def update_priors(
        self,
        priors: Sequence[PriorDistribution],
        new_data: Sequence[PerformanceData],
    ) -> list[PriorDistribution]:
        """Fold new observations into the priors without mutating them."""
        ...

    @abstractmethod
    def get_metadata(self) -> PriorStrategyMetadata:
        ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def beta_from_moments(mean: float, variance: float) -> tuple[float, float]:
    """
    Beta (alpha, beta) matching a mean and variance, each floored at 1.

        alpha = m * (m(1-m)/v - 1)
        beta  = (1-m) * (m(1-m)/v - 1)
    """
    common = mean * (1 - mean) / variance - 1
    return max(1.0, mean * common), max(1.0, (1 - mean) * common)


def gamma_from_moments(mean: float, variance: float) -> tuple[float, float]:
    """Gamma (shape, rate) matching a mean and variance: m^2/v, m/v."""
    return max(1.0, mean * mean / variance), max(0.1, mean / variance)


def confidence_from_samples(n: float) -> float:
    """Saturating confidence n / (n + 100), capped at 0.95."""
    return min(0.95, n / (n + 100))


def reliability_from_samples(n: float) -> float:
    """Log-saturating reliability, reaching 1 at ~1000 samples."""
    return min(1.0, math.log(n + 1) / math.log(1000))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
