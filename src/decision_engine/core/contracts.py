"""
Canonical input contracts for the decision engine.

These Pydantic models define every data boundary the engine accepts from
the surrounding system: per-arm outcome counts from the metrics collector,
historical performance from the reporting layer, and per-arm budget bounds
from the budget planner.

Design principles:
  - Inputs are immutable value objects (``frozen``); nothing in the engine
    mutates what the caller passed in.
  - Counts and money amounts are non-negative.
  - Business feasibility (min <= max, sum of minimums vs. total budget) is
    *not* enforced here: it is reported by the constraint strategies'
    ``validate_constraints`` so callers get a structured explanation.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class BudgetTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Experiment inputs
# ---------------------------------------------------------------------------

class MetricData(BaseModel):
    """Outcome counts for one arm / variant over a period."""

    successes: int = Field(ge=0, description="Clicks, conversions, ...")
    trials: int = Field(ge=0, description="Impressions, visitors, ...")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _successes_within_trials(self) -> "MetricData":
        if self.successes > self.trials:
            raise ValueError(
                f"successes ({self.successes}) cannot exceed trials ({self.trials})"
            )
        return self

    @property
    def rate(self) -> float:
        """Observed rate; 0 when there are no trials."""
        return self.successes / self.trials if self.trials > 0 else 0.0


# ---------------------------------------------------------------------------
# Historical / incremental performance
# ---------------------------------------------------------------------------

class PerformanceMetrics(BaseModel):
    """One period of performance for a single arm."""

    date: datetime
    impressions: float = Field(default=0, ge=0)
    clicks: float = Field(default=0, ge=0)
    conversions: float = Field(default=0, ge=0)
    cost: float = Field(default=0, ge=0)
    conversion_value: float = Field(default=0, ge=0)
    quality_score: float = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _conversions_within_clicks(self) -> "PerformanceMetrics":
        if self.conversions > self.clicks:
            raise ValueError(
                f"conversions ({self.conversions}) cannot exceed clicks ({self.clicks})"
            )
        return self


class PerformanceContext(BaseModel):
    experiment_id: str | None = None
    traffic_source: str | None = None
    device_type: str | None = None

    model_config = {"frozen": True}


class PerformanceData(BaseModel):
    """A fresh observation used to update an arm's priors."""

    arm_id: str
    timestamp: datetime
    metrics: PerformanceMetrics
    context: PerformanceContext | None = None

    model_config = {"frozen": True}


class HistoricalArmData(BaseModel):
    """Historical performance series for one arm, oldest first."""

    id: str
    name: str = ""
    category: str
    performance: tuple[PerformanceMetrics, ...] = ()

    model_config = {"frozen": True}


class TimeRange(BaseModel):
    start_date: datetime
    end_date: datetime

    model_config = {"frozen": True}


class MarketConditions(BaseModel):
    seasonality: float = 1.0
    competitiveness: float = 1.0
    economic_factor: float = 1.0

    model_config = {"frozen": True}


class HistoricalData(BaseModel):
    """All history available to the prior strategies."""

    arms: tuple[HistoricalArmData, ...] = ()
    time_range: TimeRange | None = None
    market_conditions: MarketConditions | None = None

    model_config = {"frozen": True}


class ArmCharacteristics(BaseModel):
    age_in_days: float = Field(default=0, ge=0)
    budget_tier: BudgetTier = BudgetTier.MEDIUM
    target_audience: str = ""
    keywords: tuple[str, ...] = ()

    model_config = {"frozen": True}


class PriorArm(BaseModel):
    """Description of an arm whose priors are being computed."""

    id: str
    name: str = ""
    category: str
    characteristics: ArmCharacteristics = Field(default_factory=ArmCharacteristics)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Budget allocation inputs
# ---------------------------------------------------------------------------

class ArmPerformance(BaseModel):
    conversion_rate: float = Field(default=0, ge=0)
    average_value: float = Field(default=0, ge=0)
    cost_per_click: float = Field(default=1.0, gt=0)
    quality_score: float = Field(default=10.0, ge=0)

    model_config = {"frozen": True}


class ArmMetadata(BaseModel):
    category: str | None = None
    priority: int | None = None
    seasonality: float | None = None
    risk_level: RiskLevel | None = None

    model_config = {"frozen": True}


class ConstraintArm(BaseModel):
    """Budget bounds and performance snapshot for one arm."""

    id: str
    name: str = ""
    min_budget: float
    max_budget: float
    current_budget: float = 0.0
    performance: ArmPerformance = Field(default_factory=ArmPerformance)
    metadata: ArmMetadata = Field(default_factory=ArmMetadata)

    model_config = {"frozen": True}

    @property
    def label(self) -> str:
        return self.name or self.id


class BudgetConstraints(BaseModel):
    """
    Portfolio-level budget constraints.

    ``total_budget`` is the sum the constraint strategies must hit.  When
    omitted, the strategies preserve the total of the raw allocation.
    """

    total_budget: float | None = Field(default=None, ge=0)
    min_daily_budget: float | None = Field(default=None, ge=0)
    max_daily_budget: float | None = Field(default=None, ge=0)

    model_config = {"frozen": True}
