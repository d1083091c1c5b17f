"""
Core module for the decision engine.

Provides the canonical input contracts and exception types shared by the
statistics, prior and constraint layers.
"""

from decision_engine.core.contracts import (
    ArmCharacteristics,
    ArmMetadata,
    ArmPerformance,
    BudgetConstraints,
    BudgetTier,
    ConstraintArm,
    HistoricalArmData,
    HistoricalData,
    MarketConditions,
    MetricData,
    PerformanceContext,
    PerformanceData,
    PerformanceMetrics,
    PriorArm,
    RiskLevel,
    TimeRange,
)
from decision_engine.core.exceptions import (
    AllocationLengthError,
    DecisionEngineError,
    DistributionDomainError,
    InvalidParameterError,
)

__all__ = [
    "ArmCharacteristics",
    "ArmMetadata",
    "ArmPerformance",
    "BudgetConstraints",
    "BudgetTier",
    "ConstraintArm",
    "HistoricalArmData",
    "HistoricalData",
    "MarketConditions",
    "MetricData",
    "PerformanceContext",
    "PerformanceData",
    "PerformanceMetrics",
    "PriorArm",
    "RiskLevel",
    "TimeRange",
    "AllocationLengthError",
    "DecisionEngineError",
    "DistributionDomainError",
    "InvalidParameterError",
]
