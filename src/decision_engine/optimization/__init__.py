"""
Budget constraint strategies.

Turn a raw per-arm allocation into one that respects per-arm bounds and the
total budget:
  - BasicConstraintStrategy:    clamp, rescale, greedy redistribution
  - AdvancedConstraintStrategy: business rules and projected gradient ascent
"""

from decision_engine.optimization.advanced import AdvancedConstraintStrategy
from decision_engine.optimization.constraints import (
    BasicConstraintStrategy,
    ConstraintStrategy,
    ConstraintStrategyMetadata,
    ConstraintValidationResult,
    ConstraintViolation,
    ConstraintWarning,
    summarize_allocation,
)

__all__ = [
    "AdvancedConstraintStrategy",
    "BasicConstraintStrategy",
    "ConstraintStrategy",
    "ConstraintStrategyMetadata",
    "ConstraintValidationResult",
    "ConstraintViolation",
    "ConstraintWarning",
    "summarize_allocation",
]
