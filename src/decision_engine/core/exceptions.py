"""
Custom exception types for the decision engine.

Every exception carries a machine-readable code so callers can
handle specific failure modes programmatically.
"""


class DecisionEngineError(Exception):
    """Base exception for all decision-engine errors."""

    def __init__(self, message: str, code: str = "DECISION_ENGINE_ERROR"):
        self.code = code
        super().__init__(message)


class DistributionDomainError(DecisionEngineError, ValueError):
    """Raised when a distribution routine receives an argument outside its domain."""

    def __init__(self, message: str, value: float | None = None):
        self.value = value
        super().__init__(message, code="DOMAIN_ERROR")


class InvalidParameterError(DecisionEngineError, ValueError):
    """Raised when a planning or analysis parameter cannot produce a result."""

    def __init__(self, message: str, parameter: str = ""):
        self.parameter = parameter
        super().__init__(message, code="INVALID_PARAMETER")


class AllocationLengthError(DecisionEngineError, ValueError):
    """Raised when an allocation vector does not line up with its arms."""

    def __init__(self, n_allocations: int, n_arms: int):
        self.n_allocations = n_allocations
        self.n_arms = n_arms
        msg = (
            f"Raw allocations and arms must have the same length "
            f"(got {n_allocations} allocations for {n_arms} arms)"
        )
        super().__init__(msg, code="ALLOCATION_LENGTH_MISMATCH")
