"""
Exception hierarchy for the growth reference engine.

Every failure is one of three kinds so callers can render domain-specific
messages. All of them subclass ValueError.
"""


class GrowthReferenceError(ValueError):
    """Base class for all engine errors."""

    kind = "error"


class ValidationError(GrowthReferenceError):
    """Input rejected before any lookup or computation."""

    kind = "validation"


class ReferenceDataError(GrowthReferenceError):
    """Reference series missing, malformed, or too sparse for the query."""

    kind = "reference_data"


class ComputationError(GrowthReferenceError):
    """Numerical failure while converting a value to a z-score or percentile."""

    kind = "computation"
