"""
Referral engine error types.

Normal outcomes (no referrer, missing ancestor, zero rate) are never
errors. Kinds below are reported in results; storage faults propagate.
"""

import enum


class CommissionErrorKind(str, enum.Enum):
    """Error kind reported in engine results."""

    INVALID_INPUT = "invalid_input"
    PURCHASER_NOT_FOUND = "purchaser_not_found"
    ALREADY_PROCESSED = "already_processed"
    PARTIAL_WRITE = "partial_write"
    INTERNAL = "internal"


class InvalidInputError(ValueError):
    """Raised when an event or settings payload is malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field
