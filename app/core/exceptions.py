from typing import Any, Optional


class BookingError(Exception):
    """Base class for booking domain errors.

    Carries a human readable message plus structured context that ends up in
    both the log record and the HTTP error body.
    """

    status_code = 400
    error_code = "booking_error"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "detail": self.message, **self._jsonable()}

    def _jsonable(self) -> dict[str, Any]:
        return {k: str(v) if v is not None else None for k, v in self.context.items()}


class BookingValidationError(BookingError):
    """Malformed or incomplete input. Never retried."""

    status_code = 400
    error_code = "validation_error"


class SlotConflictError(BookingError):
    """The requested slot is no longer offered. Clients should re-fetch availability."""

    status_code = 409
    error_code = "slot_conflict"


class InvalidTransitionError(BookingError):
    """Reservation status change not allowed for the current state or actor."""

    status_code = 409
    error_code = "invalid_transition"

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, current=current, requested=requested, **context)


class PersistenceError(BookingError):
    """The store could not complete the operation. The transaction was rolled back."""

    status_code = 503
    error_code = "persistence_error"


class ReviewNotAllowedError(BookingError):
    """The customer has no completed visit at the business they try to review."""

    status_code = 403
    error_code = "review_not_allowed"


class DuplicateReviewError(BookingError):
    """The customer already reviewed this business. Update the existing review instead."""

    status_code = 409
    error_code = "duplicate_review"
