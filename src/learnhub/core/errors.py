"""Error taxonomy shared by the enrollment engine.

Every service raises one of these instead of framework exceptions so the
same code paths work from HTTP handlers, batch jobs and tests. Routers
translate them with `handle_engine_error`; the app also registers a global
handler for anything that escapes.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status


# ==============================================================================
# Base Error
# ==============================================================================


class EngineError(Exception):
    """Base engine error."""

    def __init__(self, message: str, code: str = "engine_error"):
        self.message = message
        self.code = code
        super().__init__(message)

    def details(self) -> dict[str, Any] | None:
        """Structured payload returned alongside the message."""
        return None


class NotFoundError(EngineError):
    """Referenced entity does not exist."""

    def __init__(self, message: str = "Resource not found", code: str = "not_found"):
        super().__init__(message, code)


class ConflictError(EngineError):
    """Duplicate or already-consumed state (also lost storage-level races)."""

    def __init__(self, message: str = "Conflicting state", code: str = "conflict"):
        super().__init__(message, code)


class ForbiddenError(EngineError):
    """Role or ownership mismatch."""

    def __init__(self, message: str = "Permission denied", code: str = "forbidden"):
        super().__init__(message, code)


class ValidationError(EngineError):
    """Missing or out-of-range input."""

    def __init__(self, message: str = "Invalid input", code: str = "validation_error"):
        super().__init__(message, code)


class UnavailableError(EngineError):
    """Target exists but cannot accept the operation (unpublished, full)."""

    def __init__(self, message: str = "Resource unavailable", code: str = "unavailable"):
        super().__init__(message, code)


@dataclass(frozen=True)
class PriceQuote:
    """Pricing breakdown for an enrollment."""

    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "original_price": float(self.original_price),
            "discount_amount": float(self.discount_amount),
            "final_price": float(self.final_price),
        }


class PaymentRequiredError(EngineError):
    """Enrollment needs a payment step. Carries the pricing breakdown."""

    def __init__(
        self,
        quote: PriceQuote,
        message: str = "Payment required to complete enrollment",
    ):
        self.quote = quote
        super().__init__(message, "payment_required")

    def details(self) -> dict[str, Any]:
        return self.quote.to_dict()


# ==============================================================================
# HTTP Mapping
# ==============================================================================

ERROR_STATUS_MAP: dict[type[EngineError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnavailableError: status.HTTP_409_CONFLICT,
    PaymentRequiredError: status.HTTP_402_PAYMENT_REQUIRED,
}


def status_for_error(error: EngineError) -> int:
    """Resolve the HTTP status code for an engine error."""
    for error_type, status_code in ERROR_STATUS_MAP.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def handle_engine_error(error: EngineError) -> HTTPException:
    """Convert engine errors to HTTP exceptions.

    Args:
        error: Engine error

    Returns:
        HTTPException with appropriate status code
    """
    detail: dict[str, Any] = {"code": error.code, "message": error.message}
    extra = error.details()
    if extra:
        detail["details"] = extra

    return HTTPException(status_code=status_for_error(error), detail=detail)
