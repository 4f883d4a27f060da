"""Validation utilities for user input."""

import re
from typing import NamedTuple


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
EMAIL_MAX_LENGTH = 254


class ValidationResult(NamedTuple):
    """Result of a validation check."""

    valid: bool
    message: str | None = None
    formatted: str | None = None


def validate_email(email: str) -> ValidationResult:
    """Basic email format validation.

    Note: Request bodies use Pydantic's EmailStr. This check is for raw
    strings coming from batch imports, where one bad row must not reject
    the whole request.

    Examples:
        >>> validate_email(" User@Example.com ")
        ValidationResult(valid=True, message=None, formatted='user@example.com')
        >>> validate_email("invalid-email")
        ValidationResult(valid=False, message='Invalid email address', formatted=None)
    """
    candidate = (email or "").strip()
    if not candidate or len(candidate) > EMAIL_MAX_LENGTH:
        return ValidationResult(False, "Invalid email address")
    if EMAIL_PATTERN.match(candidate):
        return ValidationResult(True, formatted=candidate.lower())
    return ValidationResult(False, "Invalid email address")
