"""Tests for raw email validation used by batch enrollment."""

import pytest

from learnhub.auth.validators import EMAIL_MAX_LENGTH, validate_email


class TestValidateEmail:
    """Tests for validate_email."""

    def test_formats_to_lowercase(self) -> None:
        result = validate_email("  Ana.Lima@Example.COM ")

        assert result.valid is True
        assert result.formatted == "ana.lima@example.com"
        assert result.message is None

    @pytest.mark.parametrize(
        "email",
        ["", "   ", "not-an-email", "ana@", "@example.com", "ana@example", "a b@c.com"],
    )
    def test_invalid(self, email) -> None:
        result = validate_email(email)

        assert result.valid is False
        assert result.message == "Invalid email address"
        assert result.formatted is None

    def test_none_is_invalid(self) -> None:
        assert validate_email(None).valid is False

    def test_too_long(self) -> None:
        local = "a" * (EMAIL_MAX_LENGTH - len("@test.com") + 1)
        assert validate_email(f"{local}@test.com").valid is False

    def test_plus_addressing(self) -> None:
        assert validate_email("ana+courses@test.io").valid is True
