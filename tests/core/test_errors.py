"""Tests for the engine error taxonomy and its HTTP mapping."""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from learnhub.core.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    NotFoundError,
    PaymentRequiredError,
    PriceQuote,
    UnavailableError,
    ValidationError,
    handle_engine_error,
    status_for_error,
)
from learnhub.core.side_effects import best_effort


class TestStatusMapping:
    """Tests for status_for_error."""

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (NotFoundError(), 404),
            (ConflictError(), 409),
            (ForbiddenError(), 403),
            (ValidationError(), 422),
            (UnavailableError(), 409),
            (EngineError("boom"), 500),
        ],
    )
    def test_status(self, error, status_code) -> None:
        assert status_for_error(error) == status_code

    def test_subclass_uses_parent_status(self) -> None:
        class SeatTakenError(ConflictError):
            pass

        assert status_for_error(SeatTakenError()) == 409


class TestHandleEngineError:
    """Tests for handle_engine_error."""

    def test_detail_carries_code_and_message(self) -> None:
        exc = handle_engine_error(NotFoundError("Program not found", "program_not_found"))

        assert isinstance(exc, HTTPException)
        assert exc.status_code == 404
        assert exc.detail == {"code": "program_not_found", "message": "Program not found"}

    def test_payment_required_carries_quote(self) -> None:
        quote = PriceQuote(Decimal("500.00"), Decimal("250.00"), Decimal("250.00"))

        exc = handle_engine_error(PaymentRequiredError(quote))

        assert exc.status_code == 402
        assert exc.detail["code"] == "payment_required"
        assert exc.detail["details"] == {
            "original_price": 500.0,
            "discount_amount": 250.0,
            "final_price": 250.0,
        }


class TestBestEffort:
    """Tests for best_effort."""

    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        async def effect() -> str:
            return "sent"

        assert await best_effort(effect(), "effect_failed") == "sent"

    @pytest.mark.asyncio
    async def test_swallows_failure(self) -> None:
        async def effect() -> str:
            raise ConnectionError("smtp down")

        assert await best_effort(effect(), "effect_failed", to="a@test.com") is None
