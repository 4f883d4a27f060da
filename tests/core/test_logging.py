"""Tests for log masking and context processors."""

from learnhub.core.context import bind_operation, clear_context
from learnhub.core.logging import (
    add_context_processor,
    filter_sensitive_data,
    mask_value,
)


class TestMaskValue:
    """Tests for mask_value."""

    def test_masks_long_secret(self) -> None:
        assert mask_value("password", "hunter2!") == "hu****2!"

    def test_short_secret_fully_masked(self) -> None:
        assert mask_value("token", "abcd") == "***"

    def test_key_match_is_substring_and_case_insensitive(self) -> None:
        assert mask_value("Temporary_Password", "Xy7!abcd") == "Xy****cd"
        assert mask_value("scholarship_code", "SCHOLAR-ABC") == "SC*******BC"

    def test_non_sensitive_untouched(self) -> None:
        assert mask_value("email", "ana@test.com") == "ana@test.com"

    def test_non_string_values_untouched(self) -> None:
        assert mask_value("token_count", 42) == 42

    def test_nested_dicts(self) -> None:
        masked = mask_value("payload", {"api_key": "sk-123456", "name": "Ana"})

        assert masked == {"api_key": "sk*****56", "name": "Ana"}


class TestProcessors:
    """Tests for structlog processors."""

    def test_filter_sensitive_data(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"event": "account_created", "password": "Secret#99"}
        )

        assert event["event"] == "account_created"
        assert event["password"] == "Se*****99"

    def test_context_does_not_override_event_fields(self) -> None:
        clear_context()
        with bind_operation(program_id="p-1", batch_item="a@test.com"):
            event = add_context_processor(
                None, "info", {"event": "x", "batch_item": "explicit"}
            )

        assert event == {"event": "x", "program_id": "p-1", "batch_item": "explicit"}
