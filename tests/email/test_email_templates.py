"""Tests for LearnHub email templates."""

from datetime import datetime
from decimal import Decimal

from learnhub.email.templates import (
    format_price,
    render_enrollment_confirmation,
    render_enrollment_status_change,
    render_new_account,
    render_program_completion,
    render_scholarship_award,
)


class TestFormatPrice:
    """Tests for format_price."""

    def test_zero_is_free(self) -> None:
        assert format_price(Decimal(0), "USD") == "Free"

    def test_thousands_and_cents(self) -> None:
        assert format_price(Decimal("1234.5"), "USD") == "USD 1,234.50"


class TestEnrollmentConfirmation:
    """Tests for the enrollment confirmation email."""

    def test_contains_program_and_price(self) -> None:
        html, text = render_enrollment_confirmation(
            student_name="Ana",
            program_title="Data Engineering",
            course_count=3,
            price_label="Free",
            dashboard_url="https://learnhub.io/dashboard",
        )

        assert "Data Engineering" in html
        assert "3 course(s)" in text
        assert "Amount paid: Free" in text
        assert "https://learnhub.io/dashboard" in html

    def test_escapes_user_supplied_values(self) -> None:
        html, _ = render_enrollment_confirmation(
            student_name="<script>alert(1)</script>",
            program_title="Data & AI",
            course_count=1,
            price_label="Free",
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "Data &amp; AI" in html

    def test_cohort_line_optional(self) -> None:
        _, without = render_enrollment_confirmation("Ana", "P", 1, "Free")
        _, with_cohort = render_enrollment_confirmation("Ana", "P", 1, "Free", cohort="2026-A")

        assert "Cohort" not in without
        assert "Cohort: 2026-A." in with_cohort


class TestOtherTemplates:
    """Tests for status, scholarship, completion and account emails."""

    def test_status_change(self) -> None:
        _, text = render_enrollment_status_change("Ana", "Data Engineering", "suspended")
        assert "is now suspended" in text

    def test_scholarship_award_with_expiry(self) -> None:
        html, text = render_scholarship_award(
            "Data Engineering", "SCHOLAR-ABC123", "50% off", datetime(2026, 12, 31)
        )

        assert "SCHOLAR-ABC123" in html
        assert "expires on December 31, 2026" in text

    def test_scholarship_award_without_expiry(self) -> None:
        _, text = render_scholarship_award("Data Engineering", "SCHOLAR-ABC123", "50% off")
        assert "expires" not in text

    def test_program_completion(self) -> None:
        html, _ = render_program_completion("Ana", "Data Engineering")
        assert "Congratulations!" in html

    def test_new_account_has_password_and_footer(self) -> None:
        html, text = render_new_account("Ana", "ana@learnhub.io", "Xy7!abcdEF", "https://x/login")

        assert "Xy7!abcdEF" in html
        assert "Temporary password: Xy7!abcdEF" in text
        assert "LearnHub" in text
