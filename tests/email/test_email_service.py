"""Tests for EmailService transport handling."""

import base64
from decimal import Decimal
from email import message_from_bytes
from unittest.mock import MagicMock

import pytest

from learnhub.email.service import EmailService


@pytest.fixture
def gmail() -> MagicMock:
    gmail = MagicMock()
    gmail.users.return_value.messages.return_value.send.return_value.execute.return_value = {
        "id": "msg-1",
        "threadId": "thread-1",
    }
    return gmail


@pytest.fixture
def service(tmp_path, gmail) -> EmailService:
    service = EmailService(
        credentials_path=str(tmp_path / "missing.json"),
        sender_address="no-reply@learnhub.io",
        frontend_url="https://learnhub.io/",
    )
    service._get_service = MagicMock(return_value=gmail)
    return service


def sent_message(gmail: MagicMock):
    body = gmail.users.return_value.messages.return_value.send.call_args.kwargs["body"]
    return message_from_bytes(base64.urlsafe_b64decode(body["raw"]))


class TestSendEmail:
    """Tests for send_email and its failure reporting."""

    @pytest.mark.asyncio
    async def test_success(self, service, gmail) -> None:
        response = await service.send_simple_email(
            to="ana@learnhub.io", subject="Hi", body_html="<p>Hi</p>", to_name="Ana"
        )

        assert response.success is True
        assert response.message_id == "msg-1"
        message = sent_message(gmail)
        assert message["To"] == "Ana <ana@learnhub.io>"
        assert message["From"] == "LearnHub <no-reply@learnhub.io>"

    @pytest.mark.asyncio
    async def test_missing_credentials_reported(self, tmp_path) -> None:
        service = EmailService(
            credentials_path=str(tmp_path / "missing.json"),
            sender_address="no-reply@learnhub.io",
        )

        response = await service.send_simple_email(
            to="ana@learnhub.io", subject="Hi", body_html="<p>Hi</p>"
        )

        assert response.success is False
        assert "credentials file missing" in response.error

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(self, service, gmail) -> None:
        gmail.users.side_effect = RuntimeError("network down")

        response = await service.send_simple_email(
            to="ana@learnhub.io", subject="Hi", body_html="<p>Hi</p>"
        )

        assert response.success is False
        assert "network down" in response.error


class TestTemplatedEmails:
    """Tests for the templated senders."""

    @pytest.mark.asyncio
    async def test_enrollment_confirmation_links_dashboard(self, service, gmail) -> None:
        await service.send_enrollment_confirmation(
            to_email="ana@learnhub.io",
            student_name="Ana",
            program_title="Data Engineering",
            course_count=2,
            final_price=Decimal(0),
        )

        message = sent_message(gmail)
        assert message["Subject"] == "Enrollment confirmed: Data Engineering"
        html = message.get_payload()[-1].get_payload(decode=True).decode()
        assert "https://learnhub.io/dashboard" in html

    @pytest.mark.asyncio
    async def test_new_account_subject(self, service, gmail) -> None:
        await service.send_new_account(
            to_email="new@learnhub.io", user_name="New", temporary_password="Xy7!abcdEF"
        )

        assert sent_message(gmail)["Subject"] == "Your LearnHub account"
