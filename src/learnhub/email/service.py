"""Email service using Gmail API with Service Account.

Uses domain-wide delegation to send emails on behalf of a Google Workspace user.
The service account must have domain-wide delegation enabled in Google Admin Console.

Required Google Admin Console setup:
1. Go to Security > Access and data control > API controls > Domain-wide delegation
2. Add the service account client_id with scope: https://www.googleapis.com/auth/gmail.send
"""

import base64
from datetime import datetime
from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from learnhub.core.logging import get_logger

from .schemas import EmailRecipient, SendEmailRequest, SendEmailResponse
from .templates import (
    format_price,
    render_enrollment_confirmation,
    render_enrollment_status_change,
    render_new_account,
    render_program_completion,
    render_scholarship_award,
)


if TYPE_CHECKING:
    from googleapiclient._apis.gmail.v1 import GmailResource


logger = get_logger(__name__)

# Gmail API scope for sending emails
GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class EmailService:
    """Service for sending emails via Gmail API.

    Uses a service account with domain-wide delegation to impersonate
    a Google Workspace user (e.g., no-reply@learnhub.example).
    """

    def __init__(
        self,
        credentials_path: str,
        sender_address: str,
        sender_name: str = "LearnHub",
        frontend_url: str | None = None,
    ):
        """Initialize Gmail API service.

        Args:
            credentials_path: Path to service account JSON file
            sender_address: Email address to send from (must be in Google Workspace)
            sender_name: Display name for sender
            frontend_url: Public frontend URL used for links in emails
        """
        self.credentials_path = credentials_path
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.frontend_url = frontend_url.rstrip("/") if frontend_url else None
        self._service: GmailResource | None = None

        if not Path(credentials_path).exists():
            logger.warning(
                "email_credentials_not_found",
                path=credentials_path,
                message="Gmail API will not be available",
            )

    def _get_service(self) -> "GmailResource":
        """Get or create Gmail API service (lazy, impersonating the sender).

        Raises:
            FileNotFoundError: If credentials file doesn't exist
        """
        if self._service is not None:
            return self._service

        credentials_file = Path(self.credentials_path)
        if not credentials_file.exists():
            msg = f"Credentials file not found: {self.credentials_path}"
            raise FileNotFoundError(msg)

        try:
            credentials = service_account.Credentials.from_service_account_file(
                str(credentials_file),
                scopes=GMAIL_SCOPES,
            )
            delegated_credentials = credentials.with_subject(self.sender_address)

            self._service = build(
                "gmail",
                "v1",
                credentials=delegated_credentials,
                cache_discovery=False,
            )
            logger.info("gmail_service_initialized", sender=self.sender_address)
            return self._service

        except Exception as e:
            logger.exception(
                "gmail_service_init_failed",
                error=str(e),
                credentials_path=self.credentials_path,
            )
            raise

    def _format_address(self, recipient: EmailRecipient) -> str:
        if recipient.name:
            return f"{recipient.name} <{recipient.email}>"
        return recipient.email

    def _create_message(self, request: SendEmailRequest) -> dict:
        """Create email message in Gmail API format.

        Returns:
            Dict with 'raw' key containing base64url encoded message
        """
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.sender_name} <{self.sender_address}>"
        message["To"] = ", ".join(self._format_address(r) for r in request.to)
        message["Subject"] = request.subject

        if request.reply_to:
            message["Reply-To"] = request.reply_to

        # Plain text first, then HTML (email clients prefer last)
        if request.body_text:
            message.attach(MIMEText(request.body_text, "plain", "utf-8"))
        message.attach(MIMEText(request.body_html, "html", "utf-8"))

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        return {"raw": raw_message}

    def _link(self, path: str) -> str | None:
        return f"{self.frontend_url}{path}" if self.frontend_url else None

    async def send_email(self, request: SendEmailRequest) -> SendEmailResponse:
        """Send an email via Gmail API.

        Transport failures are logged and reported in the response, never raised.
        """
        try:
            service = self._get_service()
            message = self._create_message(request)

            # "me" refers to the impersonated sender
            result = (
                service.users().messages().send(userId="me", body=message).execute()
            )

            logger.info(
                "email_sent",
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
                to=[r.email for r in request.to],
                subject=request.subject[:50],
            )
            return SendEmailResponse(
                success=True,
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
            )

        except HttpError as e:
            error_message = str(e)
            logger.exception(
                "email_send_failed",
                error=error_message,
                to=[r.email for r in request.to],
                subject=request.subject[:50],
            )
            return SendEmailResponse(success=False, error=f"Gmail API error: {error_message}")

        except FileNotFoundError as e:
            logger.error("email_credentials_missing", error=str(e))
            return SendEmailResponse(
                success=False,
                error="Email service not configured: credentials file missing",
            )

        except Exception as e:
            logger.exception("email_send_unexpected_error", error=str(e))
            return SendEmailResponse(success=False, error=f"Unexpected error: {e!s}")

    async def send_simple_email(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
        to_name: str | None = None,
    ) -> SendEmailResponse:
        """Send a single-recipient email (convenience method)."""
        request = SendEmailRequest(
            to=[EmailRecipient(email=to, name=to_name)],
            subject=subject,
            body_html=body_html,
            body_text=body_text,
        )
        return await self.send_email(request)

    # ==========================================================================
    # Templated emails
    # ==========================================================================

    async def send_enrollment_confirmation(
        self,
        to_email: str,
        student_name: str,
        program_title: str,
        course_count: int,
        final_price: Decimal,
        currency: str = "USD",
        cohort: str | None = None,
    ) -> SendEmailResponse:
        """Send enrollment confirmation to the student."""
        body_html, body_text = render_enrollment_confirmation(
            student_name=student_name,
            program_title=program_title,
            course_count=course_count,
            price_label=format_price(final_price, currency),
            cohort=cohort,
            dashboard_url=self._link("/dashboard"),
        )
        return await self.send_simple_email(
            to=to_email,
            subject=f"Enrollment confirmed: {program_title}",
            body_html=body_html,
            body_text=body_text,
            to_name=student_name,
        )

    async def send_enrollment_status_change(
        self,
        to_email: str,
        student_name: str,
        program_title: str,
        status: str,
    ) -> SendEmailResponse:
        """Send enrollment status change notice."""
        body_html, body_text = render_enrollment_status_change(
            student_name, program_title, status
        )
        return await self.send_simple_email(
            to=to_email,
            subject=f"Enrollment update: {program_title}",
            body_html=body_html,
            body_text=body_text,
            to_name=student_name,
        )

    async def send_scholarship_award(
        self,
        to_email: str,
        program_title: str,
        code: str,
        discount_label: str,
        expires_at: datetime | None = None,
    ) -> SendEmailResponse:
        """Send a scholarship code to the restricted student email."""
        body_html, body_text = render_scholarship_award(
            program_title, code, discount_label, expires_at
        )
        return await self.send_simple_email(
            to=to_email,
            subject=f"Your scholarship for {program_title}",
            body_html=body_html,
            body_text=body_text,
        )

    async def send_program_completion(
        self,
        to_email: str,
        student_name: str,
        program_title: str,
    ) -> SendEmailResponse:
        body_html, body_text = render_program_completion(student_name, program_title)
        return await self.send_simple_email(
            to=to_email,
            subject=f"You completed {program_title}!",
            body_html=body_html,
            body_text=body_text,
            to_name=student_name,
        )

    async def send_new_account(
        self,
        to_email: str,
        user_name: str,
        temporary_password: str,
    ) -> SendEmailResponse:
        """Send credentials for an account provisioned during enrollment."""
        body_html, body_text = render_new_account(
            user_name=user_name,
            email=to_email,
            temporary_password=temporary_password,
            login_url=self._link("/login"),
        )
        return await self.send_simple_email(
            to=to_email,
            subject="Your LearnHub account",
            body_html=body_html,
            body_text=body_text,
            to_name=user_name,
        )
