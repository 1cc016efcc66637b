"""Email service using Gmail API with Service Account.

Uses domain-wide delegation to send emails on behalf of a Google Workspace user.
The service account must have domain-wide delegation enabled in Google Admin Console.

Messages are always sent from the configured Workspace address (Gmail does
not allow arbitrary From addresses); the enrolment contact a message comes
from is expressed through the display name and the Reply-To header.
"""

import asyncio
import base64
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.core.logging import get_logger

from .schemas import EmailRecipient, SendEmailRequest, SendEmailResponse


if TYPE_CHECKING:
    from googleapiclient._apis.gmail.v1 import GmailResource


logger = get_logger(__name__)

# Gmail API scope for sending emails
GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class EmailService:
    """Service for sending emails via Gmail API."""

    def __init__(
        self,
        credentials_path: str,
        sender_address: str,
        sender_name: str = "Token Enrolment",
    ):
        """Initialize Gmail API service.

        Args:
            credentials_path: Path to service account JSON file
            sender_address: Email address to send from (must be in Google Workspace)
            sender_name: Default display name for sender
        """
        self.credentials_path = credentials_path
        self.sender_address = sender_address
        self.sender_name = sender_name
        self._service: GmailResource | None = None

        if not Path(credentials_path).exists():
            logger.warning(
                "email_credentials_not_found",
                path=credentials_path,
                message="Gmail API will not be available",
            )

    def _get_service(self) -> "GmailResource":
        """Get or create Gmail API service.

        Uses lazy initialization to avoid issues during app startup.

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

            # Domain-wide delegation: impersonate the sender
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

    @staticmethod
    def _format_address(contact: EmailRecipient) -> str:
        """Format address as "Name <email>" when a name is known."""
        if contact.name:
            return f"{contact.name} <{contact.email}>"
        return contact.email

    def _create_message(self, request: SendEmailRequest) -> dict:
        """Create email message in Gmail API format.

        Every message is automatic (welcome, expiry notices) and is marked
        Auto-Submitted.

        Returns:
            Dict with 'raw' key containing base64url encoded message
        """
        message = MIMEMultipart("alternative")

        message["From"] = f"{request.from_name or self.sender_name} <{self.sender_address}>"
        message["To"] = ", ".join(self._format_address(r) for r in request.to)
        message["Subject"] = request.subject
        message["Auto-Submitted"] = "auto-generated"

        if request.reply_to:
            message["Reply-To"] = self._format_address(request.reply_to)

        # Plain text first, then HTML (email clients prefer last)
        if request.body_text:
            message.attach(MIMEText(request.body_text, "plain", "utf-8"))
        message.attach(MIMEText(request.body_html, "html", "utf-8"))

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        return {"raw": raw_message}

    def _send_blocking(self, message: dict) -> dict:
        # "me" refers to the impersonated sender
        service = self._get_service()
        return service.users().messages().send(userId="me", body=message).execute()

    async def send_email(self, request: SendEmailRequest) -> SendEmailResponse:
        """Send an email via Gmail API.

        The Google client is synchronous, so the call runs in a worker thread.
        Delivery failures are logged and reported in the response, never raised.
        """
        recipients = [r.email for r in request.to]
        try:
            result = await asyncio.to_thread(
                self._send_blocking, self._create_message(request)
            )
        except HttpError as e:
            logger.exception(
                "email_send_failed",
                error=str(e),
                to=recipients,
                subject=request.subject[:50],
            )
            return SendEmailResponse(success=False, error=f"Gmail API error: {e!s}")
        except FileNotFoundError as e:
            logger.error("email_credentials_missing", error=str(e))
            return SendEmailResponse(
                success=False,
                error="Email service not configured: credentials file missing",
            )
        except Exception as e:
            logger.exception("email_send_unexpected_error", error=str(e), to=recipients)
            return SendEmailResponse(success=False, error=f"Unexpected error: {e!s}")

        logger.info(
            "email_sent",
            message_id=result.get("id"),
            thread_id=result.get("threadId"),
            to=recipients,
            subject=request.subject[:50],
        )
        return SendEmailResponse(
            success=True,
            message_id=result.get("id"),
            thread_id=result.get("threadId"),
        )

    async def send_on_behalf(
        self,
        sender: EmailRecipient,
        recipient: EmailRecipient,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> SendEmailResponse:
        """Send one message on behalf of a contact.

        The contact's name is shown as the From display name and replies go
        to the contact; the envelope address stays the Workspace sender.
        """
        request = SendEmailRequest(
            to=[recipient],
            subject=subject,
            body_html=body_html,
            body_text=body_text,
            from_name=sender.name,
            reply_to=sender,
        )
        return await self.send_email(request)
