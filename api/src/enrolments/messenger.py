"""Message delivery through the Gmail-backed email service."""

from src.core.logging import get_logger
from src.email.schemas import EmailRecipient
from src.email.service import EmailService

from .collaborators import Messenger
from .models import Contact


logger = get_logger(__name__)


class EmailMessenger(Messenger):
    """Sends enrolment messages as email.

    The sender contact becomes the display name and Reply-To address; the
    envelope sender stays the configured Workspace account.
    """

    def __init__(self, email_service: EmailService | None):
        self.email_service = email_service

    async def send(
        self,
        sender: Contact,
        recipient: Contact,
        subject: str,
        body_text: str,
        body_html: str,
    ) -> bool:
        if self.email_service is None:
            logger.info(
                "email_disabled_message_skipped",
                to=recipient.email,
                subject=subject[:50],
            )
            return False

        response = await self.email_service.send_on_behalf(
            sender=EmailRecipient(email=sender.email, name=sender.name),
            recipient=EmailRecipient(email=recipient.email, name=recipient.name),
            subject=subject,
            body_html=body_html,
            body_text=body_text,
        )
        return response.success
