"""
SendGrid mail sender.
"""
import base64
import logging
from typing import List, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    Content,
    Disposition,
    Email,
    FileContent,
    FileName,
    FileType,
    Mail,
    To,
)

from bulkio.core.config import settings
from bulkio.core.exceptions import DeliveryError
from bulkio.ports.mail import MailAttachment, MailSender

logger = logging.getLogger(__name__)


class SendGridMailSender(MailSender):
    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.from_email = from_email if from_email is not None else settings.MAIL_FROM
        self._client: Optional[SendGridAPIClient] = None

    def _get_client(self) -> SendGridAPIClient:
        if not self.api_key:
            raise DeliveryError("SENDGRID_API_KEY not configured")
        if self._client is None:
            self._client = SendGridAPIClient(api_key=self.api_key)
        return self._client

    def send(
        self,
        recipients: List[str],
        subject: str,
        body: str,
        attachment: Optional[MailAttachment] = None,
    ) -> None:
        if not recipients:
            raise DeliveryError("No recipients")
        if not self.from_email:
            raise DeliveryError("MAIL_FROM not configured")

        client = self._get_client()

        message = Mail(
            from_email=Email(self.from_email),
            to_emails=[To(r) for r in recipients],
            subject=subject,
        )
        message.add_content(Content("text/plain", body))

        if attachment is not None:
            message.attachment = Attachment(
                FileContent(base64.b64encode(attachment.content).decode("ascii")),
                FileName(attachment.filename),
                FileType(attachment.mime_type),
                Disposition("attachment"),
            )

        try:
            response = client.send(message)
        except Exception as e:
            logger.exception(f"Failed to send '{subject}' to {len(recipients)} recipient(s)")
            raise DeliveryError(str(e)) from e

        if response.status_code not in (200, 201, 202):
            raise DeliveryError(f"SendGrid rejected message: status {response.status_code}")

        logger.info(
            f"Email sent: recipients={len(recipients)}, subject='{subject}', status={response.status_code}"
        )
