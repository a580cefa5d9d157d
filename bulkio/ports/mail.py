"""
Outbound mail interface used to deliver scheduled export artifacts.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class MailAttachment:
    filename: str
    content: bytes
    mime_type: str = "text/csv"


class MailSender(ABC):
    @abstractmethod
    def send(
        self,
        recipients: List[str],
        subject: str,
        body: str,
        attachment: Optional[MailAttachment] = None,
    ) -> None:
        """
        Send one message to every recipient.

        Raises:
            DeliveryError: If the message was not accepted for delivery
        """
        pass
