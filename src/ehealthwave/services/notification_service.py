"""Notification delivery for emergency contacts and providers.

Delivery is best effort: a failed send never rolls back grant state. Real
SMS and push transports plug in by implementing ``NotificationSender``.
"""

from abc import ABC, abstractmethod
from typing import List

from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationSender(ABC):
    """Abstract base class for notification transports."""

    @abstractmethod
    def send(self, contacts: List[str], message: str) -> None:
        """Deliver ``message`` to every contact.

        Args:
            contacts: Contact identifiers (phone numbers, device ids)
            message: Message body

        Raises:
            NotificationError: If delivery fails
        """


class LoggingNotificationSender(NotificationSender):
    """Sender that only records the delivery attempt in the log.

    Message bodies may carry an emergency PIN, so only their size is logged.
    """

    def send(self, contacts: List[str], message: str) -> None:
        """Log the delivery attempt."""
        logger.info(
            "notification_dispatched",
            recipients=len(contacts),
            message_length=len(message),
        )
