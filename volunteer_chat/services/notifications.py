import logging
from typing import List

from volunteer_chat.schemas.chat import ChatNotification

logger = logging.getLogger(__name__)


class NotificationSink:
    """Receives messages from other participants while a session is in the background."""

    async def notify(self, notification: ChatNotification) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    async def notify(self, notification: ChatNotification) -> None:
        logger.info(
            "Chat notification for opportunity %s from %s",
            notification.opportunity_id,
            notification.sender_display_name,
        )


class CollectingNotificationSink(NotificationSink):
    """Keeps notifications in memory, for callers that poll instead of push."""

    def __init__(self) -> None:
        self.notifications: List[ChatNotification] = []

    async def notify(self, notification: ChatNotification) -> None:
        self.notifications.append(notification)
