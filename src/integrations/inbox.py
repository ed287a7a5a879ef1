# src/integrations/inbox.py — v1
"""In-process notification inbox.

Default BaseNotificationClient for local runs and the CLI; keeps
notifications per user in memory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from thegrid.integrations.base import BaseNotificationClient, NotificationType
from thegrid.workflow.models import new_id, utcnow

logger = logging.getLogger(__name__)


@dataclass
class InboxNotification:
    user_id: str
    notification_type: NotificationType
    message: str
    id: str = field(default_factory=new_id)
    read: bool = False
    created_at: datetime = field(default_factory=utcnow)


class InMemoryNotificationInbox(BaseNotificationClient):
    """Notifications kept in a list, newest last."""

    def __init__(self) -> None:
        self._items: list[InboxNotification] = []

    async def create_notification(
        self, user_id: str, notification_type: NotificationType, message: str
    ) -> None:
        self._items.append(InboxNotification(user_id, notification_type, message))
        logger.debug("Stored %s notification for user %s", notification_type, user_id)

    def list_for(self, user_id: str, unread_only: bool = False) -> list[InboxNotification]:
        return [
            n for n in self._items
            if n.user_id == user_id and not (unread_only and n.read)
        ]

    def mark_read(self, notification_id: str) -> bool:
        for item in self._items:
            if item.id == notification_id:
                item.read = True
                return True
        return False
