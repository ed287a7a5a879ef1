# src/notifications/fanout.py — v1
"""Best-effort notification fan-out to the in-app inbox and team chat.

Both channels are attempted independently and concurrently. A channel
failure is logged and reported, never raised: notification problems must
not change pipeline state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from thegrid.integrations.base import (
    BaseChatNotifier,
    BaseNotificationClient,
    NotificationType,
)

logger = logging.getLogger(__name__)


@dataclass
class FanoutReport:
    """Outcome of one fan-out, per channel."""

    notification_sent: bool = False
    chat_sent: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def all_sent(self) -> bool:
        return self.notification_sent and self.chat_sent


class NotificationFanout:
    """Send one message to every configured channel.

    Args:
        notifications: In-app notification client.
        chat: Chat notifier.
        user_id: Recipient of in-app notifications.
    """

    def __init__(
        self,
        notifications: BaseNotificationClient,
        chat: BaseChatNotifier,
        user_id: str = "1",
    ) -> None:
        self._notifications = notifications
        self._chat = chat
        self._user_id = user_id

    async def fan_out(
        self,
        message: str,
        chat_text: str | None = None,
        notification_type: NotificationType = "alert",
    ) -> FanoutReport:
        """Deliver ``message`` in-app and ``chat_text`` (default: message) to chat."""
        report = FanoutReport()
        await asyncio.gather(
            self._send_notification(message, notification_type, report),
            self._send_chat(chat_text if chat_text is not None else message, report),
        )
        return report

    async def _send_notification(
        self, message: str, notification_type: NotificationType, report: FanoutReport
    ) -> None:
        try:
            await self._notifications.create_notification(
                self._user_id, notification_type, message
            )
            report.notification_sent = True
        except Exception as exc:
            report.errors["notification"] = str(exc)
            logger.error("In-app notification failed: %s", exc)

    async def _send_chat(self, text: str, report: FanoutReport) -> None:
        try:
            await self._chat.notify(text)
            report.chat_sent = True
        except Exception as exc:
            report.errors["chat"] = str(exc)
            logger.error("Chat notification failed: %s", exc)
