# src/integrations/log_notifier.py — v1
"""Chat notifier used when no webhook is configured: writes to the log."""

from __future__ import annotations

import logging

from thegrid.integrations.base import BaseChatNotifier

logger = logging.getLogger(__name__)


class LoggingChatNotifier(BaseChatNotifier):
    """Log chat messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def notify(self, text: str) -> None:
        self.sent.append(text)
        logger.info("Chat message: %s", text)
