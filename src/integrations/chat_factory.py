# src/integrations/chat_factory.py — v1
"""Factory for chat notifier instantiation."""

from __future__ import annotations

from thegrid.config.settings import Settings
from thegrid.integrations.base import BaseChatNotifier


def create_chat_notifier(settings: Settings | None = None) -> BaseChatNotifier:
    """Return a webhook notifier when CHAT_WEBHOOK_URL is set, else a logging one."""
    if settings is not None and settings.chat_enabled:
        from thegrid.integrations.slack_notifier import SlackWebhookNotifier
        return SlackWebhookNotifier(
            webhook_url=settings.chat_webhook_url,
            timeout_s=settings.chat_timeout_s,
        )

    from thegrid.integrations.log_notifier import LoggingChatNotifier
    return LoggingChatNotifier()
