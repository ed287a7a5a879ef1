# src/integrations/slack_notifier.py — v1
"""Chat notifier posting to a Slack incoming webhook via httpx.

Requires: httpx
"""

from __future__ import annotations

import logging

import httpx

from thegrid.integrations.base import BaseChatNotifier

logger = logging.getLogger(__name__)


class SlackWebhookNotifier(BaseChatNotifier):
    """Post ``{"text": ...}`` to an incoming-webhook URL.

    Args:
        webhook_url: Incoming webhook endpoint.
        timeout_s: Request timeout in seconds.
        client: Optional shared AsyncClient (tests inject one backed by
            ``httpx.MockTransport``). A private client is opened per call
            otherwise.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("webhook_url must not be empty")
        self._webhook_url = webhook_url
        self._timeout_s = timeout_s
        self._client = client

    async def notify(self, text: str) -> None:
        """Post ``text``. Raises httpx.HTTPError on transport or status errors."""
        if self._client is not None:
            response = await self._client.post(
                self._webhook_url, json={"text": text}, timeout=self._timeout_s
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(self._webhook_url, json={"text": text})
        response.raise_for_status()
        logger.debug("Posted chat message (%d chars)", len(text))
