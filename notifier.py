# notifier.py
"""
Roulette Orchestrator: Slack alerts (fire-and-forget).
Delivery failures are logged and never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class SlackNotifier:
    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        title: str = "Critical error in Roulette Orchestrator",
    ) -> None:
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout
        self.title = title
        self._transport = transport
        self.sent = 0

    def _payload(self, message: str) -> dict:
        return {"text": f":rotating_light: *{self.title}* :rotating_light:\n\n```\n{message}\n```"}

    async def notify(self, message: str) -> bool:
        """Post `message` to Slack. Returns True on delivery."""
        if not self.webhook_url:
            logger.warning("[notifier] SLACK_WEBHOOK_URL not configured; alert dropped: %s", message)
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.webhook_url, json=self._payload(message))
                resp.raise_for_status()
        except Exception as exc:
            logger.error("[notifier] failed to deliver Slack alert: %s", exc)
            return False
        self.sent += 1
        logger.info("[notifier] alert delivered to Slack")
        return True
