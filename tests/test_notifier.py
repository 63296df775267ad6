"""Tests for Slack alert delivery."""
import json

import httpx
import pytest

from notifier import SlackNotifier

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


class TestSlackNotifier:
    @pytest.mark.asyncio
    async def test_posts_text_payload(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        notifier = SlackNotifier(WEBHOOK, transport=httpx.MockTransport(handler))

        assert await notifier.notify("get_random failed 3 time(s)") is True
        assert len(seen) == 1
        assert str(seen[0].url) == WEBHOOK
        body = json.loads(seen[0].content)
        assert "get_random failed 3 time(s)" in body["text"]
        assert notifier.sent == 1

    @pytest.mark.asyncio
    async def test_without_webhook_nothing_is_sent(self):
        def handler(request):
            raise AssertionError("no request expected")

        notifier = SlackNotifier(None, transport=httpx.MockTransport(handler))

        assert await notifier.notify("dropped") is False
        assert notifier.sent == 0

    @pytest.mark.asyncio
    async def test_http_error_is_swallowed(self):
        notifier = SlackNotifier(WEBHOOK, transport=httpx.MockTransport(lambda r: httpx.Response(500)))

        assert await notifier.notify("boom") is False

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        notifier = SlackNotifier(WEBHOOK, transport=httpx.MockTransport(handler))

        assert await notifier.notify("boom") is False
