"""Tests for the escalation webhook notifier."""

from __future__ import annotations

import json

import httpx

from src.services.notifier import WebhookNotifier

URL = "https://hook.example.test/escalate"


def _notifier(handler) -> WebhookNotifier:
    return WebhookNotifier(URL, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestWebhookNotifier:
    def test_posts_details(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"accepted": True})

        assert _notifier(handler).notify({"name": "Jane Doe", "email": "jane@example.com"}) is True

        (request,) = seen
        assert str(request.url) == URL
        payload = json.loads(request.content)
        assert payload["message"] == "Appointment request"
        assert payload["userDetails"] == {"name": "Jane Doe", "email": "jane@example.com"}
        assert payload["timestamp"]

    def test_error_status_returns_false(self):
        assert _notifier(lambda request: httpx.Response(500)).notify({}) is False

    def test_connection_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert _notifier(handler).notify({}) is False
