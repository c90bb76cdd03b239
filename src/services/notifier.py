"""Human-escalation webhook.

Posts the user's booking details to an automation webhook (e.g. a Make or
Zapier scenario) so a person can follow up.  Delivery is best-effort: a
failure is logged and reported as ``False``, never raised into the
conversation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0


class WebhookNotifier:
    def __init__(self, url: str, *, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def notify(self, user_details: dict[str, Any], message: str = "Appointment request") -> bool:
        """Deliver *user_details* to the webhook.  Returns ``True`` on a 2xx."""
        payload = {
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
            "userDetails": user_details,
        }
        try:
            response = self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Escalation webhook delivery failed: %s", exc)
            return False
        logger.info("Escalation webhook delivered (%d)", response.status_code)
        return True
