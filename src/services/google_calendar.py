"""Google Calendar API v3 client.

Authenticates with a service account key file.  When
``GOOGLE_DELEGATED_USER`` is set the credentials impersonate that
Workspace user (domain-wide delegation), which is required for the
service account to invite attendees.

This client never retries: a failed free/busy query is surfaced to the
caller, and a failed insert must not be replayed blindly because the
event may already exist.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.config import GOOGLE_DELEGATED_USER, GOOGLE_SERVICE_ACCOUNT_JSON
from src.errors import CalendarAPIError
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

_SERVICE = "google_calendar"


def _to_rfc3339(dt: datetime) -> str:
    """Convert a datetime to an RFC 3339 string (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()


class GoogleCalendarClient:
    """Thin wrapper around the two Calendar API calls the booking flow needs."""

    def __init__(
        self,
        service_account_path: str | None = None,
        *,
        delegated_user: str | None = None,
        service: Any = None,
    ):
        if service is not None:
            self._service = service
            return

        sa_path = service_account_path or GOOGLE_SERVICE_ACCOUNT_JSON
        credentials = Credentials.from_service_account_file(sa_path, scopes=SCOPES)
        subject = delegated_user or GOOGLE_DELEGATED_USER
        if subject:
            credentials = credentials.with_subject(subject)
        self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        logger.info("Google Calendar client ready (delegated=%s)", bool(subject))

    def _execute(self, operation: str, request: Any) -> dict[str, Any]:
        """Execute a prepared API request, recording metrics and mapping errors."""
        try:
            with metrics.track(_SERVICE, operation):
                return request.execute()
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            raise CalendarAPIError(
                f"Google Calendar {operation} failed with HTTP {status}",
                status_code=int(status) if status else None,
            ) from exc
        except (GoogleAuthError, OSError) as exc:
            # OSError covers socket timeouts and connection resets from httplib2
            raise CalendarAPIError(f"Google Calendar {operation} failed: {exc}") from exc

    def query_free_busy(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """Return the busy ``(start, end)`` intervals of *resource_id* in ``[start, end)``."""
        body = {
            "timeMin": _to_rfc3339(start),
            "timeMax": _to_rfc3339(end),
            "items": [{"id": resource_id}],
        }
        response = self._execute("freebusy.query", self._service.freebusy().query(body=body))

        calendar = response.get("calendars", {}).get(resource_id, {})
        if calendar.get("errors"):
            reasons = ", ".join(err.get("reason", "unknown") for err in calendar["errors"])
            raise CalendarAPIError(f"Free/busy lookup for {resource_id} failed: {reasons}")

        busy: list[tuple[datetime, datetime]] = []
        for interval in calendar.get("busy", []):
            busy.append(
                (
                    datetime.fromisoformat(interval["start"]),
                    datetime.fromisoformat(interval["end"]),
                )
            )
        busy.sort(key=lambda b: b[0])
        logger.debug(
            "Free/busy %s..%s on %s: %d busy interval(s)",
            body["timeMin"], body["timeMax"], resource_id, len(busy),
        )
        return busy

    def insert_event(self, resource_id: str, event: dict[str, Any]) -> dict[str, str]:
        """Insert *event* (a Calendar API event resource) and return its id and link.

        Attendees receive an email invitation.
        """
        result = self._execute(
            "events.insert",
            self._service.events().insert(calendarId=resource_id, body=event, sendUpdates="all"),
        )
        logger.info("Created event %s on calendar %s", result.get("id"), resource_id)
        return {
            "event_id": result.get("id", ""),
            "html_link": result.get("htmlLink", ""),
        }
