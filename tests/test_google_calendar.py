"""Tests for the Google Calendar client (API service mocked)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from src.errors import CalendarAPIError, UnavailableBackend
from src.services.google_calendar import SCOPES, GoogleCalendarClient

START = datetime(2024, 5, 24, 9, 0, tzinfo=UTC)
END = datetime(2024, 5, 24, 17, 0, tzinfo=UTC)


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "backend error"}}')


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def client(service):
    return GoogleCalendarClient(service=service)


class TestConstruction:
    @patch("src.services.google_calendar.build")
    @patch("src.services.google_calendar.Credentials")
    def test_service_account_with_delegation(self, mock_credentials, mock_build):
        base = mock_credentials.from_service_account_file.return_value
        GoogleCalendarClient("sa.json", delegated_user="owner@example.com")

        mock_credentials.from_service_account_file.assert_called_once_with("sa.json", scopes=SCOPES)
        base.with_subject.assert_called_once_with("owner@example.com")
        mock_build.assert_called_once_with(
            "calendar", "v3", credentials=base.with_subject.return_value, cache_discovery=False,
        )

    @patch("src.services.google_calendar.GOOGLE_DELEGATED_USER", None)
    @patch("src.services.google_calendar.build")
    @patch("src.services.google_calendar.Credentials")
    def test_service_account_without_delegation(self, mock_credentials, mock_build):
        base = mock_credentials.from_service_account_file.return_value
        GoogleCalendarClient("sa.json")

        base.with_subject.assert_not_called()
        assert mock_build.call_args.kwargs["credentials"] is base


class TestQueryFreeBusy:
    def test_request_body(self, client, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {"primary": {"busy": []}}
        }

        client.query_free_busy("primary", START, END)

        service.freebusy.return_value.query.assert_called_once_with(
            body={
                "timeMin": "2024-05-24T09:00:00+00:00",
                "timeMax": "2024-05-24T17:00:00+00:00",
                "items": [{"id": "primary"}],
            }
        )

    def test_naive_bounds_are_sent_as_utc(self, client, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {"calendars": {}}
        client.query_free_busy("primary", datetime(2024, 5, 24, 9), datetime(2024, 5, 24, 10))

        body = service.freebusy.return_value.query.call_args.kwargs["body"]
        assert body["timeMin"] == "2024-05-24T09:00:00+00:00"

    def test_busy_intervals_parsed_and_sorted(self, client, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "primary": {
                    "busy": [
                        {"start": "2024-05-24T14:00:00Z", "end": "2024-05-24T15:00:00Z"},
                        {"start": "2024-05-24T06:00:00-04:00", "end": "2024-05-24T07:30:00-04:00"},
                    ]
                }
            }
        }

        busy = client.query_free_busy("primary", START, END)

        edt = timezone(timedelta(hours=-4))
        assert busy == [
            (datetime(2024, 5, 24, 6, 0, tzinfo=edt), datetime(2024, 5, 24, 7, 30, tzinfo=edt)),
            (datetime(2024, 5, 24, 14, 0, tzinfo=UTC), datetime(2024, 5, 24, 15, 0, tzinfo=UTC)),
        ]

    def test_calendar_level_errors_raise(self, client, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {"primary": {"errors": [{"domain": "global", "reason": "notFound"}]}}
        }
        with pytest.raises(CalendarAPIError, match="notFound"):
            client.query_free_busy("primary", START, END)

    def test_http_error_mapped_with_status(self, client, service):
        service.freebusy.return_value.query.return_value.execute.side_effect = _http_error(503)

        with pytest.raises(CalendarAPIError) as exc_info:
            client.query_free_busy("primary", START, END)

        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value, UnavailableBackend)

    def test_socket_timeout_mapped(self, client, service):
        service.freebusy.return_value.query.return_value.execute.side_effect = TimeoutError("timed out")
        with pytest.raises(CalendarAPIError, match="timed out"):
            client.query_free_busy("primary", START, END)


class TestInsertEvent:
    EVENT = {
        "summary": "Appointment",
        "description": "Meeting with Jane Doe",
        "start": {"dateTime": "2024-05-24T22:00:00+00:00", "timeZone": "UTC"},
        "end": {"dateTime": "2024-05-24T23:00:00+00:00", "timeZone": "UTC"},
        "attendees": [{"email": "jane@example.com"}],
    }

    def test_inserts_and_sends_invitations(self, client, service):
        service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt_123",
            "htmlLink": "https://www.google.com/calendar/event?eid=evt_123",
        }

        result = client.insert_event("primary", self.EVENT)

        service.events.return_value.insert.assert_called_once_with(
            calendarId="primary", body=self.EVENT, sendUpdates="all",
        )
        assert result == {
            "event_id": "evt_123",
            "html_link": "https://www.google.com/calendar/event?eid=evt_123",
        }

    def test_insert_failure_executes_once(self, client, service):
        execute = service.events.return_value.insert.return_value.execute
        execute.side_effect = _http_error(500)

        with pytest.raises(CalendarAPIError):
            client.insert_event("primary", self.EVENT)
        execute.assert_called_once()
