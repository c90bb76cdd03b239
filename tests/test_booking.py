"""Tests for the booking service: re-check, advance past conflicts, commit once."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from src.errors import NoSlotAvailable, UnavailableBackend
from src.models import BookingRequest
from src.scheduling.booking import BookingService, build_event
from tests.fakes import FakeCalendar, hour


def _at(h: int, day: int = 24) -> datetime:
    return datetime(2024, 5, day, h, tzinfo=UTC)


@pytest.fixture
def make_booking(make_slot_search):
    """Factory: (BookingService, SlotSearch) over *calendar*."""

    def _make(calendar, *, time_zone="UTC", **kwargs):
        search = make_slot_search(calendar, time_zone=time_zone)
        return BookingService(search, calendar, resource_id="primary", **kwargs), search

    return _make


def _request(search, start: datetime, email: str = "jane@example.com") -> BookingRequest:
    return BookingRequest(
        slot=search.slot_at(start),
        summary="Appointment",
        description="Meeting with Jane Doe",
        attendee_email=email,
    )


class TestBuildEvent:
    def test_event_resource_shape(self, calendar, make_slot_search):
        search = make_slot_search(calendar)
        event = build_event(_request(search, _at(10)), search.slot_at(_at(10)))

        assert event["summary"] == "Appointment"
        assert event["description"] == "Meeting with Jane Doe"
        assert event["start"] == {"dateTime": "2024-05-24T10:00:00+00:00", "timeZone": "UTC"}
        assert event["end"] == {"dateTime": "2024-05-24T11:00:00+00:00", "timeZone": "UTC"}
        assert event["attendees"] == [{"email": "jane@example.com"}]


class TestBook:
    def test_free_slot_is_booked_as_requested(self, calendar, make_booking):
        service, search = make_booking(calendar)
        booking = service.book(_request(search, _at(10)))

        assert booking.slot.start == _at(10)
        assert booking.external_link
        assert booking.event_id == "evt_1"
        assert len(calendar.events) == 1

    def test_conflict_moves_to_next_hour(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(22))])
        service, search = make_booking(calendar)

        booking = service.book(_request(search, _at(22)))

        assert booking.slot.start == _at(23)
        assert booking.slot.end == _at(23) + timedelta(hours=1)
        assert len(calendar.events) == 1
        assert calendar.events[0]["start"]["dateTime"] == "2024-05-24T23:00:00+00:00"

    def test_advances_past_several_conflicts_and_across_midnight(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(21), 4)])
        service, search = make_booking(calendar)

        booking = service.book(_request(search, _at(21)))

        assert booking.slot.start == _at(1, day=25)
        assert len(calendar.queries) == 5

    def test_second_booking_of_same_slot_does_not_double_book(self, calendar, make_booking):
        service, search = make_booking(calendar)

        first = service.book(_request(search, _at(10)))
        second = service.book(_request(search, _at(10), email="john@example.com"))

        assert first.slot.start == _at(10)
        assert second.slot.start == _at(11)
        starts = [e["start"]["dateTime"] for e in calendar.events]
        assert len(starts) == len(set(starts)) == 2

    def test_gives_up_after_max_advances(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(0), 24 * 3)])
        service, search = make_booking(calendar)

        with pytest.raises(NoSlotAvailable):
            service.book(_request(search, _at(0)))

        assert len(calendar.queries) == 25
        assert calendar.events == []
        assert calendar.insert_calls == 0

    def test_custom_advance_bound(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(9), 8)])
        service, search = make_booking(calendar, max_advances=3)

        with pytest.raises(NoSlotAvailable):
            service.book(_request(search, _at(9)))
        assert len(calendar.queries) == 4

    def test_zero_advances_checks_only_the_requested_slot(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(9))])
        service, search = make_booking(calendar, max_advances=0)

        with pytest.raises(NoSlotAvailable):
            service.book(_request(search, _at(9)))
        assert len(calendar.queries) == 1

    def test_insert_failure_is_not_retried(self, make_booking):
        calendar = FakeCalendar(fail_insert=True)
        service, search = make_booking(calendar)

        with pytest.raises(UnavailableBackend):
            service.book(_request(search, _at(10)))
        assert calendar.insert_calls == 1

    def test_check_failure_surfaces_without_insert(self, make_booking):
        calendar = FakeCalendar(fail_queries_after=0)
        service, search = make_booking(calendar)

        with pytest.raises(UnavailableBackend):
            service.book(_request(search, _at(10)))
        assert len(calendar.queries) == 1
        assert calendar.insert_calls == 0

    def test_check_failure_after_conflicts_stops_the_walk(self, make_booking):
        calendar = FakeCalendar(busy=[hour(_at(10), 5)], fail_queries_after=2)
        service, search = make_booking(calendar)

        with pytest.raises(UnavailableBackend):
            service.book(_request(search, _at(10)))
        assert len(calendar.queries) == 3
        assert calendar.insert_calls == 0

    def test_advance_walks_through_repeated_hour_at_fall_back(self, make_booking):
        ny = ZoneInfo("America/New_York")
        # 00:00 EDT and 01:00 EDT are taken; 01:00 EST is free.
        calendar = FakeCalendar(busy=[hour(datetime(2024, 11, 3, 4, tzinfo=UTC), 2)])
        service, search = make_booking(calendar, time_zone="America/New_York")

        booking = service.book(_request(search, datetime(2024, 11, 3, 0, 0, tzinfo=ny)))

        assert booking.slot.start.astimezone(UTC) == datetime(2024, 11, 3, 6, tzinfo=UTC)
        assert booking.slot.duration == timedelta(hours=1)
        event = calendar.events[0]
        assert event["start"] == {"dateTime": "2024-11-03T01:00:00-05:00", "timeZone": "America/New_York"}
        assert event["end"] == {"dateTime": "2024-11-03T02:00:00-05:00", "timeZone": "America/New_York"}
        assert len(calendar.queries) == 3
