"""Slot search over the bookable calendar.

Two modes:

* :meth:`SlotSearch.is_free` tests one candidate slot against a free/busy
  query that exactly covers it.
* :meth:`SlotSearch.iter_free_slots` lazily walks hour-aligned starts
  inside business hours, day by day, yielding the free ones in
  chronological order.  Each call starts a fresh scan, so a caller can stop
  after the first hit or collect everything.

Slots are only ever tested on whole hours.  A slot that starts before
closing time is offered even when its end runs past it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, date, datetime, time, timedelta
from itertools import islice
from zoneinfo import ZoneInfo

from src.config import (
    APPOINTMENT_DURATION_MINUTES,
    BUSINESS_HOURS_END,
    BUSINESS_HOURS_START,
    CALENDAR_ID,
    CALENDAR_TIMEZONE,
)
from src.models import AvailabilityWindow, TimeSlot
from src.scheduling.availability import AvailabilityOracle

logger = logging.getLogger(__name__)


def _exists(local: datetime) -> bool:
    """False for wall-clock times skipped by a spring-forward transition."""
    round_trip = local.astimezone(UTC).astimezone(local.tzinfo)
    return round_trip.replace(tzinfo=None) == local.replace(tzinfo=None)


class SlotSearch:
    def __init__(
        self,
        oracle: AvailabilityOracle,
        *,
        resource_id: str = CALENDAR_ID,
        time_zone: str = CALENDAR_TIMEZONE,
        open_hour: int = BUSINESS_HOURS_START,
        close_hour: int = BUSINESS_HOURS_END,
        duration: timedelta = timedelta(minutes=APPOINTMENT_DURATION_MINUTES),
    ) -> None:
        if not 0 <= open_hour < close_hour <= 24:
            raise ValueError(f"Invalid business hours: {open_hour}:00-{close_hour}:00")
        self._oracle = oracle
        self._resource_id = resource_id
        self._time_zone = time_zone
        self._tz = ZoneInfo(time_zone)
        self._open_hour = open_hour
        self._close_hour = close_hour
        self.duration = duration

    @property
    def time_zone(self) -> str:
        return self._time_zone

    def slot_at(self, start: datetime) -> TimeSlot:
        """Build the fixed-duration slot starting at *start* (naive = calendar zone)."""
        if start.tzinfo is None:
            start = start.replace(tzinfo=self._tz)
        return TimeSlot.starting_at(start, self.duration, self._time_zone)

    # ── Single-slot check ────────────────────────────────────────────

    def is_free(self, slot: TimeSlot) -> bool:
        """Return ``True`` iff no busy interval intersects *slot*.

        Raises:
            UnavailableBackend: the free/busy query failed.
        """
        window = AvailabilityWindow(slot.start, slot.end, self._resource_id)
        busy = self._oracle.query_busy(window)
        free = not any(slot.overlaps(b.start, b.end) for b in busy)
        logger.info(
            "Availability %s..%s: %s",
            slot.start.isoformat(), slot.end.isoformat(), "free" if free else "busy",
        )
        return free

    # ── Windowed search ──────────────────────────────────────────────

    def _candidates_for(self, day: date) -> list[TimeSlot]:
        starts = (
            datetime.combine(day, time(hour), tzinfo=self._tz)
            for hour in range(self._open_hour, self._close_hour)
        )
        return [self.slot_at(start) for start in starts if _exists(start)]

    def iter_free_slots(
        self,
        start_date: date,
        days: int = 7,
        *,
        not_before: datetime | None = None,
    ) -> Iterator[TimeSlot]:
        """Yield free business-hours slots from *start_date* over *days* days.

        One free/busy query is issued per day, lazily, as the caller
        advances.  Candidates starting before *not_before* are skipped.

        Raises:
            UnavailableBackend: a day's query failed; the scan stops there.
        """
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            candidates = self._candidates_for(day)
            if not_before is not None:
                candidates = [c for c in candidates if c.start >= not_before]
            if not candidates:
                continue

            window = AvailabilityWindow(
                candidates[0].start, candidates[-1].end, self._resource_id,
            )
            busy = self._oracle.query_busy(window)
            for candidate in candidates:
                if not any(candidate.overlaps(b.start, b.end) for b in busy):
                    yield candidate

    def find_free_slots(
        self,
        start_date: date,
        days: int = 7,
        *,
        limit: int | None = None,
        not_before: datetime | None = None,
    ) -> list[TimeSlot]:
        """Collect up to *limit* free slots (all of them when ``None``)."""
        return list(islice(self.iter_free_slots(start_date, days, not_before=not_before), limit))
