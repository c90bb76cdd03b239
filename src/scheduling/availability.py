"""Availability oracle: busy intervals for the single bookable calendar."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from src.errors import UnavailableBackend
from src.models import AvailabilityWindow, TimeSlot

logger = logging.getLogger(__name__)


class CalendarBackend(Protocol):
    """The two calendar capabilities the scheduling core depends on.

    :class:`src.services.google_calendar.GoogleCalendarClient` is the
    production implementation; tests pass in-memory fakes.
    """

    def query_free_busy(
        self, resource_id: str, start: datetime, end: datetime,
    ) -> list[tuple[datetime, datetime]]: ...

    def insert_event(self, resource_id: str, event: dict[str, Any]) -> dict[str, str]: ...


class AvailabilityOracle:
    """Read-only free/busy lookups.  Failures are surfaced, never retried."""

    def __init__(self, backend: CalendarBackend, time_zone: str) -> None:
        self._backend = backend
        self._time_zone = time_zone

    def query_busy(self, window: AvailabilityWindow) -> list[TimeSlot]:
        """Return the busy intervals overlapping *window*, sorted by start.

        Raises:
            UnavailableBackend: the calendar query failed or timed out.
        """
        try:
            intervals = self._backend.query_free_busy(
                window.resource_id, window.range_start, window.range_end,
            )
        except UnavailableBackend:
            raise
        except OSError as exc:
            raise UnavailableBackend(f"Free/busy query failed: {exc}") from exc

        busy = [TimeSlot(start=s, end=e, time_zone=self._time_zone) for s, e in intervals]
        busy.sort(key=lambda slot: slot.start)
        return busy
