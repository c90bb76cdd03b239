"""Booking service: re-check a slot, advance past conflicts, commit once.

The calendar is the only state shared between concurrent chat requests.
Conflicts are avoided optimistically: the slot is re-checked right before
the insert, with no lock held in between.  Two requests racing for the
same slot can both pass the check; the backend offers no transaction to
prevent that.
"""

from __future__ import annotations

import logging
from typing import Any

from src.config import CALENDAR_ID, MAX_BOOKING_ADVANCES
from src.errors import NoSlotAvailable, UnavailableBackend
from src.models import BookingRequest, ConfirmedBooking, TimeSlot
from src.scheduling.availability import CalendarBackend
from src.scheduling.slots import SlotSearch

logger = logging.getLogger(__name__)


def build_event(request: BookingRequest, slot: TimeSlot) -> dict[str, Any]:
    """Return the Calendar API event resource for *request* booked at *slot*."""
    return {
        "summary": request.summary,
        "description": request.description,
        "start": {"dateTime": slot.start.isoformat(), "timeZone": slot.time_zone},
        "end": {"dateTime": slot.end.isoformat(), "timeZone": slot.time_zone},
        "attendees": [{"email": request.attendee_email}],
    }


class BookingService:
    def __init__(
        self,
        slot_search: SlotSearch,
        backend: CalendarBackend,
        *,
        resource_id: str = CALENDAR_ID,
        max_advances: int = MAX_BOOKING_ADVANCES,
    ) -> None:
        self._slots = slot_search
        self._backend = backend
        self._resource_id = resource_id
        self._max_advances = max_advances

    def book(self, request: BookingRequest) -> ConfirmedBooking:
        """Book the requested slot, or the first free one after it.

        The candidate advances by one appointment duration per conflict,
        at most ``max_advances`` times.

        Raises:
            NoSlotAvailable: every candidate within the bound was busy.
            UnavailableBackend: a free/busy query or the insert failed.
        """
        candidate = request.slot
        for attempt in range(self._max_advances + 1):
            if self._slots.is_free(candidate):
                return self._commit(request, candidate)
            logger.info(
                "Slot %s is taken (attempt %d/%d), trying the next one",
                candidate.start.isoformat(), attempt + 1, self._max_advances + 1,
            )
            candidate = candidate.shifted(candidate.duration)

        raise NoSlotAvailable(
            f"No free slot within {self._max_advances} advances of "
            f"{request.slot.start.isoformat()}"
        )

    def _commit(self, request: BookingRequest, slot: TimeSlot) -> ConfirmedBooking:
        # Not retried: a failed insert may still have created the event.
        try:
            result = self._backend.insert_event(self._resource_id, build_event(request, slot))
        except UnavailableBackend:
            raise
        except OSError as exc:
            raise UnavailableBackend(f"Event insert failed: {exc}") from exc
        booking = ConfirmedBooking(
            slot=slot,
            external_link=result.get("html_link", ""),
            event_id=result.get("event_id", ""),
        )
        logger.info("Booked %s (event %s)", slot.start.isoformat(), booking.event_id)
        return booking
