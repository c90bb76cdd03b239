"""Domain types for slot search, booking and assistant runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


def _utc(dt: datetime) -> datetime:
    return dt.astimezone(UTC)


def _add(dt: datetime, delta: timedelta) -> datetime:
    """Add *delta* of elapsed time, keeping *dt*'s zone.

    Plain ``dt + delta`` is wall-clock arithmetic within one ``ZoneInfo``,
    which is off by an hour across a DST transition.
    """
    return (_utc(dt) + delta).astimezone(dt.tzinfo)


@dataclass(frozen=True)
class TimeSlot:
    """A fixed-duration calendar interval ``[start, end)``.

    Arithmetic and comparisons are done on UTC instants, so a one-hour
    slot is sixty real minutes even on a DST changeover day.
    """

    start: datetime
    end: datetime
    time_zone: str = "UTC"

    @classmethod
    def starting_at(cls, start: datetime, duration: timedelta, time_zone: str) -> TimeSlot:
        return cls(start=start, end=_add(start, duration), time_zone=time_zone)

    @property
    def duration(self) -> timedelta:
        return _utc(self.end) - _utc(self.start)

    def overlaps(self, other_start: datetime, other_end: datetime) -> bool:
        """Half-open intersection test: touching endpoints do not overlap."""
        return _utc(self.start) < _utc(other_end) and _utc(other_start) < _utc(self.end)

    def shifted(self, delta: timedelta) -> TimeSlot:
        return replace(self, start=_add(self.start, delta), end=_add(self.end, delta))


@dataclass(frozen=True)
class AvailabilityWindow:
    """Query range for a free/busy lookup on one calendar resource."""

    range_start: datetime
    range_end: datetime
    resource_id: str


@dataclass(frozen=True)
class BookingRequest:
    slot: TimeSlot
    summary: str
    description: str
    attendee_email: str


@dataclass(frozen=True)
class ConfirmedBooking:
    """A committed calendar event.  ``slot`` is the slot actually booked."""

    slot: TimeSlot
    external_link: str
    event_id: str = ""


class RunState(str, Enum):
    """Lifecycle of one assistant run, as reported by the backend."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def is_pending(self) -> bool:
        """Still running on the backend; nothing for us to do but wait."""
        return self in (RunState.QUEUED, RunState.IN_PROGRESS, RunState.CANCELLING)


_TERMINAL_STATES = frozenset(
    {
        RunState.COMPLETED,
        RunState.FAILED,
        RunState.EXPIRED,
        RunState.CANCELLED,
        RunState.INCOMPLETE,
    }
)


@dataclass(frozen=True)
class ToolCall:
    id: str
    function_name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ToolCall:
        """Build from an Assistants API ``tool_calls`` entry.

        Malformed ``arguments`` JSON decodes to an empty dict.
        """
        function = data.get("function", {})
        try:
            arguments = json.loads(function.get("arguments") or "{}")
        except json.JSONDecodeError:
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        return cls(id=data["id"], function_name=function.get("name", ""), arguments=arguments)


@dataclass(frozen=True)
class ToolOutput:
    tool_call_id: str
    output: str

    def to_api(self) -> dict[str, str]:
        return {"tool_call_id": self.tool_call_id, "output": self.output}


@dataclass(frozen=True)
class RunSnapshot:
    """The result of one run status poll."""

    run_id: str
    state: RunState
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class UserDetails:
    """Booking fields extracted from the user's question at the HTTP boundary."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    date: str | None = None
    time: str | None = None
    requested_start: datetime | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "date": self.date,
            "time": self.time,
        }
