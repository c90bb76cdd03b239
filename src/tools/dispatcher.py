"""Tool dispatch for assistant runs.

When a run pauses in ``requires_action`` the orchestrator hands every
pending tool call to :class:`ToolDispatcher`, which runs the matching
scheduling operation and serializes its result as the JSON string the
Assistants API expects.

The booking fields (name, email, requested date/time) come from the
details extracted from the user's message.  Arguments supplied by the
model are only used to fill fields the user did not provide.

Output contract
---------------
``checkDateTimeAvailability``  → ``{"available": bool}``
``createAppointment``          → ``{"link": str, "start": ISO}``
                                 or ``{"error": "Failed to create appointment"}``
``findAvailableSlots``         → ``{"slots": [ISO, ...]}``
``escalateToHuman``            → ``{"notified": bool}`` (only with a notifier)
anything else                  → ``{"error": "Unhandled function call"}``
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, Field

from src.config import MAX_SUGGESTED_SLOTS, SEARCH_DAYS_AHEAD
from src.errors import NoSlotAvailable, UnavailableBackend, UnhandledToolCall
from src.models import BookingRequest, ToolCall, ToolOutput, UserDetails
from src.scheduling.booking import BookingService
from src.scheduling.slots import SlotSearch
from src.services.notifier import WebhookNotifier

logger = logging.getLogger(__name__)

CHECK_AVAILABILITY = "checkDateTimeAvailability"
CREATE_APPOINTMENT = "createAppointment"
FIND_AVAILABLE_SLOTS = "findAvailableSlots"
ESCALATE_TO_HUMAN = "escalateToHuman"

APPOINTMENT_SUMMARY = "Appointment"


# ── Argument schemas (published to the assistant) ────────────────────


class CheckAvailabilityArgs(BaseModel):
    dateTime: str | None = Field(
        None,
        description="Requested start in ISO 8601. Omit to use the date and time the user gave.",
    )


class CreateAppointmentArgs(BaseModel):
    dateTime: str | None = Field(
        None,
        description="Requested start in ISO 8601. Omit to use the date and time the user gave.",
    )
    name: str | None = Field(None, description="Full name of the person booking.")
    email: str | None = Field(None, description="Email address that receives the invitation.")


class FindAvailableSlotsArgs(BaseModel):
    startDate: str | None = Field(None, description="First day to search, YYYY-MM-DD. Defaults to today.")
    days: int | None = Field(None, ge=1, le=31, description="Number of days to search.")


class EscalateToHumanArgs(BaseModel):
    reason: str | None = Field(None, description="Why the user needs a person to follow up.")


_DESCRIPTIONS = {
    CHECK_AVAILABILITY: "Check whether the requested one-hour appointment slot is free on the calendar.",
    CREATE_APPOINTMENT: (
        "Book the requested one-hour appointment. If the slot is taken, the next free "
        "slot later that day or after is booked instead; the booked start is returned."
    ),
    FIND_AVAILABLE_SLOTS: "List free one-hour appointment slots within business hours.",
    ESCALATE_TO_HUMAN: "Ask a member of staff to contact the user directly.",
}


def _error(message: str) -> dict[str, Any]:
    return {"error": message}


class ToolDispatcher:
    """Maps assistant tool calls onto slot search and booking operations.

    Holds no per-run state: one instance serves every concurrent chat
    request.
    """

    def __init__(
        self,
        slot_search: SlotSearch,
        booking_service: BookingService,
        *,
        notifier: WebhookNotifier | None = None,
        max_suggested_slots: int = MAX_SUGGESTED_SLOTS,
        days_ahead: int = SEARCH_DAYS_AHEAD,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._slots = slot_search
        self._booking = booking_service
        self._notifier = notifier
        self._max_suggested = max_suggested_slots
        self._days_ahead = days_ahead
        self._tz = ZoneInfo(slot_search.time_zone)
        self._now = now or (lambda: datetime.now(self._tz))

        self._handlers: dict[str, tuple[type[BaseModel], Callable[[BaseModel, UserDetails], dict[str, Any]]]] = {
            CHECK_AVAILABILITY: (CheckAvailabilityArgs, self._check_availability),
            CREATE_APPOINTMENT: (CreateAppointmentArgs, self._create_appointment),
            FIND_AVAILABLE_SLOTS: (FindAvailableSlotsArgs, self._find_available_slots),
        }
        if notifier is not None:
            self._handlers[ESCALATE_TO_HUMAN] = (EscalateToHumanArgs, self._escalate_to_human)

    # ── Public API ───────────────────────────────────────────────────

    def tool_definitions(self) -> list[dict[str, Any]]:
        """Function-tool schemas for every registered tool, in Assistants API format."""
        definitions = []
        for name, (args_model, _) in self._handlers.items():
            schema = convert_to_openai_tool(args_model)
            schema["function"]["name"] = name
            schema["function"]["description"] = _DESCRIPTIONS[name]
            definitions.append(schema)
        return definitions

    def dispatch(self, call: ToolCall, context: UserDetails) -> ToolOutput:
        try:
            result = self._run(call, context)
        except UnhandledToolCall as exc:
            logger.warning("Assistant requested unknown tool %r", exc.function_name)
            result = _error("Unhandled function call")
        return ToolOutput(tool_call_id=call.id, output=json.dumps(result))

    def dispatch_all(self, calls: Iterable[ToolCall], context: UserDetails) -> list[ToolOutput]:
        """Dispatch every call, in order.  The result covers each call exactly once."""
        return [self.dispatch(call, context) for call in calls]

    # ── Internal ─────────────────────────────────────────────────────

    def _run(self, call: ToolCall, context: UserDetails) -> dict[str, Any]:
        entry = self._handlers.get(call.function_name)
        if entry is None:
            raise UnhandledToolCall(call.function_name)
        args_model, handler = entry
        try:
            args = args_model.model_validate(call.arguments)
        except ValueError:
            logger.warning("Invalid arguments for %s: %r", call.function_name, call.arguments)
            args = args_model()
        logger.info("Dispatching tool call %s (%s)", call.id, call.function_name)
        return handler(args, context)

    def _requested_start(self, context: UserDetails, date_time: str | None) -> datetime | None:
        if context.requested_start is not None:
            return context.requested_start
        if not date_time:
            return None
        try:
            parsed = datetime.fromisoformat(date_time)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=self._tz)

    def _check_availability(self, args: CheckAvailabilityArgs, context: UserDetails) -> dict[str, Any]:
        start = self._requested_start(context, args.dateTime)
        if start is None:
            return _error("Missing or invalid date/time")
        try:
            return {"available": self._slots.is_free(self._slots.slot_at(start))}
        except UnavailableBackend as exc:
            logger.error("Availability check failed: %s", exc)
            return _error("Failed to check availability")

    def _create_appointment(self, args: CreateAppointmentArgs, context: UserDetails) -> dict[str, Any]:
        start = self._requested_start(context, args.dateTime)
        email = context.email or args.email
        name = context.name or args.name
        if start is None or not email:
            logger.info("createAppointment without a usable date/time or email")
            return _error("Failed to create appointment")

        request = BookingRequest(
            slot=self._slots.slot_at(start),
            summary=APPOINTMENT_SUMMARY,
            description=f"Meeting with {name}" if name else "Meeting",
            attendee_email=email,
        )
        try:
            booking = self._booking.book(request)
        except (NoSlotAvailable, UnavailableBackend) as exc:
            logger.error("Booking failed: %s", exc)
            return _error("Failed to create appointment")
        return {"link": booking.external_link, "start": booking.slot.start.isoformat()}

    def _find_available_slots(self, args: FindAvailableSlotsArgs, context: UserDetails) -> dict[str, Any]:
        now = self._now()
        start_date: date = now.date()
        if args.startDate:
            try:
                start_date = date.fromisoformat(args.startDate)
            except ValueError:
                return _error("Invalid start date")
        elif context.requested_start is not None:
            start_date = context.requested_start.astimezone(self._tz).date()

        try:
            slots = self._slots.find_free_slots(
                start_date,
                args.days or self._days_ahead,
                limit=self._max_suggested,
                not_before=now,
            )
        except UnavailableBackend as exc:
            logger.error("Slot search failed: %s", exc)
            return _error("Failed to search availability")
        return {"slots": [s.start.isoformat() for s in slots]}

    def _escalate_to_human(self, args: EscalateToHumanArgs, context: UserDetails) -> dict[str, Any]:
        details = {**context.as_dict(), "reason": args.reason}
        return {"notified": self._notifier.notify(details)}
