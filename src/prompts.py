"""Instructions for the booking assistant.

``ASSISTANT_INSTRUCTIONS`` is the standing prompt configured on the hosted
assistant (``python -m src.main --sync-assistant`` pushes it together with
the tool definitions).  ``build_run_instructions`` adds per-run context:
today's date in the calendar's time zone and the details the user has
already provided.
"""

from datetime import datetime

from src.models import UserDetails

ASSISTANT_INSTRUCTIONS = """You are a friendly scheduling assistant that books one-hour appointments.

## What you can do
1. Check whether a requested date and time is free with `checkDateTimeAvailability`.
2. Book the appointment with `createAppointment`.
3. Suggest free times with `findAvailableSlots` when the requested time is taken
   or the user has no time in mind.
4. Ask a member of staff to follow up with `escalateToHuman` when the user asks
   for a person, or when booking keeps failing.

## Guidelines
- To book you need the user's **name**, **email**, **date** and **time**. Ask for
  whatever is missing before calling `createAppointment`.
- Always check availability before booking.
- If `createAppointment` returns a start time different from the one requested,
  tell the user their appointment was moved to the next free slot.
- Share the calendar link returned by `createAppointment`.
- **NEVER** invent availability or links. Only share what the tools return.
- If a tool returns an error, apologise briefly and offer alternatives.
- Keep answers short and warm.
"""

RUN_INSTRUCTIONS_TEMPLATE = """Today is {current_date} ({current_day_of_week}), {current_time} in {time_zone}.
All appointment times are in {time_zone}.

Details the user has provided so far:
{details}"""


def _format_details(details: UserDetails) -> str:
    lines = [
        f"- {label}: {value}"
        for label, value in (
            ("Name", details.name),
            ("Email", details.email),
            ("Phone", details.phone),
            ("Date", details.date),
            ("Time", details.time),
        )
        if value
    ]
    return "\n".join(lines) if lines else "- none yet"


def build_run_instructions(details: UserDetails, now: datetime) -> str:
    """Per-run context appended to the assistant's standing instructions."""
    return RUN_INSTRUCTIONS_TEMPLATE.format(
        current_date=now.strftime("%d %B %Y"),
        current_day_of_week=now.strftime("%A"),
        current_time=now.strftime("%H:%M"),
        time_zone=getattr(now.tzinfo, "key", None) or now.tzname() or "UTC",
        details=_format_details(details),
    )
