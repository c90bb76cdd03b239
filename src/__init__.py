"""Booking Assistant: book calendar appointments through a chat assistant.

Architecture Overview
=====================

A chat question is answered by one run of a hosted OpenAI assistant.  The
run may pause to call tools; this service executes them against a single
Google Calendar and resumes the run until it completes.

1. **Run orchestration**: a LangGraph state machine polls the run,
   dispatches every pending tool call on ``requires_action``, submits all
   outputs in one batch and returns the assistant's final message.  Polling
   is bounded; any failure yields a fixed fallback message.

2. **Slot search & booking**: availability is read from the calendar's
   free/busy API.  Booking re-checks the slot right before inserting the
   event and, on conflict, moves forward one appointment length at a time,
   up to a fixed number of attempts.

Key Design Decisions
--------------------
- **One calendar, one time zone**: business hours and slot boundaries are
  computed in ``CALENDAR_TIMEZONE``.
- **No retries on the calendar**: a failed insert may still have created
  the event, so calendar errors surface instead of being replayed.
- **Injected clients**: backends are passed into constructors;
  ``create_booking_agent()`` wires the production ones.

Package Structure
-----------------
- ``src/agent.py``: run orchestrator (LangGraph StateGraph)
- ``src/config.py``: configuration from environment variables / SSM
- ``src/errors.py``: exception taxonomy
- ``src/models.py``: slots, bookings, run snapshots, tool calls
- ``src/prompts.py``: assistant instructions
- ``src/server.py``: FastAPI application
- ``src/main.py``: CLI chat interface
- ``src/scheduling/``: availability oracle, slot search, booking service
- ``src/services/``: Google Calendar, Assistants API, webhook, metrics, cache
- ``src/tools/``: tool dispatcher and tool schemas
- ``src/api/``: FastAPI routes, schemas and field extraction
"""
