"""Run orchestrator for the hosted booking assistant.

One chat exchange is one assistant *run*.  The run lives on the backend
and only advances there, so the orchestrator is a polling state machine
built as a LangGraph ``StateGraph``:

    start → poll ─┬─ queued / in_progress ──→ poll   (after POLL_INTERVAL)
                  ├─ requires_action ───────→ dispatch_tools → poll
                  ├─ completed ─────────────→ answer → END
                  ├─ failed / expired / … ──→ fail → END
                  └─ poll budget exhausted ─→ timed_out → END

* ``start`` creates a thread, posts the user's question and starts a run.
* ``poll`` retrieves the run; it sleeps before every poll but the first.
* ``dispatch_tools`` handles one ``requires_action`` episode: every
  pending tool call is dispatched and all outputs are submitted in a
  single batch before the next poll.  Later episodes in the same run are
  dispatched afresh.
* ``answer`` returns the newest assistant message of this run.
* ``fail`` / ``timed_out`` end with a fixed fallback message.

:meth:`RunOrchestrator.run` never raises.  Backend errors, timeouts and
unexpected exceptions are logged and turned into ``FALLBACK_MESSAGE`` so no
internal detail reaches the end user.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from src.config import (
    ASSISTANT_ID,
    CALENDAR_TIMEZONE,
    MAX_POLLS,
    NOTIFY_WEBHOOK_URL,
    POLL_INTERVAL_SECONDS,
)
from src.errors import RunTimedOut, UnavailableBackend
from src.models import RunSnapshot, RunState, UserDetails
from src.prompts import build_run_instructions
from src.scheduling.availability import AvailabilityOracle
from src.scheduling.booking import BookingService
from src.scheduling.slots import SlotSearch
from src.services.assistant_client import AssistantClient
from src.services.google_calendar import GoogleCalendarClient
from src.services.notifier import WebhookNotifier
from src.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Assistant did not complete the request."


# ── State schema ─────────────────────────────────────────────────────


class RunGraphState(TypedDict, total=False):
    """State carried through one exchange.  Discarded when the run ends."""

    question: str
    details: UserDetails
    thread_id: str
    run_id: str
    snapshot: RunSnapshot
    polls: int
    max_polls: int
    episodes: int
    answer: str


# ── Conditional edge ─────────────────────────────────────────────────


def route_after_poll(state: RunGraphState) -> str:
    """Pick the next node from the latest run snapshot."""
    run_state = state["snapshot"].state
    if run_state is RunState.COMPLETED:
        return "answer"
    if run_state.is_terminal:
        return "fail"
    if state["polls"] >= state["max_polls"]:
        return "timed_out"
    if run_state is RunState.REQUIRES_ACTION:
        if not state["snapshot"].tool_calls:
            logger.error("Run %s requires action but lists no tool calls", state["run_id"])
            return "fail"
        return "dispatch_tools"
    return "poll"


def extract_answer(messages: list[dict], run_id: str) -> str | None:
    """Return the text of the newest assistant message produced by *run_id*.

    *messages* must be ordered newest first, as the Assistants API returns
    them with ``order=desc``.
    """
    for message in messages:
        if message.get("role") != "assistant" or message.get("run_id") != run_id:
            continue
        parts = [
            part["text"]["value"]
            for part in message.get("content", [])
            if part.get("type") == "text"
        ]
        if parts:
            return "\n\n".join(parts)
    return None


# ── Orchestrator ─────────────────────────────────────────────────────


class RunOrchestrator:
    """Drives one assistant run per call to :meth:`run`.

    The compiled graph is stateless between invocations, so a single
    instance can serve concurrent requests from different threads.
    """

    def __init__(
        self,
        assistant: AssistantClient,
        dispatcher: ToolDispatcher,
        *,
        assistant_id: str = ASSISTANT_ID,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_polls: int = MAX_POLLS,
        time_zone: str = CALENDAR_TIMEZONE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self._assistant = assistant
        self._dispatcher = dispatcher
        self._assistant_id = assistant_id
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._tz = ZoneInfo(time_zone)
        self._sleep = sleep
        self._graph = self._build_graph()

    # ── Nodes ────────────────────────────────────────────────────────

    def _start(self, state: RunGraphState) -> dict:
        thread_id = self._assistant.create_thread()
        self._assistant.post_message(thread_id, "user", state["question"])
        run_id = self._assistant.start_run(
            thread_id,
            self._assistant_id,
            additional_instructions=build_run_instructions(
                state["details"], datetime.now(self._tz),
            ),
        )
        logger.info("Started run %s on thread %s", run_id, thread_id)
        return {"thread_id": thread_id, "run_id": run_id}

    def _poll(self, state: RunGraphState) -> dict:
        polls = state.get("polls", 0)
        if polls > 0:
            self._sleep(self._poll_interval)
        snapshot = self._assistant.get_run(state["thread_id"], state["run_id"])
        logger.debug("Run %s poll %d: %s", state["run_id"], polls + 1, snapshot.state.value)
        return {"snapshot": snapshot, "polls": polls + 1}

    def _dispatch_tools(self, state: RunGraphState) -> dict:
        calls = state["snapshot"].tool_calls
        logger.info(
            "Run %s requires action: %d tool call(s) (%s)",
            state["run_id"], len(calls), ", ".join(c.function_name for c in calls),
        )
        outputs = self._dispatcher.dispatch_all(calls, state["details"])
        self._assistant.submit_tool_outputs(state["thread_id"], state["run_id"], outputs)
        return {"episodes": state["episodes"] + 1}

    def _answer(self, state: RunGraphState) -> dict:
        messages = self._assistant.list_messages(state["thread_id"], run_id=state["run_id"])
        answer = extract_answer(messages, state["run_id"])
        if answer is None:
            logger.error("Run %s completed without an assistant message", state["run_id"])
            return {"answer": FALLBACK_MESSAGE}
        logger.info(
            "Run %s completed after %d poll(s), %d tool episode(s)",
            state["run_id"], state["polls"], state["episodes"],
        )
        return {"answer": answer}

    def _fail(self, state: RunGraphState) -> dict:
        logger.error(
            "Run %s ended with status %s after %d tool episode(s)",
            state["run_id"], state["snapshot"].state.value, state["episodes"],
        )
        return {"answer": FALLBACK_MESSAGE}

    def _timed_out(self, state: RunGraphState) -> dict:
        try:
            self._assistant.cancel_run(state["thread_id"], state["run_id"])
        except UnavailableBackend as exc:
            logger.warning("Could not cancel run %s: %s", state["run_id"], exc)
        raise RunTimedOut(
            f"Run {state['run_id']} still {state['snapshot'].state.value} "
            f"after {state['polls']} polls and {state['episodes']} tool episode(s)"
        )

    # ── Graph assembly ───────────────────────────────────────────────

    def _build_graph(self):
        graph = StateGraph(RunGraphState)

        graph.add_node("start", self._start)
        graph.add_node("poll", self._poll)
        graph.add_node("dispatch_tools", self._dispatch_tools)
        graph.add_node("answer", self._answer)
        graph.add_node("fail", self._fail)
        graph.add_node("timed_out", self._timed_out)

        graph.set_entry_point("start")
        graph.add_edge("start", "poll")
        graph.add_conditional_edges(
            "poll",
            route_after_poll,
            {
                "poll": "poll",
                "dispatch_tools": "dispatch_tools",
                "answer": "answer",
                "fail": "fail",
                "timed_out": "timed_out",
            },
        )
        graph.add_edge("dispatch_tools", "poll")
        graph.add_edge("answer", END)
        graph.add_edge("fail", END)
        graph.add_edge("timed_out", END)

        return graph.compile()

    # ── Public API ───────────────────────────────────────────────────

    def execute(self, question: str, details: UserDetails) -> str:
        """Run the exchange and return the assistant's answer.

        Unlike :meth:`run`, errors propagate.

        Raises:
            RunTimedOut: the run was still active after ``max_polls`` polls.
            UnavailableBackend: an assistant backend call failed.
        """
        result = self._graph.invoke(
            {
                "question": question,
                "details": details,
                "polls": 0,
                "max_polls": self._max_polls,
                "episodes": 0,
            },
            # start + answer/fail + at most one dispatch per poll
            config={"recursion_limit": 2 * self._max_polls + 4},
        )
        return result["answer"]

    def assistant_info(self) -> dict:
        """Name, model and tools of the configured assistant (cached by the client)."""
        return self._assistant.retrieve_assistant(self._assistant_id)

    def sync_assistant(self, instructions: str) -> dict:
        """Push *instructions* and the dispatcher's tool definitions to the assistant."""
        return self._assistant.update_assistant(
            self._assistant_id,
            instructions=instructions,
            tools=self._dispatcher.tool_definitions(),
        )

    def run(self, question: str, details: UserDetails) -> str:
        """Run the exchange; any failure becomes ``FALLBACK_MESSAGE``."""
        try:
            return self.execute(question, details)
        except RunTimedOut as exc:
            logger.warning("%s", exc)
        except Exception:
            logger.exception("Assistant run failed")
        return FALLBACK_MESSAGE


# ── Factory ──────────────────────────────────────────────────────────


def create_booking_agent() -> RunOrchestrator:
    """Wire the production clients into a :class:`RunOrchestrator`."""
    calendar = GoogleCalendarClient()
    slot_search = SlotSearch(AvailabilityOracle(calendar, CALENDAR_TIMEZONE))
    dispatcher = ToolDispatcher(
        slot_search,
        BookingService(slot_search, calendar),
        notifier=WebhookNotifier(NOTIFY_WEBHOOK_URL) if NOTIFY_WEBHOOK_URL else None,
    )
    orchestrator = RunOrchestrator(AssistantClient(), dispatcher)
    logger.debug(
        "Booking agent ready (assistant: %s, tools: %d)",
        ASSISTANT_ID, len(dispatcher.tool_definitions()),
    )
    return orchestrator

