"""HTTP client for the OpenAI Assistants API v2 (threads, messages, runs).

API docs: https://platform.openai.com/docs/api-reference/assistants
Every request carries the ``OpenAI-Beta: assistants=v2`` header.

Only idempotent ``GET`` requests are retried (exponential backoff on
timeouts and 5xx).  A ``POST`` that times out may already have taken
effect on the backend (a second run, a duplicate message), so it fails
fast with :class:`AssistantAPIError`.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from src.config import OPENAI_API_KEY, OPENAI_BASE_URL
from src.errors import AssistantAPIError
from src.models import RunSnapshot, RunState, ToolCall, ToolOutput
from src.services.cache import LRUCache
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 30.0

_SERVICE = "openai"
_CK_ASSISTANT = "assistant:"


class AssistantClient:
    """Wrapper around the Assistants REST endpoints used by the run orchestrator."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        cache: LRUCache | None = None,
    ):
        self._api_key = api_key or OPENAI_API_KEY
        self._base_url = base_url or OPENAI_BASE_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "OpenAI-Beta": "assistants=v2",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._cache = cache or LRUCache()

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request; ``GET`` requests get exponential-backoff retries."""
        attempts = MAX_RETRIES if method == "GET" else 1
        operation = f"{method} /{path.split('/')[1]}"
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(method, path, params=params, json=json_body)
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code >= 500:
                    metrics.record_failure(_SERVICE, operation, error_type="5xx", latency_ms=elapsed)
                    raise AssistantAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    metrics.record_failure(_SERVICE, operation, error_type="4xx", latency_ms=elapsed)
                    raise AssistantAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                metrics.record_success(_SERVICE, operation, latency_ms=elapsed)
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                metrics.record_failure(_SERVICE, operation, error_type=type(exc).__name__)
                last_error = exc
                logger.warning(
                    "Assistants API %s attempt %d/%d failed (%s)",
                    operation, attempt, attempts, type(exc).__name__,
                )
            except AssistantAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Assistants API server error on %s attempt %d/%d",
                        operation, attempt, attempts,
                    )
                else:
                    raise  # 4xx errors are not retried

            if attempt < attempts:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise AssistantAPIError(
            f"Assistants API {operation} failed after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    # ── Assistants ───────────────────────────────────────────────────

    def retrieve_assistant(self, assistant_id: str) -> dict[str, Any]:
        """Return the assistant's configuration (cached; it changes rarely)."""
        cache_key = f"{_CK_ASSISTANT}{assistant_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = self._request("GET", f"/assistants/{assistant_id}")
        self._cache.put(cache_key, data)
        return data

    def update_assistant(
        self,
        assistant_id: str,
        *,
        tools: list[dict[str, Any]],
        instructions: str | None = None,
    ) -> dict[str, Any]:
        """Replace the assistant's tools (and instructions, when given)."""
        body: dict[str, Any] = {"tools": tools}
        if instructions is not None:
            body["instructions"] = instructions
        data = self._request("POST", f"/assistants/{assistant_id}", json_body=body)
        self._cache.invalidate(f"{_CK_ASSISTANT}{assistant_id}")
        logger.info("Updated %d tool definition(s) on assistant %s", len(tools), assistant_id)
        return data

    # ── Threads & messages ───────────────────────────────────────────

    def create_thread(self) -> str:
        return self._request("POST", "/threads", json_body={})["id"]

    def post_message(self, thread_id: str, role: str, text: str) -> str:
        data = self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json_body={"role": role, "content": text},
        )
        return data["id"]

    def list_messages(self, thread_id: str, *, run_id: str | None = None) -> list[dict[str, Any]]:
        """List the thread's messages, newest first."""
        params: dict[str, Any] = {"order": "desc", "limit": 20}
        if run_id:
            params["run_id"] = run_id
        data = self._request("GET", f"/threads/{thread_id}/messages", params=params)
        return data.get("data", [])

    # ── Runs ─────────────────────────────────────────────────────────

    def start_run(
        self,
        thread_id: str,
        assistant_id: str,
        *,
        additional_instructions: str | None = None,
    ) -> str:
        body: dict[str, Any] = {"assistant_id": assistant_id}
        if additional_instructions:
            body["additional_instructions"] = additional_instructions
        return self._request("POST", f"/threads/{thread_id}/runs", json_body=body)["id"]

    def get_run(self, thread_id: str, run_id: str) -> RunSnapshot:
        """Poll the run and return its state plus any pending tool calls."""
        data = self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
        try:
            state = RunState(data["status"])
        except ValueError:
            logger.warning("Unknown run status %r for run %s, treating as failed", data["status"], run_id)
            state = RunState.FAILED

        tool_calls: tuple[ToolCall, ...] = ()
        required = data.get("required_action") or {}
        if state is RunState.REQUIRES_ACTION and required.get("type") == "submit_tool_outputs":
            tool_calls = tuple(
                ToolCall.from_api(tc)
                for tc in required["submit_tool_outputs"].get("tool_calls", [])
            )
        return RunSnapshot(run_id=data["id"], state=state, tool_calls=tool_calls)

    def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: list[ToolOutput]) -> None:
        """Submit every tool output for the pending action in one request."""
        self._request(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            json_body={"tool_outputs": [o.to_api() for o in outputs]},
        )

    def cancel_run(self, thread_id: str, run_id: str) -> None:
        self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel", json_body={})
