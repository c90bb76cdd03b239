"""Exception taxonomy shared by the scheduling core and its backends."""

from __future__ import annotations


class BookingAgentError(Exception):
    """Base class for every error raised by this package."""


class UnavailableBackend(BookingAgentError):
    """A calendar or assistant backend call failed or timed out.

    Never retried by the scheduling core; the caller decides.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class CalendarAPIError(UnavailableBackend):
    """Raised when a Google Calendar API call fails."""


class AssistantAPIError(UnavailableBackend):
    """Raised when an Assistants API call fails after all retries."""


class NoSlotAvailable(BookingAgentError):
    """Every candidate slot within the advance bound was busy."""


class RunTimedOut(BookingAgentError):
    """The assistant run did not reach a terminal state within the poll bound."""


class UnhandledToolCall(BookingAgentError):
    """The assistant requested a function this service does not provide."""

    def __init__(self, function_name: str):
        self.function_name = function_name
        super().__init__(f"Unhandled function call: {function_name}")
