"""Centralized configuration for the appointment booking assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/booking-assistant/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/booking-assistant/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /booking-assistant/{name} (AWS)."
    )


# ── Assistant backend (OpenAI Assistants v2) ─────────────────────────
OPENAI_API_KEY: str = _require_env("OPENAI_API_KEY")
ASSISTANT_ID: str = _require_env("ASSISTANT_ID")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")

# Run polling: the run is abandoned after MAX_POLLS status checks
POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "2"))
MAX_POLLS: int = int(os.getenv("MAX_POLLS", "90"))

# ── Google Calendar ─────────────────────────────────────────────────
GOOGLE_SERVICE_ACCOUNT_JSON: str = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON", "auth.json")
# Workspace user impersonated through domain-wide delegation (needed to invite attendees)
GOOGLE_DELEGATED_USER: str | None = os.getenv("GOOGLE_DELEGATED_USER") or None
CALENDAR_ID: str = os.getenv("CALENDAR_ID", "primary")
CALENDAR_TIMEZONE: str = os.getenv("CALENDAR_TIMEZONE", "America/New_York")

# ── Scheduling policy ───────────────────────────────────────────────
BUSINESS_HOURS_START: int = int(os.getenv("BUSINESS_HOURS_START", "9"))
BUSINESS_HOURS_END: int = int(os.getenv("BUSINESS_HOURS_END", "17"))
APPOINTMENT_DURATION_MINUTES: int = int(os.getenv("APPOINTMENT_DURATION_MINUTES", "60"))
MAX_BOOKING_ADVANCES: int = int(os.getenv("MAX_BOOKING_ADVANCES", "24"))
SEARCH_DAYS_AHEAD: int = int(os.getenv("SEARCH_DAYS_AHEAD", "7"))
MAX_SUGGESTED_SLOTS: int = int(os.getenv("MAX_SUGGESTED_SLOTS", "5"))

# ── Human escalation webhook (disabled when unset) ──────────────────
NOTIFY_WEBHOOK_URL: str | None = os.getenv("NOTIFY_WEBHOOK_URL") or None

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
