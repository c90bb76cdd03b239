"""Pattern-based extraction of booking fields from a chat question.

The chat widget sends questions such as::

    Name Jane Doe, email jane@example.com, phone 123456789,
    date 24/05/2024, time 10:00 PM

Each field is matched independently and validated here, at the boundary,
so the scheduling core only ever sees a well-formed :class:`UserDetails`:
an invalid email is dropped, and ``requested_start`` is set only when both
date (``dd/mm/yyyy``) and time (``hh[:mm] AM/PM``) parse.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from zoneinfo import ZoneInfo

from src.config import CALENDAR_TIMEZONE
from src.models import UserDetails

logger = logging.getLogger(__name__)

# RFC 5322-ish pattern; covers the vast majority of real-world emails
# without requiring an external dependency.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

_NAME_PATTERN = re.compile(r"\bname\s*:?\s+([^,;\n]+?)\s*(?=[,;\n]|$)", re.IGNORECASE)
_EMAIL_PATTERN = re.compile(r"\bemail\s*:?\s+(\S+?@[^\s,;]+)", re.IGNORECASE)
_PHONE_PATTERN = re.compile(r"\bphone\s*:?\s+(\+?\d[\d -]{4,}\d)", re.IGNORECASE)
_DATE_PATTERN = re.compile(r"\bdate\s*:?\s+(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_TIME_PATTERN = re.compile(r"\btime\s*:?\s+(\d{1,2}(?::\d{2})?\s*[AP]M)\b", re.IGNORECASE)


def is_valid_email(email: str | None) -> bool:
    return bool(email and _EMAIL_RE.match(email.strip()))


def _match(pattern: re.Pattern[str], text: str) -> str | None:
    found = pattern.search(text)
    return found.group(1).strip() if found else None


def _normalise_time(value: str) -> str:
    """``"10pm"`` / ``"10 PM"`` / ``"10:00pm"`` → ``"10:00 PM"``."""
    compact = value.replace(" ", "").upper()
    clock, meridiem = compact[:-2], compact[-2:]
    if ":" not in clock:
        clock = f"{clock}:00"
    return f"{clock} {meridiem}"


def parse_requested_start(date: str | None, time: str | None, time_zone: str) -> datetime | None:
    """Combine ``dd/mm/yyyy`` and ``hh:mm AM/PM`` into an aware datetime, or ``None``."""
    if not date or not time:
        return None
    try:
        naive = datetime.strptime(f"{date} {_normalise_time(time)}", "%d/%m/%Y %I:%M %p")
    except ValueError:
        logger.info("Unparseable date/time: %r %r", date, time)
        return None
    return naive.replace(tzinfo=ZoneInfo(time_zone))


def extract_user_details(question: str, time_zone: str = CALENDAR_TIMEZONE) -> UserDetails:
    """Pull name, email, phone, date and time out of *question*."""
    name = _match(_NAME_PATTERN, question)
    email = _match(_EMAIL_PATTERN, question)
    if email:
        email = email.rstrip(".")
    if email is not None and not is_valid_email(email):
        logger.info("Ignoring malformed email in question")
        email = None
    date = _match(_DATE_PATTERN, question)
    time = _match(_TIME_PATTERN, question)

    return UserDetails(
        name=name or None,
        email=email,
        phone=_match(_PHONE_PATTERN, question),
        date=date,
        time=time,
        requested_start=parse_requested_start(date, time, time_zone),
    )
