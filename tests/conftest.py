"""Shared test fixtures for the booking assistant test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("ASSISTANT_ID", "asst_test123")
    os.environ.setdefault("METRICS_ENABLED", "false")


@pytest.fixture
def calendar():
    from tests.fakes import FakeCalendar

    return FakeCalendar()


@pytest.fixture
def make_slot_search():
    """Factory: a SlotSearch over *calendar*, 09:00-17:00 UTC, one-hour slots."""
    from src.scheduling.availability import AvailabilityOracle
    from src.scheduling.slots import SlotSearch

    def _make(calendar, *, time_zone: str = "UTC", **kwargs):
        return SlotSearch(
            AvailabilityOracle(calendar, time_zone),
            resource_id="primary",
            time_zone=time_zone,
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
