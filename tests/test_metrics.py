"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from src.services.metrics import NAMESPACE, MetricsClient


def _dims(datum: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in datum["Dimensions"]}


@pytest.fixture
def client():
    """An enabled client without the background flush thread."""
    with patch.object(MetricsClient, "_start_flush_thread"):
        return MetricsClient(enabled=True)


class TestMetricsRecording:
    """Verify that record_success / record_failure buffer the right data."""

    def test_record_success_appends_two_data_points(self, client):
        client.record_success("google_calendar", "freebusy.query", latency_ms=123.4)
        assert client.pending == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Backend/Requests", "Backend/Latency"}

    def test_record_failure_appends_count_and_error(self, client):
        client.record_failure("openai", "GET /threads", error_type="ReadTimeout")
        assert client.pending == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Backend/Requests", "Backend/Errors"}

    def test_record_failure_with_latency_appends_three_data_points(self, client):
        client.record_failure("openai", "POST /threads", error_type="4xx", latency_ms=500.0)
        assert client.pending == 3

    def test_dimensions(self, client):
        client.record_success("google_calendar", "events.insert", latency_ms=50.0)
        client.record_failure("openai", "GET /threads", error_type="5xx")

        by_name = {}
        for datum in client._buffer:
            by_name.setdefault(datum["MetricName"], []).append(_dims(datum))

        assert {"Service": "google_calendar", "Outcome": "success"} in by_name["Backend/Requests"]
        assert {"Service": "openai", "Outcome": "failure"} in by_name["Backend/Requests"]
        assert by_name["Backend/Latency"] == [{"Service": "google_calendar", "Operation": "events.insert"}]
        assert by_name["Backend/Errors"] == [{"Service": "openai", "ErrorType": "5xx"}]

    def test_disabled_client_buffers_nothing(self):
        client = MetricsClient(enabled=False)
        client.record_success("google_calendar", "freebusy.query", latency_ms=10.0)
        assert client.pending == 0
        assert client.flush() == 0


class TestTrack:
    def test_success(self, client):
        with client.track("google_calendar", "freebusy.query"):
            pass
        outcome = next(m for m in client._buffer if m["MetricName"] == "Backend/Requests")
        assert _dims(outcome)["Outcome"] == "success"

    def test_failure_records_exception_type_and_reraises(self, client):
        with pytest.raises(TimeoutError):
            with client.track("google_calendar", "events.insert"):
                raise TimeoutError("slow")

        error = next(m for m in client._buffer if m["MetricName"] == "Backend/Errors")
        assert _dims(error)["ErrorType"] == "TimeoutError"


class TestMetricsFlush:
    def test_flush_publishes_and_clears_buffer(self, client):
        cw = MagicMock()
        client._cw_client = cw
        client.record_success("openai", "GET /threads", latency_ms=10.0)

        assert client.flush() == 2
        assert client.pending == 0
        cw.put_metric_data.assert_called_once()
        assert cw.put_metric_data.call_args.kwargs["Namespace"] == NAMESPACE

    def test_flush_batches_large_buffers(self, client):
        cw = MagicMock()
        client._cw_client = cw
        for _ in range(600):
            client.record_success("openai", "GET /threads", latency_ms=1.0)

        assert client.flush() == 1200
        assert cw.put_metric_data.call_count == 2

    def test_flush_empty_buffer_skips_cloudwatch(self, client):
        cw = MagicMock()
        client._cw_client = cw
        assert client.flush() == 0
        cw.put_metric_data.assert_not_called()

    def test_publish_failure_is_logged_not_raised(self, client):
        cw = MagicMock()
        cw.put_metric_data.side_effect = RuntimeError("throttled")
        client._cw_client = cw
        client.record_success("openai", "GET /threads", latency_ms=10.0)

        assert client.flush() == 0
