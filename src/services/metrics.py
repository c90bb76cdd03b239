"""CloudWatch metrics for backend calls made while serving a chat request.

Every Google Calendar and Assistants API call is recorded as a request
count (by outcome), an error count (by error type) and a latency sample.
Data points are buffered in memory and pushed in batches by a daemon
thread when ``METRICS_ENABLED=true``; otherwise they are only logged at
DEBUG level and never buffered.

Usage
-----
>>> from src.services.metrics import metrics
>>> with metrics.track("google_calendar", "freebusy.query"):
...     service.freebusy().query(body=body).execute()
>>> metrics.record_failure("openai", "GET /threads", error_type="ReadTimeout")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "BookingAssistant"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit


def _datum(name: str, dimensions: dict[str, str], value: float, unit: str) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
        "Timestamp": datetime.now(UTC),
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Buffers backend-call metrics and publishes them to CloudWatch."""

    def __init__(self, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None
        self._flusher: threading.Thread | None = None

        if self._enabled:
            self._start_flush_thread()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        self._extend(
            _datum("Backend/Requests", {"Service": service, "Outcome": "success"}, 1, "Count"),
            _datum("Backend/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds"),
        )
        logger.debug("Metric: %s %s ok %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        data = [
            _datum("Backend/Requests", {"Service": service, "Outcome": "failure"}, 1, "Count"),
            _datum("Backend/Errors", {"Service": service, "ErrorType": error_type}, 1, "Count"),
        ]
        if latency_ms > 0:
            data.append(
                _datum("Backend/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds")
            )
        self._extend(*data)
        logger.debug("Metric: %s %s failed (%s) %.1fms", service, operation, error_type, latency_ms)

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed call and record its outcome; exceptions propagate."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record_failure(
                service, operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        self.record_success(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    def flush(self) -> int:
        """Publish buffered data points.  Returns the number sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Published %d metric data points", sent)
        except Exception:
            logger.exception("Failed to publish metrics to CloudWatch")
        return sent

    def _extend(self, *data: dict[str, Any]) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._buffer.extend(data)

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        self._flusher = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        self._flusher.start()
        atexit.register(self.flush)


metrics = MetricsClient()
