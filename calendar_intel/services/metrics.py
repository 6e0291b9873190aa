"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every upstream the
core talks to: each LLM provider attempt made by the router, the skips the
fallback chain takes, and every calendar/email platform request.

* Data points are collected in a thread-safe in-memory buffer.
* When ``METRICS_ENABLED=true`` a daemon thread flushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise data points are only
  logged at DEBUG level and dropped on flush.
* Each ``put_metric_data`` call carries at most ``MAX_BATCH_SIZE`` points.

Usage
-----
>>> from calendar_intel.services.metrics import metrics
>>> metrics.record_success("claude", "chat", latency_ms=812.0)
>>> metrics.record_failure("ollama", "chat", error_type="ProviderError")
>>> metrics.record_skip("groq", reason="unavailable")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "CalendarIntel"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _datum(
    name: str,
    dimensions: dict[str, str],
    value: float,
    unit: str,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful upstream call."""
        now = datetime.now(UTC)
        self._append(
            _datum("Upstream/RequestCount", {"Service": service, "Status": "success"}, 1, "Count", now),
            _datum("Upstream/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds", now),
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed upstream call."""
        now = datetime.now(UTC)
        points = [
            _datum("Upstream/RequestCount", {"Service": service, "Status": "failure"}, 1, "Count", now),
            _datum("Upstream/ErrorCount", {"Service": service, "ErrorType": error_type}, 1, "Count", now),
        ]
        if latency_ms > 0:
            points.append(
                _datum("Upstream/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds", now)
            )
        self._append(*points)
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_skip(self, service: str, reason: str) -> None:
        """Record a provider the router's fallback chain passed over."""
        now = datetime.now(UTC)
        self._append(
            _datum("Router/FallbackSkip", {"Service": service, "Reason": reason}, 1, "Count", now),
        )
        logger.debug("Metric: %s skipped (%s)", service, reason)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
