"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from calendar_intel.services.metrics import MAX_BATCH_SIZE, NAMESPACE, MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}), \
            patch.object(MetricsClient, "_start_flush_thread"):
        return MetricsClient()


def _dimensions(datum: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in datum["Dimensions"]}


class TestMetricsRecording:
    """Verify that record_success / record_failure / record_skip buffer the right data."""

    def test_record_success_appends_two_data_points(self):
        client = _make_client()
        client.record_success("claude", "chat", latency_ms=123.4)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Upstream/RequestCount", "Upstream/Latency"}

    def test_record_failure_without_latency(self):
        client = _make_client()
        client.record_failure("ollama", "chat", error_type="ProviderError")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Upstream/RequestCount", "Upstream/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = _make_client()
        client.record_failure("nylas", "get_events", error_type="503", latency_ms=500.0)
        assert len(client._buffer) == 3

    def test_success_dimensions_include_service_and_status(self):
        client = _make_client()
        client.record_success("groq", "chat", latency_ms=50.0)
        count_metric = next(m for m in client._buffer if m["MetricName"] == "Upstream/RequestCount")
        assert _dimensions(count_metric) == {"Service": "groq", "Status": "success"}

    def test_failure_dimensions_include_error_type(self):
        client = _make_client()
        client.record_failure("openai", "chat", error_type="ConnectError")
        error_metric = next(m for m in client._buffer if m["MetricName"] == "Upstream/ErrorCount")
        assert _dimensions(error_metric)["ErrorType"] == "ConnectError"

    def test_record_skip_carries_reason(self):
        client = _make_client()
        client.record_skip("claude", reason="unavailable")
        (skip,) = client._buffer
        assert skip["MetricName"] == "Router/FallbackSkip"
        assert _dimensions(skip) == {"Service": "claude", "Reason": "unavailable"}


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = _make_client()
        client.record_success("claude", "chat", latency_ms=100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()

        client.record_success("claude", "chat", latency_ms=100.0)
        assert client.flush() == 2

        call_args = client._cw_client.put_metric_data.call_args
        assert call_args[1]["Namespace"] == NAMESPACE
        assert len(call_args[1]["MetricData"]) == 2

    def test_flush_splits_large_buffers(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        for _ in range(MAX_BATCH_SIZE):
            client.record_skip("groq", reason="unregistered")
        client.record_success("claude", "chat", latency_ms=1.0)

        assert client.flush() == MAX_BATCH_SIZE + 2
        assert client._cw_client.put_metric_data.call_count == 2

    def test_flush_failure_is_logged_not_raised(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("throttled")
        client.record_skip("groq", reason="unavailable")

        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0
