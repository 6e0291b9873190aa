"""Tests for the NylasClient service."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock, patch

import httpx
import pytest

from calendar_intel.models import CreateEventRequest, EventWhen
from calendar_intel.services.nylas_client import (
    INITIAL_BACKOFF_SECONDS,
    MAX_RETRIES,
    NylasAPIError,
    NylasClient,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    return mock


@pytest.fixture
def client():
    with patch("calendar_intel.services.nylas_client.metrics"):
        yield NylasClient(api_key="test-key", base_url="https://nylas.test")


# ── Tests: calendars and events ──────────────────────────────────────


class TestCalendars:
    def test_returns_calendars(self, client):
        data = {"data": [{"id": "cal-1", "name": "Work", "is_primary": True}, {"id": "cal-2"}]}

        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            calendars = client.get_calendars("grant-1")

        assert [c.id for c in calendars] == ["cal-1", "cal-2"]
        assert calendars[0].is_primary is True
        assert mock_req.call_args[0] == ("GET", "/v3/grants/grant-1/calendars")

    def test_bearer_token_header(self, client):
        assert client._client.headers["Authorization"] == "Bearer test-key"


class TestEvents:
    def test_window_is_sent_as_unix_seconds(self, client):
        start, end = datetime(2025, 3, 3, 9, 0), datetime(2025, 3, 4, 9, 0)
        data = {"data": [{"id": "e1", "title": "Sync", "when": {"start_time": 1, "end_time": 1801}, "extra": 1}]}

        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            events = client.get_events("grant-1", "cal-1", start=start, end=end, limit=50)

        assert events[0].duration_minutes == 30
        assert mock_req.call_args[1]["params"] == {
            "calendar_id": "cal-1",
            "start": int(start.timestamp()),
            "end": int(end.timestamp()),
            "limit": 50,
        }

    def test_empty_payload_means_no_events(self, client):
        with patch.object(client._client, "request", return_value=_mock_response({"data": None})):
            assert client.get_events("g", "c", start=datetime.now(), end=datetime.now()) == []

    def test_create_event_always_sends_busy(self, client):
        request = CreateEventRequest(title="Focus Time", when=EventWhen(start_time=10, end_time=20))

        with patch.object(
            client._client, "request", return_value=_mock_response({"data": {"id": "new", "title": "Focus Time"}})
        ) as mock_req:
            event = client.create_event("g", "cal-1", request)

        assert event.id == "new"
        body = mock_req.call_args[1]["json"]
        assert body["busy"] is True
        assert body["when"] == {"start_time": 10, "end_time": 20}
        assert mock_req.call_args[1]["params"] == {"calendar_id": "cal-1"}


class TestEmail:
    def test_messages_filtered_by_thread(self, client):
        data = {"data": [{"id": "m1", "from": [{"email": "ana@example.com"}], "date": 1700000000}]}

        with patch.object(client._client, "request", return_value=_mock_response(data)) as mock_req:
            messages = client.get_messages_with_params("g", thread_id="t-1", limit=100)

        assert messages[0].sender[0].email == "ana@example.com"
        assert mock_req.call_args[1]["params"] == {"limit": 100, "thread_id": "t-1"}

    def test_thread(self, client):
        data = {"data": {"id": "t-1", "subject": "Launch", "participants": [{"email": "a@x.com"}]}}
        with patch.object(client._client, "request", return_value=_mock_response(data)):
            thread = client.get_thread("g", "t-1")
        assert thread.subject == "Launch"


# ── Tests: retry logic ───────────────────────────────────────────────


class TestRetryLogic:
    @patch("calendar_intel.services.nylas_client.time.sleep")
    def test_retries_on_timeout(self, mock_sleep, client):
        with patch.object(
            client._client,
            "request",
            side_effect=[httpx.TimeoutException("timeout"), _mock_response({"data": []})],
        ):
            assert client.get_calendars("g") == []
            mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    @patch("calendar_intel.services.nylas_client.time.sleep")
    def test_retries_on_500_error(self, mock_sleep, client):
        with patch.object(
            client._client,
            "request",
            side_effect=[_mock_response({"error": "boom"}, 503), _mock_response({"data": [{"id": "c"}]})],
        ):
            assert [c.id for c in client.get_calendars("g")] == ["c"]

    @patch("calendar_intel.services.nylas_client.time.sleep")
    def test_does_not_retry_on_404(self, mock_sleep, client):
        with patch.object(client._client, "request", return_value=_mock_response({"error": "nope"}, 404)):
            with pytest.raises(NylasAPIError) as exc_info:
                client.get_event("g", "c", "missing")
            assert exc_info.value.status_code == 404
            mock_sleep.assert_not_called()

    @patch("calendar_intel.services.nylas_client.time.sleep")
    def test_raises_after_max_retries(self, mock_sleep, client):
        with patch.object(
            client._client, "request", side_effect=httpx.ConnectError("refused")
        ) as mock_req:
            with pytest.raises(NylasAPIError) as exc_info:
                client.get_calendars("g")

        assert "after" in str(exc_info.value).lower()
        assert mock_req.call_count == MAX_RETRIES
        assert [c.args[0] for c in mock_sleep.call_args_list] == [
            INITIAL_BACKOFF_SECONDS * 2 ** i for i in range(MAX_RETRIES - 1)
        ]
