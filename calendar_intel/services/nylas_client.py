"""HTTP client for the Nylas v3 API with retry logic and timeout handling.

Nylas API docs: https://developer.nylas.com/docs/api/v3/
Every request is scoped to a grant (one connected mailbox/calendar account)
and authenticated with the application API key as a Bearer token.

The analysis code never imports this module directly; it depends on the
:class:`CalendarClient` protocol so tests (and other platforms) can supply
their own implementation.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Protocol

import httpx

from calendar_intel.config import NYLAS_API_KEY, NYLAS_API_URI
from calendar_intel.models import Calendar, CreateEventRequest, Event, Message, Thread
from calendar_intel.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 30.0


class NylasAPIError(Exception):
    """Raised when a Nylas API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class CalendarClient(Protocol):
    """The calendar/email operations the intelligence core consumes."""

    def get_calendars(self, grant_id: str) -> list[Calendar]: ...

    def get_events(
        self,
        grant_id: str,
        calendar_id: str,
        *,
        start: datetime,
        end: datetime,
        limit: int = 200,
    ) -> list[Event]: ...

    def get_event(self, grant_id: str, calendar_id: str, event_id: str) -> Event: ...

    def create_event(
        self, grant_id: str, calendar_id: str, request: CreateEventRequest
    ) -> Event: ...

    def get_thread(self, grant_id: str, thread_id: str) -> Thread: ...

    def get_messages_with_params(
        self, grant_id: str, *, thread_id: str | None = None, limit: int = 50
    ) -> list[Message]: ...


class NylasClient:
    """Thin wrapper around the Nylas REST API with automatic retries."""

    def __init__(self, api_key: str | None = None, base_url: str | None = None):
        self._api_key = api_key or NYLAS_API_KEY
        self._base_url = base_url or NYLAS_API_URI
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Execute an HTTP request with exponential-backoff retries.

        Returns the ``data`` member of the Nylas response envelope.
        """
        last_error: Exception | None = None
        t0 = time.perf_counter()
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.request(method, path, params=params, json=json_body)
                if response.status_code >= 500:
                    raise NylasAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise NylasAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                metrics.record_success("nylas", operation, latency_ms=(time.perf_counter() - t0) * 1000)
                return response.json().get("data")

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Nylas %s attempt %d/%d failed (%s). Retrying in %.1fs…",
                    operation,
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except NylasAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Nylas %s server error on attempt %d/%d. Retrying…",
                        operation,
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    metrics.record_failure(
                        "nylas", operation, error_type=f"{exc.status_code}",
                        latency_ms=(time.perf_counter() - t0) * 1000,
                    )
                    raise

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        metrics.record_failure(
            "nylas", operation, error_type=type(last_error).__name__,
            latency_ms=(time.perf_counter() - t0) * 1000,
        )
        raise NylasAPIError(f"Nylas {operation} failed after {MAX_RETRIES} attempts: {last_error}")

    # ── Calendars and events ─────────────────────────────────────────

    def get_calendars(self, grant_id: str) -> list[Calendar]:
        data = self._request("GET", f"/v3/grants/{grant_id}/calendars", operation="get_calendars")
        return [Calendar.model_validate(item) for item in data or []]

    def get_events(
        self,
        grant_id: str,
        calendar_id: str,
        *,
        start: datetime,
        end: datetime,
        limit: int = 200,
    ) -> list[Event]:
        """List events of one calendar that overlap ``[start, end]``."""
        data = self._request(
            "GET",
            f"/v3/grants/{grant_id}/events",
            operation="get_events",
            params={
                "calendar_id": calendar_id,
                "start": int(start.timestamp()),
                "end": int(end.timestamp()),
                "limit": limit,
            },
        )
        return [Event.model_validate(item) for item in data or []]

    def get_event(self, grant_id: str, calendar_id: str, event_id: str) -> Event:
        data = self._request(
            "GET",
            f"/v3/grants/{grant_id}/events/{event_id}",
            operation="get_event",
            params={"calendar_id": calendar_id},
        )
        return Event.model_validate(data)

    def create_event(
        self, grant_id: str, calendar_id: str, request: CreateEventRequest
    ) -> Event:
        data = self._request(
            "POST",
            f"/v3/grants/{grant_id}/events",
            operation="create_event",
            params={"calendar_id": calendar_id},
            json_body={**request.model_dump(exclude_defaults=True), "busy": request.busy},
        )
        return Event.model_validate(data)

    # ── Email ────────────────────────────────────────────────────────

    def get_thread(self, grant_id: str, thread_id: str) -> Thread:
        data = self._request("GET", f"/v3/grants/{grant_id}/threads/{thread_id}", operation="get_thread")
        return Thread.model_validate(data)

    def get_messages_with_params(
        self, grant_id: str, *, thread_id: str | None = None, limit: int = 50
    ) -> list[Message]:
        params: dict[str, Any] = {"limit": limit}
        if thread_id:
            params["thread_id"] = thread_id
        data = self._request(
            "GET", f"/v3/grants/{grant_id}/messages", operation="get_messages", params=params,
        )
        return [Message.model_validate(item) for item in data or []]


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: NylasClient | None = None
_client_lock = threading.Lock()


def get_nylas_client() -> NylasClient:
    """Return a module-level NylasClient singleton (double-checked locking)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = NylasClient()
    return _client
