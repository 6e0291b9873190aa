"""Shared test fixtures for the Calendar Intel test suite."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("NYLAS_API_KEY", "test-nylas-key-123")
    os.environ.setdefault("NYLAS_GRANT_ID", "grant-test")
    os.environ.setdefault("METRICS_ENABLED", "false")


def make_event(
    start: datetime,
    minutes: int = 30,
    *,
    event_id: str = "",
    title: str = "Sync",
    status: str = "confirmed",
    busy: bool = True,
    participants: list[str] | None = None,
    timezone: str = "America/New_York",
    read_only: bool = False,
    recurrence: list[str] | None = None,
):
    """Build an Event whose local start time is ``start``."""
    from calendar_intel.models import Event, EventWhen, Participant

    end = start + timedelta(minutes=minutes)
    return Event(
        id=event_id or f"evt-{start:%Y%m%d%H%M}",
        calendar_id="cal-1",
        title=title,
        when=EventWhen(
            start_time=int(start.timestamp()),
            end_time=int(end.timestamp()),
            start_timezone=timezone,
            end_timezone=timezone,
        ),
        participants=[Participant(email=email, status="yes") for email in participants or []],
        status=status,
        busy=busy,
        read_only=read_only,
        recurrence=recurrence,
    )


class FakeCalendar:
    """In-memory CalendarClient: one or more calendars sharing a list of events."""

    def __init__(self, events=None, calendars=None, *, failing_calendars=()):
        from calendar_intel.models import Calendar

        self.events = list(events or [])
        self.calendars = calendars if calendars is not None else [Calendar(id="cal-1", is_primary=True)]
        self.failing_calendars = set(failing_calendars)
        self.created: list[tuple[str, object]] = []
        self.event_queries: list[dict] = []
        self.thread = None
        self.messages = []

    def get_calendars(self, grant_id):
        return list(self.calendars)

    def get_events(self, grant_id, calendar_id, *, start, end, limit=200):
        from calendar_intel.services.nylas_client import NylasAPIError

        self.event_queries.append({"calendar_id": calendar_id, "start": start, "end": end, "limit": limit})
        if calendar_id in self.failing_calendars:
            raise NylasAPIError("Server error 503", status_code=503)
        return [e for e in self.events if e.calendar_id == calendar_id][:limit]

    def get_event(self, grant_id, calendar_id, event_id):
        return next(e for e in self.events if e.id == event_id)

    def create_event(self, grant_id, calendar_id, request):
        from calendar_intel.models import Event

        self.created.append((calendar_id, request))
        return Event(id=f"created-{len(self.created)}", calendar_id=calendar_id, title=request.title, when=request.when)

    def get_thread(self, grant_id, thread_id):
        return self.thread

    def get_messages_with_params(self, grant_id, *, thread_id=None, limit=50):
        return list(self.messages)


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock HTTP responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make


@pytest.fixture
def stub_router():
    """Router double whose ``chat`` returns a fixed answer."""
    from calendar_intel.llm.schemas import ChatResponse, TokenUsage

    router = MagicMock()
    router.chat.return_value = ChatResponse(
        content="1. Protect Tuesday mornings for deep work\n2. Batch one-on-ones on Thursdays",
        provider="stub",
        usage=TokenUsage(total_tokens=42),
    )
    return router
