"""Pydantic schemas for the FastAPI endpoints.

Result bodies reuse the domain models directly; only the request envelopes
live here.  An empty ``grant_id`` falls back to ``NYLAS_GRANT_ID``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from calendar_intel.analytics.focus_optimizer import AdaptiveTrigger, FocusTimeBlock, FocusTimeSettings
from calendar_intel.models import Event, EventWhen, Participant


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "calendar-intel"


class ProvidersResponse(BaseModel):
    providers: list[str]
    default_provider: str
    fallback_chain: list[str]


class GrantRequest(BaseModel):
    grant_id: str = Field(default="", max_length=200, description="Nylas grant; defaults to NYLAS_GRANT_ID")


class FocusAnalyzeRequest(GrantRequest):
    settings: FocusTimeSettings = Field(default_factory=FocusTimeSettings)


class FocusProtectRequest(GrantRequest):
    blocks: list[FocusTimeBlock] = Field(..., min_length=1)
    settings: FocusTimeSettings = Field(default_factory=FocusTimeSettings)


class FocusAdaptRequest(GrantRequest):
    trigger: AdaptiveTrigger
    settings: FocusTimeSettings | None = None


class OptimizeDurationRequest(GrantRequest):
    calendar_id: str = Field(..., min_length=1)
    event_id: str = Field(..., min_length=1)


class ThreadAnalysisRequest(GrantRequest):
    thread_id: str = Field(..., min_length=1)
    include_agenda: bool = True
    include_time: bool = True


class ConflictCheckRequest(GrantRequest):
    title: str = ""
    start_time: datetime
    end_time: datetime
    participants: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _ends_after_start(self) -> ConflictCheckRequest:
        if self.end_time.timestamp() <= self.start_time.timestamp():
            raise ValueError("end_time must be after start_time")
        return self

    def to_event(self) -> Event:
        return Event(
            title=self.title,
            when=EventWhen(start_time=int(self.start_time.timestamp()), end_time=int(self.end_time.timestamp())),
            participants=[Participant(email=email) for email in self.participants],
        )


class MeetingScoreRequest(GrantRequest):
    start_time: datetime
    participants: list[str] = Field(default_factory=list)

    def local_start(self) -> datetime:
        """Start in the process-local zone, the zone meeting history is kept in."""
        return datetime.fromtimestamp(self.start_time.timestamp())
