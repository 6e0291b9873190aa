"""Pattern learning over a grant's calendar history.

``learn_patterns`` is the user-facing analysis: the four pattern families
plus an LLM-written list of recommendations.  ``analyze_history`` is the
LLM-free statistical model the focus optimizer consumes.

Calendar access is load-bearing (listing calendars must succeed), but a single
calendar that fails to return events is skipped.  The LLM synthesis step is
best-effort and falls back to a placeholder.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from calendar_intel.analytics.history import (
    DateRange,
    MeetingAnalysis,
    history_insights,
    history_recommendations,
    learn_meeting_pattern,
)
from calendar_intel.analytics.patterns import (
    SchedulingPatterns,
    analysis_period,
    analyze_acceptance_patterns,
    analyze_duration_patterns,
    analyze_productivity_patterns,
    analyze_timezone_patterns,
    build_pattern_digest,
    parse_recommendations,
)
from calendar_intel.config import WORKING_HOURS_END, WORKING_HOURS_START
from calendar_intel.llm.router import LLMRouter
from calendar_intel.llm.schemas import ChatMessage, ChatRequest
from calendar_intel.models import Event
from calendar_intel.prompts import PRODUCTIVITY_COACH_PROMPT, RECOMMENDATIONS_REQUEST
from calendar_intel.services.nylas_client import CalendarClient

logger = logging.getLogger(__name__)

EVENTS_PER_CALENDAR = 200
HISTORY_EVENTS_PER_CALENDAR = 500
SYNTHESIS_UNAVAILABLE = "Unable to generate AI recommendations"


class InsufficientDataError(Exception):
    """Raised when there is not enough data to produce a meaningful result."""


class LearnPatternsRequest(BaseModel):
    grant_id: str = ""
    lookback_days: int = Field(default=90, gt=0)
    # Reported with the analysis; patterns are not filtered by it.
    min_confidence: float = Field(default=0.0, ge=0, le=1)
    include_recurring: bool = True


class PatternLearner:
    def __init__(
        self,
        calendar: CalendarClient,
        router: LLMRouter | None = None,
        *,
        working_hours: tuple[int, int] = (WORKING_HOURS_START, WORKING_HOURS_END),
    ):
        self._calendar = calendar
        self._router = router
        self._working_hours = working_hours

    # ── Fetching ─────────────────────────────────────────────────────

    def fetch_events(
        self, grant_id: str, start: datetime, end: datetime, limit: int = EVENTS_PER_CALENDAR
    ) -> list[Event]:
        """Collect events from every calendar of the grant within ``[start, end]``."""
        calendars = self._calendar.get_calendars(grant_id)
        events: list[Event] = []
        for calendar in calendars:
            try:
                events.extend(
                    self._calendar.get_events(grant_id, calendar.id, start=start, end=end, limit=limit)
                )
            except Exception as exc:
                logger.warning("Skipping calendar %s: %s", calendar.id, exc)
        return events

    # ── User-facing scheduling patterns ──────────────────────────────

    def learn_patterns(self, request: LearnPatternsRequest) -> SchedulingPatterns:
        end = datetime.now()
        start = end - timedelta(days=request.lookback_days)
        events = self.fetch_events(request.grant_id, start, end)

        if not request.include_recurring:
            events = [event for event in events if not event.is_recurring]

        if not events:
            raise InsufficientDataError("no events found in the specified period")

        logger.info(
            "Learning patterns from %d events (lookback=%dd, min_confidence=%.2f)",
            len(events), request.lookback_days, request.min_confidence,
        )
        patterns = SchedulingPatterns(
            user_id=request.grant_id,
            analysis_period=analysis_period(events),
            acceptance_patterns=analyze_acceptance_patterns(events),
            duration_patterns=analyze_duration_patterns(events),
            timezone_patterns=analyze_timezone_patterns(events),
            productivity_insights=analyze_productivity_patterns(events),
            total_events_analyzed=len(events),
            generated_at=datetime.now(),
        )
        patterns.recommendations = self.generate_recommendations(patterns)
        return patterns

    def generate_recommendations(self, patterns: SchedulingPatterns) -> list[str]:
        """Ask the router for coaching advice; never fails."""
        if self._router is None:
            return [SYNTHESIS_UNAVAILABLE]

        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content=PRODUCTIVITY_COACH_PROMPT),
                ChatMessage(role="user", content=RECOMMENDATIONS_REQUEST + build_pattern_digest(patterns)),
            ],
            temperature=0.7,
            max_tokens=500,
        )
        try:
            response = self._router.chat(request)
        except Exception as exc:
            logger.warning("Recommendation synthesis failed: %s", exc)
            return [SYNTHESIS_UNAVAILABLE]
        return parse_recommendations(response.content)

    # ── Export ───────────────────────────────────────────────────────

    @staticmethod
    def export_patterns(patterns: SchedulingPatterns) -> str:
        return patterns.model_dump_json(indent=2)

    # ── Statistical history model ────────────────────────────────────

    def analyze_history(self, grant_id: str, days: int = 90) -> MeetingAnalysis:
        """Build the meeting-history model for the last ``days`` days.

        An empty history is not an error here: the analysis comes back with
        ``patterns`` set to ``None``.
        """
        end = datetime.now()
        start = end - timedelta(days=days)
        events = self.fetch_events(grant_id, start, end, limit=HISTORY_EVENTS_PER_CALENDAR)
        period = DateRange(start=start, end=end)

        if not events:
            return MeetingAnalysis(
                period=period,
                total_meetings=0,
                insights=["No meetings found in the analyzed period."],
            )

        pattern = learn_meeting_pattern(events, start, end, working_hours=self._working_hours)
        return MeetingAnalysis(
            period=period,
            total_meetings=len(events),
            patterns=pattern,
            recommendations=history_recommendations(pattern),
            insights=history_insights(pattern, len(events), days),
        )
