"""Conflict detection for a proposed meeting.

Hard conflicts are overlaps with existing events and block the meeting.
Soft conflicts are back-to-back or tightly packed meetings, interrupted focus
blocks and overloaded days; they only lower the quality of the slot.  When
a slot is blocked, or carries more than two soft conflicts, up to three
conflict-free alternatives are scored with :class:`MeetingScorer`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field

from calendar_intel.analytics.history import MeetingPattern, TimeBlock
from calendar_intel.analytics.meeting_scorer import MeetingScore, MeetingScorer, best_rate, days_until, parse_hour
from calendar_intel.analytics.pattern_learner import PatternLearner
from calendar_intel.analytics.patterns import weekday_name
from calendar_intel.models import Event
from calendar_intel.services.nylas_client import CalendarClient

logger = logging.getLogger(__name__)

HISTORY_DAYS = 90
SEARCH_MARGIN = timedelta(hours=2)
MIN_BUFFER = timedelta(minutes=15)
OVERLOAD_MEETINGS_PER_DAY = 6
SOFT_CONFLICT_LIMIT = 2
SOFT_CONFLICT_PENALTY = 10
BASE_ALTERNATIVE_SCORE = 70
MIN_ALTERNATIVE_SCORE = 50
MAX_ALTERNATIVES = 3
DEFAULT_BEST_HOUR = 14


class ConflictType(StrEnum):
    HARD = "hard"
    SOFT_BACK_TO_BACK = "soft_back_to_back"
    SOFT_FOCUS_TIME = "soft_focus_time"
    SOFT_OVERLOAD = "soft_overload"


class ConflictSeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Conflict(BaseModel):
    id: str
    type: ConflictType
    severity: ConflictSeverity
    conflicting_event: Event | None = None
    description: str
    impact: str
    suggestion: str
    can_auto_resolve: bool


class RescheduleOption(BaseModel):
    proposed_time: datetime
    end_time: datetime
    score: int
    confidence: float
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    participant_match: float = 1.0
    insight: str = ""


class ConflictAnalysis(BaseModel):
    proposed_event: Event
    hard_conflicts: list[Conflict] = Field(default_factory=list)
    soft_conflicts: list[Conflict] = Field(default_factory=list)
    total_conflicts: int = 0
    can_proceed: bool
    recommendations: list[str] = Field(default_factory=list)
    alternative_times: list[RescheduleOption] = Field(default_factory=list)
    recommendation: str


# ── Detection (pure) ────────────────────────────────────────────────


def _span(event: Event) -> tuple[datetime, datetime]:
    return event.when.start(), event.when.end()


def detect_hard_conflicts(
    start: datetime, end: datetime, existing: Sequence[Event], *, exclude_id: str = ""
) -> list[Conflict]:
    conflicts = []
    for event in existing:
        if exclude_id and event.id == exclude_id:
            continue
        event_start, event_end = _span(event)
        if not (start < event_end and end > event_start):
            continue
        conflicts.append(Conflict(
            id=f"hard_{event.id}",
            type=ConflictType.HARD,
            severity=ConflictSeverity.HIGH if event.status == "tentative" else ConflictSeverity.CRITICAL,
            conflicting_event=event,
            description=f"Overlaps with '{event.title}'",
            impact="Cannot attend both meetings simultaneously",
            suggestion="Reschedule one of the meetings",
            can_auto_resolve=False,
        ))
    return conflicts


def in_focus_block(moment: datetime, block: TimeBlock) -> bool:
    if weekday_name(moment) != block.day_of_week:
        return False
    return parse_hour(block.start_time) <= moment.hour < parse_hour(block.end_time)


def meetings_on_day(day: datetime, existing: Sequence[Event], *, exclude_id: str = "") -> int:
    return sum(
        1 for event in existing
        if event.when.start().date() == day.date() and not (exclude_id and event.id == exclude_id)
    )


def detect_soft_conflicts(
    start: datetime,
    end: datetime,
    existing: Sequence[Event],
    patterns: MeetingPattern | None,
    *,
    exclude_id: str = "",
) -> list[Conflict]:
    conflicts = []
    for event in existing:
        if exclude_id and event.id == exclude_id:
            continue
        event_start, event_end = _span(event)

        if event_end == start or end == event_start:
            conflicts.append(Conflict(
                id=f"soft_b2b_{event.id}",
                type=ConflictType.SOFT_BACK_TO_BACK,
                severity=ConflictSeverity.MEDIUM,
                conflicting_event=event,
                description=f"Back-to-back with '{event.title}'",
                impact="No buffer time for breaks or overruns",
                suggestion="Add 15-minute buffer between meetings",
                can_auto_resolve=True,
            ))

        gap = event_start - end
        if timedelta(0) < gap < MIN_BUFFER:
            conflicts.append(Conflict(
                id=f"soft_close_{event.id}",
                type=ConflictType.SOFT_BACK_TO_BACK,
                severity=ConflictSeverity.LOW,
                conflicting_event=event,
                description=f"Only {int(gap.total_seconds() // 60)} min gap before '{event.title}'",
                impact="Minimal buffer time",
                suggestion="Consider adding more buffer time",
                can_auto_resolve=True,
            ))

    if patterns is not None:
        for block in patterns.productivity.focus_blocks:
            if in_focus_block(start, block):
                conflicts.append(Conflict(
                    id=f"soft_focus_{block.day_of_week}_{block.start_time}",
                    type=ConflictType.SOFT_FOCUS_TIME,
                    severity=ConflictSeverity.HIGH,
                    description=(
                        f"Interrupts focus time ({block.day_of_week} {block.start_time}-{block.end_time})"
                    ),
                    impact="Reduces productivity during peak focus hours",
                    suggestion="Schedule outside of focus time blocks",
                    can_auto_resolve=True,
                ))

    count = meetings_on_day(start, existing, exclude_id=exclude_id)
    if count >= OVERLOAD_MEETINGS_PER_DAY:
        conflicts.append(Conflict(
            id=f"soft_overload_{start:%Y-%m-%d}",
            type=ConflictType.SOFT_OVERLOAD,
            severity=ConflictSeverity.MEDIUM,
            description=f"Already have {count} meetings this day",
            impact="Meeting fatigue and reduced productivity",
            suggestion="Consider spreading meetings across more days",
            can_auto_resolve=True,
        ))

    return conflicts


def conflict_recommendations(hard: list[Conflict], soft: list[Conflict]) -> list[str]:
    recommendations = []
    if hard:
        recommendations.append("Hard conflicts detected - must reschedule")
        recommendations.extend(f"  - {conflict.suggestion}" for conflict in hard)

    if len(soft) > SOFT_CONFLICT_LIMIT:
        recommendations.append("Multiple soft conflicts detected:")
        if any(c.type == ConflictType.SOFT_FOCUS_TIME for c in soft):
            recommendations.append("  - Consider protecting your focus time")
        if sum(c.type == ConflictType.SOFT_BACK_TO_BACK for c in soft) > 1:
            recommendations.append("  - Add buffer time between meetings")

    if not hard and not soft:
        recommendations.append("No conflicts detected - good time for this meeting")
    return recommendations


def overall_recommendation(
    hard: list[Conflict], soft: list[Conflict], alternatives: list[RescheduleOption]
) -> str:
    if hard:
        if alternatives:
            return (
                f"Cannot proceed due to {len(hard)} hard conflict(s). Recommend rescheduling "
                f"to alternative time slot (Score: {alternatives[0].score}/100)"
            )
        return f"Cannot proceed due to {len(hard)} hard conflict(s). Manual rescheduling required"

    if len(soft) > SOFT_CONFLICT_LIMIT:
        if alternatives:
            return (
                f"Proceeding not recommended due to {len(soft)} soft conflicts. "
                f"Consider alternative time (Score: {alternatives[0].score}/100)"
            )
        return f"Proceeding possible but not ideal ({len(soft)} soft conflicts)"

    if soft:
        return f"Can proceed with {len(soft)} minor soft conflict(s)"
    return "Excellent time - no conflicts detected"


def option_insight(score: int, days_delay: int) -> str:
    if score >= 90:
        return "Excellent alternative with minimal disruption"
    if score >= 75:
        if days_delay == 0:
            return "Same day alternative - minimal delay"
        return "Good alternative with acceptable trade-offs"
    if score >= 60:
        return "Acceptable but consider other options"
    return "Suboptimal - many conflicts remain"


def best_time_from_patterns(around: datetime, patterns: MeetingPattern) -> datetime | None:
    """Next occurrence of the best-accepted weekday at the best-accepted hour."""
    day = best_rate(patterns.acceptance.by_day_of_week)
    if not day:
        return None
    hour = best_rate(patterns.acceptance.by_time_of_day)
    target = around + timedelta(days=days_until(around, day))
    return target.replace(hour=parse_hour(hour) if hour else DEFAULT_BEST_HOUR, minute=0, second=0, microsecond=0)


# ── Resolver ────────────────────────────────────────────────────────


class ConflictResolver:
    def __init__(self, calendar: CalendarClient, pattern_learner: PatternLearner | None = None):
        self._calendar = calendar
        self._learner = pattern_learner or PatternLearner(calendar)

    def _patterns(self, grant_id: str) -> MeetingPattern | None:
        return self._learner.analyze_history(grant_id, HISTORY_DAYS).patterns

    def score_meeting_time(
        self, grant_id: str, proposed: datetime, participants: Sequence[str] = ()
    ) -> MeetingScore:
        return MeetingScorer(self._patterns(grant_id)).score_meeting_time(proposed, participants)

    def detect_conflicts(
        self, grant_id: str, proposed: Event, patterns: MeetingPattern | None = None
    ) -> ConflictAnalysis:
        """Check ``proposed`` against the calendar around it.

        ``patterns`` defaults to the grant's meeting history; without history
        no focus-time conflicts are reported and alternatives get a flat score.
        """
        if patterns is None:
            patterns = self._patterns(grant_id)

        start, end = _span(proposed)
        day_start = start.replace(hour=0, minute=0, second=0, microsecond=0)
        # Covers the proposed day and the next one, where alternatives are tried.
        search_start = min(start - SEARCH_MARGIN, day_start)
        search_end = max(end + SEARCH_MARGIN, day_start + timedelta(days=2))
        existing = self._learner.fetch_events(grant_id, search_start, search_end)

        hard = detect_hard_conflicts(start, end, existing, exclude_id=proposed.id)
        soft = detect_soft_conflicts(start, end, existing, patterns, exclude_id=proposed.id)

        alternatives: list[RescheduleOption] = []
        if hard or len(soft) > SOFT_CONFLICT_LIMIT:
            alternatives = self.suggest_alternatives(proposed, existing, patterns)

        logger.info(
            "Conflict check for %s: %d hard, %d soft, %d alternatives",
            proposed.title or proposed.id or "proposed event", len(hard), len(soft), len(alternatives),
        )
        return ConflictAnalysis(
            proposed_event=proposed,
            hard_conflicts=hard,
            soft_conflicts=soft,
            total_conflicts=len(hard) + len(soft),
            can_proceed=not hard,
            recommendations=conflict_recommendations(hard, soft),
            alternative_times=alternatives,
            recommendation=overall_recommendation(hard, soft, alternatives),
        )

    def suggest_alternatives(
        self, proposed: Event, existing: Sequence[Event], patterns: MeetingPattern | None
    ) -> list[RescheduleOption]:
        """Up to three conflict-free slots scoring above 50, best first.

        Candidates are one to four hours later the same day, the same time
        the next day and the best historical slot.
        """
        start, end = _span(proposed)
        duration = end - start

        candidates = [start + timedelta(hours=i) for i in range(1, 5)]
        candidates.append(start + timedelta(days=1))
        if patterns is not None:
            best = best_time_from_patterns(start, patterns)
            if best is not None:
                candidates.append(best)

        participants = [p.email for p in proposed.participants if p.email]
        options = []
        for candidate in candidates:
            option = self._evaluate(candidate, duration, start, proposed.id, existing, patterns, participants)
            if option is not None and option.score > MIN_ALTERNATIVE_SCORE:
                options.append(option)

        options.sort(key=lambda o: o.score, reverse=True)
        return options[:MAX_ALTERNATIVES]

    @staticmethod
    def _evaluate(
        start: datetime,
        duration: timedelta,
        original: datetime,
        proposed_id: str,
        existing: Sequence[Event],
        patterns: MeetingPattern | None,
        participants: list[str],
    ) -> RescheduleOption | None:
        end = start + duration
        if detect_hard_conflicts(start, end, existing, exclude_id=proposed_id):
            return None
        soft = detect_soft_conflicts(start, end, existing, patterns, exclude_id=proposed_id)

        score = BASE_ALTERNATIVE_SCORE
        if patterns is not None:
            score = MeetingScorer(patterns).score_meeting_time(start, participants).score
        score = max(0, score - SOFT_CONFLICT_PENALTY * len(soft))

        pros, cons = [], []
        if not soft:
            pros.append("No conflicts detected")
        day = weekday_name(start)
        if patterns is not None and patterns.acceptance.by_day_of_week.get(day, 0.0) > 0.8:
            rate = patterns.acceptance.by_day_of_week[day]
            pros.append(f"High acceptance rate on {day}s ({rate * 100:.0f}%)")
        if soft:
            cons.append(f"{len(soft)} soft conflict(s)")
        days_delay = int((start - original).total_seconds() // 86400)
        if days_delay > 0:
            cons.append(f"{days_delay} day delay")

        return RescheduleOption(
            proposed_time=start,
            end_time=end,
            score=score,
            confidence=float(score),
            pros=pros,
            cons=cons,
            conflicts=soft,
            insight=option_insight(score, days_delay),
        )
