"""Focus-time optimizer.

Turns the meeting-history model into recommended weekly focus blocks,
materializes accepted blocks as busy calendar events, proposes adaptive
schedule changes and right-sizes individual meetings.

Adaptive changes are proposals only: they are always created pending
approval and are never applied here.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, time, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from calendar_intel.analytics.history import DateRange, DurationStats, MeetingPattern, TimeBlock
from calendar_intel.analytics.pattern_learner import InsufficientDataError, PatternLearner
from calendar_intel.analytics.patterns import WEEKDAYS, weekday_name
from calendar_intel.models import CreateEventRequest, Event, EventWhen
from calendar_intel.services.nylas_client import CalendarClient

logger = logging.getLogger(__name__)

HISTORY_DAYS = 90
LOOKAHEAD_DAYS = 14
DEFAULT_BLOCK_MINUTES = 120
HIGH_DENSITY_MEETINGS_PER_DAY = 5.0
DECLINE_MESSAGE = "This time is blocked for focus work. Alternative times are available."

DEFAULT_PEAK_BLOCKS = [
    TimeBlock(day_of_week="Tuesday", start_time="10:00", end_time="12:00", score=90.0),
    TimeBlock(day_of_week="Thursday", start_time="10:00", end_time="12:00", score=90.0),
    TimeBlock(day_of_week="Wednesday", start_time="09:00", end_time="11:00", score=85.0),
]


class MeetingPriority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    FLEXIBLE = "flexible"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class AdaptiveTrigger(StrEnum):
    DEADLINE_CHANGE = "deadline_change"
    MEETING_OVERLOAD = "meeting_overload"
    PRIORITY_SHIFT = "priority_shift"
    FOCUS_TIME_AT_RISK = "focus_time_at_risk"
    CONFLICT_DETECTED = "conflict_detected"
    PATTERN_DETECTED = "pattern_detected"


class AdaptiveChangeType(StrEnum):
    INCREASE_FOCUS_TIME = "increase_focus_time"
    RESCHEDULE_MEETING = "reschedule_meeting"
    SHORTEN_MEETING = "shorten_meeting"
    DECLINE_MEETING = "decline_meeting"
    MOVE_MEETING_LATER = "move_meeting_later"
    PROTECT_BLOCK = "protect_block"


# ── Settings and results ────────────────────────────────────────────


class TimeRange(BaseModel):
    start_time: str  # "HH:MM"
    end_time: str


class FocusTimeNotificationPrefs(BaseModel):
    notify_on_decline: bool = True
    notify_on_override: bool = True
    notify_on_adaptation: bool = True
    daily_summary: bool = False
    weekly_summary: bool = True


class FocusTimeSettings(BaseModel):
    target_hours_per_week: float = Field(default=14.0, ge=0)
    min_block_duration: int = Field(default=60, ge=0)
    max_block_duration: int = Field(default=240, ge=0)
    protected_days: list[str] = Field(default_factory=list)
    excluded_time_ranges: list[TimeRange] = Field(default_factory=list)
    notification_settings: FocusTimeNotificationPrefs = Field(default_factory=FocusTimeNotificationPrefs)
    enabled: bool = True
    auto_block: bool = False
    auto_decline: bool = False
    allow_urgent_override: bool = True
    require_approval: bool = True


class FocusTimeBlock(BaseModel):
    day_of_week: str
    start_time: str
    end_time: str
    duration: int
    score: float
    reason: str
    conflicts: int = 0


class FocusTimeAnalysis(BaseModel):
    user_email: str
    analyzed_period: DateRange
    generated_at: datetime
    peak_productivity: list[TimeBlock] = Field(default_factory=list)
    deep_work_sessions: DurationStats = Field(default_factory=DurationStats)
    most_productive_day: str = ""
    least_productive_day: str = ""
    recommended_blocks: list[FocusTimeBlock] = Field(default_factory=list)
    current_protection: float = 0.0
    target_protection: float = 0.0
    insights: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=100)


class FocusProtectionRule(BaseModel):
    decline_message: str = DECLINE_MESSAGE
    alternative_times: list[datetime] = Field(default_factory=list)
    auto_decline: bool = False
    suggest_alternatives: bool = True
    allow_critical_meeting: bool = True
    require_approval: bool = True


class ProtectedBlock(BaseModel):
    id: str
    calendar_event_id: str = ""
    start_time: datetime
    end_time: datetime
    created_at: datetime
    updated_at: datetime
    recurrence_pattern: str = "weekly"
    priority: MeetingPriority = MeetingPriority.HIGH
    reason: str = ""
    protection_rules: FocusProtectionRule
    duration: int
    is_recurring: bool = True
    allow_override: bool = True
    override_approved: bool = False


class ScheduleModification(BaseModel):
    event_id: str = ""
    action: str  # reschedule | shorten | decline | protect
    old_start_time: datetime | None = None
    new_start_time: datetime | None = None
    old_duration: int = 0
    new_duration: int = 0
    description: str


class AdaptiveImpact(BaseModel):
    focus_time_gained: float = 0.0
    meetings_rescheduled: int = 0
    meetings_declined: int = 0
    duration_saved: int = 0
    conflicts_resolved: int = 0
    participants_affected: int = 0
    predicted_benefit: str = ""
    risks: list[str] = Field(default_factory=list)


class AdaptiveScheduleChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    trigger: AdaptiveTrigger
    change_type: AdaptiveChangeType
    affected_events: list[str] = Field(default_factory=list)
    changes: list[ScheduleModification] = Field(default_factory=list)
    reason: str
    impact: AdaptiveImpact
    user_approval: ApprovalStatus = ApprovalStatus.PENDING
    auto_applied: bool = False
    confidence: float


class DurationOptimization(BaseModel):
    event_id: str
    current_duration: int
    recommended_duration: int
    historical_data: DurationStats
    time_savings: int = Field(ge=0)
    confidence: float
    reason: str
    recommendation: str


# ── Clock-time helpers ──────────────────────────────────────────────


def parse_clock(value: str) -> time | None:
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        return None


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def block_duration(start_time: str, end_time: str) -> int:
    """Minutes between two ``HH:MM`` clock times (default two hours)."""
    start, end = parse_clock(start_time), parse_clock(end_time)
    if start is None or end is None:
        return DEFAULT_BLOCK_MINUTES
    return _minutes(end) - _minutes(start)


def clock_ranges_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    s1, e1, s2, e2 = (parse_clock(v) for v in (start1, end1, start2, end2))
    if None in (s1, e1, s2, e2):
        return False
    return s1 < e2 and s2 < e1


def next_occurrence(day_of_week: str, clock: str, now: datetime | None = None) -> datetime:
    """The next datetime falling on ``day_of_week`` at ``clock``.

    A slot later today is returned as is; one that already passed today moves
    exactly one week ahead.
    """
    now = now or datetime.now()
    target_clock = parse_clock(clock)
    if target_clock is None or day_of_week not in WEEKDAYS:
        return now

    days_until = (WEEKDAYS.index(day_of_week) - now.weekday()) % 7
    candidate = datetime.combine(now.date() + timedelta(days=days_until), target_clock, now.tzinfo)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


# ── Analysis helpers (pure) ─────────────────────────────────────────


def deep_work_stats(pattern: MeetingPattern) -> DurationStats:
    durations = [block_duration(b.start_time, b.end_time) for b in pattern.productivity.focus_blocks]
    if not durations:
        return DurationStats(average_scheduled=120, average_actual=150, variance=30.0)

    average = sum(durations) // len(durations)
    variance = sum((d - average) ** 2 for d in durations) / len(durations)
    return DurationStats(average_scheduled=average, average_actual=average, variance=variance)


def peak_productivity_blocks(pattern: MeetingPattern, limit: int = 3) -> list[TimeBlock]:
    if not pattern.productivity.peak_focus:
        return list(DEFAULT_PEAK_BLOCKS)
    return sorted(pattern.productivity.peak_focus, key=lambda b: b.score, reverse=True)[:limit]


def should_protect(block: TimeBlock, settings: FocusTimeSettings) -> bool:
    if settings.protected_days and block.day_of_week not in settings.protected_days:
        return False
    return not any(
        clock_ranges_overlap(block.start_time, block.end_time, excluded.start_time, excluded.end_time)
        for excluded in settings.excluded_time_ranges
    )


def recommend_blocks(pattern: MeetingPattern, settings: FocusTimeSettings) -> list[FocusTimeBlock]:
    """Pick the best-scoring eligible blocks until the weekly target is met."""
    candidates = []
    for peak in pattern.productivity.peak_focus:
        if not should_protect(peak, settings):
            continue

        start_clock = parse_clock(peak.start_time)
        if start_clock is None:
            logger.debug("Skipping focus block with unparseable start %r", peak.start_time)
            continue

        duration = block_duration(peak.start_time, peak.end_time)
        if duration < settings.min_block_duration:
            continue

        end_time = peak.end_time
        if settings.max_block_duration > 0 and duration > settings.max_block_duration:
            duration = settings.max_block_duration
            start = datetime.combine(datetime.min, start_clock)
            end_time = (start + timedelta(minutes=duration)).strftime("%H:%M")

        candidates.append(
            FocusTimeBlock(
                day_of_week=peak.day_of_week,
                start_time=peak.start_time,
                end_time=end_time,
                duration=duration,
                score=peak.score,
                reason=f"Peak productivity time ({peak.score:.0f}% score)",
            )
        )

    candidates.sort(key=lambda b: b.score, reverse=True)

    target_minutes = int(settings.target_hours_per_week * 60)
    selected, total = [], 0
    for block in candidates:
        if total >= target_minutes:
            break
        selected.append(block)
        total += block.duration
    return selected


def _focus_insights(
    pattern: MeetingPattern,
    peaks: list[TimeBlock],
    blocks: list[FocusTimeBlock],
    settings: FocusTimeSettings,
) -> list[str]:
    insights = []
    if pattern.productivity.peak_focus and peaks:
        top = peaks[0]
        insights.append(
            f"Your peak productivity is {top.day_of_week} at {top.start_time}-{top.end_time} "
            f"({top.score:.0f}% focus score)"
        )

    busy_days = sorted(
        day for day, density in pattern.productivity.meeting_density.items()
        if density > HIGH_DENSITY_MEETINGS_PER_DAY
    )
    if busy_days:
        insights.append(
            f"High meeting density on {', '.join(busy_days)} - consider protecting more focus time on these days"
        )

    total_hours = sum(block.duration for block in blocks) / 60
    if total_hours > 0:
        insights.append(
            f"AI recommends {total_hours:.1f} hours/week of protected focus time across {len(blocks)} blocks"
        )
    if total_hours < settings.target_hours_per_week:
        insights.append(
            f"Need {settings.target_hours_per_week - total_hours:.1f} more hours/week "
            f"to reach your target of {settings.target_hours_per_week:.1f} hours"
        )
    return insights


def analysis_confidence(pattern: MeetingPattern) -> float:
    confidence = 50.0
    if pattern.productivity.peak_focus:
        confidence += 20.0
    if pattern.productivity.meeting_density:
        confidence += 15.0
    if len(pattern.participants) > 10:
        confidence += 15.0
    return min(100.0, confidence)


def overlaps_focus_block(event: Event, blocks: list[FocusTimeBlock]) -> bool:
    start, end = event.when.start(), event.when.end()
    day = weekday_name(start)
    for block in blocks:
        if block.day_of_week != day:
            continue
        if clock_ranges_overlap(
            start.strftime("%H:%M"), end.strftime("%H:%M"), block.start_time, block.end_time
        ):
            return True
    return False


def duration_confidence(stats: DurationStats) -> float:
    if stats.variance < 10:
        return 90.0
    if stats.variance < 20:
        return 75.0
    if stats.variance < 30:
        return 60.0
    return 50.0


# ── Optimizer ───────────────────────────────────────────────────────


class FocusOptimizer:
    def __init__(self, calendar: CalendarClient, pattern_learner: PatternLearner | None = None):
        self._calendar = calendar
        self._learner = pattern_learner or PatternLearner(calendar)

    def analyze_focus_time_patterns(
        self, grant_id: str, settings: FocusTimeSettings | None = None
    ) -> FocusTimeAnalysis:
        settings = settings or FocusTimeSettings()
        analysis = self._learner.analyze_history(grant_id, HISTORY_DAYS)

        if analysis.patterns is None:
            return FocusTimeAnalysis(
                user_email=grant_id,
                analyzed_period=analysis.period,
                generated_at=datetime.now(),
                target_protection=settings.target_hours_per_week,
                insights=["Not enough calendar history to analyze patterns"],
                confidence=0,
            )

        pattern = analysis.patterns
        density = pattern.productivity.meeting_density
        peaks = peak_productivity_blocks(pattern)
        blocks = recommend_blocks(pattern, settings)

        return FocusTimeAnalysis(
            user_email=grant_id,
            analyzed_period=analysis.period,
            generated_at=datetime.now(),
            peak_productivity=peaks,
            deep_work_sessions=deep_work_stats(pattern),
            most_productive_day=min(density, key=density.get) if density else "Wednesday",
            least_productive_day=max(density, key=density.get) if density else "Monday",
            recommended_blocks=blocks,
            current_protection=0.0,
            target_protection=settings.target_hours_per_week,
            insights=_focus_insights(pattern, peaks, blocks, settings),
            confidence=analysis_confidence(pattern),
        )

    def create_protected_blocks(
        self,
        grant_id: str,
        blocks: list[FocusTimeBlock],
        settings: FocusTimeSettings | None = None,
        *,
        now: datetime | None = None,
    ) -> list[ProtectedBlock]:
        """Book each block's next occurrence as a busy "Focus Time" event."""
        settings = settings or FocusTimeSettings()
        calendars = self._calendar.get_calendars(grant_id)
        if not calendars:
            raise InsufficientDataError("no calendars found")
        calendar = next((c for c in calendars if c.is_primary), calendars[0])

        protected = []
        for block in blocks:
            start = next_occurrence(block.day_of_week, block.start_time, now)
            end = start + timedelta(minutes=block.duration)
            event = self._calendar.create_event(
                grant_id,
                calendar.id,
                CreateEventRequest(
                    title="Focus Time",
                    description=block.reason,
                    when=EventWhen(start_time=int(start.timestamp()), end_time=int(end.timestamp())),
                    busy=True,
                ),
            )
            created = datetime.now()
            protected.append(
                ProtectedBlock(
                    id=f"focus_{uuid.uuid4().hex}",
                    calendar_event_id=event.id,
                    start_time=start,
                    end_time=end,
                    created_at=created,
                    updated_at=created,
                    reason=block.reason,
                    duration=block.duration,
                    allow_override=settings.allow_urgent_override,
                    protection_rules=FocusProtectionRule(
                        auto_decline=settings.auto_decline,
                        allow_critical_meeting=settings.allow_urgent_override,
                        require_approval=settings.require_approval,
                    ),
                )
            )
            logger.info("Protected %s %s-%s as event %s", block.day_of_week, block.start_time, block.end_time, event.id)
        return protected

    def adapt_schedule(
        self,
        grant_id: str,
        trigger: AdaptiveTrigger,
        settings: FocusTimeSettings | None = None,
    ) -> AdaptiveScheduleChange:
        """Propose schedule changes for the next two weeks in response to ``trigger``."""
        start = datetime.now()
        events = self._learner.fetch_events(grant_id, start, start + timedelta(days=LOOKAHEAD_DAYS))

        modifications = self._detect_changes(grant_id, events, trigger, settings)
        impact = self._estimate_impact(modifications, events)

        return AdaptiveScheduleChange(
            id=f"adapt_{uuid.uuid4().hex}",
            timestamp=datetime.now(),
            trigger=trigger,
            change_type=self._change_type(modifications),
            affected_events=[m.event_id for m in modifications if m.event_id],
            changes=modifications,
            reason=self._explain(trigger, impact),
            impact=impact,
            confidence=self._adaptive_confidence(modifications),
        )

    def _detect_changes(
        self,
        grant_id: str,
        events: list[Event],
        trigger: AdaptiveTrigger,
        settings: FocusTimeSettings | None,
    ) -> list[ScheduleModification]:
        if trigger == AdaptiveTrigger.MEETING_OVERLOAD:
            return [
                ScheduleModification(
                    event_id=event.id,
                    action="reschedule",
                    old_start_time=event.when.start(),
                    old_duration=event.duration_minutes,
                    description="Move low-priority meeting to reduce meeting overload",
                )
                for event in events
                if len(event.participants) <= 2
            ]

        if trigger == AdaptiveTrigger.FOCUS_TIME_AT_RISK:
            focus_blocks = self.analyze_focus_time_patterns(grant_id, settings).recommended_blocks
            return [
                ScheduleModification(
                    event_id=event.id,
                    action="reschedule",
                    old_start_time=event.when.start(),
                    old_duration=event.duration_minutes,
                    description="Move meeting to protect focus time",
                )
                for event in events
                if not event.read_only and overlaps_focus_block(event, focus_blocks)
            ]

        if trigger == AdaptiveTrigger.DEADLINE_CHANGE:
            return [
                ScheduleModification(
                    action="protect",
                    description="Add additional focus blocks due to deadline pressure",
                )
            ]

        return []

    @staticmethod
    def _change_type(modifications: list[ScheduleModification]) -> AdaptiveChangeType:
        by_action = {
            "reschedule": AdaptiveChangeType.RESCHEDULE_MEETING,
            "shorten": AdaptiveChangeType.SHORTEN_MEETING,
            "decline": AdaptiveChangeType.DECLINE_MEETING,
        }
        for modification in modifications:
            if modification.action in by_action:
                return by_action[modification.action]
        return AdaptiveChangeType.PROTECT_BLOCK

    @staticmethod
    def _estimate_impact(modifications: list[ScheduleModification], events: list[Event]) -> AdaptiveImpact:
        impact = AdaptiveImpact(focus_time_gained=2.0, predicted_benefit="Improved focus time availability")
        for modification in modifications:
            if modification.action == "reschedule":
                impact.meetings_rescheduled += 1
            elif modification.action == "decline":
                impact.meetings_declined += 1
            elif modification.action == "shorten":
                impact.duration_saved += max(0, modification.old_duration - modification.new_duration)

        affected = {m.event_id for m in modifications if m.event_id}
        impact.participants_affected = len(
            {p.email for event in events if event.id in affected for p in event.participants if p.email}
        )
        return impact

    @staticmethod
    def _explain(trigger: AdaptiveTrigger, impact: AdaptiveImpact) -> str:
        if trigger == AdaptiveTrigger.MEETING_OVERLOAD:
            return f"Meeting load increased: reducing by rescheduling {impact.meetings_rescheduled} meetings"
        if trigger == AdaptiveTrigger.FOCUS_TIME_AT_RISK:
            return f"Focus time at risk: protecting {impact.focus_time_gained:.1f} additional hours"
        if trigger == AdaptiveTrigger.DEADLINE_CHANGE:
            return "Urgent deadline detected: increasing focus time priority"
        return "Schedule optimization recommended"

    @staticmethod
    def _adaptive_confidence(modifications: list[ScheduleModification]) -> float:
        if not modifications:
            return 50.0
        return min(95.0, 60.0 + min(len(modifications), 10) * 3.0)

    def optimize_meeting_duration(
        self, grant_id: str, calendar_id: str, event_id: str
    ) -> DurationOptimization:
        """Compare one meeting's length with the historical average."""
        event = self._calendar.get_event(grant_id, calendar_id, event_id)
        analysis = self._learner.analyze_history(grant_id, HISTORY_DAYS)
        if analysis.patterns is None:
            raise InsufficientDataError("not enough historical data for duration optimization")

        history = analysis.patterns.duration.overall
        current = event.duration_minutes
        recommended = history.average_actual
        if current == 60 and history.average_actual < 50:
            recommended = 45
        elif current == 30 and history.average_actual < 25:
            recommended = 25

        savings = max(0, current - recommended)
        if savings:
            recommendation = f"Reduce from {current} to {recommended} minutes to save {savings} minutes"
        else:
            recommendation = f"Keep the current {current}-minute duration"

        return DurationOptimization(
            event_id=event_id,
            current_duration=current,
            recommended_duration=recommended,
            historical_data=history,
            time_savings=savings,
            confidence=duration_confidence(history),
            reason=f"Historical data shows meetings average {history.average_actual} minutes",
            recommendation=recommendation,
        )
