"""Scheduling-pattern families derived from a list of calendar events.

Each ``analyze_*`` function is a pure function of the events it is given:
no shared state, no I/O, safe to run in any order.  Buckets with fewer than
``MIN_SAMPLES`` events are never reported.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from calendar_intel.models import Event

MIN_SAMPLES = 3
FULL_CONFIDENCE_SAMPLES = 20

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# Ordered: the first matching keyword set wins.
MEETING_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("1-on-1", ("1:1", "1-on-1", "one-on-one")),
    ("Standup", ("standup", "daily", "scrum")),
    ("Review", ("review", "retrospective", "retro")),
    ("Planning", ("planning", "plan")),
    ("Interview", ("interview", "candidate")),
    ("Client call", ("client", "customer")),
]
DEFAULT_MEETING_TYPE = "General meeting"

NO_RECOMMENDATIONS = "No specific recommendations available"

_NUMBERING_RE = re.compile(r"^\d+\.\s*")


# ── Result types ────────────────────────────────────────────────────


class AnalysisPeriod(BaseModel):
    start_date: datetime
    end_date: datetime
    days: int


class AcceptancePattern(BaseModel):
    time_slot: str
    accept_rate: float = Field(ge=0, le=1)
    event_count: int
    description: str
    confidence: float = Field(ge=0, le=1)


class DurationPattern(BaseModel):
    meeting_type: str
    scheduled_duration: int = Field(ge=0)
    actual_duration: int = Field(ge=0)
    variance: int = Field(ge=0)
    event_count: int
    description: str


class TimezonePattern(BaseModel):
    timezone: str
    event_count: int
    percentage: float
    preferred_time: str = "Varies"
    description: str


class ProductivityInsight(BaseModel):
    insight_type: str
    time_slot: str
    score: int = Field(ge=0, le=100)
    description: str
    based_on: list[str] = Field(default_factory=list)


class SchedulingPatterns(BaseModel):
    user_id: str
    analysis_period: AnalysisPeriod
    acceptance_patterns: list[AcceptancePattern] = Field(default_factory=list)
    duration_patterns: list[DurationPattern] = Field(default_factory=list)
    timezone_patterns: list[TimezonePattern] = Field(default_factory=list)
    productivity_insights: list[ProductivityInsight] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    total_events_analyzed: int
    generated_at: datetime


# ── Helpers ─────────────────────────────────────────────────────────


def confidence_for(sample_count: int) -> float:
    return min(1.0, sample_count / FULL_CONFIDENCE_SAMPLES)


def weekday_name(moment: datetime) -> str:
    return WEEKDAYS[moment.weekday()]


def time_band(hour: int) -> str:
    """Map an hour of day onto one of the five daytime bands."""
    if 9 <= hour < 11:
        return "9-11 AM"
    if 11 <= hour < 13:
        return "11 AM-1 PM"
    if 13 <= hour < 15:
        return "1-3 PM"
    if 15 <= hour < 17:
        return "3-5 PM"
    return "Outside hours"


def time_slot_label(moment: datetime) -> str:
    return f"{weekday_name(moment)} {time_band(moment.hour)}"


def is_accepted(event: Event) -> bool:
    return event.status == "confirmed" or event.busy


def infer_meeting_type(title: str) -> str:
    lowered = title.lower()
    for meeting_type, keywords in MEETING_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return meeting_type
    return DEFAULT_MEETING_TYPE


def analysis_period(events: Sequence[Event]) -> AnalysisPeriod:
    start = min(event.when.start_time for event in events)
    end = max(event.when.end_time for event in events)
    return AnalysisPeriod(
        start_date=datetime.fromtimestamp(start),
        end_date=datetime.fromtimestamp(end),
        days=max(0, (end - start) // 86400),
    )


# ── Pattern families ────────────────────────────────────────────────


def analyze_acceptance_patterns(events: Sequence[Event]) -> list[AcceptancePattern]:
    """Acceptance rate per (weekday, time band), most accepted first."""
    totals: Counter[str] = Counter()
    accepted: Counter[str] = Counter()
    for event in events:
        slot = time_slot_label(event.when.start())
        totals[slot] += 1
        if is_accepted(event):
            accepted[slot] += 1

    patterns = []
    for slot, total in totals.items():
        if total < MIN_SAMPLES:
            continue
        rate = accepted[slot] / total
        if rate > 0.8:
            description = "You prefer meetings during this time"
        elif rate < 0.4:
            description = "You tend to avoid meetings during this time"
        else:
            description = "Moderate acceptance rate"
        patterns.append(
            AcceptancePattern(
                time_slot=slot,
                accept_rate=rate,
                event_count=total,
                description=description,
                confidence=confidence_for(total),
            )
        )

    patterns.sort(key=lambda p: p.accept_rate, reverse=True)
    return patterns


def analyze_duration_patterns(events: Sequence[Event]) -> list[DurationPattern]:
    """Average scheduled duration per inferred meeting type.

    No completion-time data exists, so the actual duration equals the
    scheduled one and the variance is always zero.
    """
    durations: dict[str, list[int]] = defaultdict(list)
    for event in events:
        durations[infer_meeting_type(event.title)].append(event.duration_minutes)

    patterns = []
    for meeting_type, minutes in durations.items():
        if len(minutes) < MIN_SAMPLES:
            continue
        scheduled = sum(minutes) // len(minutes)
        actual = scheduled
        patterns.append(
            DurationPattern(
                meeting_type=meeting_type,
                scheduled_duration=scheduled,
                actual_duration=actual,
                variance=max(0, actual - scheduled),
                event_count=len(minutes),
                description=f"Average {scheduled}-minute {meeting_type} meetings",
            )
        )
    return patterns


def analyze_timezone_patterns(events: Sequence[Event]) -> list[TimezonePattern]:
    """Share of events per start timezone, busiest first."""
    counts: Counter[str] = Counter(event.when.start_timezone or "UTC" for event in events)
    total = len(events)

    patterns = [
        TimezonePattern(
            timezone=tz,
            event_count=count,
            percentage=count / total,
            description=f"{int(count / total * 100)}% of meetings in this timezone",
        )
        for tz, count in counts.items()
    ]
    patterns.sort(key=lambda p: p.event_count, reverse=True)
    return patterns


def analyze_productivity_patterns(events: Sequence[Event]) -> list[ProductivityInsight]:
    """Flag the busiest and the quietest weekday.

    Ties go to whichever weekday is counted first; callers must not rely on a
    particular winner.
    """
    by_day: Counter[str] = Counter(weekday_name(event.when.start()) for event in events)
    if not by_day:
        return []

    busiest_day, busiest = None, -1
    quietest_day, quietest = None, None
    for day, count in by_day.items():
        if count > busiest:
            busiest_day, busiest = day, count
        if quietest is None or count < quietest:
            quietest_day, quietest = day, count

    return [
        ProductivityInsight(
            insight_type="high_meeting_density",
            time_slot=busiest_day,
            score=30,
            description=f"{busiest_day} has the most meetings ({busiest}) - may impact focus time",
            based_on=["Meeting count by day"],
        ),
        ProductivityInsight(
            insight_type="low_meeting_density",
            time_slot=quietest_day,
            score=90,
            description=f"{quietest_day} has the fewest meetings ({quietest}) - good for deep work",
            based_on=["Meeting count by day"],
        ),
    ]


# ── Recommendation synthesis helpers ────────────────────────────────


def build_pattern_digest(patterns: SchedulingPatterns) -> str:
    """Bounded text summary of the patterns, sent to the LLM for synthesis."""
    lines = [f"Calendar Analysis ({patterns.total_events_analyzed} events analyzed):", ""]

    if patterns.acceptance_patterns:
        lines.append("Meeting Acceptance Patterns:")
        for p in patterns.acceptance_patterns[:5]:
            lines.append(
                f"- {p.time_slot}: {p.accept_rate * 100:.0f}% acceptance "
                f"({p.event_count} events) - {p.description}"
            )
        lines.append("")

    if patterns.duration_patterns:
        lines.append("Meeting Duration Patterns:")
        for p in patterns.duration_patterns:
            lines.append(f"- {p.meeting_type}: avg {p.scheduled_duration} minutes ({p.event_count} events)")
        lines.append("")

    if patterns.timezone_patterns:
        lines.append("Timezone Distribution:")
        for p in patterns.timezone_patterns[:3]:
            lines.append(f"- {p.timezone}: {p.percentage * 100:.0f}% of meetings ({p.event_count} events)")
        lines.append("")

    if patterns.productivity_insights:
        lines.append("Productivity Insights:")
        for insight in patterns.productivity_insights:
            lines.append(f"- {insight.description}")
        lines.append("")

    return "\n".join(lines)


def parse_recommendations(text: str) -> list[str]:
    """Split an LLM answer into one recommendation per meaningful line."""
    recommendations = []
    for line in text.splitlines():
        line = line.strip()
        if len(line) <= 10:
            continue
        line = _NUMBERING_RE.sub("", line, count=1)
        if line:
            recommendations.append(line)
    return recommendations or [NO_RECOMMENDATIONS]
