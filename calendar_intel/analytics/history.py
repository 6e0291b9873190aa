"""Statistical model of a user's meeting history.

Where :mod:`calendar_intel.analytics.patterns` produces the user-facing
pattern lists, this module keeps the raw rates and densities the focus-time
optimizer works from: acceptance by weekday and hour, duration statistics,
timezone distribution, density-scored focus blocks and per-participant habits.
All functions are pure over the event list.
"""

from __future__ import annotations

import statistics
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from calendar_intel.analytics.patterns import WEEKDAYS, weekday_name
from calendar_intel.models import Event

WORKDAYS = WEEKDAYS[:5]
CROSS_TIMEZONE_TIMES = ["14:00", "15:00", "16:00"]
WEEKS_OF_HISTORY = 12.0
MIN_FOCUS_SCORE = 50.0


class DateRange(BaseModel):
    start: datetime
    end: datetime


class DurationStats(BaseModel):
    average_scheduled: int = 0
    average_actual: int = 0
    variance: float = 0.0  # standard deviation, minutes
    overrun_rate: float = 0.0


class TimeBlock(BaseModel):
    day_of_week: str
    start_time: str
    end_time: str
    score: float


class AcceptancePatterns(BaseModel):
    by_day_of_week: dict[str, float] = Field(default_factory=dict)
    by_time_of_day: dict[str, float] = Field(default_factory=dict)
    by_day_and_time: dict[str, float] = Field(default_factory=dict)
    overall: float = 0.0


class DurationPatterns(BaseModel):
    by_participant: dict[str, DurationStats] = Field(default_factory=dict)
    by_type: dict[str, DurationStats] = Field(default_factory=dict)
    overall: DurationStats = Field(default_factory=DurationStats)


class TimezonePatterns(BaseModel):
    preferred_times: dict[str, list[str]] = Field(default_factory=dict)
    distribution: dict[str, int] = Field(default_factory=dict)
    cross_tz_times: list[str] = Field(default_factory=lambda: list(CROSS_TIMEZONE_TIMES))


class ProductivityPatterns(BaseModel):
    peak_focus: list[TimeBlock] = Field(default_factory=list)
    low_energy: list[TimeBlock] = Field(default_factory=list)
    meeting_density: dict[str, float] = Field(default_factory=dict)
    focus_blocks: list[TimeBlock] = Field(default_factory=list)


class ParticipantPattern(BaseModel):
    email: str
    meeting_count: int
    acceptance_rate: float
    preferred_days: list[str]
    preferred_times: list[str]
    average_duration: int
    timezone: str = ""


class MeetingPattern(BaseModel):
    user_email: str = ""
    analyzed_period: DateRange
    last_updated: datetime
    acceptance: AcceptancePatterns
    duration: DurationPatterns
    timezone: TimezonePatterns
    productivity: ProductivityPatterns
    participants: dict[str, ParticipantPattern] = Field(default_factory=dict)


class Recommendation(BaseModel):
    type: str  # focus_time | decline_pattern | duration_adjustment
    priority: str
    title: str
    description: str
    confidence: float  # 0-100
    action: str
    impact: str


class MeetingAnalysis(BaseModel):
    period: DateRange
    total_meetings: int
    patterns: MeetingPattern | None = None
    recommendations: list[Recommendation] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


def _hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


def _duration_stats(minutes: list[int]) -> DurationStats:
    if not minutes:
        return DurationStats()
    average = sum(minutes) // len(minutes)
    return DurationStats(
        average_scheduled=average,
        # No completion-time data: actual duration is the scheduled duration.
        average_actual=average,
        variance=statistics.pstdev(minutes),
        overrun_rate=0.0,
    )


def _top(counts: Counter[str], n: int = 2) -> list[str]:
    return [key for key, _ in counts.most_common(n)]


# ── Pattern families ────────────────────────────────────────────────


def learn_acceptance(events: Sequence[Event]) -> AcceptancePatterns:
    """Share of confirmed events per weekday, hour and weekday-hour."""
    totals: dict[str, Counter[str]] = {"day": Counter(), "hour": Counter(), "both": Counter()}
    confirmed: dict[str, Counter[str]] = {"day": Counter(), "hour": Counter(), "both": Counter()}
    accepted = 0

    for event in events:
        start = event.when.start()
        day, hour = weekday_name(start), _hour_label(start.hour)
        keys = {"day": day, "hour": hour, "both": f"{day}-{hour}"}
        is_confirmed = event.status == "confirmed"
        accepted += is_confirmed
        for family, key in keys.items():
            totals[family][key] += 1
            if is_confirmed:
                confirmed[family][key] += 1

    def rates(family: str) -> dict[str, float]:
        return {key: confirmed[family][key] / count for key, count in totals[family].items()}

    return AcceptancePatterns(
        by_day_of_week=rates("day"),
        by_time_of_day=rates("hour"),
        by_day_and_time=rates("both"),
        overall=accepted / len(events) if events else 0.0,
    )


def learn_durations(events: Sequence[Event]) -> DurationPatterns:
    overall: list[int] = []
    by_participant: dict[str, list[int]] = defaultdict(list)
    for event in events:
        minutes = event.duration_minutes
        overall.append(minutes)
        for participant in event.participants:
            if participant.email:
                by_participant[participant.email].append(minutes)

    return DurationPatterns(
        by_participant={email: _duration_stats(m) for email, m in by_participant.items()},
        overall=_duration_stats(overall),
    )


def learn_timezones(events: Sequence[Event]) -> TimezonePatterns:
    return TimezonePatterns(
        distribution=dict(Counter(event.when.start_timezone or "UTC" for event in events)),
    )


def learn_productivity(
    events: Sequence[Event],
    working_hours: tuple[int, int] = (9, 17),
) -> ProductivityPatterns:
    """Score every working hour of the week by how meeting-free it usually is.

    An hour as busy as the average occupied hour scores 50; an empty hour
    scores 100.  Hours scoring at least ``MIN_FOCUS_SCORE`` start a two-hour
    candidate focus block.
    """
    by_day_hour: Counter[tuple[str, int]] = Counter()
    by_day: Counter[str] = Counter()
    for event in events:
        start = event.when.start()
        by_day_hour[(weekday_name(start), start.hour)] += 1
        by_day[weekday_name(start)] += 1

    average_density = sum(by_day_hour.values()) / len(by_day_hour) if by_day_hour else 0.0
    start_hour, end_hour = working_hours

    peak_focus: list[TimeBlock] = []
    for day in WORKDAYS:
        for hour in range(start_hour, end_hour):
            score = 100.0
            if average_density > 0:
                ratio = by_day_hour[(day, hour)] / average_density
                score = min(100.0, max(0.0, 100.0 - ratio * 50.0))
            if score >= MIN_FOCUS_SCORE:
                peak_focus.append(
                    TimeBlock(
                        day_of_week=day,
                        start_time=_hour_label(hour),
                        end_time=_hour_label(hour + 2),
                        score=score,
                    )
                )

    best_by_day: dict[str, TimeBlock] = {}
    for block in peak_focus:
        current = best_by_day.get(block.day_of_week)
        if current is None or block.score > current.score:
            best_by_day[block.day_of_week] = block

    return ProductivityPatterns(
        peak_focus=peak_focus,
        meeting_density={day: count / WEEKS_OF_HISTORY for day, count in by_day.items()},
        focus_blocks=[best_by_day[day] for day in WORKDAYS if day in best_by_day],
    )


def learn_participants(events: Sequence[Event]) -> dict[str, ParticipantPattern]:
    meetings: Counter[str] = Counter()
    confirmed: Counter[str] = Counter()
    minutes: Counter[str] = Counter()
    days: dict[str, Counter[str]] = defaultdict(Counter)
    hours: dict[str, Counter[str]] = defaultdict(Counter)
    timezones: dict[str, str] = {}

    for event in events:
        start = event.when.start()
        for participant in event.participants:
            email = participant.email
            if not email:
                continue
            meetings[email] += 1
            confirmed[email] += event.status == "confirmed"
            minutes[email] += event.duration_minutes
            days[email][weekday_name(start)] += 1
            hours[email][_hour_label(start.hour)] += 1
            if event.when.start_timezone:
                timezones[email] = event.when.start_timezone

    return {
        email: ParticipantPattern(
            email=email,
            meeting_count=count,
            acceptance_rate=confirmed[email] / count,
            preferred_days=_top(days[email]),
            preferred_times=_top(hours[email]),
            average_duration=minutes[email] // count,
            timezone=timezones.get(email, ""),
        )
        for email, count in meetings.items()
    }


def learn_meeting_pattern(
    events: Sequence[Event],
    start: datetime,
    end: datetime,
    *,
    working_hours: tuple[int, int] = (9, 17),
) -> MeetingPattern:
    return MeetingPattern(
        analyzed_period=DateRange(start=start, end=end),
        last_updated=datetime.now(),
        acceptance=learn_acceptance(events),
        duration=learn_durations(events),
        timezone=learn_timezones(events),
        productivity=learn_productivity(events, working_hours),
        participants=learn_participants(events),
    )


# ── Recommendations and insights ────────────────────────────────────


def history_recommendations(pattern: MeetingPattern) -> list[Recommendation]:
    recommendations = []

    for block in pattern.productivity.focus_blocks:
        if block.score < 70:
            continue
        recommendations.append(
            Recommendation(
                type="focus_time",
                priority="high" if block.score >= 85 else "medium",
                title=f"Block {block.day_of_week} {block.start_time}-{block.end_time} for focus time",
                description=(
                    f"Historical data shows you have few meetings during this time "
                    f"(score: {block.score:.0f}/100), making it ideal for deep work."
                ),
                confidence=block.score,
                action="Create recurring focus time block",
                impact="Increase productivity by 20-30%",
            )
        )

    for day, rate in pattern.acceptance.by_day_of_week.items():
        if rate >= 0.5:
            continue
        recommendations.append(
            Recommendation(
                type="decline_pattern",
                priority="medium",
                title=f"Consider avoiding {day} meetings",
                description=(
                    f"You accept only {rate * 100:.0f}% of meetings on {day}s. "
                    "Consider blocking this time or being more selective."
                ),
                confidence=(1 - rate) * 100,
                action=f"Auto-suggest alternatives to {day} meetings",
                impact="Reduce low-productivity meetings",
            )
        )

    for participant, stats in pattern.duration.by_participant.items():
        diff = stats.average_actual - stats.average_scheduled
        if stats.average_scheduled > 0 and diff > 5:
            recommendations.append(
                Recommendation(
                    type="duration_adjustment",
                    priority="low",
                    title=f"Adjust meeting length with {participant}",
                    description=(
                        f"Meetings with {participant} typically run {diff} minutes over. "
                        f"Consider scheduling {stats.average_actual} minutes instead of "
                        f"{stats.average_scheduled}."
                    ),
                    confidence=70.0,
                    action=f"Suggest {stats.average_actual}-minute meetings with {participant}",
                    impact="Better time estimates and reduced overruns",
                )
            )

    return recommendations


def history_insights(pattern: MeetingPattern, total_events: int, days: int) -> list[str]:
    insights = []

    by_day = pattern.acceptance.by_day_of_week
    if by_day:
        best_day = max(by_day, key=by_day.get)
        if by_day[best_day] > 0:
            insights.append(
                f"You accept {by_day[best_day] * 100:.0f}% of meetings on {best_day}s (your best day)"
            )

    if pattern.productivity.focus_blocks:
        block = pattern.productivity.focus_blocks[0]
        insights.append(
            f"Peak focus time: {block.day_of_week} {block.start_time}-{block.end_time} (fewest meetings)"
        )

    distribution = pattern.timezone.distribution
    if distribution:
        tz = max(distribution, key=distribution.get)
        insights.append(f"Most meetings in {tz} timezone ({distribution[tz]} meetings)")

    insights.append(f"Analyzed {total_events} meetings over {days} days")
    return insights
