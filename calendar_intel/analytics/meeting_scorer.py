"""Score a proposed meeting time against the meeting-history model.

Five weighted factors make up the score: day acceptance (25), hour
acceptance (25), productivity (20), participant habits (15) and timezone
fairness (15).  Factors with no history are left out of both the total and
the maximum, so the final 0-100 score is relative to what is known.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from calendar_intel.analytics.history import MeetingPattern
from calendar_intel.analytics.patterns import WEEKDAYS, weekday_name

DAY_WEIGHT = 25
HOUR_WEIGHT = 25
PRODUCTIVITY_WEIGHT = 20
PARTICIPANT_WEIGHT = 15
TIMEZONE_WEIGHT = 15

NEUTRAL_SCORE = 50
NEUTRAL_PARTICIPANT_SCORE = 8
ALTERNATIVES_BELOW = 70
ALTERNATIVE_HOURS = range(9, 18)


class ScoreFactor(BaseModel):
    name: str
    impact: int  # relative to an average contribution
    description: str


class MeetingScore(BaseModel):
    score: int = Field(ge=0, le=100)
    confidence: float = 0.0
    success_rate: float = 0.0
    factors: list[ScoreFactor] = Field(default_factory=list)
    recommendation: str
    alternative_times: list[datetime] = Field(default_factory=list)


def parse_hour(value: str) -> int:
    """Hour of an ``HH:MM`` label, 0 when it cannot be read."""
    hour, sep, _ = value.partition(":")
    if not sep:
        return 0
    try:
        return int(hour)
    except ValueError:
        return 0


def days_until(moment: datetime, day_of_week: str) -> int:
    """Days from ``moment`` to the next ``day_of_week``; the same weekday is a week away."""
    target = WEEKDAYS.index(day_of_week) if day_of_week in WEEKDAYS else 0
    return (target - moment.weekday()) % 7 or 7


def best_rate(rates: dict[str, float]) -> str:
    """Key with the highest positive rate; ties keep the first seen."""
    best, best_value = "", 0.0
    for key, rate in rates.items():
        if rate > best_value:
            best, best_value = key, rate
    return best


def _hour_label(moment: datetime) -> str:
    return f"{moment.hour:02d}:00"


class MeetingScorer:
    def __init__(self, patterns: MeetingPattern | None):
        self.patterns = patterns

    def score_meeting_time(self, proposed: datetime, participants: Sequence[str] = ()) -> MeetingScore:
        if self.patterns is None:
            return MeetingScore(
                score=NEUTRAL_SCORE,
                recommendation="No historical data available for scoring",
            )

        acceptance = self.patterns.acceptance
        factors: list[ScoreFactor] = []
        total = maximum = 0

        day = weekday_name(proposed)
        if day in acceptance.by_day_of_week:
            rate = acceptance.by_day_of_week[day]
            impact = int(rate * DAY_WEIGHT)
            total += impact
            maximum += DAY_WEIGHT
            factors.append(ScoreFactor(
                name="Day Preference",
                impact=impact - 13,
                description=f"{rate * 100:.0f}% acceptance rate on {day}s",
            ))

        hour = _hour_label(proposed)
        if hour in acceptance.by_time_of_day:
            rate = acceptance.by_time_of_day[hour]
            impact = int(rate * HOUR_WEIGHT)
            total += impact
            maximum += HOUR_WEIGHT
            factors.append(ScoreFactor(
                name="Time Preference",
                impact=impact - 13,
                description=f"{rate * 100:.0f}% acceptance rate at {hour}",
            ))

        productivity = self._productivity_score(proposed)
        total += productivity
        maximum += PRODUCTIVITY_WEIGHT
        factors.append(ScoreFactor(
            name="Productivity",
            impact=productivity - 10,
            description=self._productivity_description(proposed),
        ))

        participant = self._participant_score(participants, proposed)
        total += participant
        maximum += PARTICIPANT_WEIGHT
        if participant > 0:
            factors.append(ScoreFactor(
                name="Participant Match",
                impact=participant - 8,
                description="Based on historical meetings with these participants",
            ))

        # No per-participant offset data: every slot counts as fair.
        total += TIMEZONE_WEIGHT
        maximum += TIMEZONE_WEIGHT
        factors.append(ScoreFactor(name="Timezone", impact=0, description="Time works well for all timezones"))

        score = total * 100 // maximum
        return MeetingScore(
            score=score,
            confidence=self._confidence(),
            success_rate=acceptance.by_day_of_week.get(day, acceptance.overall),
            factors=factors,
            recommendation=self._recommendation(score, factors),
            alternative_times=self._alternatives(proposed) if score < ALTERNATIVES_BELOW else [],
        )

    # ── Factors ──────────────────────────────────────────────────────

    def _productivity_score(self, moment: datetime) -> int:
        productivity = self.patterns.productivity
        day = weekday_name(moment)
        for block in productivity.peak_focus:
            if block.day_of_week == day and parse_hour(block.start_time) == moment.hour:
                return int(block.score / 5)

        if day in productivity.meeting_density:
            density = productivity.meeting_density[day]
            if density < 2:
                return 18
            if density < 4:
                return 12
            return 6
        return 10

    def _productivity_description(self, moment: datetime) -> str:
        productivity = self.patterns.productivity
        day = weekday_name(moment)
        if any(block.day_of_week == day for block in productivity.peak_focus):
            return "Peak focus time - fewer meetings scheduled"
        if day in productivity.meeting_density:
            return f"Average {productivity.meeting_density[day]:.1f} meetings on {day}s"
        return "Standard productivity time"

    def _participant_score(self, participants: Sequence[str], moment: datetime) -> int:
        known = [self.patterns.participants[e] for e in participants if e in self.patterns.participants]
        if not known:
            return NEUTRAL_PARTICIPANT_SCORE

        day, hour = weekday_name(moment), _hour_label(moment)
        total = 0
        for pattern in known:
            if day in pattern.preferred_days:
                total += 8
            if hour in pattern.preferred_times:
                total += 7
        return total // len(known)

    def _confidence(self) -> float:
        """Share of the five history sources that hold any data, as a percentage."""
        p = self.patterns
        sources = [
            p.acceptance.by_day_of_week,
            p.acceptance.by_time_of_day,
            p.productivity.peak_focus,
            p.participants,
            p.duration.by_participant,
        ]
        return sum(1 for source in sources if source) / len(sources) * 100

    @staticmethod
    def _recommendation(score: int, factors: list[ScoreFactor]) -> str:
        if score >= 85:
            return "Excellent time - highly recommended based on historical patterns"
        if score >= 70:
            return "Good time - aligns well with your preferences"
        if score >= 50:
            return "Acceptable time - consider alternatives if available"

        worst = min(factors, key=lambda f: f.impact, default=None)
        if worst is not None and worst.impact < 0:
            return f"Not recommended - {worst.name} is suboptimal. Consider alternative times."
        return "Not recommended - consider alternative times"

    def _alternatives(self, original: datetime) -> list[datetime]:
        """The best-accepted weekday at the best-accepted working hour, at least a day ahead."""
        acceptance = self.patterns.acceptance
        day = best_rate(acceptance.by_day_of_week)
        hour = best_rate({
            label: rate for label, rate in acceptance.by_time_of_day.items()
            if parse_hour(label) in ALTERNATIVE_HOURS
        })
        if not day or not hour:
            return []

        target = original + timedelta(days=days_until(original, day))
        return [target.replace(hour=parse_hour(hour), minute=0, second=0, microsecond=0)]
