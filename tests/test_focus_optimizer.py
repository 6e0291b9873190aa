"""Tests for the focus-time optimizer and its pure helpers."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeCalendar, make_event
from pydantic import ValidationError

from calendar_intel.analytics.focus_optimizer import (
    DEFAULT_PEAK_BLOCKS,
    AdaptiveChangeType,
    AdaptiveTrigger,
    ApprovalStatus,
    FocusOptimizer,
    FocusTimeAnalysis,
    FocusTimeBlock,
    FocusTimeSettings,
    TimeRange,
    analysis_confidence,
    block_duration,
    clock_ranges_overlap,
    deep_work_stats,
    duration_confidence,
    next_occurrence,
    peak_productivity_blocks,
    recommend_blocks,
)
from calendar_intel.analytics.history import (
    AcceptancePatterns,
    DateRange,
    DurationPatterns,
    DurationStats,
    MeetingAnalysis,
    MeetingPattern,
    ParticipantPattern,
    ProductivityPatterns,
    TimeBlock,
    TimezonePatterns,
)
from calendar_intel.analytics.pattern_learner import InsufficientDataError, PatternLearner
from calendar_intel.models import Calendar

MONDAY_9 = datetime(2025, 3, 3, 9, 0)


def _pattern(peaks=(), density=None, participants=0) -> MeetingPattern:
    return MeetingPattern(
        analyzed_period=DateRange(start=MONDAY_9 - timedelta(days=90), end=MONDAY_9),
        last_updated=MONDAY_9,
        acceptance=AcceptancePatterns(),
        duration=DurationPatterns(),
        timezone=TimezonePatterns(),
        productivity=ProductivityPatterns(
            peak_focus=list(peaks),
            meeting_density=density or {},
        ),
        participants={
            f"p{i}@example.com": ParticipantPattern(
                email=f"p{i}@example.com", meeting_count=1, acceptance_rate=1.0,
                preferred_days=[], preferred_times=[], average_duration=30,
            )
            for i in range(participants)
        },
    )


def _block(day: str, start: str, end: str, score: float) -> TimeBlock:
    return TimeBlock(day_of_week=day, start_time=start, end_time=end, score=score)


# ── Clock helpers ───────────────────────────────────────────────────


class TestClockHelpers:
    def test_block_duration(self):
        assert block_duration("10:00", "12:30") == 150

    def test_unparseable_block_defaults_to_two_hours(self):
        assert block_duration("ten", "12:00") == 120

    def test_adjacent_ranges_do_not_overlap(self):
        assert not clock_ranges_overlap("09:00", "10:00", "10:00", "11:00")
        assert clock_ranges_overlap("09:00", "10:30", "10:00", "11:00")

    def test_next_occurrence_later_today(self):
        assert next_occurrence("Monday", "10:00", MONDAY_9) == MONDAY_9.replace(hour=10)

    def test_next_occurrence_at_now_moves_one_week(self):
        assert next_occurrence("Monday", "09:00", MONDAY_9) == MONDAY_9 + timedelta(weeks=1)

    def test_next_occurrence_later_in_week(self):
        assert next_occurrence("Sunday", "08:00", MONDAY_9) == datetime(2025, 3, 9, 8, 0)

    def test_next_occurrence_always_in_future(self):
        for day in ("Monday", "Tuesday", "Saturday"):
            assert next_occurrence(day, "08:30", MONDAY_9) > MONDAY_9


# ── Block recommendation ────────────────────────────────────────────


class TestRecommendBlocks:
    def test_accumulates_by_score_until_target(self):
        pattern = _pattern([
            _block("Monday", "09:00", "11:00", 70),
            _block("Tuesday", "09:00", "11:00", 90),
            _block("Wednesday", "09:00", "11:00", 80),
        ])
        blocks = recommend_blocks(pattern, FocusTimeSettings(target_hours_per_week=3))

        assert [b.day_of_week for b in blocks] == ["Tuesday", "Wednesday"]
        assert blocks[0].reason == "Peak productivity time (90% score)"

    def test_target_reached_stops_selection(self):
        pattern = _pattern([_block("Monday", "09:00", "11:00", 90), _block("Tuesday", "09:00", "11:00", 80)])
        assert len(recommend_blocks(pattern, FocusTimeSettings(target_hours_per_week=2))) == 1

    def test_short_blocks_are_dropped(self):
        pattern = _pattern([_block("Monday", "09:00", "11:00", 90)])
        assert recommend_blocks(pattern, FocusTimeSettings(min_block_duration=150)) == []

    def test_long_blocks_are_clamped(self):
        pattern = _pattern([_block("Monday", "09:00", "13:00", 90)])
        (block,) = recommend_blocks(pattern, FocusTimeSettings(max_block_duration=180))
        assert (block.end_time, block.duration) == ("12:00", 180)

    def test_unparseable_start_is_skipped_not_clamped(self):
        pattern = _pattern([_block("Monday", "ten", "12:00", 95), _block("Tuesday", "09:00", "11:00", 80)])
        blocks = recommend_blocks(pattern, FocusTimeSettings(max_block_duration=90))
        assert [(b.day_of_week, b.end_time) for b in blocks] == [("Tuesday", "10:30")]

    def test_protected_days_restrict_candidates(self):
        pattern = _pattern([_block("Monday", "09:00", "11:00", 90), _block("Friday", "09:00", "11:00", 95)])
        blocks = recommend_blocks(pattern, FocusTimeSettings(protected_days=["Monday"]))
        assert [b.day_of_week for b in blocks] == ["Monday"]

    def test_excluded_ranges_are_skipped(self):
        pattern = _pattern([_block("Monday", "09:00", "11:00", 90), _block("Monday", "14:00", "16:00", 60)])
        settings = FocusTimeSettings(excluded_time_ranges=[TimeRange(start_time="10:30", end_time="11:30")])
        assert [b.start_time for b in recommend_blocks(pattern, settings)] == ["14:00"]

    def test_every_selected_block_respects_bounds(self):
        peaks = [_block(day, "08:00", "13:00", 60 + i) for i, day in enumerate(("Monday", "Tuesday", "Friday"))]
        settings = FocusTimeSettings(min_block_duration=60, max_block_duration=240)
        for block in recommend_blocks(_pattern(peaks), settings):
            assert 60 <= block.duration <= 240


class TestAnalysisHelpers:
    def test_deep_work_defaults_without_focus_blocks(self):
        stats = deep_work_stats(_pattern())
        assert (stats.average_scheduled, stats.average_actual, stats.variance) == (120, 150, 30.0)

    def test_default_peaks_when_history_has_none(self):
        assert peak_productivity_blocks(_pattern()) == DEFAULT_PEAK_BLOCKS

    def test_peaks_are_top_three_by_score(self):
        peaks = [_block("Monday", f"{h:02d}:00", f"{h + 2:02d}:00", h * 5) for h in range(9, 14)]
        assert [b.score for b in peak_productivity_blocks(_pattern(peaks))] == [65, 60, 55]

    @pytest.mark.parametrize(
        "peaks, density, participants, expected",
        [
            ((), None, 0, 50.0),
            ((_block("Monday", "09:00", "11:00", 90),), None, 0, 70.0),
            ((_block("Monday", "09:00", "11:00", 90),), {"Monday": 1.0}, 11, 100.0),
        ],
    )
    def test_analysis_confidence(self, peaks, density, participants, expected):
        assert analysis_confidence(_pattern(peaks, density, participants)) == expected

    @pytest.mark.parametrize("variance, expected", [(5, 90.0), (15, 75.0), (25, 60.0), (30, 50.0)])
    def test_duration_confidence_tiers(self, variance, expected):
        assert duration_confidence(DurationStats(variance=variance)) == expected


# ── Optimizer ───────────────────────────────────────────────────────


class TestAnalyzeFocusTimePatterns:
    def test_empty_history_gives_zero_confidence(self):
        analysis = FocusOptimizer(FakeCalendar()).analyze_focus_time_patterns("g")

        assert analysis.confidence == 0
        assert analysis.recommended_blocks == []
        assert analysis.insights == ["Not enough calendar history to analyze patterns"]
        assert analysis.target_protection == 14.0

    def test_analysis_from_history(self):
        events = [make_event(MONDAY_9 + timedelta(days=d, hours=1)) for d in (0, 1, 7, 8)]
        analysis = FocusOptimizer(FakeCalendar(events)).analyze_focus_time_patterns(
            "g", FocusTimeSettings(target_hours_per_week=4)
        )

        assert analysis.confidence == 85.0
        assert len(analysis.peak_productivity) == 3
        assert sum(b.duration for b in analysis.recommended_blocks) >= 240
        assert analysis.most_productive_day in {"Monday", "Tuesday"}
        assert analysis.insights[0].startswith("Your peak productivity is")


class TestCreateProtectedBlocks:
    def _blocks(self):
        return [
            FocusTimeBlock(day_of_week="Tuesday", start_time="10:00", end_time="12:00", duration=120,
                           score=90, reason="Peak productivity time (90% score)"),
        ]

    def test_books_busy_focus_event_on_primary_calendar(self):
        calendar = FakeCalendar(calendars=[Calendar(id="other"), Calendar(id="main", is_primary=True)])
        (block,) = FocusOptimizer(calendar).create_protected_blocks("g", self._blocks(), now=MONDAY_9)

        calendar_id, request = calendar.created[0]
        assert calendar_id == "main"
        assert request.title == "Focus Time"
        assert request.busy is True
        assert block.calendar_event_id == "created-1"
        assert block.start_time == datetime(2025, 3, 4, 10, 0)
        assert block.end_time - block.start_time == timedelta(minutes=120)
        assert block.id.startswith("focus_")

    def test_falls_back_to_first_calendar(self):
        calendar = FakeCalendar(calendars=[Calendar(id="first"), Calendar(id="second")])
        FocusOptimizer(calendar).create_protected_blocks("g", self._blocks(), now=MONDAY_9)
        assert calendar.created[0][0] == "first"

    def test_settings_flow_into_protection_rules(self):
        settings = FocusTimeSettings(auto_decline=True, allow_urgent_override=False)
        (block,) = FocusOptimizer(FakeCalendar()).create_protected_blocks(
            "g", self._blocks(), settings, now=MONDAY_9
        )
        assert block.protection_rules.auto_decline is True
        assert block.allow_override is False

    def test_no_calendars_raises(self):
        with pytest.raises(InsufficientDataError, match="no calendars"):
            FocusOptimizer(FakeCalendar(calendars=[])).create_protected_blocks("g", self._blocks())


class TestAdaptSchedule:
    def test_meeting_overload_reschedules_small_meetings(self):
        events = [
            make_event(MONDAY_9, event_id="small", participants=["a@example.com"]),
            make_event(MONDAY_9, event_id="large", participants=[f"p{i}@example.com" for i in range(5)]),
        ]
        change = FocusOptimizer(FakeCalendar(events)).adapt_schedule("g", AdaptiveTrigger.MEETING_OVERLOAD)

        assert change.affected_events == ["small"]
        assert change.change_type == AdaptiveChangeType.RESCHEDULE_MEETING
        assert change.impact.meetings_rescheduled == 1
        assert change.impact.participants_affected == 1
        assert change.reason == "Meeting load increased: reducing by rescheduling 1 meetings"
        assert change.confidence == 63.0
        assert change.user_approval == ApprovalStatus.PENDING
        assert change.auto_applied is False
        assert change.id.startswith("adapt_")

    def test_deadline_change_protects_more_focus_time(self):
        change = FocusOptimizer(FakeCalendar()).adapt_schedule("g", AdaptiveTrigger.DEADLINE_CHANGE)

        assert [m.action for m in change.changes] == ["protect"]
        assert change.change_type == AdaptiveChangeType.PROTECT_BLOCK
        assert change.reason == "Urgent deadline detected: increasing focus time priority"
        assert change.impact.focus_time_gained == 2.0

    def test_unhandled_trigger_proposes_nothing(self):
        change = FocusOptimizer(FakeCalendar()).adapt_schedule("g", AdaptiveTrigger.PRIORITY_SHIFT)
        assert change.changes == []
        assert change.confidence == 50.0
        assert change.reason == "Schedule optimization recommended"

    def test_focus_time_at_risk_moves_overlapping_editable_meetings(self):
        events = [
            make_event(MONDAY_9 + timedelta(hours=1), event_id="clash"),
            make_event(MONDAY_9 + timedelta(hours=1), event_id="locked", read_only=True),
            make_event(MONDAY_9 + timedelta(days=1, hours=1), event_id="tuesday"),
        ]
        optimizer = FocusOptimizer(FakeCalendar(events))
        analysis = FocusTimeAnalysis(
            user_email="g",
            analyzed_period=DateRange(start=MONDAY_9, end=MONDAY_9),
            generated_at=MONDAY_9,
            recommended_blocks=[
                FocusTimeBlock(day_of_week="Monday", start_time="10:00", end_time="12:00",
                               duration=120, score=90, reason="peak"),
            ],
        )
        with patch.object(optimizer, "analyze_focus_time_patterns", return_value=analysis):
            change = optimizer.adapt_schedule("g", AdaptiveTrigger.FOCUS_TIME_AT_RISK)

        assert change.affected_events == ["clash"]
        assert change.reason == "Focus time at risk: protecting 2.0 additional hours"

    def test_change_is_immutable(self):
        change = FocusOptimizer(FakeCalendar()).adapt_schedule("g", AdaptiveTrigger.DEADLINE_CHANGE)
        with pytest.raises(ValidationError):
            change.user_approval = ApprovalStatus.APPROVED


class TestOptimizeMeetingDuration:
    def _optimize(self, target_minutes, history_minutes):
        events = [make_event(MONDAY_9, target_minutes, event_id="target")]
        events += [
            make_event(MONDAY_9 + timedelta(days=i + 1), m, event_id=f"h{i}") for i, m in enumerate(history_minutes)
        ]
        return FocusOptimizer(FakeCalendar(events)).optimize_meeting_duration("g", "cal-1", "target")

    def test_hour_long_meeting_is_cut_to_45(self):
        result = self._optimize(60, [30, 30, 30])

        assert result.recommended_duration == 45
        assert result.time_savings == 15
        assert result.recommendation == "Reduce from 60 to 45 minutes to save 15 minutes"
        assert result.confidence == 75.0

    def test_half_hour_meeting_is_cut_to_25(self):
        result = self._optimize(30, [15, 15])
        assert (result.recommended_duration, result.time_savings) == (25, 5)

    def test_longer_history_keeps_current_duration(self):
        result = self._optimize(30, [45, 45])

        assert result.recommended_duration == 40
        assert result.time_savings == 0
        assert result.recommendation == "Keep the current 30-minute duration"

    def test_no_history_raises(self):
        calendar = FakeCalendar([make_event(MONDAY_9, event_id="target")])
        learner = MagicMock(spec=PatternLearner)
        learner.analyze_history.return_value = MeetingAnalysis(
            period=DateRange(start=MONDAY_9, end=MONDAY_9), total_meetings=0,
        )
        with pytest.raises(InsufficientDataError, match="not enough historical data"):
            FocusOptimizer(calendar, learner).optimize_meeting_duration("g", "cal-1", "target")
