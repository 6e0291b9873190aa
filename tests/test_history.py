"""Tests for the statistical meeting-history model."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from conftest import make_event

from calendar_intel.analytics.history import (
    CROSS_TIMEZONE_TIMES,
    history_insights,
    history_recommendations,
    learn_acceptance,
    learn_durations,
    learn_meeting_pattern,
    learn_participants,
    learn_productivity,
    learn_timezones,
)

MONDAY_10 = datetime(2025, 3, 3, 10, 0)


class TestAcceptance:
    def test_only_confirmed_status_counts(self):
        events = [
            make_event(MONDAY_10),
            make_event(MONDAY_10 + timedelta(weeks=1)),
            make_event(MONDAY_10 + timedelta(weeks=2), status="tentative", busy=True),
            make_event(MONDAY_10 + timedelta(weeks=3), status="cancelled"),
        ]
        acceptance = learn_acceptance(events)

        assert acceptance.by_day_of_week == {"Monday": 0.5}
        assert acceptance.by_time_of_day == {"10:00": 0.5}
        assert acceptance.by_day_and_time == {"Monday-10:00": 0.5}
        assert acceptance.overall == 0.5

    def test_empty_history(self):
        assert learn_acceptance([]).overall == 0.0


class TestDurations:
    def test_stats_per_participant_and_overall(self):
        events = [
            make_event(MONDAY_10, 30, participants=["alice@example.com"]),
            make_event(MONDAY_10 + timedelta(days=1), 60, participants=["alice@example.com", ""]),
        ]
        durations = learn_durations(events)

        alice = durations.by_participant["alice@example.com"]
        assert alice.average_scheduled == alice.average_actual == 45
        assert alice.variance == pytest.approx(15.0)
        assert durations.overall.average_scheduled == 45
        assert "" not in durations.by_participant


class TestTimezones:
    def test_distribution_and_default_cross_timezone_times(self):
        events = [make_event(MONDAY_10, timezone=""), make_event(MONDAY_10, timezone="Europe/Lisbon")]
        patterns = learn_timezones(events)
        assert patterns.distribution == {"UTC": 1, "Europe/Lisbon": 1}
        assert patterns.cross_tz_times == CROSS_TIMEZONE_TIMES


class TestProductivity:
    def test_empty_calendar_scores_every_working_hour_as_free(self):
        productivity = learn_productivity([], working_hours=(9, 17))

        assert len(productivity.peak_focus) == 5 * 8
        assert all(block.score == 100.0 for block in productivity.peak_focus)
        assert [b.day_of_week for b in productivity.focus_blocks] == [
            "Monday", "Tuesday", "Wednesday", "Thursday", "Friday",
        ]

    def test_average_density_hour_scores_fifty(self):
        events = [make_event(MONDAY_10 + timedelta(weeks=i)) for i in range(3)]
        productivity = learn_productivity(events)

        monday_10 = next(
            b for b in productivity.peak_focus if b.day_of_week == "Monday" and b.start_time == "10:00"
        )
        assert monday_10.score == 50.0
        assert monday_10.end_time == "12:00"
        assert productivity.meeting_density == {"Monday": 0.25}

    def test_busier_than_average_hours_are_not_candidates(self):
        events = [make_event(MONDAY_10 + timedelta(weeks=i)) for i in range(4)]
        events.append(make_event(MONDAY_10 + timedelta(days=1)))
        productivity = learn_productivity(events)

        assert not any(
            b.day_of_week == "Monday" and b.start_time == "10:00" for b in productivity.peak_focus
        )

    def test_best_block_per_day_is_first_highest_score(self):
        events = [make_event(MONDAY_10.replace(hour=9))]
        productivity = learn_productivity(events)
        monday = productivity.focus_blocks[0]
        assert (monday.day_of_week, monday.start_time) == ("Monday", "10:00")


class TestParticipants:
    def test_habits_per_participant(self):
        events = [
            make_event(MONDAY_10, 30, participants=["bob@example.com"], timezone="Europe/Lisbon"),
            make_event(
                MONDAY_10 + timedelta(days=1), 60,
                participants=["bob@example.com"], status="tentative", timezone="Europe/Lisbon",
            ),
        ]
        bob = learn_participants(events)["bob@example.com"]

        assert bob.meeting_count == 2
        assert bob.acceptance_rate == 0.5
        assert bob.average_duration == 45
        assert set(bob.preferred_days) == {"Monday", "Tuesday"}
        assert bob.preferred_times == ["10:00"]
        assert bob.timezone == "Europe/Lisbon"

    def test_last_seen_timezone_wins(self):
        events = [
            make_event(MONDAY_10, participants=["eve@example.com"], timezone="Asia/Tokyo"),
            make_event(MONDAY_10 + timedelta(days=1), participants=["eve@example.com"], timezone="Europe/Berlin"),
        ]
        assert learn_participants(events)["eve@example.com"].timezone == "Europe/Berlin"


class TestRecommendationsAndInsights:
    @pytest.fixture
    def pattern(self):
        events = [
            make_event(MONDAY_10 + timedelta(weeks=i), status="tentative", participants=["c@example.com"])
            for i in range(3)
        ]
        return learn_meeting_pattern(events, MONDAY_10, MONDAY_10 + timedelta(days=21))

    def test_free_blocks_become_focus_recommendations(self, pattern):
        focus = [r for r in history_recommendations(pattern) if r.type == "focus_time"]
        assert focus
        assert focus[0].priority == "high"
        assert focus[0].title == "Block Monday 09:00-11:00 for focus time"

    def test_low_acceptance_day_suggests_avoiding_it(self, pattern):
        declines = [r for r in history_recommendations(pattern) if r.type == "decline_pattern"]
        assert [r.title for r in declines] == ["Consider avoiding Monday meetings"]
        assert declines[0].confidence == 100.0

    def test_no_overrun_data_means_no_duration_adjustments(self, pattern):
        assert not [r for r in history_recommendations(pattern) if r.type == "duration_adjustment"]

    def test_insights_summarize_the_period(self, pattern):
        insights = history_insights(pattern, total_events=3, days=21)
        assert insights[0] == "Peak focus time: Monday 09:00-11:00 (fewest meetings)"
        assert insights[-1] == "Analyzed 3 meetings over 21 days"
        assert "Most meetings in America/New_York timezone (3 meetings)" in insights
