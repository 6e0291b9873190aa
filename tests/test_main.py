"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from calendar_intel.analytics.focus_optimizer import AdaptiveTrigger
from calendar_intel.main import build_parser, main


@pytest.fixture
def services():
    services = MagicMock()
    services.router.list_providers.return_value = ["ollama"]
    services.router.default_provider = "ollama"
    services.router.fallback_chain = []
    with patch("calendar_intel.api.dependencies.build_services", return_value=services):
        yield services


class TestParser:
    def test_schedule_arguments(self):
        args = build_parser().parse_args(["schedule", "lunch with Ana", "--timezone", "Europe/Lisbon", "--options", "2"])
        assert (args.query, args.timezone, args.options) == ("lunch with Ana", "Europe/Lisbon", 2)

    def test_subcommand_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    def test_providers_printed_as_json(self, services, capsys):
        assert main(["providers"]) == 0
        assert json.loads(capsys.readouterr().out)["providers"] == ["ollama"]

    def test_adapt_uses_grant_and_trigger(self, services, capsys):
        services.focus_optimizer.adapt_schedule.return_value.model_dump.return_value = {"id": "adapt_1"}

        assert main(["--grant", "g-1", "adapt", "deadline_change"]) == 0
        services.focus_optimizer.adapt_schedule.assert_called_once_with("g-1", AdaptiveTrigger.DEADLINE_CHANGE)
        assert json.loads(capsys.readouterr().out) == {"id": "adapt_1"}

    def test_patterns_exclude_recurring(self, services, capsys):
        services.pattern_learner.learn_patterns.return_value.model_dump.return_value = {}

        main(["--grant", "g-1", "patterns", "--days", "30", "--exclude-recurring"])
        request = services.pattern_learner.learn_patterns.call_args[0][0]
        assert (request.lookback_days, request.include_recurring) == (30, False)

    def test_errors_go_to_stderr_with_exit_code_one(self, services, capsys):
        assert main(["--grant", "g-1", "adapt", "moon_phase"]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.startswith("error:")
