"""CLI entry point for Calendar Intel.

Every subcommand prints its result as JSON.  For long-running use, start the
FastAPI server (calendar_intel/server.py) instead.

Usage:
    calendar-intel providers
    calendar-intel patterns --days 60 --exclude-recurring
    calendar-intel focus --target-hours 10
    calendar-intel adapt meeting_overload
    calendar-intel schedule "30 minutes with alice@example.com next week" --timezone Europe/Lisbon
    calendar-intel --debug patterns      # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
        stream=sys.stderr,
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("calendar_intel").setLevel(logging.DEBUG if debug else logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="calendar-intel", description="Calendar Intel CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument("--grant", default="", help="Nylas grant ID (defaults to NYLAS_GRANT_ID)")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("providers", help="List registered LLM providers")

    patterns = commands.add_parser("patterns", help="Learn scheduling patterns from calendar history")
    patterns.add_argument("--days", type=int, default=90, help="Lookback window in days")
    patterns.add_argument("--exclude-recurring", action="store_true", help="Ignore recurring events")

    focus = commands.add_parser("focus", help="Recommend focus-time blocks")
    focus.add_argument("--target-hours", type=float, default=14.0, help="Weekly focus-time target")

    adapt = commands.add_parser("adapt", help="Propose schedule changes for a trigger")
    adapt.add_argument("trigger", help="e.g. meeting_overload, focus_time_at_risk, deadline_change")

    schedule = commands.add_parser("schedule", help="Schedule a meeting from natural language")
    schedule.add_argument("query", help="What to schedule")
    schedule.add_argument("--timezone", default="UTC", help="Your IANA timezone")
    schedule.add_argument("--options", type=int, default=3, help="Number of options to return")
    schedule.add_argument("--provider", default="", help="LLM provider to use")

    return parser


def run(args: argparse.Namespace):
    """Execute one subcommand and return a JSON-serializable result."""
    from calendar_intel.agent import ScheduleRequest  # noqa: PLC0415 - config is read on import
    from calendar_intel.analytics.focus_optimizer import AdaptiveTrigger, FocusTimeSettings  # noqa: PLC0415
    from calendar_intel.analytics.pattern_learner import LearnPatternsRequest  # noqa: PLC0415
    from calendar_intel.api.dependencies import build_services  # noqa: PLC0415
    from calendar_intel.config import NYLAS_GRANT_ID  # noqa: PLC0415

    services = build_services()
    grant = args.grant or NYLAS_GRANT_ID

    if args.command == "providers":
        return {
            "providers": services.router.list_providers(),
            "default_provider": services.router.default_provider,
            "fallback_chain": services.router.fallback_chain,
        }
    if args.command == "schedule":
        request = ScheduleRequest(
            query=args.query,
            grant_id=grant,
            user_timezone=args.timezone,
            max_options=args.options,
            provider=args.provider,
        )
        return services.scheduler.schedule(request).model_dump(mode="json")

    if not grant:
        raise ValueError("a grant is required: pass --grant or set NYLAS_GRANT_ID")

    if args.command == "patterns":
        request = LearnPatternsRequest(
            grant_id=grant, lookback_days=args.days, include_recurring=not args.exclude_recurring
        )
        return services.pattern_learner.learn_patterns(request).model_dump(mode="json")
    if args.command == "focus":
        settings = FocusTimeSettings(target_hours_per_week=args.target_hours)
        return services.focus_optimizer.analyze_focus_time_patterns(grant, settings).model_dump(mode="json")
    if args.command == "adapt":
        change = services.focus_optimizer.adapt_schedule(grant, AdaptiveTrigger(args.trigger))
        return change.model_dump(mode="json")

    raise ValueError(f"unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    try:
        result = run(args)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
