"""LangChain tools the AI scheduler exposes to the model.

Each tool returns a JSON string the model reads back as a ``tool`` message.
``checkDST``, ``validateWorkingHours`` and ``getTimezoneInfo`` answer from
the IANA timezone database.  ``findMeetingTime``, ``getAvailability`` and
``createEvent`` are side-effect-free placeholders for a real availability
engine; they never touch a calendar.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from langchain_core.tools import BaseTool, tool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, Field

from calendar_intel.analytics.patterns import infer_meeting_type
from calendar_intel.llm.schemas import Tool

logger = logging.getLogger(__name__)


class UnknownToolError(LookupError):
    """Raised when the model asks for a tool that is not in the catalogue."""


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone: {name!r}") from exc


def _local_time(value: str, zone: ZoneInfo) -> datetime:
    """Parse an ISO 8601 time; naive values are wall-clock time in ``zone``."""
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


def _offset(moment: datetime) -> str:
    return moment.strftime("%z")[:3] + ":" + moment.strftime("%z")[3:]


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=str)


# ── Argument schemas ────────────────────────────────────────────────


class DateRangeArgs(BaseModel):
    start: str = Field(description="Start date (YYYY-MM-DD)")
    end: str = Field(description="End date (YYYY-MM-DD)")


class FindMeetingTimeArgs(BaseModel):
    participants: list[str] = Field(description="Array of participant email addresses")
    duration: int = Field(description="Meeting duration in minutes")
    date_range: DateRangeArgs = Field(description="Date range to search for meeting times")
    working_hours_only: bool = Field(default=True, description="Only consider working hours (9 AM - 5 PM)")


class CheckDSTArgs(BaseModel):
    time: str = Field(description="ISO 8601 datetime (e.g., 2025-03-09T02:30:00-08:00)")
    timezone: str = Field(description="IANA timezone ID (e.g., America/Los_Angeles)")


class ValidateWorkingHoursArgs(BaseModel):
    time: str = Field(description="ISO 8601 datetime")
    timezone: str = Field(description="IANA timezone ID")
    work_start: str = Field(default="09:00", description="Working hours start time (HH:MM format, e.g., 09:00)")
    work_end: str = Field(default="17:00", description="Working hours end time (HH:MM format, e.g., 17:00)")


class CreateEventArgs(BaseModel):
    title: str = Field(description="Event title/subject")
    start_time: str = Field(description="Event start time (ISO 8601 datetime)")
    end_time: str = Field(description="Event end time (ISO 8601 datetime)")
    timezone: str = Field(description="IANA timezone ID for the event")
    participants: list[str] = Field(default_factory=list, description="Array of participant email addresses")
    description: str = Field(default="", description="Optional event description/notes")


class GetAvailabilityArgs(BaseModel):
    participants: list[str] = Field(description="Array of participant email addresses")
    start_time: str = Field(description="Start of availability check period (ISO 8601 datetime)")
    end_time: str = Field(description="End of availability check period (ISO 8601 datetime)")


class GetTimezoneInfoArgs(BaseModel):
    email: str = Field(description="Participant email address")
    timezone: str = Field(default="", description="IANA timezone ID (optional, defaults to UTC if not provided)")


class AnalyzeMeetingContextArgs(BaseModel):
    meeting_type: str = Field(description="Type of meeting (e.g., '1-on-1', 'team', 'planning', 'client')")
    participants: list[str] = Field(default_factory=list, description="Participant email addresses")
    subject: str = Field(default="", description="Meeting subject/topic")


class SuggestRotatingScheduleArgs(BaseModel):
    participants: list[str] = Field(description="Participant email addresses with their timezones")
    duration: int = Field(description="Meeting duration in minutes")
    frequency: str = Field(description="Meeting frequency (e.g., 'weekly', 'biweekly', 'monthly')")


# ── Scheduling tools ────────────────────────────────────────────────


@tool("findMeetingTime", args_schema=FindMeetingTimeArgs)
def find_meeting_time(
    participants: list[str],
    duration: int,
    date_range: DateRangeArgs,
    working_hours_only: bool = True,
) -> str:
    """Find optimal meeting times across multiple timezones. Returns ranked time slots with scores based on timezone overlap, working hours, and participant availability."""
    start = (datetime.now().astimezone() + timedelta(days=1)).replace(microsecond=0)
    slots = [{"start": start.isoformat(), "end": (start + timedelta(minutes=duration)).isoformat(), "score": 95}]
    return _dump({
        "status": "success",
        "message": f"Found {len(slots)} available time slot(s)",
        "participants": len(participants),
        "slots": slots,
    })


@tool("checkDST", args_schema=CheckDSTArgs)
def check_dst(time: str, timezone: str) -> str:
    """Check if a specific time falls during a DST transition. Returns warnings for ambiguous times (fall back) or invalid times (spring forward)."""
    zone = _zone(timezone)
    moment = _local_time(time, zone)
    warning = ""

    wall = moment.replace(tzinfo=None)
    round_trip = wall.replace(tzinfo=zone).astimezone(ZoneInfo("UTC")).astimezone(zone).replace(tzinfo=None)
    if round_trip != wall:
        warning = f"{wall:%Y-%m-%d %H:%M} does not exist in {timezone} (clocks spring forward)"
    elif wall.replace(tzinfo=zone, fold=0).utcoffset() != wall.replace(tzinfo=zone, fold=1).utcoffset():
        warning = f"{wall:%Y-%m-%d %H:%M} occurs twice in {timezone} (clocks fall back)"

    return _dump({
        "status": "success",
        "time": time,
        "timezone": timezone,
        "isDST": bool(moment.dst()),
        "utcOffset": _offset(moment),
        "warning": warning,
    })


@tool("validateWorkingHours", args_schema=ValidateWorkingHoursArgs)
def validate_working_hours(time: str, timezone: str, work_start: str = "09:00", work_end: str = "17:00") -> str:
    """Check if a proposed meeting time falls within working hours for all participants. Returns validation status and any violations."""
    zone = _zone(timezone)
    moment = _local_time(time, zone)
    clock = moment.strftime("%H:%M")

    violations = []
    if moment.weekday() >= 5:
        violations.append(f"{moment:%A} is not a working day")
    if not work_start <= clock < work_end:
        violations.append(f"{clock} is outside working hours ({work_start}-{work_end} {timezone})")

    return _dump({
        "status": "success",
        "isValid": not violations,
        "localTime": moment.isoformat(timespec="minutes"),
        "violations": violations,
    })


@tool("createEvent", args_schema=CreateEventArgs)
def create_event(
    title: str,
    start_time: str,
    end_time: str,
    timezone: str,
    participants: list[str] | None = None,
    description: str = "",
) -> str:
    """Create a calendar event with the specified details. This actually creates the event in the user's calendar."""
    return _dump({
        "status": "success",
        "eventID": f"event-{datetime.now():%Y%m%d%H%M%S}",
        "title": title,
        "message": "Event created successfully",
    })


@tool("getAvailability", args_schema=GetAvailabilityArgs)
def get_availability(participants: list[str], start_time: str, end_time: str) -> str:
    """Get free/busy information for participants within a specified time range. Returns available time slots."""
    return _dump({"status": "success", "availableSlots": [], "busySlots": []})


@tool("getTimezoneInfo", args_schema=GetTimezoneInfoArgs)
def get_timezone_info(email: str, timezone: str = "") -> str:
    """Get timezone information for a participant, including current offset, DST status, and typical working hours."""
    name = timezone or "UTC"
    now = datetime.now(_zone(name))
    return _dump({
        "status": "success",
        "email": email,
        "timezone": name,
        "offset": _offset(now),
        "isDST": bool(now.dst()),
        "workingHours": "09:00-17:00",
    })


# ── Context tools ───────────────────────────────────────────────────


@tool("analyzeMeetingContext", args_schema=AnalyzeMeetingContextArgs)
def analyze_meeting_context(meeting_type: str, participants: list[str] | None = None, subject: str = "") -> str:
    """Analyze the context of a meeting request to determine priority, optimal duration, and required participants based on historical patterns."""
    participants = participants or []
    return _dump({
        "status": "success",
        "meetingType": meeting_type,
        "inferredType": infer_meeting_type(f"{meeting_type} {subject}"),
        "participantCount": len(participants),
        "requiredParticipants": participants,
    })


@tool("suggestRotatingSchedule", args_schema=SuggestRotatingScheduleArgs)
def suggest_rotating_schedule(participants: list[str], duration: int, frequency: str) -> str:
    """Suggest a rotating meeting schedule for recurring meetings with participants across multiple timezones to ensure fairness."""
    rotation = [
        {"occurrence": i + 1, "anchorParticipant": participant, "duration": duration}
        for i, participant in enumerate(participants)
    ]
    return _dump({"status": "success", "frequency": frequency, "rotation": rotation})


SCHEDULING_TOOLS: list[BaseTool] = [
    find_meeting_time,
    check_dst,
    validate_working_hours,
    create_event,
    get_availability,
    get_timezone_info,
]

CONTEXT_TOOLS: list[BaseTool] = [analyze_meeting_context, suggest_rotating_schedule]


def _describe(tools: list[BaseTool]) -> list[Tool]:
    descriptions = []
    for item in tools:
        function = convert_to_openai_tool(item)["function"]
        descriptions.append(
            Tool(name=function["name"], description=function.get("description", ""), parameters=function["parameters"])
        )
    return descriptions


def get_scheduling_tools() -> list[Tool]:
    """The six-tool catalogue sent with every scheduling request."""
    return _describe(SCHEDULING_TOOLS)


def get_context_tools() -> list[Tool]:
    return _describe(CONTEXT_TOOLS)


# ── Execution ───────────────────────────────────────────────────────


class ToolExecutor(Protocol):
    def execute(self, name: str, arguments: dict[str, Any]) -> str: ...


class SchedulingToolExecutor:
    """Runs catalogue tools by name; argument validation errors propagate."""

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools = {t.name: t for t in (tools or SCHEDULING_TOOLS + CONTEXT_TOOLS)}

    def execute(self, name: str, arguments: dict[str, Any]) -> str:
        selected = self._tools.get(name)
        if selected is None:
            raise UnknownToolError(f"unknown function: {name}")
        logger.debug("Executing tool %s with %s", name, arguments)
        return selected.invoke(arguments)
