"""Email-thread analysis for meeting preparation.

Fetches a thread and its messages, asks the router for a structured
summary (purpose, topics, priority, duration, optional agenda), then adds
participant involvement and urgency signals computed locally.
"""

from __future__ import annotations

import json
import logging
import re
from enum import StrEnum

from pydantic import BaseModel, Field, ValidationError

from calendar_intel.analytics.pattern_learner import InsufficientDataError
from calendar_intel.llm.router import LLMRouter
from calendar_intel.llm.schemas import ChatMessage, ChatRequest
from calendar_intel.models import EmailParticipant, Message, Thread
from calendar_intel.prompts import INBOX_ANALYSIS_PROMPT, build_thread_analysis_prompt
from calendar_intel.services.nylas_client import CalendarClient

logger = logging.getLogger(__name__)

THREAD_MESSAGE_LIMIT = 100
BODY_PREVIEW_CHARS = 500
SNIPPET_PREVIEW_CHARS = 200
DEFAULT_DURATION_MINUTES = 30

ANALYST_PROMPT = (
    "You are an expert meeting scheduler and email analyst. Analyze email threads to extract "
    "meeting context, topics, priority, and participant involvement."
)

URGENT_KEYWORDS = (
    "urgent", "asap", "immediately", "critical", "emergency",
    "deadline", "today", "tomorrow", "this week",
)

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class Involvement(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EmailAnalysisRequest(BaseModel):
    thread_id: str
    include_agenda: bool = True
    include_time: bool = True


class AgendaItem(BaseModel):
    title: str = ""
    duration: int = 0
    description: str = ""


class MeetingAgenda(BaseModel):
    title: str = ""
    items: list[AgendaItem] = Field(default_factory=list)


class ParticipantInfo(BaseModel):
    email: str
    name: str = ""
    message_count: int = 0
    mention_count: int = 0
    last_message_at: str = ""
    required: bool = False
    involvement: Involvement = Involvement.LOW


class EmailThreadAnalysis(BaseModel):
    thread_id: str
    purpose: str = ""
    topics: list[str] = Field(default_factory=list)
    priority: str = "medium"
    suggested_duration: int = DEFAULT_DURATION_MINUTES
    agenda: MeetingAgenda | None = None
    participants: list[ParticipantInfo] = Field(default_factory=list)
    urgency_indicators: list[str] = Field(default_factory=list)


class EmailCategory(BaseModel):
    name: str = ""
    count: int = 0
    subjects: list[str] = Field(default_factory=list)


class ActionItem(BaseModel):
    model_config = {"populate_by_name": True}

    subject: str = ""
    sender: str = Field(default="", alias="from")
    urgency: str = ""
    reason: str = ""


class InboxSummaryResponse(BaseModel):
    summary: str = ""
    categories: list[EmailCategory] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)
    provider_used: str = ""
    tokens_used: int = 0


# ── Parsing (pure) ──────────────────────────────────────────────────


def _leading_int(text: str) -> int:
    match = _LEADING_INT_RE.match(text)
    return int(match.group(1)) if match else 0


def parse_agenda(lines: list[str]) -> MeetingAgenda:
    """Read a ``## title`` / ``### item (N min)`` agenda block."""
    agenda = MeetingAgenda()
    current: AgendaItem | None = None

    for raw in lines:
        line = raw.strip()
        if line.startswith("## "):
            agenda.title = line[3:]
        if line.startswith("### "):
            if current is not None:
                agenda.items.append(current)
            title = line[4:]
            current = AgendaItem()
            open_idx, close_idx = title.find("("), title.find(")")
            if open_idx != -1 and close_idx > open_idx:
                current.duration = _leading_int(title[open_idx + 1:close_idx])
                title = title[:open_idx].strip()
            current.title = title
        elif current is not None and line and not line.startswith("#"):
            current.description = f"{current.description} {line}".strip()

    if current is not None:
        agenda.items.append(current)
    return agenda


def parse_analysis_response(text: str, request: EmailAnalysisRequest) -> EmailThreadAnalysis:
    analysis = EmailThreadAnalysis(thread_id=request.thread_id, suggested_duration=0, priority="")
    lines = text.splitlines()

    for i, raw in enumerate(lines):
        line = raw.strip()
        if line.startswith("PURPOSE:"):
            analysis.purpose = line.removeprefix("PURPOSE:").strip()
        elif line.startswith("TOPICS:"):
            for follow in lines[i + 1:]:
                follow = follow.strip()
                if not follow.startswith("- "):
                    break
                analysis.topics.append(follow[2:].strip())
        elif line.startswith("PRIORITY:"):
            analysis.priority = line.removeprefix("PRIORITY:").split("-", 1)[0].strip().lower()
        elif line.startswith("DURATION:"):
            analysis.suggested_duration = _leading_int(line.removeprefix("DURATION:"))
        elif request.include_agenda and line.startswith("AGENDA:"):
            analysis.agenda = parse_agenda(lines[i + 1:])

    if analysis.suggested_duration == 0:
        analysis.suggested_duration = DEFAULT_DURATION_MINUTES
    if not analysis.priority:
        analysis.priority = "medium"
    return analysis


def parse_inbox_response(text: str) -> InboxSummaryResponse | None:
    """Extract the JSON object from an LLM answer; ``None`` when there is none."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return InboxSummaryResponse.model_validate(json.loads(text[start:end + 1]))
    except (json.JSONDecodeError, ValidationError):
        return None


# ── Thread context and local signals ────────────────────────────────


def _display_name(participant: EmailParticipant) -> str:
    return participant.name or participant.email


def build_thread_context(thread: Thread, messages: list[Message]) -> str:
    lines = [
        f"Email Thread: {thread.subject}",
        f"Participants: {len(thread.participants)}",
        f"Messages: {len(messages)}",
        "",
        "Participants:",
    ]
    for p in thread.participants:
        lines.append(f"- {p.name} <{p.email}>" if p.name else f"- {p.email}")

    lines += ["", "Message Thread:"]
    for message in sorted(messages, key=lambda m: m.date, reverse=True):
        sender = _display_name(message.sender[0]) if message.sender else "Unknown"
        body = message.body
        if len(body) > BODY_PREVIEW_CHARS:
            body = body[:BODY_PREVIEW_CHARS] + "..."
        lines += ["", f"[{message.sent_at.strftime('%b %d, %Y %I:%M %p')}] {sender}:", body]
    return "\n".join(lines) + "\n"


def analyze_participants(thread: Thread, messages: list[Message]) -> list[ParticipantInfo]:
    """Score involvement by messages sent and mentions in bodies."""
    participants = {
        p.email: ParticipantInfo(email=p.email, name=p.name) for p in thread.participants if p.email
    }

    for message in sorted(messages, key=lambda m: m.date):
        for sender in message.sender:
            info = participants.get(sender.email)
            if info is not None:
                info.message_count += 1
                info.last_message_at = message.sent_at.isoformat()
        body = message.body.lower()
        for email, info in participants.items():
            if email.lower() in body:
                info.mention_count += 1

    total = len(messages)
    for info in participants.values():
        if total and (info.message_count / total > 0.3 or info.mention_count > 3):
            info.involvement, info.required = Involvement.HIGH, True
        elif info.message_count > 1 or info.mention_count > 0:
            info.involvement, info.required = Involvement.MEDIUM, True
        else:
            info.involvement, info.required = Involvement.LOW, False
    return list(participants.values())


def detect_urgency_indicators(messages: list[Message]) -> list[str]:
    indicators: list[str] = []
    for message in messages:
        text = f"{message.subject}\n{message.body}".lower()
        for keyword in URGENT_KEYWORDS:
            if keyword in text:
                indicators.append(f"Contains urgent keyword: '{keyword}'")

    if len(messages) > 5:
        dates = [m.date for m in messages]
        span_hours = (max(dates) - min(dates)) / 3600
        if span_hours < 24:
            indicators.append(f"{len(messages)} messages in {round(span_hours)}h (high activity)")

    senders = {sender.email for m in messages for sender in m.sender}
    if len(senders) > 5:
        indicators.append(f"{len(senders)} participants (broad reach)")

    return list(dict.fromkeys(indicators))


def build_inbox_prompt(messages: list[Message]) -> str:
    lines = [f"Analyze these {len(messages)} emails and provide insights:", ""]
    for i, message in enumerate(messages, start=1):
        senders = ", ".join(
            f"{p.name} <{p.email}>" if p.name else p.email for p in message.sender
        ) or "Unknown"
        lines += [
            f"--- Email {i} ---",
            f"From: {senders}",
            f"Subject: {message.subject}",
            f"Date: {message.sent_at.isoformat()}",
        ]
        if message.snippet:
            snippet = message.snippet
            if len(snippet) > SNIPPET_PREVIEW_CHARS:
                snippet = snippet[:SNIPPET_PREVIEW_CHARS - 3] + "..."
            lines.append(f"Preview: {snippet}")
        if message.unread:
            lines.append("Status: UNREAD")
        lines.append("")
    return "\n".join(lines)


# ── Analyzer ────────────────────────────────────────────────────────


class EmailAnalyzer:
    def __init__(self, calendar: CalendarClient, router: LLMRouter):
        self._client = calendar
        self._router = router

    def analyze_thread(self, grant_id: str, request: EmailAnalysisRequest) -> EmailThreadAnalysis:
        thread = self._client.get_thread(grant_id, request.thread_id)
        messages = self._client.get_messages_with_params(
            grant_id, thread_id=request.thread_id, limit=THREAD_MESSAGE_LIMIT
        )
        if not messages:
            raise InsufficientDataError("thread has no messages")

        prompt = build_thread_analysis_prompt(
            build_thread_context(thread, messages), request.include_agenda, request.include_time
        )
        response = self._router.chat(
            ChatRequest(
                messages=[
                    ChatMessage(role="system", content=ANALYST_PROMPT),
                    ChatMessage(role="user", content=prompt),
                ],
                temperature=0.3,
                max_tokens=2000,
            )
        )

        analysis = parse_analysis_response(response.content, request)
        analysis.participants = analyze_participants(thread, messages)
        analysis.urgency_indicators = detect_urgency_indicators(messages)
        logger.info(
            "Analyzed thread %s: %d messages, priority=%s", request.thread_id, len(messages), analysis.priority
        )
        return analysis

    def analyze_inbox(self, messages: list[Message], provider: str = "") -> InboxSummaryResponse:
        """Summarize recent messages; unparseable answers come back as raw text."""
        if not messages:
            raise InsufficientDataError("no messages to analyze")

        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content=INBOX_ANALYSIS_PROMPT),
                ChatMessage(role="user", content=build_inbox_prompt(messages)),
            ],
            temperature=0.3,
        )
        if provider:
            response = self._router.chat_with_provider(provider, request)
        else:
            response = self._router.chat(request)

        result = parse_inbox_response(response.content)
        if result is None:
            logger.warning("Inbox summary was not valid JSON; returning raw text")
            result = InboxSummaryResponse(summary=response.content)

        result.provider_used = response.provider
        result.tokens_used = response.usage.total_tokens
        return result
