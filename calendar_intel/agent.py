"""LangGraph-based AI scheduler.

Architecture:
  A single-round tool-calling graph built as a LangGraph StateGraph with
  three nodes:

    1. **plan**      : chat-with-tools call carrying the six scheduling tools
    2. **tools**     : executes every tool call the model requested
    3. **follow_up** : one plain chat call that sees the tool results

  Routing:
    plan → (has tool calls?) → tools → follow_up → END
         → (no tool calls?)  → END

  There is no loop: tool calls made in the follow-up answer are ignored.
  The final answer is parsed for a JSON array of ranked options; anything
  unparseable becomes a single "tomorrow at 2 PM" option, so a schedule
  response always carries at least one option.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing_extensions import TypedDict

from calendar_intel.llm.providers.base import LLMProvider
from calendar_intel.llm.router import LLMRouter
from calendar_intel.llm.schemas import ChatMessage, ChatRequest, ChatResponse, Tool
from calendar_intel.prompts import SCHEDULER_QUERY_TEMPLATE, get_scheduler_prompt
from calendar_intel.services.metrics import metrics
from calendar_intel.tools.scheduling import SchedulingToolExecutor, ToolExecutor, get_scheduling_tools

logger = logging.getLogger(__name__)

FALLBACK_HOUR = 14
FALLBACK_MINUTES = 30
FALLBACK_SCORE = 85
FALLBACK_REASONING = "Tomorrow afternoon - good for most timezones"


# ── Request / response types ────────────────────────────────────────


class ScheduleRequest(BaseModel):
    query: str = Field(min_length=1)
    grant_id: str = ""
    user_timezone: str = "UTC"
    max_options: int = Field(default=3, ge=1, le=10)
    provider: str = ""


class ParticipantTime(BaseModel):
    email: str = ""
    timezone: str = ""
    local_time: datetime | None = None
    time_desc: str = ""
    notes: str = ""


class ScheduleOption(BaseModel):
    rank: int
    score: int = 0
    start_time: datetime
    end_time: datetime
    timezone: str = ""
    reasoning: str = ""
    warnings: list[str] = Field(default_factory=list)
    participants: dict[str, ParticipantTime] = Field(default_factory=dict)


class ScheduleResponse(BaseModel):
    options: list[ScheduleOption]
    analysis: str = ""
    provider_used: str = ""
    tokens_used: int = 0


_OPTIONS_ADAPTER = TypeAdapter(list[ScheduleOption])


# ── Answer parsing ──────────────────────────────────────────────────


def _user_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def create_fallback_options(user_timezone: str = "UTC", now: datetime | None = None) -> list[ScheduleOption]:
    """One option tomorrow at 14:00 in the user's timezone (UTC if unknown)."""
    zone = _user_zone(user_timezone)
    now = (now or datetime.now(zone)).astimezone(zone)
    tomorrow = now.date() + timedelta(days=1)
    start = datetime(tomorrow.year, tomorrow.month, tomorrow.day, FALLBACK_HOUR, tzinfo=zone)
    return [
        ScheduleOption(
            rank=1,
            score=FALLBACK_SCORE,
            start_time=start,
            end_time=start + timedelta(minutes=FALLBACK_MINUTES),
            timezone=zone.key,
            reasoning=FALLBACK_REASONING,
        )
    ]


def parse_schedule_options(
    content: str, user_timezone: str = "UTC", now: datetime | None = None
) -> list[ScheduleOption]:
    """Extract the outermost JSON array of options from a model answer."""
    start, end = content.find("["), content.rfind("]")
    if start == -1 or end <= start:
        logger.info("No options array in model answer; using fallback option")
        return create_fallback_options(user_timezone, now)
    try:
        options = _OPTIONS_ADAPTER.validate_json(content[start:end + 1])
    except ValidationError as exc:
        logger.info("Unparseable options array (%d errors); using fallback option", exc.error_count())
        return create_fallback_options(user_timezone, now)
    return options or create_fallback_options(user_timezone, now)


# ── State schema ────────────────────────────────────────────────────


class SchedulerState(TypedDict):
    """State flowing through the scheduling graph.

    ``messages`` is the full conversation replayed to the provider;
    ``response`` is the latest provider answer and ``tokens_used`` sums the
    usage of every call made so far.
    """

    messages: list[ChatMessage]
    response: ChatResponse | None
    tokens_used: int


# ── Nodes ───────────────────────────────────────────────────────────


def _timed_call(provider: LLMProvider, operation: str, call) -> ChatResponse:
    t0 = time.perf_counter()
    try:
        response = call()
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure(provider.name, operation, error_type=type(exc).__name__, latency_ms=elapsed)
        raise
    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success(provider.name, operation, latency_ms=elapsed)
    logger.debug("%s %s answered in %.0fms", provider.name, operation, elapsed)
    return response


def _chat_request(messages: list[ChatMessage]) -> ChatRequest:
    return ChatRequest(messages=messages, temperature=0.7, max_tokens=2000)


def _make_plan_node(provider: LLMProvider, tools: list[Tool]):
    def plan_node(state: SchedulerState) -> dict:
        request = _chat_request(state["messages"])
        response = _timed_call(provider, "schedule_plan", lambda: provider.chat_with_tools(request, tools))
        return {"response": response, "tokens_used": state["tokens_used"] + response.usage.total_tokens}

    return plan_node


def _make_tools_node(executor: ToolExecutor):
    def tools_node(state: SchedulerState) -> dict:
        """Run each requested tool; failures become the tool's result text."""
        response = state["response"]
        messages = list(state["messages"])
        messages.append(ChatMessage(role="assistant", content=response.content, tool_calls=response.tool_calls))

        for call in response.tool_calls:
            try:
                result = executor.execute(call.function, call.arguments)
            except Exception as exc:
                logger.warning("Tool %s failed: %s", call.function, exc)
                result = f"Error executing {call.function}: {exc}"
            messages.append(ChatMessage(role="tool", content=result, name=call.function, tool_call_id=call.id))

        return {"messages": messages}

    return tools_node


def _make_follow_up_node(provider: LLMProvider):
    def follow_up_node(state: SchedulerState) -> dict:
        request = _chat_request(state["messages"])
        response = _timed_call(provider, "schedule_follow_up", lambda: provider.chat(request))
        return {"response": response, "tokens_used": state["tokens_used"] + response.usage.total_tokens}

    return follow_up_node


def should_use_tools(state: SchedulerState) -> str:
    response = state["response"]
    if response is not None and response.tool_calls:
        return "tools"
    return END


def create_scheduler_graph(provider: LLMProvider, executor: ToolExecutor, tools: list[Tool]):
    """Build and compile the single-round scheduling graph for one provider."""
    graph = StateGraph(SchedulerState)

    graph.add_node("plan", _make_plan_node(provider, tools))
    graph.add_node("tools", _make_tools_node(executor))
    graph.add_node("follow_up", _make_follow_up_node(provider))

    graph.set_entry_point("plan")
    graph.add_conditional_edges("plan", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "follow_up")
    graph.add_edge("follow_up", END)

    return graph.compile()


# ── Scheduler ───────────────────────────────────────────────────────


class AIScheduler:
    def __init__(
        self,
        router: LLMRouter,
        provider_name: str = "",
        executor: ToolExecutor | None = None,
    ):
        self._router = router
        self._provider_name = provider_name
        self._executor = executor or SchedulingToolExecutor()
        self._tools = get_scheduling_tools()

    def schedule(self, request: ScheduleRequest) -> ScheduleResponse:
        provider = self._router.get_provider(request.provider or self._provider_name)
        logger.info("Scheduling via %s (tz=%s): %s", provider.name, request.user_timezone, request.query[:80])

        graph = create_scheduler_graph(provider, self._executor, self._tools)
        state = graph.invoke({
            "messages": [
                ChatMessage(
                    role="system",
                    content=get_scheduler_prompt(request.user_timezone, request.max_options),
                ),
                ChatMessage(
                    role="user",
                    content=SCHEDULER_QUERY_TEMPLATE.format(query=request.query, max_options=request.max_options),
                ),
            ],
            "response": None,
            "tokens_used": 0,
        })

        answer: ChatResponse = state["response"]
        options = parse_schedule_options(answer.content, request.user_timezone)
        return ScheduleResponse(
            options=options[: request.max_options],
            analysis=answer.content,
            provider_used=answer.provider or provider.name,
            tokens_used=state["tokens_used"],
        )
