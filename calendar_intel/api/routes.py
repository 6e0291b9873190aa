"""FastAPI route definitions for the Calendar Intel API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from calendar_intel import config
from calendar_intel.agent import ScheduleRequest, ScheduleResponse
from calendar_intel.analytics.conflict_resolver import ConflictAnalysis
from calendar_intel.analytics.email_analyzer import EmailAnalysisRequest, EmailThreadAnalysis
from calendar_intel.analytics.focus_optimizer import (
    AdaptiveScheduleChange,
    DurationOptimization,
    FocusTimeAnalysis,
    ProtectedBlock,
)
from calendar_intel.analytics.meeting_scorer import MeetingScore
from calendar_intel.analytics.pattern_learner import InsufficientDataError, LearnPatternsRequest
from calendar_intel.analytics.patterns import SchedulingPatterns
from calendar_intel.api.dependencies import Services
from calendar_intel.api.schemas import (
    ConflictCheckRequest,
    FocusAdaptRequest,
    FocusAnalyzeRequest,
    FocusProtectRequest,
    HealthResponse,
    MeetingScoreRequest,
    OptimizeDurationRequest,
    ProvidersResponse,
    ThreadAnalysisRequest,
)
from calendar_intel.llm.providers.base import ProviderError
from calendar_intel.llm.router import AllProvidersFailedError, NoProviderError, ProviderUnavailableError
from calendar_intel.services.nylas_client import NylasAPIError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_services(request: Request) -> Services:
    """Retrieve the service container built during the FastAPI lifespan."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return services


def _grant(grant_id: str) -> str:
    grant = grant_id or config.NYLAS_GRANT_ID
    if not grant:
        raise HTTPException(status_code=422, detail="grant_id is required (or set NYLAS_GRANT_ID).")
    return grant


async def _run(http_request: Request, func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking service call off the event loop and map its errors.

    Upstream and unexpected failures are logged with the request ID but
    never echoed to the client.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(func, *args)
    except HTTPException:
        raise
    except InsufficientDataError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except (NoProviderError, ProviderUnavailableError) as e:
        logger.warning("[%s] No usable LLM provider: %s", request_id, e)
        raise HTTPException(status_code=503, detail="No AI provider is available.") from e
    except (AllProvidersFailedError, ProviderError, NylasAPIError) as e:
        logger.error("[%s] Upstream failure: %s", request_id, e)
        raise HTTPException(status_code=502, detail="An upstream service failed. Please try again.") from e
    except Exception as e:
        logger.exception("[%s] Error processing request", request_id)
        raise HTTPException(status_code=500, detail="An internal error occurred. Please try again.") from e


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(http_request: Request):
    services = _get_services(http_request)
    return ProvidersResponse(
        providers=services.router.list_providers(),
        default_provider=services.router.default_provider,
        fallback_chain=services.router.fallback_chain,
    )


@router.post("/patterns", response_model=SchedulingPatterns)
async def learn_patterns(request: LearnPatternsRequest, http_request: Request):
    """Learn scheduling patterns from the grant's calendar history."""
    services = _get_services(http_request)
    request = request.model_copy(update={"grant_id": _grant(request.grant_id)})
    return await _run(http_request, services.pattern_learner.learn_patterns, request)


@router.post("/focus/analyze", response_model=FocusTimeAnalysis)
async def analyze_focus(request: FocusAnalyzeRequest, http_request: Request):
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.focus_optimizer.analyze_focus_time_patterns,
        _grant(request.grant_id),
        request.settings,
    )


@router.post("/focus/protect", response_model=list[ProtectedBlock])
async def protect_focus(request: FocusProtectRequest, http_request: Request):
    """Book the given focus blocks as busy calendar events."""
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.focus_optimizer.create_protected_blocks,
        _grant(request.grant_id),
        request.blocks,
        request.settings,
    )


@router.post("/focus/adapt", response_model=AdaptiveScheduleChange)
async def adapt_schedule(request: FocusAdaptRequest, http_request: Request):
    """Propose schedule changes for a trigger; nothing is applied."""
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.focus_optimizer.adapt_schedule,
        _grant(request.grant_id),
        request.trigger,
        request.settings,
    )


@router.post("/meetings/optimize-duration", response_model=DurationOptimization)
async def optimize_duration(request: OptimizeDurationRequest, http_request: Request):
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.focus_optimizer.optimize_meeting_duration,
        _grant(request.grant_id),
        request.calendar_id,
        request.event_id,
    )


@router.post("/conflicts/detect", response_model=ConflictAnalysis)
async def detect_conflicts(request: ConflictCheckRequest, http_request: Request):
    """Check a proposed meeting for hard and soft conflicts; nothing is booked."""
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.conflict_resolver.detect_conflicts,
        _grant(request.grant_id),
        request.to_event(),
    )


@router.post("/meetings/score", response_model=MeetingScore)
async def score_meeting(request: MeetingScoreRequest, http_request: Request):
    services = _get_services(http_request)
    return await _run(
        http_request,
        services.conflict_resolver.score_meeting_time,
        _grant(request.grant_id),
        request.local_start(),
        request.participants,
    )


@router.post("/schedule", response_model=ScheduleResponse)
async def schedule(request: ScheduleRequest, http_request: Request):
    """Answer a natural-language scheduling request with ranked options."""
    services = _get_services(http_request)
    return await _run(http_request, services.scheduler.schedule, request)


@router.post("/email/thread-analysis", response_model=EmailThreadAnalysis)
async def analyze_thread(request: ThreadAnalysisRequest, http_request: Request):
    services = _get_services(http_request)
    analysis_request = EmailAnalysisRequest(
        thread_id=request.thread_id,
        include_agenda=request.include_agenda,
        include_time=request.include_time,
    )
    return await _run(
        http_request,
        services.email_analyzer.analyze_thread,
        _grant(request.grant_id),
        analysis_request,
    )
