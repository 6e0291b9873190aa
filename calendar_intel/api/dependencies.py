"""Service wiring shared by the FastAPI app and the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from calendar_intel.agent import AIScheduler
from calendar_intel.analytics.conflict_resolver import ConflictResolver
from calendar_intel.analytics.email_analyzer import EmailAnalyzer
from calendar_intel.analytics.focus_optimizer import FocusOptimizer
from calendar_intel.analytics.pattern_learner import PatternLearner
from calendar_intel.config import AIConfig, load_ai_config
from calendar_intel.llm.router import LLMRouter
from calendar_intel.services.nylas_client import CalendarClient, get_nylas_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    router: LLMRouter
    calendar: CalendarClient
    pattern_learner: PatternLearner
    focus_optimizer: FocusOptimizer
    conflict_resolver: ConflictResolver
    scheduler: AIScheduler
    email_analyzer: EmailAnalyzer


def build_services(
    calendar: CalendarClient | None = None,
    ai_config: AIConfig | None = None,
) -> Services:
    """Build every component once, sharing a single router and calendar client."""
    calendar = calendar or get_nylas_client()
    router = LLMRouter.from_config(ai_config or load_ai_config())
    learner = PatternLearner(calendar, router)

    logger.debug("Services built with providers: %s", router.list_providers())
    return Services(
        router=router,
        calendar=calendar,
        pattern_learner=learner,
        focus_optimizer=FocusOptimizer(calendar, learner),
        conflict_resolver=ConflictResolver(calendar, learner),
        scheduler=AIScheduler(router),
        email_analyzer=EmailAnalyzer(calendar, router),
    )
