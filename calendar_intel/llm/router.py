"""Provider registry with a default provider and an ordered fallback chain.

The router is built once from an :class:`~calendar_intel.config.AIConfig`
snapshot and never changes afterwards.  Routed calls walk the fallback chain
strictly in order: the first provider that is registered, reports itself
available and answers wins.  Nothing is retried or attempted concurrently.
"""

from __future__ import annotations

import logging
import time

from calendar_intel.config import AIConfig
from calendar_intel.llm.providers.base import LLMProvider
from calendar_intel.llm.providers.claude_provider import ClaudeProvider
from calendar_intel.llm.providers.ollama_provider import OllamaProvider
from calendar_intel.llm.providers.openai_provider import GroqProvider, OpenAIProvider
from calendar_intel.llm.schemas import ChatRequest, ChatResponse
from calendar_intel.services.metrics import metrics

logger = logging.getLogger(__name__)


class NoProviderError(Exception):
    """Raised when no provider is registered under the requested name."""


class ProviderUnavailableError(Exception):
    """Raised by direct calls when the named provider reports itself unavailable."""


class AllProvidersFailedError(Exception):
    """Every entry of the fallback chain was skipped or failed."""

    def __init__(self, attempts: list[tuple[str, str]], last_error: Exception | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"all providers failed, last error: {last_error}")


def plan_attempts(
    chain: list[str], providers: dict[str, LLMProvider]
) -> list[tuple[str, LLMProvider | None]]:
    """Resolve the fallback chain against the registry, preserving order.

    Unregistered names stay in the plan with ``None`` so the caller can record
    them as skipped.
    """
    return [(name, providers.get(name)) for name in chain]


class LLMRouter:
    def __init__(
        self,
        providers: dict[str, LLMProvider],
        default_provider: str = "",
        fallback_chain: list[str] | None = None,
    ):
        self._providers = dict(providers)
        self.default_provider = default_provider
        self.fallback_chain = list(fallback_chain or [])

    @classmethod
    def from_config(cls, config: AIConfig) -> LLMRouter:
        """Register one provider per configuration section that is present."""
        timeout = config.request_timeout
        providers: dict[str, LLMProvider] = {}
        if config.ollama is not None:
            providers["ollama"] = OllamaProvider(config.ollama.host, config.ollama.model, timeout)
        if config.claude is not None:
            providers["claude"] = ClaudeProvider(config.claude.api_key, config.claude.model, timeout)
        if config.openai is not None:
            providers["openai"] = OpenAIProvider(
                config.openai.api_key,
                config.openai.model,
                config.openai.base_url or None,
                timeout,
            )
        if config.groq is not None:
            providers["groq"] = GroqProvider(config.groq.api_key, config.groq.model, timeout)

        if config.fallback is not None and config.fallback.enabled:
            chain = list(config.fallback.providers)
        elif config.default_provider:
            chain = [config.default_provider]
        else:
            chain = []

        logger.info(
            "LLM router ready: providers=%s default=%s chain=%s",
            sorted(providers), config.default_provider or "-", chain,
        )
        return cls(providers, config.default_provider, chain)

    def get_provider(self, name: str = "") -> LLMProvider:
        """Return the named provider, or the default for an empty name."""
        name = name or self.default_provider
        if not name:
            raise NoProviderError("no provider requested and no default provider configured")
        provider = self._providers.get(name)
        if provider is None:
            raise NoProviderError(f"provider {name!r} not registered")
        return provider

    def list_providers(self) -> list[str]:
        return list(self._providers)

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Answer with the first provider in the fallback chain that succeeds."""
        if not self.fallback_chain:
            provider = self.get_provider()
            return self._attempt(provider, request, "chat")

        attempts: list[tuple[str, str]] = []
        last_error: Exception | None = None
        for name, provider in plan_attempts(self.fallback_chain, self._providers):
            if provider is None:
                last_error = NoProviderError(f"provider {name!r} not registered")
                attempts.append((name, str(last_error)))
                metrics.record_skip(name, reason="unregistered")
                logger.warning("Skipping provider %s: not registered", name)
                continue
            if not provider.is_available():
                last_error = ProviderUnavailableError(f"provider {name!r} unavailable")
                attempts.append((name, str(last_error)))
                metrics.record_skip(name, reason="unavailable")
                logger.warning("Skipping provider %s: unavailable", name)
                continue
            try:
                return self._attempt(provider, request, "chat")
            except Exception as exc:
                last_error = exc
                attempts.append((name, str(exc)))
                logger.warning("Provider %s failed, trying next: %s", name, exc)

        raise AllProvidersFailedError(attempts, last_error)

    def chat_with_provider(self, name: str, request: ChatRequest) -> ChatResponse:
        """Call one provider directly, bypassing the fallback chain."""
        provider = self.get_provider(name)
        if not provider.is_available():
            raise ProviderUnavailableError(f"provider {provider.name!r} unavailable")
        return self._attempt(provider, request, "chat_with_provider")

    def _attempt(self, provider: LLMProvider, request: ChatRequest, operation: str) -> ChatResponse:
        t0 = time.perf_counter()
        try:
            response = provider.chat(request)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                provider.name, operation,
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success(provider.name, operation, latency_ms=elapsed)
        logger.debug("%s answered in %.0fms", provider.name, elapsed)
        return response
