"""OpenAI-compatible chat completions backends: OpenAI and Groq."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

from calendar_intel.config import DEFAULT_GROQ_MODEL, DEFAULT_OPENAI_MODEL
from calendar_intel.llm.providers.base import (
    BaseClient,
    ProviderError,
    StreamCallback,
    decode_arguments,
    to_openai_messages,
    to_openai_tools,
)
from calendar_intel.llm.schemas import ChatRequest, ChatResponse, TokenUsage, Tool, ToolCall

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class OpenAIProvider(BaseClient):
    name = "openai"
    api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        super().__init__(
            api_key or os.getenv(self.api_key_env, ""),
            model or DEFAULT_OPENAI_MODEL,
            base_url or OPENAI_BASE_URL,
            timeout,
            http_client=http_client,
        )

    def is_available(self) -> bool:
        return self.is_configured()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _payload(
        self, request: ChatRequest, tools: list[Tool] | None, *, stream: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.get_model(request.model),
            "messages": to_openai_messages(request.messages),
            "stream": stream,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens
        if tools:
            payload["tools"] = to_openai_tools(tools)
            payload["tool_choice"] = "auto"
        return payload

    def chat_with_tools(
        self, request: ChatRequest, tools: list[Tool] | None
    ) -> ChatResponse:
        if not self.is_configured():
            raise ProviderError(self.name, f"{self.name} API key not configured")

        data = self._post_json("/chat/completions", self._payload(request, tools, stream=False))

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, "no choices in response")
        message = choices[0].get("message") or {}

        tool_calls = [
            ToolCall(
                id=call.get("id", ""),
                function=call.get("function", {}).get("name", ""),
                arguments=decode_arguments(call.get("function", {}).get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        usage = data.get("usage") or {}
        return ChatResponse(
            content=message.get("content") or "",
            model=data.get("model") or self.get_model(request.model),
            provider=self.name,
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
            tool_calls=tool_calls,
        )

    def stream_chat(self, request: ChatRequest, callback: StreamCallback) -> None:
        """Stream server-sent ``data:`` chunks until ``[DONE]``."""
        if not self.is_configured():
            raise ProviderError(self.name, f"{self.name} API key not configured")

        payload = self._payload(request, None, stream=True)
        with self._stream_lines("/chat/completions", payload) as lines:
            for line in lines:
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed %s stream line: %.100s", self.name, data)
                    continue
                for choice in chunk.get("choices") or []:
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        callback(text)


class GroqProvider(OpenAIProvider):
    """Groq serves the OpenAI chat-completions protocol on its own endpoint."""

    name = "groq"
    api_key_env = "GROQ_API_KEY"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        super().__init__(
            api_key,
            model or DEFAULT_GROQ_MODEL,
            GROQ_BASE_URL,
            timeout,
            http_client=http_client,
        )
