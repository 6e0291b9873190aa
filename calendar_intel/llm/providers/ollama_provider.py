"""Local Ollama backend (``/api/chat``)."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from calendar_intel.config import DEFAULT_OLLAMA_HOST, DEFAULT_OLLAMA_MODEL
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

AVAILABILITY_TIMEOUT_SECONDS = 2.0


class OllamaProvider(BaseClient):
    """Ollama needs no credential; availability means the daemon answers."""

    name = "ollama"

    def __init__(
        self,
        host: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        super().__init__(
            "",
            model or DEFAULT_OLLAMA_MODEL,
            host or DEFAULT_OLLAMA_HOST,
            timeout,
            http_client=http_client,
        )

    def is_available(self) -> bool:
        try:
            response = self._client.request(
                "GET", "/api/tags", timeout=AVAILABILITY_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            logger.debug("Ollama at %s unreachable: %s", self.base_url, exc)
            return False
        return response.status_code == 200

    def _payload(
        self, request: ChatRequest, tools: list[Tool] | None, *, stream: bool
    ) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens:
            options["num_predict"] = request.max_tokens

        payload: dict[str, Any] = {
            "model": self.get_model(request.model),
            "messages": to_openai_messages(request.messages, encode_arguments=False),
            "stream": stream,
        }
        if options:
            payload["options"] = options
        if tools:
            payload["tools"] = to_openai_tools(tools)
        return payload

    def chat_with_tools(
        self, request: ChatRequest, tools: list[Tool] | None
    ) -> ChatResponse:
        data = self._post_json("/api/chat", self._payload(request, tools, stream=False))

        message = data.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call.get("id") or f"call_{i}",
                function=call.get("function", {}).get("name", ""),
                arguments=decode_arguments(call.get("function", {}).get("arguments")),
            )
            for i, call in enumerate(message.get("tool_calls") or [])
        ]
        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        return ChatResponse(
            content=message.get("content", ""),
            model=data.get("model") or self.get_model(request.model),
            provider=self.name,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            tool_calls=tool_calls,
        )

    def stream_chat(self, request: ChatRequest, callback: StreamCallback) -> None:
        """Ollama streams newline-delimited JSON objects until ``done``."""
        with self._stream_lines("/api/chat", self._payload(request, None, stream=True)) as lines:
            for line in lines:
                if not line.strip():
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise ProviderError(self.name, f"failed to decode stream chunk: {exc}") from exc
                text = (chunk.get("message") or {}).get("content")
                if text:
                    callback(text)
                if chunk.get("done"):
                    break
