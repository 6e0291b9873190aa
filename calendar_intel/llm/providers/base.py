"""Provider capability surface and the HTTP plumbing shared by JSON backends.

Every backend exposes the same five members (``name``, ``is_available``,
``chat``, ``chat_with_tools``, ``stream_chat``); the router only ever talks to
that surface.  Backends that speak plain JSON over HTTP (Ollama, OpenAI, Groq)
build on :class:`BaseClient`, which owns the ``httpx.Client`` and turns
transport failures into :class:`ProviderError`.

Providers never retry: the router's fallback chain is the only retry policy.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

import httpx

from calendar_intel.llm.schemas import ChatMessage, ChatRequest, ChatResponse, Tool

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0

StreamCallback = Callable[[str], None]


class ProviderError(Exception):
    """Raised when a provider call fails (transport, HTTP status or payload)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


@runtime_checkable
class LLMProvider(Protocol):
    name: str

    def is_available(self) -> bool: ...

    def chat(self, request: ChatRequest) -> ChatResponse: ...

    def chat_with_tools(
        self, request: ChatRequest, tools: list[Tool] | None
    ) -> ChatResponse: ...

    def stream_chat(self, request: ChatRequest, callback: StreamCallback) -> None: ...


# ── OpenAI-style wire conversions ───────────────────────────────────


def to_openai_messages(
    messages: list[ChatMessage], *, encode_arguments: bool = True
) -> list[dict[str, Any]]:
    """Convert chat messages to the ``messages`` array used by OpenAI-style APIs.

    OpenAI and Groq expect tool-call arguments as a JSON string; Ollama's
    native API expects the object itself (``encode_arguments=False``).
    """
    result: list[dict[str, Any]] = []
    for msg in messages:
        item: dict[str, Any] = {"role": msg.role, "content": msg.content}
        if msg.name:
            item["name"] = msg.name
        if msg.tool_call_id:
            item["tool_call_id"] = msg.tool_call_id
        if msg.tool_calls:
            item["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.function,
                        "arguments": json.dumps(call.arguments) if encode_arguments else call.arguments,
                    },
                }
                for call in msg.tool_calls
            ]
        result.append(item)
    return result


def to_openai_tools(tools: list[Tool] | None) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools or []
    ]


def decode_arguments(raw: Any) -> dict[str, Any]:
    """Tool arguments arrive as a dict or a JSON string; anything else is empty."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable tool arguments: %.100s", raw)
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


# ── Shared HTTP client ──────────────────────────────────────────────


class BaseClient:
    """JSON-over-HTTP plumbing for one backend."""

    name = "base"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        self._api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT_SECONDS
        self._client = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
        )

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def get_model(self, request_model: str | None) -> str:
        return request_model or self.model

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.request(
                "POST", path, json=payload, headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            raise ProviderError(self.name, f"request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"failed to send request: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                self.name,
                f"API error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.name, f"failed to decode response: {exc}") from exc

    @contextmanager
    def _stream_lines(self, path: str, payload: dict[str, Any]) -> Iterator[Iterator[str]]:
        """Open a streaming POST and yield an iterator over its body lines."""
        try:
            with self._client.stream(
                "POST", path, json=payload, headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    raise ProviderError(
                        self.name,
                        f"API error (status {response.status_code}): {response.text}",
                        status_code=response.status_code,
                    )
                yield response.iter_lines()
        except httpx.TimeoutException as exc:
            raise ProviderError(self.name, f"stream timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"failed to send request: {exc}") from exc

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self.chat_with_tools(request, None)

    def chat_with_tools(
        self, request: ChatRequest, tools: list[Tool] | None
    ) -> ChatResponse:
        raise NotImplementedError

    def stream_chat(self, request: ChatRequest, callback: StreamCallback) -> None:
        """Deliver the whole completion as a single chunk."""
        response = self.chat(request)
        callback(response.content)
