"""Anthropic Claude backend, driven through ``langchain_anthropic.ChatAnthropic``."""

from __future__ import annotations

import logging
import os
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from calendar_intel.config import DEFAULT_CLAUDE_MODEL, expand_env_var
from calendar_intel.llm.providers.base import (
    DEFAULT_TIMEOUT_SECONDS,
    ProviderError,
    StreamCallback,
)
from calendar_intel.llm.schemas import ChatMessage, ChatRequest, ChatResponse, TokenUsage, Tool, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


def _message_text(content: Any) -> str:
    """Flatten a LangChain message ``content`` (str or content blocks) to text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _to_langchain_messages(messages: list[ChatMessage]) -> list[BaseMessage]:
    """Map chat messages onto LangChain message classes.

    Tool results are replayed as user turns: the follow-up call that carries
    them is made without tool definitions, which the Messages API requires
    for ``tool_result`` blocks.
    """
    converted: list[BaseMessage] = []
    for msg in messages:
        if msg.role == "system":
            converted.append(SystemMessage(content=msg.content))
        elif msg.role == "assistant":
            converted.append(AIMessage(content=msg.content))
        elif msg.role == "tool":
            label = msg.name or msg.tool_call_id or "tool"
            converted.append(HumanMessage(content=f"Result of {label}:\n{msg.content}"))
        else:
            converted.append(HumanMessage(content=msg.content))
    return converted


class ClaudeProvider:
    name = "claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        self._api_key = expand_env_var(api_key or "") or os.getenv("ANTHROPIC_API_KEY", "")
        self.model = model or DEFAULT_CLAUDE_MODEL
        self.timeout = timeout or DEFAULT_TIMEOUT_SECONDS

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _build_llm(self, request: ChatRequest) -> ChatAnthropic:
        kwargs: dict[str, Any] = {
            "model": request.model or self.model,
            "api_key": self._api_key,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "timeout": self.timeout,
            "max_retries": 0,
        }
        if request.temperature is not None and request.temperature > 0:
            kwargs["temperature"] = request.temperature
        return ChatAnthropic(**kwargs)

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self.chat_with_tools(request, None)

    def chat_with_tools(
        self, request: ChatRequest, tools: list[Tool] | None
    ) -> ChatResponse:
        if not self._api_key:
            raise ProviderError(self.name, "claude API key not configured")

        llm = self._build_llm(request)
        if tools:
            llm = llm.bind_tools(
                [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "input_schema": tool.parameters,
                    }
                    for tool in tools
                ]
            )

        try:
            reply = llm.invoke(_to_langchain_messages(request.messages))
        except Exception as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        usage = getattr(reply, "usage_metadata", None) or {}
        prompt_tokens = usage.get("input_tokens", 0)
        completion_tokens = usage.get("output_tokens", 0)
        return ChatResponse(
            content=_message_text(reply.content),
            model=reply.response_metadata.get("model")
            or reply.response_metadata.get("model_name")
            or request.model
            or self.model,
            provider=self.name,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            tool_calls=[
                ToolCall(id=call.get("id") or "", function=call["name"], arguments=call.get("args") or {})
                for call in getattr(reply, "tool_calls", None) or []
            ],
        )

    def stream_chat(self, request: ChatRequest, callback: StreamCallback) -> None:
        if not self._api_key:
            raise ProviderError(self.name, "claude API key not configured")

        llm = self._build_llm(request)
        try:
            for chunk in llm.stream(_to_langchain_messages(request.messages)):
                text = _message_text(chunk.content)
                if text:
                    callback(text)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self.name, f"stream failed: {exc}") from exc
