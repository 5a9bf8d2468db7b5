"""
AgentGate OpenAI Driver

Wraps the OpenAI chat completions API behind the ModelDriver interface.

Requires the `openai` package. Set OPENAI_API_KEY or pass an api_key.

Also compatible with OpenAI-compatible APIs (Azure, Together, Groq,
vLLM, Ollama's /v1 endpoint) via base_url override.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from agentgate.drivers.base import ModelDriver
from agentgate.drivers.models import (
    Capabilities,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    DriverConfig,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from agentgate.exceptions import DriverAPIError, DriverTimeoutError, ModelNotFoundError

_FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "content_filter": "content_filter",
}


def _decode_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return value if isinstance(value, dict) else {"_value": value}


class OpenAIDriver(ModelDriver):
    """OpenAI and OpenAI-compatible driver using the official SDK."""

    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, config: DriverConfig | None = None, *, client: Any = None):
        super().__init__(config or DriverConfig(default_model=self.DEFAULT_MODEL))
        self._owns_client = client is None
        self._client = client or self._create_client()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.close()

    def _create_client(self) -> AsyncOpenAI:
        kwargs: dict[str, Any] = {
            "timeout": self._config.timeout_seconds,
            "max_retries": 0,
        }
        if self._config.api_key:
            kwargs["api_key"] = self._config.api_key
        if self._config.base_url:
            kwargs["base_url"] = self._config.base_url
        if self._config.headers:
            kwargs["default_headers"] = self._config.headers
        return AsyncOpenAI(**kwargs)

    async def get_capabilities(self) -> Capabilities:
        try:
            models = [m.id async for m in self._client.models.list()]
        except openai.APIError as e:
            raise self._translate_error(e, None) from e
        return Capabilities(
            models=models,
            supports_tools=True,
            supports_stream=True,
            max_context_tokens=128000,
            api_version="v1",
        )

    async def _chat_impl(self, request: ChatRequest) -> ChatResponse:
        kwargs = self._build_kwargs(request)
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise self._translate_error(e, kwargs["model"]) from e
        return self._to_response(response)

    async def _chat_stream_impl(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        kwargs = self._build_kwargs(request)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        text = ""
        finish_reason: str | None = None
        usage: TokenUsage | None = None
        # index -> {"id", "name", "arguments"} accumulated across deltas
        partial_calls: dict[int, dict[str, str]] = {}

        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = TokenUsage(
                        prompt_tokens=chunk.usage.prompt_tokens,
                        completion_tokens=chunk.usage.completion_tokens,
                        total_tokens=chunk.usage.total_tokens,
                    )
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None and delta.content:
                    text += delta.content
                    yield StreamChunk(delta=delta.content)

                for tc in (delta.tool_calls if delta is not None else None) or []:
                    slot = partial_calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except openai.APIError as e:
            raise self._translate_error(e, kwargs["model"]) from e

        tool_calls = [
            ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments=_decode_arguments(slot["arguments"]),
            )
            for index, slot in sorted(partial_calls.items())
        ]
        for call in tool_calls:
            yield StreamChunk(tool_call_delta=call)

        # No finish_reason means the stream was cut off.
        reason = "length" if finish_reason is None else _FINISH_REASONS.get(finish_reason, "stop")
        yield StreamChunk(
            done=True,
            response=ChatResponse(
                text=text,
                tool_calls=tool_calls or None,
                incomplete=reason == "length",
                usage=usage,
                finish_reason=reason,
            ),
        )

    # ─── Wire translation ──────────────────────────────────

    def _build_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.get_model_name(request),
            "messages": [self._convert_message(m) for m in request.messages],
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.stop:
            kwargs["stop"] = request.stop
        if request.tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters or {"type": "object", "properties": {}},
                    },
                }
                for t in request.tools
            ]
        return kwargs

    @staticmethod
    def _convert_message(message: ChatMessage) -> dict[str, Any]:
        if message.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id or "",
                "content": message.content,
            }
        if message.role == "assistant" and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in message.tool_calls
                ],
            }
        return {"role": message.role, "content": message.content}

    @staticmethod
    def _to_response(response: Any) -> ChatResponse:
        choice = response.choices[0] if response.choices else None
        if choice is None:
            return ChatResponse(incomplete=True, finish_reason="length")

        msg = choice.message
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_decode_arguments(tc.function.arguments),
            )
            for tc in (msg.tool_calls or [])
        ]

        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        finish_reason = _FINISH_REASONS.get(choice.finish_reason or "stop", "stop")
        return ChatResponse(
            text=msg.content or "",
            tool_calls=tool_calls or None,
            incomplete=finish_reason == "length",
            usage=usage,
            finish_reason=finish_reason,
        )

    def _translate_error(self, error: openai.APIError, model: str | None) -> Exception:
        if isinstance(error, openai.APITimeoutError):
            return DriverTimeoutError(f"Request timed out after {self._config.timeout_seconds}s")
        if isinstance(error, openai.NotFoundError) and model:
            return ModelNotFoundError(model)
        if isinstance(error, openai.APIStatusError):
            return DriverAPIError(
                f"HTTP {error.status_code}: {error.message}",
                status_code=error.status_code,
                response=error.body,
            )
        return DriverAPIError(f"Chat request failed: {error}")
