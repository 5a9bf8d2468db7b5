"""
AgentGate Anthropic Driver

Wraps the Anthropic Messages API behind the ModelDriver interface.

Requires the `anthropic` package. Set ANTHROPIC_API_KEY or pass an api_key.

Translation notes:
- System messages are pulled out into the `system` parameter
- Assistant tool calls become `tool_use` content blocks
- Tool messages become `tool_result` blocks in a user turn; consecutive
  results are merged into one turn as the API requires
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from agentgate.drivers.base import ModelDriver
from agentgate.drivers.models import (
    Capabilities,
    ChatRequest,
    ChatResponse,
    DriverConfig,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from agentgate.exceptions import DriverAPIError, DriverTimeoutError, ModelNotFoundError

DEFAULT_MAX_TOKENS = 4096

_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
    "refusal": "content_filter",
}


class AnthropicDriver(ModelDriver):
    """Claude models via the official anthropic SDK."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, config: DriverConfig | None = None, *, client: Any = None):
        super().__init__(config or DriverConfig(default_model=self.DEFAULT_MODEL))
        self._owns_client = client is None
        self._client = client or self._create_client()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.close()

    def _create_client(self) -> AsyncAnthropic:
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
        return AsyncAnthropic(**kwargs)

    async def get_capabilities(self) -> Capabilities:
        try:
            models = [m.id async for m in self._client.models.list()]
        except anthropic.APIError as e:
            raise self._translate_error(e, None) from e
        return Capabilities(
            models=models,
            supports_tools=True,
            supports_stream=True,
            max_context_tokens=200000,
            api_version="2023-06-01",
        )

    async def _chat_impl(self, request: ChatRequest) -> ChatResponse:
        kwargs = self._build_kwargs(request)
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise self._translate_error(e, kwargs["model"]) from e
        return self._to_response(response)

    async def _chat_stream_impl(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        kwargs = self._build_kwargs(request)
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamChunk(delta=text)
                final = await stream.get_final_message()
        except anthropic.APIError as e:
            raise self._translate_error(e, kwargs["model"]) from e

        response = self._to_response(final)
        for call in response.tool_calls or []:
            yield StreamChunk(tool_call_delta=call)
        yield StreamChunk(done=True, response=response)

    # ─── Wire translation ──────────────────────────────────

    def _build_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        system_parts = [m.content for m in request.messages if m.role == "system" and m.content]
        kwargs: dict[str, Any] = {
            "model": self.get_model_name(request),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": self._convert_messages(request),
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            # Anthropic accepts 0-1; the neutral range is 0-2.
            kwargs["temperature"] = min(request.temperature, 1.0)
        if request.stop:
            kwargs["stop_sequences"] = request.stop
        if request.tools:
            kwargs["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters or {"type": "object", "properties": {}},
                }
                for t in request.tools
            ]
        return kwargs

    @staticmethod
    def _convert_messages(request: ChatRequest) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for message in request.messages:
            if message.role == "system":
                continue

            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id or "",
                    "content": message.content,
                }
                last = converted[-1] if converted else None
                if (
                    last is not None
                    and last["role"] == "user"
                    and isinstance(last["content"], list)
                    and all(b.get("type") == "tool_result" for b in last["content"])
                ):
                    last["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue

            if message.role == "assistant" and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for tc in message.tool_calls:
                    blocks.append(
                        {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                    )
                converted.append({"role": "assistant", "content": blocks})
                continue

            converted.append({"role": message.role, "content": message.content})
        return converted

    @staticmethod
    def _to_response(message: Any) -> ChatResponse:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in message.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                arguments = block.input
                if isinstance(arguments, str):
                    arguments = json.loads(arguments or "{}")
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=arguments or {}))

        finish_reason = _STOP_REASONS.get(message.stop_reason or "end_turn", "stop")
        usage = TokenUsage(
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            total_tokens=message.usage.input_tokens + message.usage.output_tokens,
        )
        return ChatResponse(
            text="".join(text_parts),
            tool_calls=tool_calls or None,
            incomplete=finish_reason == "length",
            usage=usage,
            finish_reason=finish_reason,
        )

    def _translate_error(self, error: anthropic.APIError, model: str | None) -> Exception:
        if isinstance(error, anthropic.APITimeoutError):
            return DriverTimeoutError(f"Request timed out after {self._config.timeout_seconds}s")
        if isinstance(error, anthropic.NotFoundError) and model:
            return ModelNotFoundError(model)
        if isinstance(error, anthropic.APIStatusError):
            return DriverAPIError(
                f"HTTP {error.status_code}: {error.message}",
                status_code=error.status_code,
                response=error.body,
            )
        return DriverAPIError(f"Chat request failed: {error}")
