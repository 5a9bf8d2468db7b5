"""
AgentGate Mock Driver

Canned responses cycled in order, for tests and offline runs. Every
request is recorded so tests can inspect what the loop sent.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from pydantic import BaseModel

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


class MockResponse(BaseModel):
    text: str = ""
    tool_calls: list[ToolCall] | None = None


DEFAULT_RESPONSES = [MockResponse(text="Mock response 1"), MockResponse(text="Mock response 2")]


class MockDriver(ModelDriver):
    """Driver double returning canned responses in order, wrapping around."""

    def __init__(
        self,
        responses: list[MockResponse] | None = None,
        *,
        config: DriverConfig | None = None,
        delay_seconds: float = 0.0,
        start_index: int = 0,
    ):
        super().__init__(config)
        self._responses = list(responses) if responses else list(DEFAULT_RESPONSES)
        self._index = start_index
        self._delay = delay_seconds
        self.requests: list[ChatRequest] = []

    async def get_capabilities(self) -> Capabilities:
        return Capabilities(
            models=["mock-model-1", "mock-model-2"],
            supports_tools=True,
            supports_stream=True,
            max_context_tokens=128000,
            api_version="1.0.0-mock",
        )

    def _next(self, request: ChatRequest) -> MockResponse:
        self.requests.append(request)
        response = self._responses[self._index % len(self._responses)]
        self._index += 1
        return response

    @staticmethod
    def _build_response(request: ChatRequest, mock: MockResponse) -> ChatResponse:
        prompt_tokens = sum(len(m.content) for m in request.messages)
        completion_tokens = len(mock.text)
        tool_calls = [tc.model_copy() for tc in mock.tool_calls] if mock.tool_calls else None
        return ChatResponse(
            text=mock.text,
            tool_calls=tool_calls,
            incomplete=False,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason="tool_calls" if tool_calls else "stop",
        )

    async def _chat_impl(self, request: ChatRequest) -> ChatResponse:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        return self._build_response(request, self._next(request))

    async def _chat_stream_impl(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        mock = self._next(request)
        step = self._delay / len(mock.text) if self._delay > 0 and mock.text else 0
        for char in mock.text:
            if step:
                await asyncio.sleep(step)
            yield StreamChunk(delta=char)
        yield StreamChunk(done=True, response=self._build_response(request, mock))

    def set_responses(self, responses: list[MockResponse]) -> None:
        self._responses = list(responses)
        self._index = 0

    def reset(self) -> None:
        self._index = 0
        self.requests.clear()
