"""
AgentGate Model Driver Base

Abstract interface for model backends. All drivers implement this
interface, so the tool loop can swap backends without changing logic.

Key design decisions:
- Async-first (all drivers are async)
- Request validation runs before any network I/O
- No automatic retry: each call fails once and reports
- Timeouts (DriverTimeoutError) are distinct from rejected requests (DriverAPIError)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from agentgate.drivers.models import (
    Capabilities,
    ChatRequest,
    ChatResponse,
    DriverConfig,
    StreamChunk,
)
from agentgate.exceptions import DriverValidationError
from agentgate.logging import get_logger
from agentgate.observability.metrics import measure_chat_duration
from agentgate.observability.tracing import get_tracer

logger = get_logger("agentgate.drivers")


class ModelDriver(ABC):
    """Abstract base class for model drivers.

    Subclasses implement get_capabilities(), _chat_impl() and
    _chat_stream_impl(). The base class validates requests and wraps
    calls in tracing spans.
    """

    def __init__(self, config: DriverConfig | None = None):
        self._config = config or DriverConfig()

    @property
    def name(self) -> str:
        """Human-readable driver name."""
        return self.__class__.__name__

    async def aclose(self) -> None:
        """Release backend connections. No-op for drivers without one."""

    @abstractmethod
    async def get_capabilities(self) -> Capabilities:
        """Report models and features the backend offers."""
        ...

    @abstractmethod
    async def _chat_impl(self, request: ChatRequest) -> ChatResponse:
        """Backend-specific chat call. Request is already validated."""
        ...

    @abstractmethod
    def _chat_stream_impl(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Backend-specific streaming call. Request is already validated."""
        ...

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a chat request and return the complete response.

        Raises:
            DriverValidationError: If the request is malformed (no I/O happens).
            DriverTimeoutError: If the backend does not answer in time.
            DriverAPIError: If the backend rejects the request or is unreachable.
        """
        self.validate_request(request)

        tracer = get_tracer()
        with tracer.start_as_current_span("agentgate.chat") as span:
            span.set_attribute("agentgate.driver", self.name)
            span.set_attribute("agentgate.model", self.get_model_name(request))
            span.set_attribute("agentgate.session_id", request.session_id)
            with measure_chat_duration(self.name):
                response = await self._chat_impl(request)
            span.set_attribute("agentgate.finish_reason", response.finish_reason or "")
            span.set_attribute("agentgate.tool_calls", len(response.tool_calls or []))

        logger.debug(
            "Chat complete (%s)",
            response.finish_reason,
            extra={"session_id": request.session_id},
        )
        return response

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a chat response. The last chunk has done=True and the full response."""
        self.validate_request(request)
        async for chunk in self._chat_stream_impl(request):
            yield chunk

    def get_config(self) -> DriverConfig:
        """Return a copy of the driver configuration."""
        return self._config.model_copy(deep=True)

    def update_config(self, **updates: Any) -> None:
        """Merge updates into the driver configuration."""
        self._config = self._config.model_copy(update=updates)

    def validate_request(self, request: ChatRequest) -> None:
        """Reject malformed requests before any network call."""
        if not request.session_id:
            raise DriverValidationError("Session ID is required")
        if not request.messages:
            raise DriverValidationError("Messages array cannot be empty")
        if request.temperature is not None and not 0 <= request.temperature <= 2:
            raise DriverValidationError(
                "Temperature must be between 0 and 2",
                details={"temperature": request.temperature},
            )

    def get_model_name(self, request: ChatRequest) -> str:
        """Model from request hints, else the configured default, else "default"."""
        if request.model_hints and request.model_hints.get("model"):
            return request.model_hints["model"]
        return self._config.default_model or "default"
