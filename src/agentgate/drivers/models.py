"""
AgentGate Driver Models

Backend-neutral request and response types. Every driver translates
ChatRequest into its own wire shape and its wire response back into
ChatResponse, so the tool loop never sees provider-specific formats.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from agentgate.policies.models import DEFAULT_POLICY, PolicyProfile

MessageRole = Literal["system", "user", "assistant", "tool"]
FinishReason = Literal["stop", "length", "tool_calls", "content_filter"]


class ToolSpec(BaseModel):
    """A tool advertised to the model. `parameters` is a JSON Schema object."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """One conversation message.

    Assistant messages may carry `tool_calls`; tool messages carry the
    `tool_call_id` they answer (and optionally the `tool_name`).
    """

    role: MessageRole
    content: str = ""
    tool_name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] | None = None


# The tool loop's history is a list of these.
ConversationMessage = ChatMessage


class ChatRequest(BaseModel):
    session_id: str
    messages: list[ChatMessage]
    tools: list[ToolSpec] | None = None
    policy: PolicyProfile = DEFAULT_POLICY
    model_hints: dict[str, str] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stop: list[str] | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    text: str = ""
    tool_calls: list[ToolCall] | None = None
    incomplete: bool = False
    usage: TokenUsage | None = None
    finish_reason: FinishReason | None = "stop"

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class StreamChunk(BaseModel):
    """One streaming increment. The final chunk has done=True and a full response."""

    delta: str | None = None
    tool_call_delta: ToolCall | None = None
    done: bool = False
    response: ChatResponse | None = None


class Capabilities(BaseModel):
    models: list[str] = Field(default_factory=list)
    supports_tools: bool = False
    supports_stream: bool = False
    max_context_tokens: int | None = None
    api_version: str = ""


class DriverConfig(BaseModel):
    """Connection settings shared by all drivers."""

    base_url: str | None = None
    api_key: str | None = None
    default_model: str | None = None
    timeout_seconds: float = 120.0
    headers: dict[str, str] = Field(default_factory=dict)
