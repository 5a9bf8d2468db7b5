"""
AgentGate Tool-Execution Loop

Drives a multi-turn conversation between a model driver and the MCP
tool registry:

    user message -> chat -> tool calls? -> invoke each -> chat -> ...

The loop ends when the model answers without tool calls, or after
MAX_TOOL_ROUNDS chat calls, in which case the last text is returned
with LOOP_LIMIT_MARKER appended.

Per-call failures (malformed name, lazy server that will not load,
gateway errors) never abort the loop. They are returned to the model as
a JSON error object in the tool message, so it can recover.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from agentgate.drivers.base import ModelDriver
from agentgate.drivers.models import ChatMessage, ChatRequest, ChatResponse, ToolCall
from agentgate.exceptions import ToolNameError
from agentgate.logging import get_logger
from agentgate.mcp.models import McpToolInvocation
from agentgate.mcp.naming import NamespacedTool
from agentgate.mcp.registry import ToolRegistry
from agentgate.observability.tracing import get_tracer
from agentgate.policies.models import DEFAULT_POLICY, ApprovalMode, PolicyProfile

logger = get_logger("agentgate.engine.loop")

MAX_TOOL_ROUNDS = 10
LOOP_LIMIT_MARKER = "\n\n(Tool execution loop limit reached)"


class ToolExecutionLoop:
    """Conversation state plus the chat/tool round-trip for one session.

    Tools run unattended inside the loop, so every chat request carries
    the session policy with approvals forced to NEVER.
    """

    def __init__(
        self,
        driver: ModelDriver,
        registry: ToolRegistry | None,
        session_id: str,
        system_prompt: str | None = None,
        max_iterations: int = MAX_TOOL_ROUNDS,
        temperature: float | None = 0.7,
        policy: PolicyProfile = DEFAULT_POLICY,
    ):
        self._driver = driver
        self._registry = registry
        self._session_id = session_id
        self._system_prompt = system_prompt
        self._max_iterations = max_iterations
        self._temperature = temperature
        self._policy = policy.model_copy(update={"approvals": ApprovalMode.NEVER})
        self._messages: list[ChatMessage] = []
        self.clear_history()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def history(self) -> list[ChatMessage]:
        return [m.model_copy(deep=True) for m in self._messages]

    def clear_history(self) -> None:
        """Forget the conversation. The system prompt is kept."""
        self._messages = []
        if self._system_prompt:
            self._messages.append(ChatMessage(role="system", content=self._system_prompt))

    async def send_message(self, content: str) -> str:
        """Run one user turn to completion and return the model's final text."""
        self._messages.append(ChatMessage(role="user", content=content))

        final_text = ""
        for iteration in range(1, self._max_iterations + 1):
            response = await self._driver.chat(self._build_request())
            final_text = response.text

            if not response.tool_calls:
                self._messages.append(ChatMessage(role="assistant", content=response.text))
                return final_text

            logger.debug(
                "Model requested %d tool call(s)",
                len(response.tool_calls),
                extra={"session_id": self._session_id, "iteration": iteration},
            )
            await self._run_tool_round(response)

        logger.warning(
            "Tool execution loop limit reached",
            extra={"session_id": self._session_id, "iteration": self._max_iterations},
        )
        return final_text + LOOP_LIMIT_MARKER

    async def stream_message(self, content: str) -> AsyncIterator[str]:
        """Like send_message, but yields text deltas as each turn streams in."""
        self._messages.append(ChatMessage(role="user", content=content))

        for _ in range(self._max_iterations):
            response: ChatResponse | None = None
            async for chunk in self._driver.chat_stream(self._build_request()):
                if chunk.delta:
                    yield chunk.delta
                if chunk.done:
                    response = chunk.response

            if response is None:
                response = ChatResponse(incomplete=True, finish_reason="length")

            if not response.tool_calls:
                self._messages.append(ChatMessage(role="assistant", content=response.text))
                return

            await self._run_tool_round(response)

        yield LOOP_LIMIT_MARKER

    # ─── Internals ─────────────────────────────────────────

    def _build_request(self) -> ChatRequest:
        tools = self._registry.advertised_tools() if self._registry is not None else []
        return ChatRequest(
            session_id=self._session_id,
            messages=list(self._messages),
            tools=tools or None,
            policy=self._policy,
            temperature=self._temperature,
        )

    async def _run_tool_round(self, response: ChatResponse) -> None:
        calls = response.tool_calls or []
        self._messages.append(
            ChatMessage(role="assistant", content=response.text, tool_calls=calls)
        )
        for call in calls:
            result = await self._execute_tool_call(call)
            self._messages.append(
                ChatMessage(
                    role="tool",
                    content=json.dumps(result, default=str),
                    tool_call_id=call.id,
                    tool_name=call.name,
                )
            )

    async def _execute_tool_call(self, call: ToolCall) -> dict[str, Any]:
        tracer = get_tracer()
        with tracer.start_as_current_span("agentgate.tool_call") as span:
            span.set_attribute("agentgate.tool_name", call.name)
            span.set_attribute("agentgate.session_id", self._session_id)
            result = await self._invoke(call)
            span.set_attribute("agentgate.tool_error", bool(result.get("error")))
        return result

    async def _invoke(self, call: ToolCall) -> dict[str, Any]:
        if self._registry is None:
            return {"error": "MCP session not available", "toolName": call.name}

        try:
            target = NamespacedTool.parse(call.name)
        except ToolNameError as e:
            return {"error": str(e)}

        if not self._registry.is_loaded(target.server, target.tool):
            try:
                await self._registry.enable_lazy_server(target.server)
            except Exception as e:
                logger.warning(
                    "Lazy server failed to load: %s",
                    e,
                    extra={"session_id": self._session_id, "server": target.server},
                )
                return {
                    "error": (
                        f"Tool {call.name} not available and lazy server "
                        f"{target.server} failed to load"
                    ),
                    "details": str(e),
                }

        try:
            result = await self._registry.invoke_tool(
                McpToolInvocation(name=target.tool, arguments=call.arguments)
            )
        except Exception as e:
            logger.warning(
                "Tool call failed: %s",
                e,
                extra={"session_id": self._session_id, "tool_name": call.name},
            )
            return {"error": "Tool execution failed", "details": str(e)}

        return result.model_dump(mode="json")
