"""
AgentGate Engine

Conversation orchestration: the tool-execution loop and the session
facade that wires a driver or an adapter to the Guard and tool registry.
"""

from agentgate.engine.loop import LOOP_LIMIT_MARKER, MAX_TOOL_ROUNDS, ToolExecutionLoop
from agentgate.engine.session import (
    AgentSession,
    BlockedCommand,
    SessionResult,
    build_session_guard,
)

__all__ = [
    "AgentSession",
    "BlockedCommand",
    "LOOP_LIMIT_MARKER",
    "MAX_TOOL_ROUNDS",
    "SessionResult",
    "ToolExecutionLoop",
    "build_session_guard",
]
