"""
AgentGate Adapters

Supervised wrappers around external coding-assistant CLIs. Every proposed
shell command passes through the session's ShellGuard.

Usage:
    from agentgate.adapters import SpawnOptions, create_adapter

    adapter = create_adapter("claude-code", SpawnOptions(...), guard)
    await adapter.spawn()
    response = await adapter.execute(ExecuteRequest(action="implement", input_json=...))
    await adapter.terminate()
"""

from agentgate.adapters.base import AdapterProcess
from agentgate.adapters.claude_code import ClaudeCodeAdapter
from agentgate.adapters.events import (
    AdapterEvent,
    AdapterEventKind,
    AnyAdapterEvent,
    EventBus,
)
from agentgate.adapters.mock import MockAdapter, MockAdapterConfig, MockExecuteResponse
from agentgate.adapters.models import (
    AdapterMetadata,
    AdapterState,
    AdapterStatus,
    ExecuteRequest,
    ExecuteResponse,
    ShellExecutionResult,
    SpawnOptions,
)
from agentgate.sandbox.guard import ShellGuard

__all__ = [
    "AdapterProcess",
    "ClaudeCodeAdapter",
    "MockAdapter",
    "MockAdapterConfig",
    "MockExecuteResponse",
    "AdapterEvent",
    "AdapterEventKind",
    "AnyAdapterEvent",
    "EventBus",
    "AdapterMetadata",
    "AdapterState",
    "AdapterStatus",
    "ExecuteRequest",
    "ExecuteResponse",
    "ShellExecutionResult",
    "SpawnOptions",
    "ADAPTERS",
    "create_adapter",
]

ADAPTERS: dict[str, type[AdapterProcess]] = {
    "claude-code": ClaudeCodeAdapter,
    "mock": MockAdapter,
}


def create_adapter(
    name: str,
    options: SpawnOptions,
    guard: ShellGuard | None = None,
) -> AdapterProcess:
    """Factory function to create an adapter by name.

    Args:
        name: Adapter name ("claude-code", "claude", "mock").
        options: Spawn options for the adapter.
        guard: Shared ShellGuard. A default guard is built if omitted.

    Raises:
        ValueError: If the adapter name is unknown.
    """
    name_lower = name.lower()
    if name_lower in ("claude", "claude-code"):
        return ClaudeCodeAdapter(options, guard)
    elif name_lower in ("mock", "mock-adapter"):
        return MockAdapter(options, guard)
    raise ValueError(f"Unknown adapter: {name}. Supported: {', '.join(ADAPTERS)}")
