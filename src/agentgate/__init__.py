"""
AgentGate: policy-gated orchestration for autonomous coding agents

Usage:
    from agentgate import AgentSession, create_driver, get_policy

    async with AgentSession(
        "/path/to/repo",
        get_policy("default"),
        driver=create_driver("ollama", model="qwen2.5-coder"),
    ) as session:
        result = await session.run("Add a --verbose flag to the CLI")

    # Or drive an external coding CLI; its shell proposals pass the Guard:
    session = AgentSession("/path/to/repo", adapter_name="claude-code")
"""

from agentgate.adapters import AdapterProcess, SpawnOptions, create_adapter
from agentgate.drivers import ModelDriver, create_driver
from agentgate.engine import AgentSession, SessionResult, ToolExecutionLoop
from agentgate.exceptions import AgentGateError
from agentgate.mcp import McpClient, McpClientConfig, ToolRegistry
from agentgate.policies import PolicyProfile, TrustLevel, get_policy
from agentgate.sandbox import GuardVerdict, ShellGuard
from agentgate.settings import Settings

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Session
    "AgentSession",
    "SessionResult",
    "ToolExecutionLoop",
    # Policy and Guard
    "PolicyProfile",
    "TrustLevel",
    "get_policy",
    "ShellGuard",
    "GuardVerdict",
    # Backends
    "AdapterProcess",
    "SpawnOptions",
    "create_adapter",
    "ModelDriver",
    "create_driver",
    "McpClient",
    "McpClientConfig",
    "ToolRegistry",
    # Config and errors
    "Settings",
    "AgentGateError",
]
