"""
AgentGate MCP

Client for the MCP tool gateway plus the session-level tool registry.

Usage:
    from agentgate.mcp import McpClient, McpClientConfig, ToolRegistry

    client = McpClient(McpClientConfig(gateway_url="http://localhost:3000"))
    registry = ToolRegistry(client)
    await registry.initialize()
    await registry.enable_lazy_server("github")
"""

from agentgate.mcp.client import McpClient
from agentgate.mcp.models import (
    McpClientConfig,
    McpListServersResponse,
    McpListToolsResponse,
    McpServerInfo,
    McpToolInvocation,
    McpToolMeta,
    McpToolResult,
    McpToolSpec,
    RegistryConfig,
    ToolInvocationRecord,
    ToolMatch,
    ToolSearchQuery,
    ToolStats,
)
from agentgate.mcp.naming import NamespacedTool
from agentgate.mcp.registry import ToolRegistry

__all__ = [
    "McpClient",
    "McpClientConfig",
    "McpListServersResponse",
    "McpListToolsResponse",
    "McpServerInfo",
    "McpToolInvocation",
    "McpToolMeta",
    "McpToolResult",
    "McpToolSpec",
    "NamespacedTool",
    "RegistryConfig",
    "ToolInvocationRecord",
    "ToolMatch",
    "ToolRegistry",
    "ToolSearchQuery",
    "ToolStats",
]
