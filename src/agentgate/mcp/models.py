"""
AgentGate MCP Models

Types for the MCP gateway client and the tool registry. Wire keys from
the gateway are camelCase (inputSchema, toolCount); the models accept
both spellings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class McpToolMeta(BaseModel):
    """Tool entry as returned by the list endpoint."""

    name: str
    description: str | None = None
    server: str | None = None


class McpToolSpec(BaseModel):
    """Full tool specification, including its JSON Schema input."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")
    server: str = ""


class McpToolInvocation(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class McpToolResult(BaseModel):
    """Outcome of one invocation. `execution_time` is in milliseconds."""

    success: bool
    data: Any = None
    error: str | None = None
    execution_time: float | None = None


class McpServerInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str = ""
    tool_count: int = Field(default=0, alias="toolCount")
    status: Literal["online", "offline", "error"] = "online"


class McpListToolsResponse(BaseModel):
    tools: list[McpToolMeta] = Field(default_factory=list)
    total: int = 0
    servers: list[str] = Field(default_factory=list)


class McpListServersResponse(BaseModel):
    servers: list[McpServerInfo] = Field(default_factory=list)
    total: int = 0


class McpClientConfig(BaseModel):
    """Gateway connection settings."""

    gateway_url: str = "http://localhost:3000"
    timeout_seconds: float = 30.0
    api_key: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    enable_cache: bool = True
    cache_ttl_seconds: float = 300.0


# ─── Registry ──────────────────────────────────────────────


class RegistryConfig(BaseModel):
    lazy_loading: bool = True
    preload_tools: list[str] = Field(default_factory=list)


class ToolSearchQuery(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    server: str | None = None
    min_score: float | None = None


class ToolMatch(BaseModel):
    tool: McpToolSpec
    score: float
    reason: str = "default match"


class ToolInvocationRecord(BaseModel):
    """Append-only record of one registry invocation, success or not."""

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: str | None = None
    success: bool
    execution_time: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ToolStats(BaseModel):
    invocations: int = 0
    successes: int = 0
    failures: int = 0
    avg_execution_time: float = 0.0
