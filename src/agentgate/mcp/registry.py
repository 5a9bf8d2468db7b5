"""
AgentGate Tool Registry

Sits on top of McpClient and tracks which gateway tools the session
knows about:

- the list of available tool names (from `initialize`)
- resolved specs, keyed by name and by (server, tool)
- lazily enabled servers, loaded once on first use
- an append-only invocation history with per-tool statistics

The tool loop advertises `advertised_tools()` to the model under
namespaced names (mcp__<server>__<tool>).
"""

from __future__ import annotations

import asyncio
import time

from agentgate.drivers.models import ToolSpec
from agentgate.logging import get_logger
from agentgate.mcp.client import McpClient
from agentgate.mcp.models import (
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
from agentgate.observability.metrics import record_tool_call

logger = get_logger("agentgate.mcp.registry")

UNKNOWN_SERVER = "unknown"


class ToolRegistry:
    """Registry of MCP gateway tools with lazy server loading."""

    def __init__(self, client: McpClient, config: RegistryConfig | None = None):
        self._client = client
        self._config = config or RegistryConfig()
        self._available_tools: list[str] = []
        self._listed: dict[str, McpToolMeta] = {}
        self._tool_specs: dict[str, McpToolSpec] = {}
        self._loaded: dict[tuple[str, str], McpToolSpec] = {}
        self._lazy_loads: dict[str, asyncio.Task[None]] = {}
        self._history: list[ToolInvocationRecord] = []

    @property
    def client(self) -> McpClient:
        return self._client

    async def initialize(self) -> None:
        """Fetch the available tool list and resolve preloaded specs.

        With lazy loading off every listed spec is resolved here. With it
        on, listed tools are advertised from their list entry and the full
        spec is fetched when the model first calls into the server.
        """
        response = await self._client.list_tools()
        self._available_tools = [t.name for t in response.tools]
        self._listed = {t.name: t for t in response.tools}

        to_resolve = (
            self._config.preload_tools if self._config.lazy_loading else self._available_tools
        )
        if to_resolve:
            await asyncio.gather(*(self.resolve_tool_spec(name) for name in to_resolve))

        logger.info(
            "Tool registry initialized with %d tools",
            len(self._available_tools),
        )

    def get_available_tools(self) -> list[str]:
        return list(self._available_tools)

    def has_tool(self, name: str) -> bool:
        return name in self._available_tools

    async def resolve_tool_spec(self, name: str) -> McpToolSpec:
        """Return the spec for `name`, fetching it on first use."""
        spec = self._tool_specs.get(name)
        if spec is not None:
            return spec

        spec = await self._client.get_tool_spec(name)
        self._tool_specs[name] = spec
        self._register_loaded(spec)
        return spec

    # ─── Loaded specs ──────────────────────────────────────

    def _register_loaded(self, spec: McpToolSpec) -> None:
        self._loaded[(spec.server or UNKNOWN_SERVER, spec.name)] = spec

    def loaded_specs(self) -> list[McpToolSpec]:
        return list(self._loaded.values())

    def is_loaded(self, server: str, tool: str) -> bool:
        return (server, tool) in self._loaded

    def advertised_tools(self) -> list[ToolSpec]:
        """Every known tool as a driver tool spec with a namespaced name.

        Loaded specs carry their input schema. Tools only seen in the list
        response are offered with an open object schema until loaded.
        """
        tools = [
            ToolSpec(
                name=NamespacedTool(server=server, tool=tool).qualified_name,
                description=spec.description,
                parameters=spec.input_schema,
            )
            for (server, tool), spec in self._loaded.items()
        ]
        loaded_names = {tool for _, tool in self._loaded}
        for meta in self._listed.values():
            if meta.name in loaded_names:
                continue
            tools.append(
                ToolSpec(
                    name=NamespacedTool(
                        server=meta.server or UNKNOWN_SERVER, tool=meta.name
                    ).qualified_name,
                    description=meta.description or "",
                    parameters={"type": "object"},
                )
            )
        return tools

    async def enable_lazy_server(self, server: str) -> None:
        """Load every tool of `server` once.

        Concurrent callers share one load. A failed load is forgotten so
        the next call retries; a successful one is never repeated.
        """
        task = self._lazy_loads.get(server)
        if task is None or (task.done() and (task.cancelled() or task.exception())):
            task = asyncio.ensure_future(self._load_server(server))
            self._lazy_loads[server] = task

        try:
            await asyncio.shield(task)
        except Exception:
            if self._lazy_loads.get(server) is task:
                del self._lazy_loads[server]
            raise

    async def _load_server(self, server: str) -> None:
        logger.info("Enabling lazy server", extra={"server": server})
        response = await self._client.list_tools(server=server)

        async def load(name: str) -> None:
            spec = await self._client.get_tool_spec(name)
            if not spec.server:
                spec = spec.model_copy(update={"server": server})
            self._tool_specs[name] = spec
            self._register_loaded(spec)

        await asyncio.gather(*(load(meta.name) for meta in response.tools))
        for meta in response.tools:
            if meta.name not in self._available_tools:
                self._available_tools.append(meta.name)

    # ─── Search ────────────────────────────────────────────

    async def search_tools(self, query: ToolSearchQuery) -> list[ToolMatch]:
        """Score available tools against the query, best match first."""
        matches: list[ToolMatch] = []
        for name in self._available_tools:
            spec = await self.resolve_tool_spec(name)
            if query.server and spec.server != query.server:
                continue

            score = self._match_score(spec, query)
            if query.min_score and score < query.min_score:
                continue
            matches.append(ToolMatch(tool=spec, score=score, reason=self._match_reason(spec, query)))

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    @staticmethod
    def _match_score(spec: McpToolSpec, query: ToolSearchQuery) -> float:
        if not query.keywords:
            return 1.0

        name = spec.name.lower()
        description = spec.description.lower()
        text = f"{name} {description}"
        score = 0.0
        for keyword in query.keywords:
            needle = keyword.lower()
            if name == needle:
                score += 1.0
            elif needle in name:
                score += 0.7
            elif needle in description:
                score += 0.5
            elif needle in text:
                score += 0.3

        return min(score / len(query.keywords), 1.0)

    @staticmethod
    def _match_reason(spec: McpToolSpec, query: ToolSearchQuery) -> str:
        reasons = []
        for keyword in query.keywords:
            needle = keyword.lower()
            if needle in spec.name.lower():
                reasons.append(f'name contains "{keyword}"')
            elif needle in spec.description.lower():
                reasons.append(f'description contains "{keyword}"')

        if query.server and spec.server == query.server:
            reasons.append(f'from server "{query.server}"')

        return ", ".join(reasons) if reasons else "default match"

    # ─── Invocation ────────────────────────────────────────

    async def invoke_tool(self, invocation: McpToolInvocation) -> McpToolResult:
        """Invoke through the client and record the outcome, success or not."""
        started = time.monotonic()
        try:
            result = await self._client.invoke_tool(invocation)
        except Exception as e:
            self._history.append(
                ToolInvocationRecord(
                    tool_name=invocation.name,
                    arguments=invocation.arguments,
                    error=str(e),
                    success=False,
                    execution_time=(time.monotonic() - started) * 1000,
                )
            )
            record_tool_call(tool_name=invocation.name, success=False)
            raise

        self._history.append(
            ToolInvocationRecord(
                tool_name=invocation.name,
                arguments=invocation.arguments,
                result=result.data,
                error=result.error,
                success=result.success,
                execution_time=(
                    result.execution_time
                    if result.execution_time is not None
                    else (time.monotonic() - started) * 1000
                ),
            )
        )
        record_tool_call(tool_name=invocation.name, success=result.success)
        return result

    def get_invocation_history(self, tool_name: str | None = None) -> list[ToolInvocationRecord]:
        if tool_name:
            return [r for r in self._history if r.tool_name == tool_name]
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def get_tool_stats(self, tool_name: str) -> ToolStats:
        records = self.get_invocation_history(tool_name)
        if not records:
            return ToolStats()

        successes = sum(1 for r in records if r.success)
        return ToolStats(
            invocations=len(records),
            successes=successes,
            failures=len(records) - successes,
            avg_execution_time=sum(r.execution_time for r in records) / len(records),
        )

    async def reload(self) -> None:
        """Drop every cached spec and lazy load, then initialize again."""
        self._available_tools = []
        self._tool_specs.clear()
        self._loaded.clear()
        self._lazy_loads.clear()
        await self.initialize()
