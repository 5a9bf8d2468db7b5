"""
AgentGate MCP Gateway Client

HTTP client for the MCP gateway that hosts agent tools:

    GET  /mcp/tools[?server=]       list tools
    GET  /mcp/tools/{name}          tool spec (cached with TTL)
    POST /mcp/tools/{name}/invoke   invoke (body = JSON arguments)
    GET  /mcp/servers               list servers
    GET  /mcp/servers/{name}        server info

Sends `Authorization: Bearer <key>` when an API key is configured.
Timeouts raise McpTimeoutError; they are never folded into connection
errors, so callers can tell "slow" from "down".
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx

from agentgate.exceptions import (
    McpConnectionError,
    McpInvocationError,
    McpServerError,
    McpTimeoutError,
    McpToolNotFoundError,
)
from agentgate.logging import get_logger
from agentgate.mcp.models import (
    McpClientConfig,
    McpListServersResponse,
    McpListToolsResponse,
    McpServerInfo,
    McpToolInvocation,
    McpToolMeta,
    McpToolResult,
    McpToolSpec,
)

logger = get_logger("agentgate.mcp.client")


class McpClient:
    """Async client for the MCP gateway with a TTL cache for tool specs."""

    def __init__(
        self,
        config: McpClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or McpClientConfig()
        self._transport = transport
        self._clock = clock
        self._spec_cache: dict[str, tuple[McpToolSpec, float]] = {}
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json", **self._config.headers}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return httpx.AsyncClient(
            base_url=self._config.gateway_url.rstrip("/"),
            timeout=self._config.timeout_seconds,
            headers=headers,
            transport=self._transport,
        )

    def get_config(self) -> McpClientConfig:
        return self._config.model_copy(deep=True)

    async def update_config(self, **updates: Any) -> None:
        """Apply new settings. Rebuilds the HTTP client."""
        self._config = self._config.model_copy(update=updates)
        await self._client.aclose()
        self._client = self._create_client()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> McpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ─── Tools ─────────────────────────────────────────────

    async def list_tools(self, server: str | None = None) -> McpListToolsResponse:
        params = {"server": server} if server else None
        try:
            data = await self._get_json("/mcp/tools", params=params)
        except (McpTimeoutError, McpServerError):
            raise
        except McpConnectionError as e:
            raise McpConnectionError(f"Failed to list tools: {e}", e.url) from e

        tools = [McpToolMeta.model_validate(t) for t in data.get("tools") or []]
        return McpListToolsResponse(
            tools=tools,
            total=data.get("total") or len(tools),
            servers=data.get("servers") or [],
        )

    async def get_tool_spec(self, name: str) -> McpToolSpec:
        """Fetch a tool spec, served from cache while younger than the TTL."""
        if self._config.enable_cache:
            cached = self._spec_cache.get(name)
            if cached is not None:
                spec, fetched_at = cached
                if self._clock() - fetched_at < self._config.cache_ttl_seconds:
                    return spec

        try:
            data = await self._get_json(f"/mcp/tools/{quote(name, safe='')}")
        except McpServerError as e:
            if e.status_code == 404:
                raise McpToolNotFoundError(name) from e
            raise

        spec = McpToolSpec.model_validate(data)
        if self._config.enable_cache:
            self._spec_cache[name] = (spec, self._clock())
        return spec

    async def invoke_tool(self, invocation: McpToolInvocation) -> McpToolResult:
        path = f"/mcp/tools/{quote(invocation.name, safe='')}/invoke"
        started = time.monotonic()

        try:
            response = await self._request("POST", path, payload=invocation.arguments)
            result = response.json()
        except McpTimeoutError:
            raise
        except McpServerError as e:
            if e.status_code == 404:
                raise McpToolNotFoundError(invocation.name) from e
            raise McpInvocationError(
                f"Tool invocation failed: {e}", invocation.name, cause=e
            ) from e
        except (McpConnectionError, ValueError) as e:
            raise McpInvocationError(
                f"Tool invocation failed: {e}", invocation.name, cause=e
            ) from e

        execution_time = (time.monotonic() - started) * 1000

        if isinstance(result, dict) and result.get("success") is False:
            return McpToolResult(
                success=False,
                data=result.get("data"),
                error=str(result.get("error") or "Tool reported failure"),
                execution_time=execution_time,
            )

        data = result.get("data") if isinstance(result, dict) else None
        return McpToolResult(
            success=True,
            data=data if data is not None else result,
            execution_time=execution_time,
        )

    # ─── Servers ───────────────────────────────────────────

    async def list_servers(self) -> McpListServersResponse:
        try:
            data = await self._get_json("/mcp/servers")
        except (McpTimeoutError, McpServerError):
            raise
        except McpConnectionError as e:
            raise McpConnectionError(f"Failed to list servers: {e}", e.url) from e

        servers = [McpServerInfo.model_validate(s) for s in data.get("servers") or []]
        return McpListServersResponse(servers=servers, total=data.get("total") or len(servers))

    async def get_server_info(self, server_name: str) -> McpServerInfo:
        try:
            data = await self._get_json(f"/mcp/servers/{quote(server_name, safe='')}")
        except McpServerError as e:
            raise McpServerError(
                f"Failed to get server info: {e}",
                server=server_name,
                status_code=e.status_code,
            ) from e
        return McpServerInfo.model_validate(data)

    def clear_cache(self) -> None:
        self._spec_cache.clear()

    # ─── HTTP ──────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        response = await self._request("GET", path, params=params)
        try:
            data = response.json()
        except ValueError as e:
            raise McpConnectionError(f"Invalid JSON from gateway: {e}", str(response.url)) from e
        if not isinstance(data, dict):
            raise McpConnectionError("Unexpected response shape from gateway", str(response.url))
        return data

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: Any = None,
    ) -> httpx.Response:
        url = f"{self._config.gateway_url.rstrip('/')}{path}"
        try:
            response = await self._client.request(method, path, params=params, json=payload)
        except httpx.TimeoutException as e:
            raise McpTimeoutError(
                f"Request timed out after {self._config.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Gateway unreachable: %s", e, extra={"server": url})
            raise McpConnectionError(str(e) or type(e).__name__, url) from e

        if response.status_code >= 400:
            raise McpServerError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response
