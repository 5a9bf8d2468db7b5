"""Shared test fixtures for the AgentGate test suite."""

import json
import logging

import httpx
import pytest

from agentgate.adapters import SpawnOptions
from agentgate.mcp import McpClient, McpClientConfig
from agentgate.policies import DEFAULT_POLICY, PolicyProfile, TrustLevel


@pytest.fixture(autouse=True)
def _reset_agentgate_logger():
    """configure_logging() detaches the agentgate logger; undo it between tests."""
    yield
    logger = logging.getLogger("agentgate")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def spawn_options(tmp_path):
    return SpawnOptions(
        adapter_name="mock",
        session_id="session-test",
        working_dir=str(tmp_path),
        policy=DEFAULT_POLICY,
    )


@pytest.fixture
def untrusted_policy():
    return PolicyProfile(trust=TrustLevel.UNTRUSTED)


@pytest.fixture
def event_log():
    """A listener that records every adapter event it receives."""

    class _Recorder:
        def __init__(self):
            self.events = []

        def __call__(self, event):
            self.events.append(event)

        @property
        def kinds(self):
            return [e.kind.value for e in self.events]

        def of_kind(self, kind):
            return [e for e in self.events if e.kind.value == kind]

    return _Recorder()


@pytest.fixture
def status_log(monkeypatch):
    """Record every status an adapter passes through, starting from its current one."""

    def attach(adapter):
        seen = [adapter.get_state().status.value]
        original = adapter._set_state

        def recording(**updates):
            original(**updates)
            status = adapter.get_state().status.value
            if status != seen[-1]:
                seen.append(status)

        monkeypatch.setattr(adapter, "_set_state", recording)
        return seen

    return attach


class FakeGateway:
    """In-memory MCP gateway served through httpx.MockTransport.

    Tools are registered per server. `hits` counts requests by path so
    tests can assert on caching and single-flight loading.
    """

    def __init__(self):
        self.tools = {}
        self.failing_tools = {}
        self.broken_servers = set()
        self.hits = {}
        self.requests = []

    def add_tool(self, server, name, description="", schema=None):
        self.tools[name] = {
            "name": name,
            "description": description,
            "server": server,
            "inputSchema": schema or {"type": "object", "properties": {}},
        }

    def transport(self):
        return httpx.MockTransport(self._handle)

    def _handle(self, request):
        self.requests.append(request)
        path = request.url.path
        self.hits[path] = self.hits.get(path, 0) + 1
        parts = path.strip("/").split("/")

        if parts[:2] == ["mcp", "tools"] and len(parts) == 2:
            server = request.url.params.get("server")
            if server in self.broken_servers:
                return httpx.Response(503, json={"error": "server down"})
            tools = [
                {k: t[k] for k in ("name", "description", "server")}
                for t in self.tools.values()
                if server is None or t["server"] == server
            ]
            return httpx.Response(200, json={"tools": tools, "total": len(tools)})

        if parts[:2] == ["mcp", "tools"] and len(parts) == 3:
            spec = self.tools.get(parts[2])
            if spec is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=spec)

        if parts[:2] == ["mcp", "tools"] and len(parts) == 4 and parts[3] == "invoke":
            name = parts[2]
            if name not in self.tools:
                return httpx.Response(404, json={"error": "not found"})
            if name in self.failing_tools:
                return httpx.Response(200, json={"success": False, "error": self.failing_tools[name]})
            arguments = json.loads(request.content or b"{}")
            return httpx.Response(200, json={"success": True, "data": {"echo": arguments}})

        if parts == ["mcp", "servers"]:
            servers = sorted({t["server"] for t in self.tools.values()})
            infos = [
                {"name": s, "version": "1.0.0", "toolCount": sum(1 for t in self.tools.values() if t["server"] == s)}
                for s in servers
            ]
            return httpx.Response(200, json={"servers": infos, "total": len(infos)})

        if parts[:2] == ["mcp", "servers"] and len(parts) == 3:
            count = sum(1 for t in self.tools.values() if t["server"] == parts[2])
            if not count:
                return httpx.Response(404, json={"error": "unknown server"})
            return httpx.Response(200, json={"name": parts[2], "version": "1.0.0", "toolCount": count})

        return httpx.Response(404, json={"error": "no route"})


@pytest.fixture
def gateway():
    gw = FakeGateway()
    gw.add_tool("github", "create_issue", "Create a GitHub issue")
    gw.add_tool("github", "list_pull_requests", "List open pull requests")
    gw.add_tool("fs", "read_file", "Read a file from disk")
    return gw


@pytest.fixture
def mcp_client(gateway):
    return McpClient(
        McpClientConfig(gateway_url="http://gateway.test", api_key="secret"),
        transport=gateway.transport(),
    )
