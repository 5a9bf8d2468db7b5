"""
AgentGate Custom Exceptions

Structured exception hierarchy for the AgentGate core.
All AgentGate-specific exceptions inherit from AgentGateError.

Exception hierarchy:
    AgentGateError
    +-- ToolNameError                 (malformed mcp__<server>__<tool> name)
    +-- AdapterError                  (adapter process failures)
    |   +-- AdapterValidationError    (bad execute request, never retried)
    |   +-- AdapterSpawnError         (OS could not start the CLI)
    |   +-- AdapterExecutionError     (action failed or adapter not ready)
    |   +-- AdapterTimeoutError       (no correlated response in time)
    |   +-- AdapterCrashError         (child exited on its own)
    |   +-- ShellBlockedError         (Guard rejected a command)
    +-- DriverError                   (model backend failures)
    |   +-- DriverValidationError     (bad chat request, raised before I/O)
    |   +-- DriverAPIError            (non-2xx or transport failure)
    |   +-- DriverTimeoutError        (backend too slow)
    |   +-- ModelNotFoundError
    |   +-- ToolsNotSupportedError
    +-- McpError                      (tool gateway failures)
        +-- McpConnectionError
        +-- McpToolNotFoundError
        +-- McpInvocationError
        +-- McpTimeoutError
        +-- McpServerError

Guard blocks are NOT exceptions in the normal flow: they are returned
as GuardVerdict(allowed=False). ShellGuard.enforce raises ShellBlockedError
for callers that want a block as a hard failure.
"""

from __future__ import annotations

from typing import Any


class AgentGateError(Exception):
    """Base exception for all AgentGate errors."""

    code: str = "AGENTGATE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ToolNameError(AgentGateError):
    """Raised when a namespaced tool name does not match mcp__<server>__<tool>."""

    code = "TOOL_NAME_ERROR"

    def __init__(self, name: str):
        super().__init__(f"Invalid tool name format: {name}", details={"name": name})
        self.name = name


# ─── Adapters ──────────────────────────────────────────────


class AdapterError(AgentGateError):
    """Base exception for adapter process errors."""

    code = "ADAPTER_ERROR"


class AdapterValidationError(AdapterError):
    """Raised when an execute request is malformed."""

    code = "ADAPTER_VALIDATION_ERROR"


class AdapterSpawnError(AdapterError):
    """Raised when the adapter subprocess cannot be started."""

    code = "ADAPTER_SPAWN_ERROR"

    def __init__(self, message: str, adapter_name: str, details: dict | None = None):
        super().__init__(message, details={"adapter_name": adapter_name, **(details or {})})
        self.adapter_name = adapter_name


class AdapterExecutionError(AdapterError):
    """Raised when an adapter action fails."""

    code = "ADAPTER_EXECUTION_ERROR"

    def __init__(self, message: str, action: str | None = None, details: dict | None = None):
        super().__init__(message, details={"action": action, **(details or {})})
        self.action = action


class AdapterTimeoutError(AdapterError):
    """Raised when a pending request gets no response within its timeout."""

    code = "ADAPTER_TIMEOUT_ERROR"

    def __init__(self, message: str = "Adapter operation timed out", details: dict | None = None):
        super().__init__(message, details=details)


class AdapterCrashError(AdapterError):
    """Raised when the adapter subprocess exits unexpectedly."""

    code = "ADAPTER_CRASH_ERROR"

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        signal: str | None = None,
    ):
        super().__init__(message, details={"exit_code": exit_code, "signal": signal})
        self.exit_code = exit_code
        self.signal = signal


class ShellBlockedError(AdapterError):
    """Raised by ShellGuard.enforce for a blocked command."""

    code = "SHELL_BLOCKED_ERROR"

    def __init__(
        self,
        message: str,
        command: str,
        reason: str,
        severity: str | None = None,
    ):
        super().__init__(
            message,
            details={"command": command, "reason": reason, "severity": severity},
        )
        self.command = command
        self.reason = reason
        self.severity = severity


# ─── Drivers ───────────────────────────────────────────────


class DriverError(AgentGateError):
    """Base exception for model driver errors."""

    code = "DRIVER_ERROR"


class DriverValidationError(DriverError):
    """Raised when a chat request fails validation (before any network call)."""

    code = "DRIVER_VALIDATION_ERROR"


class DriverAPIError(DriverError):
    """Raised when the backend rejects a request or cannot be reached."""

    code = "DRIVER_API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: Any = None,
    ):
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code
        self.response = response


class DriverTimeoutError(DriverError):
    """Raised when a backend request exceeds the configured timeout."""

    code = "DRIVER_TIMEOUT_ERROR"

    def __init__(self, message: str = "Request timed out", details: dict | None = None):
        super().__init__(message, details=details)


class ModelNotFoundError(DriverError):
    """Raised when the requested model is not available on the backend."""

    code = "MODEL_NOT_FOUND"

    def __init__(self, model: str):
        super().__init__(f"Model not found: {model}", details={"model": model})
        self.model = model


class ToolsNotSupportedError(DriverError):
    """Raised when tools are passed to a driver that cannot call them."""

    code = "TOOLS_NOT_SUPPORTED"

    def __init__(self) -> None:
        super().__init__("Tools/function calling is not supported by this driver")


# ─── MCP gateway ───────────────────────────────────────────


class McpError(AgentGateError):
    """Base exception for MCP gateway client errors."""

    code = "MCP_ERROR"


class McpConnectionError(McpError):
    """Raised when the gateway cannot be reached or returns garbage."""

    code = "MCP_CONNECTION_ERROR"

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, details={"url": url})
        self.url = url


class McpToolNotFoundError(McpError):
    """Raised when the gateway reports an unknown tool."""

    code = "MCP_TOOL_NOT_FOUND"

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}", details={"tool_name": tool_name})
        self.tool_name = tool_name


class McpInvocationError(McpError):
    """Raised when a tool invocation fails on the gateway."""

    code = "MCP_INVOCATION_ERROR"

    def __init__(self, message: str, tool_name: str, cause: Any = None):
        super().__init__(message, details={"tool_name": tool_name})
        self.tool_name = tool_name
        self.cause = cause


class McpTimeoutError(McpError):
    """Raised when a gateway request times out."""

    code = "MCP_TIMEOUT_ERROR"

    def __init__(self, message: str = "MCP request timed out"):
        super().__init__(message)


class McpServerError(McpError):
    """Raised when the gateway answers with a non-2xx status."""

    code = "MCP_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        server: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, details={"server": server, "status_code": status_code})
        self.server = server
        self.status_code = status_code
