"""
AgentGate Settings

Runtime settings resolved from environment variables. There are no
config files: every value has a default, and the environment overrides it.

    AGENTGATE_OLLAMA_URL        Ollama base URL (http://localhost:11434)
    AGENTGATE_MODEL             Default model name for drivers
    AGENTGATE_MCP_GATEWAY_URL   MCP gateway base URL (http://localhost:3000)
    AGENTGATE_MCP_API_KEY       Bearer token for the gateway
    AGENTGATE_DRIVER_TIMEOUT    Driver request timeout in seconds (120)
    AGENTGATE_MCP_TIMEOUT       Gateway request timeout in seconds (30)
    AGENTGATE_POLICY            Policy preset name (default)
    AGENTGATE_LOG_LEVEL         Log level (INFO)
    AGENTGATE_LOG_JSON          "1"/"true" for JSON log lines
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Resolved AgentGate settings."""

    ollama_url: str = "http://localhost:11434"
    model: str | None = None
    mcp_gateway_url: str = "http://localhost:3000"
    mcp_api_key: str | None = None
    driver_timeout_seconds: float = Field(default=120.0, gt=0)
    mcp_timeout_seconds: float = Field(default=30.0, gt=0)
    policy: str = "default"
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables (os.environ by default)."""
        env = os.environ if environ is None else environ
        values: dict = {}

        if "AGENTGATE_OLLAMA_URL" in env:
            values["ollama_url"] = env["AGENTGATE_OLLAMA_URL"]
        if env.get("AGENTGATE_MODEL"):
            values["model"] = env["AGENTGATE_MODEL"]
        if "AGENTGATE_MCP_GATEWAY_URL" in env:
            values["mcp_gateway_url"] = env["AGENTGATE_MCP_GATEWAY_URL"]
        if env.get("AGENTGATE_MCP_API_KEY"):
            values["mcp_api_key"] = env["AGENTGATE_MCP_API_KEY"]
        if "AGENTGATE_DRIVER_TIMEOUT" in env:
            values["driver_timeout_seconds"] = env["AGENTGATE_DRIVER_TIMEOUT"]
        if "AGENTGATE_MCP_TIMEOUT" in env:
            values["mcp_timeout_seconds"] = env["AGENTGATE_MCP_TIMEOUT"]
        if "AGENTGATE_POLICY" in env:
            values["policy"] = env["AGENTGATE_POLICY"]
        if "AGENTGATE_LOG_LEVEL" in env:
            values["log_level"] = env["AGENTGATE_LOG_LEVEL"]
        if "AGENTGATE_LOG_JSON" in env:
            values["log_json"] = env["AGENTGATE_LOG_JSON"].strip().lower() in _TRUTHY

        return cls(**values)
