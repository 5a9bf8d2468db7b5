"""
AgentGate Adapter Models

Data types shared by every adapter: spawn options, execute request and
response, shell results, metadata and lifecycle state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from agentgate.policies.models import DEFAULT_POLICY, PolicyProfile


class SpawnOptions(BaseModel):
    """How to launch an adapter process.

    `command` overrides the adapter's default executable and arguments
    (e.g. a wrapper script); `args` are appended to whichever is used.
    """

    model_config = ConfigDict(frozen=True)

    adapter_name: str
    session_id: str
    working_dir: str
    policy: PolicyProfile = DEFAULT_POLICY
    env: dict[str, str] = Field(default_factory=dict)
    args: list[str] = Field(default_factory=list)
    command: list[str] | None = None


class ExecuteRequest(BaseModel):
    """An action for the adapter plus its JSON-encoded input."""

    action: str
    input_json: str


class ExecuteResponse(BaseModel):
    """Adapter output and the shell commands that survived the Guard."""

    output_json: str
    proposed_shell: list[str] = Field(default_factory=list)


class ShellExecutionResult(BaseModel):
    """Outcome of request_shell. Blocked commands carry only `reason`."""

    allowed: bool
    exit_code: int | None = None
    stdout: str | None = None
    stderr: str | None = None
    reason: str | None = None


class AdapterMetadata(BaseModel):
    name: str
    version: str
    supported_actions: list[str] = Field(default_factory=list)
    requires_cli: str | None = None


class AdapterStatus(str, Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    READY = "ready"
    BUSY = "busy"
    ERROR = "error"
    TERMINATED = "terminated"


class AdapterState(BaseModel):
    """Lifecycle snapshot. Written only by the owning adapter."""

    status: AdapterStatus = AdapterStatus.IDLE
    process_id: int | None = None
    error: str | None = None
    started_at: datetime | None = None
    terminated_at: datetime | None = None
