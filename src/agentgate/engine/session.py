"""
AgentGate Session

Top-level facade that ties the core together for one working directory
and one PolicyProfile. A session runs in one of two modes:

- driver mode: prompts go through a ToolExecutionLoop (model driver plus
  optional MCP tool registry)
- adapter mode: prompts go to an external coding CLI; its proposed shell
  commands are filtered by the session's ShellGuard

Every session owns exactly one ShellGuard whose filesystem write root is
the session's working directory.
"""

from __future__ import annotations

import json
import uuid

from pydantic import BaseModel, Field

from agentgate.adapters import create_adapter
from agentgate.adapters.base import AdapterProcess
from agentgate.adapters.events import AdapterEvent, ShellBlockedEvent
from agentgate.adapters.models import AdapterStatus, ExecuteRequest, SpawnOptions
from agentgate.drivers.base import ModelDriver
from agentgate.engine.loop import MAX_TOOL_ROUNDS, ToolExecutionLoop
from agentgate.logging import get_logger
from agentgate.mcp.registry import ToolRegistry
from agentgate.policies.models import DEFAULT_POLICY, PolicyProfile
from agentgate.sandbox.deny_list import DEFAULT_GUARD_CONFIG, GuardConfig
from agentgate.sandbox.guard import ShellGuard

logger = get_logger("agentgate.engine.session")


class BlockedCommand(BaseModel):
    command: str
    reason: str
    severity: str | None = None
    suggestion: str | None = None


class SessionResult(BaseModel):
    """Outcome of one prompt.

    In adapter mode `proposed_shell` holds the commands the Guard let
    through (rewritten where a rule applied) and `blocked` the ones it
    rejected. Both are empty in driver mode.
    """

    text: str
    success: bool = True
    proposed_shell: list[str] = Field(default_factory=list)
    blocked: list[BlockedCommand] = Field(default_factory=list)


def build_session_guard(working_dir: str, config: GuardConfig | None = None) -> ShellGuard:
    """A ShellGuard whose write root is `working_dir`."""
    base = config or DEFAULT_GUARD_CONFIG
    fs = base.fs.model_copy(update={"write_root": working_dir})
    return ShellGuard(base.model_copy(update={"fs": fs}))


class AgentSession:
    """One agent session bound to a working directory and a policy.

    Pass exactly one of `driver` or `adapter_name`.
    """

    def __init__(
        self,
        working_dir: str,
        policy: PolicyProfile = DEFAULT_POLICY,
        *,
        driver: ModelDriver | None = None,
        adapter_name: str | None = None,
        registry: ToolRegistry | None = None,
        session_id: str | None = None,
        system_prompt: str | None = None,
        max_iterations: int = MAX_TOOL_ROUNDS,
        adapter_command: list[str] | None = None,
        guard_config: GuardConfig | None = None,
    ):
        if (driver is None) == (adapter_name is None):
            raise ValueError("Provide exactly one of driver or adapter_name")

        self.session_id = session_id or uuid.uuid4().hex
        self.working_dir = working_dir
        self.policy = policy
        self.guard = build_session_guard(working_dir, guard_config)

        self._loop: ToolExecutionLoop | None = None
        self._adapter: AdapterProcess | None = None
        self._blocked: list[BlockedCommand] = []

        if driver is not None:
            self._loop = ToolExecutionLoop(
                driver,
                registry,
                self.session_id,
                system_prompt=system_prompt,
                max_iterations=max_iterations,
                policy=policy,
            )
        else:
            options = SpawnOptions(
                adapter_name=adapter_name,
                session_id=self.session_id,
                working_dir=working_dir,
                policy=policy,
                command=adapter_command,
            )
            self._adapter = create_adapter(adapter_name, options, self.guard)
            self._adapter.subscribe(self._on_adapter_event)

    @property
    def mode(self) -> str:
        return "driver" if self._loop is not None else "adapter"

    @property
    def loop(self) -> ToolExecutionLoop | None:
        return self._loop

    @property
    def adapter(self) -> AdapterProcess | None:
        return self._adapter

    async def run(self, prompt: str, action: str = "implement") -> SessionResult:
        """Send one prompt and wait for the answer.

        `action` only applies in adapter mode.
        """
        if self._loop is not None:
            text = await self._loop.send_message(prompt)
            return SessionResult(text=text)

        assert self._adapter is not None
        if self._adapter.get_state().status == AdapterStatus.IDLE:
            await self._adapter.spawn()

        self._blocked = []
        response = await self._adapter.execute(
            ExecuteRequest(
                action=action,
                input_json=json.dumps({"prompt": prompt, "workingDir": self.working_dir}),
            )
        )
        data = json.loads(response.output_json)
        success = bool(data.get("success", True))
        text = data.get("message") or data.get("error") or ""

        if self._blocked:
            logger.info(
                "Guard blocked %d proposed command(s)",
                len(self._blocked),
                extra={"session_id": self.session_id, "trust": self.policy.trust.value},
            )
        return SessionResult(
            text=text,
            success=success,
            proposed_shell=response.proposed_shell,
            blocked=list(self._blocked),
        )

    async def close(self) -> None:
        if self._adapter is not None:
            await self._adapter.terminate()

    async def __aenter__(self) -> AgentSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _on_adapter_event(self, event: AdapterEvent) -> None:
        if isinstance(event, ShellBlockedEvent):
            self._blocked.append(
                BlockedCommand(
                    command=event.command,
                    reason=event.reason,
                    severity=event.severity,
                    suggestion=event.suggestion,
                )
            )
