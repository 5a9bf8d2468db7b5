"""
AgentGate Mock Adapter

In-process adapter for tests and dry runs. No subprocess is started:
responses are canned per action, failures can be switched on, and shell
commands are simulated after the Guard has approved them.
"""

from __future__ import annotations

import asyncio
import json
import random
from collections.abc import AsyncIterator

from pydantic import BaseModel, Field

from agentgate.adapters.base import AdapterProcess
from agentgate.adapters.events import (
    ErrorEvent,
    ExecuteEndEvent,
    ExecuteStartEvent,
    ReadyEvent,
    SpawnedEvent,
    TerminatedEvent,
)
from agentgate.adapters.models import (
    AdapterMetadata,
    AdapterStatus,
    ExecuteRequest,
    ExecuteResponse,
    ShellExecutionResult,
    SpawnOptions,
)
from agentgate.exceptions import AdapterExecutionError, AdapterSpawnError
from agentgate.sandbox.guard import ShellGuard


class MockExecuteResponse(BaseModel):
    output_json: str
    proposed_shell: list[str] = Field(default_factory=list)


class MockAdapterConfig(BaseModel):
    responses: dict[str, MockExecuteResponse] = Field(default_factory=dict)
    delay_seconds: float = 0.0
    fail_spawn: bool = False
    fail_execute: bool = False


DEFAULT_MOCK_RESPONSE = MockExecuteResponse(
    output_json=json.dumps({"success": True, "message": "Mock execution complete"}),
)


class MockAdapter(AdapterProcess):
    """Adapter double with canned responses and simulated shell execution."""

    def __init__(
        self,
        options: SpawnOptions,
        guard: ShellGuard | None = None,
        config: MockAdapterConfig | None = None,
    ):
        super().__init__(options, guard)
        self._config = config or MockAdapterConfig()
        self._responses = dict(self._config.responses)
        self._logs: list[str] = []
        self._mock_pid = random.randint(1000, 10999)
        self.executed_commands: list[str] = []

    def get_metadata(self) -> AdapterMetadata:
        return AdapterMetadata(
            name="mock-adapter",
            version="1.0.0-mock",
            supported_actions=["implement", "refactor", "test", "review"],
        )

    async def _delay(self) -> None:
        if self._config.delay_seconds > 0:
            await asyncio.sleep(self._config.delay_seconds)

    async def spawn(self) -> None:
        if self._config.fail_spawn:
            self._set_state(status=AdapterStatus.ERROR, error="Mock spawn failure")
            raise AdapterSpawnError("Mock spawn failure", self._options.adapter_name)

        self._set_state(status=AdapterStatus.SPAWNING, started_at=self._now())
        await self._delay()
        self._set_state(status=AdapterStatus.READY, process_id=self._mock_pid)
        self._emit(SpawnedEvent, process_id=self._mock_pid)
        self._emit(ReadyEvent)

    async def execute(self, request: ExecuteRequest) -> ExecuteResponse:
        self._validate_execute_request(request)

        if self._state.status in (AdapterStatus.IDLE, AdapterStatus.TERMINATED):
            raise AdapterExecutionError("Adapter not spawned", request.action)

        if self._config.fail_execute:
            self._set_state(status=AdapterStatus.ERROR, error="Mock execution failure")
            self._emit(ErrorEvent, error="Mock execution failure", error_type="AdapterExecutionError")
            raise AdapterExecutionError("Mock execution failure", request.action)

        self._set_state(status=AdapterStatus.BUSY)
        self._emit(ExecuteStartEvent, action=request.action)
        await self._delay()

        response = self._responses.get(request.action, DEFAULT_MOCK_RESPONSE)
        proposed = self._filter_proposed_shell(response.proposed_shell)

        output = json.loads(response.output_json)
        success = bool(output.get("success")) if isinstance(output, dict) else False

        self._set_state(status=AdapterStatus.READY)
        self._emit(ExecuteEndEvent, action=request.action, success=success)
        return ExecuteResponse(output_json=response.output_json, proposed_shell=proposed)

    async def _run_shell(self, command: str, timeout_seconds: int) -> ShellExecutionResult:
        await self._delay()
        self.executed_commands.append(command)
        return ShellExecutionResult(
            allowed=True,
            exit_code=0,
            stdout=f"Mock execution of: {command}",
            stderr="",
        )

    async def stream_logs(self) -> AsyncIterator[str]:
        for line in list(self._logs):
            yield line

    async def terminate(self) -> None:
        if self._state.status == AdapterStatus.TERMINATED:
            return
        self._set_state(status=AdapterStatus.TERMINATED, terminated_at=self._now())
        self._emit(TerminatedEvent, exit_code=0)

    def set_response(self, action: str, response: MockExecuteResponse) -> None:
        self._responses[action] = response

    def add_log(self, message: str) -> None:
        self._logs.append(message)

    def clear_logs(self) -> None:
        self._logs.clear()
