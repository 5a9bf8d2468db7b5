"""
AgentGate Adapter Process Base

Abstract interface for adapters that wrap an external coding-assistant
CLI. Concrete adapters implement get_metadata, spawn, execute,
stream_logs and terminate. The base class provides:

- Lifecycle state (single writer, readers get a copy)
- Event publication through an EventBus
- Execute-request validation, raised before any subprocess interaction
- Guard filtering of proposed shell commands
- request_shell: Guard check, then `sh -c` in the working directory
  bounded by the trust-level timeout
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from agentgate.adapters.events import (
    AdapterEvent,
    EventBus,
    EventListener,
    ShellBlockedEvent,
    ShellExecutedEvent,
    ShellProposedEvent,
)
from agentgate.adapters.models import (
    AdapterMetadata,
    AdapterState,
    AdapterStatus,
    ExecuteRequest,
    ExecuteResponse,
    ShellExecutionResult,
    SpawnOptions,
)
from agentgate.exceptions import AdapterValidationError, ShellBlockedError
from agentgate.logging import get_logger
from agentgate.sandbox.guard import GuardVerdict, ShellGuard

logger = get_logger("agentgate.adapters")

SHELL_TIMEOUT_EXIT_CODE = 124


class AdapterProcess(ABC):
    """Abstract base class for all adapter processes."""

    def __init__(self, options: SpawnOptions, guard: ShellGuard | None = None):
        self._options = options
        self._guard = guard or ShellGuard()
        self._state = AdapterState()
        self._events = EventBus()

    @property
    def name(self) -> str:
        return self._options.adapter_name

    @property
    def guard(self) -> ShellGuard:
        return self._guard

    @abstractmethod
    def get_metadata(self) -> AdapterMetadata:
        """Describe this adapter."""
        ...

    @abstractmethod
    async def spawn(self) -> None:
        """Start the adapter process. idle -> spawning -> ready."""
        ...

    @abstractmethod
    async def execute(self, request: ExecuteRequest) -> ExecuteResponse:
        """Run one action and return its output plus Guard-approved shell commands."""
        ...

    @abstractmethod
    def stream_logs(self) -> AsyncIterator[str]:
        """Iterate over log lines produced by the adapter."""
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Stop the adapter. Always ends in `terminated`."""
        ...

    # ─── State & events ────────────────────────────────────

    def get_state(self) -> AdapterState:
        """Return a copy of the current lifecycle state."""
        return self._state.model_copy()

    def get_options(self) -> SpawnOptions:
        return self._options

    def subscribe(self, listener: EventListener) -> None:
        self._events.subscribe(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        self._events.unsubscribe(listener)

    def _emit(self, event_cls: type[AdapterEvent], **fields: Any) -> None:
        event = event_cls(
            session_id=self._options.session_id,
            adapter_name=self._options.adapter_name,
            **fields,
        )
        self._events.emit(event)

    def _set_state(self, **updates: Any) -> None:
        self._state = self._state.model_copy(update=updates)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ─── Validation & Guard ────────────────────────────────

    def _validate_execute_request(self, request: ExecuteRequest) -> Any:
        """Validate the request and return the decoded input."""
        if not request.action:
            raise AdapterValidationError("Action is required")
        if not request.input_json:
            raise AdapterValidationError("Input JSON is required")
        try:
            return json.loads(request.input_json)
        except (json.JSONDecodeError, TypeError) as e:
            raise AdapterValidationError("Invalid input JSON", details={"error": str(e)}) from e

    def _validate_shell_command(self, command: str) -> GuardVerdict:
        policy = self._options.policy
        return self._guard.evaluate(command, policy.trust, strict=policy.guard_strict)

    def _filter_proposed_shell(self, commands: list[str]) -> list[str]:
        """Run each proposed command through the Guard, emitting one event per command.

        Blocked commands are dropped. Allowed commands are returned in their
        rewritten form when the Guard produced one.
        """
        allowed: list[str] = []
        for command in commands:
            if not isinstance(command, str) or not command.strip():
                continue
            verdict = self._validate_shell_command(command)
            if verdict.allowed:
                self._emit(ShellProposedEvent, command=command, rewritten=verdict.rewritten)
                allowed.append(verdict.rewritten or command)
            else:
                self._emit_blocked(command, verdict)
        return allowed

    def _emit_blocked(self, command: str, verdict: GuardVerdict) -> None:
        self._emit(
            ShellBlockedEvent,
            command=command,
            reason=verdict.reason or "Unknown reason",
            severity=verdict.severity.value if verdict.severity else None,
            suggestion=self._guard.suggest_alternative(command),
        )

    # ─── Shell ─────────────────────────────────────────────

    async def request_shell(self, command: str) -> ShellExecutionResult:
        """Run `command` if the Guard allows it.

        Blocked commands never reach a shell: a `shell_blocked` event is
        emitted and a not-allowed result is returned.
        """
        policy = self._options.policy
        try:
            verdict = self._guard.enforce(command, policy.trust, strict=policy.guard_strict)
        except ShellBlockedError as e:
            self._emit(
                ShellBlockedEvent,
                command=command,
                reason=e.reason,
                severity=e.severity,
                suggestion=self._guard.suggest_alternative(command),
            )
            return ShellExecutionResult(allowed=False, reason=e.reason)

        to_run = verdict.rewritten or command
        result = await self._run_shell(to_run, verdict.timeout_seconds)
        self._emit(ShellExecutedEvent, command=to_run, exit_code=result.exit_code or 0)
        return result

    async def _run_shell(self, command: str, timeout_seconds: int) -> ShellExecutionResult:
        """Execute via `sh -c` in the working directory."""
        proc = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._options.working_dir,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=timeout_seconds or None,
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(
                "Shell command timed out",
                extra={"session_id": self._options.session_id, "command": command},
            )
            return ShellExecutionResult(
                allowed=True,
                exit_code=SHELL_TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {timeout_seconds}s",
            )

        return ShellExecutionResult(
            allowed=True,
            exit_code=proc.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    def _mark_ready_or_busy(self, in_flight: int) -> None:
        if self._state.status == AdapterStatus.TERMINATED:
            return
        self._set_state(status=AdapterStatus.BUSY if in_flight else AdapterStatus.READY)
