"""
AgentGate Claude Code Adapter

Supervises the `claude` CLI as a child process speaking newline-delimited
JSON over stdio.

Outbound task (one line):
    {"type": "task", "id": "<hex>", "action": "...", "prompt": "...",
     "context": [...], "workingDir": "..."}

Inbound response (one line):
    {"type": "response", "id": "<hex>", "data": {"success": true,
     "message": "...", "diff": "...", "shellCommands": [...], "error": "..."}}

Responses are matched to pending requests by `id`. A response without an
`id` resolves the oldest pending request. Malformed, non-UTF-8 or
unmatched lines are dropped. If the child exits on its own, every pending
request is rejected with AdapterCrashError immediately.
"""

from __future__ import annotations

import asyncio
import json
import os
import signal as signal_module
import uuid
from collections import deque
from collections.abc import AsyncIterator
from typing import Any

from agentgate.adapters.base import AdapterProcess
from agentgate.adapters.events import (
    ErrorEvent,
    ExecuteEndEvent,
    ExecuteStartEvent,
    LogEvent,
    ReadyEvent,
    SpawnedEvent,
    TerminatedEvent,
)
from agentgate.adapters.models import (
    AdapterMetadata,
    AdapterStatus,
    ExecuteRequest,
    ExecuteResponse,
    SpawnOptions,
)
from agentgate.exceptions import (
    AdapterCrashError,
    AdapterError,
    AdapterExecutionError,
    AdapterSpawnError,
    AdapterTimeoutError,
)
from agentgate.logging import get_logger
from agentgate.sandbox.guard import ShellGuard

logger = get_logger("agentgate.adapters.claude_code")

DEFAULT_COMMAND = ("claude", "--json")
RESPONSE_TIMEOUT_SECONDS = 60.0
TERMINATE_GRACE_SECONDS = 5.0
STREAM_LIMIT_BYTES = 4 * 1024 * 1024
MAX_BUFFERED_LOG_LINES = 1000


def _signal_name(returncode: int | None) -> str | None:
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal_module.Signals(-returncode).name
    except ValueError:
        return None


class ClaudeCodeAdapter(AdapterProcess):
    """Adapter for the Claude Code CLI in JSON mode."""

    def __init__(
        self,
        options: SpawnOptions,
        guard: ShellGuard | None = None,
        *,
        response_timeout: float = RESPONSE_TIMEOUT_SECONDS,
        terminate_grace: float = TERMINATE_GRACE_SECONDS,
    ):
        super().__init__(options, guard)
        self._response_timeout = response_timeout
        self._terminate_grace = terminate_grace
        self._process: asyncio.subprocess.Process | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._in_flight = 0
        self._terminating = False
        self._terminated_emitted = False
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._exit_task: asyncio.Task | None = None
        self._log_lines: deque[str] = deque(maxlen=MAX_BUFFERED_LOG_LINES)
        self._log_queue: asyncio.Queue[str | None] = asyncio.Queue(
            maxsize=MAX_BUFFERED_LOG_LINES + 1
        )

    def get_metadata(self) -> AdapterMetadata:
        return AdapterMetadata(
            name="claude-code",
            version="1.0.0",
            supported_actions=["implement", "refactor", "test", "review", "explain"],
            requires_cli="claude",
        )

    def _command(self) -> list[str]:
        base = list(self._options.command) if self._options.command else list(DEFAULT_COMMAND)
        return base + list(self._options.args)

    # ─── Lifecycle ─────────────────────────────────────────

    async def spawn(self) -> None:
        if self._state.status != AdapterStatus.IDLE:
            raise AdapterSpawnError(
                f"Cannot spawn adapter in state {self._state.status.value}",
                self._options.adapter_name,
            )

        self._set_state(status=AdapterStatus.SPAWNING, started_at=self._now())
        command = self._command()
        env = {
            **os.environ,
            **self._options.env,
            "CLAUDE_CODE_SESSION_ID": self._options.session_id,
        }

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._options.working_dir,
                env=env,
                limit=STREAM_LIMIT_BYTES,
                start_new_session=True,
            )
        except OSError as e:
            self._set_state(status=AdapterStatus.ERROR, error=str(e))
            logger.error(
                "Failed to spawn adapter: %s",
                e,
                extra={"session_id": self._options.session_id, "adapter": self.name},
            )
            raise AdapterSpawnError(
                f"Failed to spawn {command[0]}: {e}",
                self._options.adapter_name,
                details={"command": command},
            ) from e

        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())
        self._exit_task = asyncio.create_task(self._watch_exit())

        pid = self._process.pid
        self._set_state(status=AdapterStatus.READY, process_id=pid)
        logger.info(
            "Adapter spawned (pid %s)",
            pid,
            extra={"session_id": self._options.session_id, "adapter": self.name},
        )
        self._emit(SpawnedEvent, process_id=pid)
        self._emit(ReadyEvent)

    async def terminate(self) -> None:
        if self._state.status == AdapterStatus.TERMINATED:
            return

        self._terminating = True
        proc = self._process
        exit_code: int | None = None

        if proc is not None:
            if proc.returncode is None:
                self._signal_group(signal_module.SIGTERM)
                try:
                    await asyncio.wait_for(proc.wait(), timeout=self._terminate_grace)
                except TimeoutError:
                    logger.warning(
                        "Adapter ignored SIGTERM, killing",
                        extra={"session_id": self._options.session_id, "adapter": self.name},
                    )
                    self._signal_group(signal_module.SIGKILL)
                    try:
                        await asyncio.wait_for(proc.wait(), timeout=self._terminate_grace)
                    except TimeoutError:
                        logger.error(
                            "Adapter still running after SIGKILL",
                            extra={"session_id": self._options.session_id, "adapter": self.name},
                        )
            # Descendants left in the group would hold our pipes open.
            self._signal_group(signal_module.SIGKILL)
            exit_code = proc.returncode
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()
            await self._drain_tasks()

        self._reject_pending(AdapterExecutionError("Adapter terminated"))
        self._finish(exit_code)

    def _signal_group(self, sig: int) -> None:
        """Signal the child's whole process group (it leads its own session)."""
        assert self._process is not None
        try:
            os.killpg(self._process.pid, sig)
        except ProcessLookupError:
            pass

    async def _drain_tasks(self) -> None:
        """Wait for the reader tasks, cancelling any still running after the grace period."""
        tasks = [t for t in (self._stdout_task, self._stderr_task, self._exit_task) if t]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self._terminate_grace)
        if pending:
            logger.warning(
                "Adapter pipes still open after exit, cancelling %d reader(s)",
                len(pending),
                extra={"session_id": self._options.session_id, "adapter": self.name},
            )
            for task in pending:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _finish(self, exit_code: int | None) -> None:
        """Move to `terminated` and emit the terminated event exactly once."""
        self._set_state(status=AdapterStatus.TERMINATED, terminated_at=self._now())
        if self._terminated_emitted:
            return
        self._terminated_emitted = True
        self._enqueue_log(None)
        self._emit(
            TerminatedEvent,
            exit_code=exit_code if exit_code is not None and exit_code >= 0 else None,
            signal=_signal_name(exit_code),
        )

    def _reject_pending(self, error: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    # ─── Execute ───────────────────────────────────────────

    async def execute(self, request: ExecuteRequest) -> ExecuteResponse:
        task_input = self._validate_execute_request(request)

        proc = self._process
        if (
            proc is None
            or proc.stdin is None
            or proc.returncode is not None
            or self._state.status == AdapterStatus.TERMINATED
        ):
            raise AdapterExecutionError("Adapter not spawned", request.action)

        if not isinstance(task_input, dict):
            task_input = {"prompt": task_input}

        request_id = uuid.uuid4().hex
        message: dict[str, Any] = {
            "type": "task",
            "id": request_id,
            "action": request.action,
            "prompt": task_input.get("prompt"),
            "workingDir": task_input.get("workingDir") or self._options.working_dir,
        }
        if task_input.get("context") is not None:
            message["context"] = task_input["context"]

        self._in_flight += 1
        self._set_state(status=AdapterStatus.BUSY)
        self._emit(ExecuteStartEvent, action=request.action)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            proc.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
            await proc.stdin.drain()
            try:
                data = await asyncio.wait_for(future, timeout=self._response_timeout)
            except TimeoutError:
                raise AdapterTimeoutError(
                    f"Response timeout for action: {request.action}",
                    details={"action": request.action, "request_id": request_id},
                ) from None
        except Exception as e:
            self._pending.pop(request_id, None)
            self._in_flight -= 1
            if self._state.status != AdapterStatus.TERMINATED:
                self._set_state(status=AdapterStatus.ERROR, error=str(e))
            self._emit(ErrorEvent, error=str(e), error_type=type(e).__name__)
            if isinstance(e, AdapterError):
                raise
            raise AdapterExecutionError(f"Execution failed: {e}", request.action) from e

        self._in_flight -= 1
        if not isinstance(data, dict):
            data = {"success": False, "error": "Malformed response data"}

        commands = data.get("shellCommands") or []
        proposed = self._filter_proposed_shell(commands if isinstance(commands, list) else [])

        self._mark_ready_or_busy(self._in_flight)
        self._emit(ExecuteEndEvent, action=request.action, success=bool(data.get("success")))

        return ExecuteResponse(output_json=json.dumps(data), proposed_shell=proposed)

    # ─── Stream readers ────────────────────────────────────

    async def _read_stdout(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        reader = self._process.stdout
        while True:
            try:
                raw = await reader.readline()
            except ValueError:
                # Line longer than the stream limit; the reader has discarded it.
                continue
            if not raw:
                return
            self._handle_line(raw)

    def _handle_line(self, raw: bytes) -> None:
        try:
            message = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return
        if not isinstance(message, dict) or message.get("type") != "response":
            return

        request_id = message.get("id")
        if request_id is not None:
            future = self._pending.pop(str(request_id), None)
        elif self._pending:
            oldest = next(iter(self._pending))
            future = self._pending.pop(oldest)
        else:
            future = None

        if future is None or future.done():
            logger.debug(
                "Dropping unmatched response",
                extra={"session_id": self._options.session_id, "adapter": self.name},
            )
            return
        future.set_result(message.get("data") or {})

    async def _read_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        reader = self._process.stderr
        while True:
            try:
                raw = await reader.readline()
            except ValueError:
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\n")
            self._log_lines.append(line)
            if not self._terminated_emitted:
                self._enqueue_log(line)
            self._emit(LogEvent, level="error", message=line)

    async def _watch_exit(self) -> None:
        assert self._process is not None
        returncode = await self._process.wait()
        # Deliver any response written just before exit.
        if self._stdout_task is not None:
            await asyncio.wait({self._stdout_task}, timeout=self._terminate_grace)

        if self._terminating:
            return

        signal_name = _signal_name(returncode)
        if returncode != 0:
            message = f"Adapter process exited with code {returncode}"
            logger.error(
                message,
                extra={"session_id": self._options.session_id, "adapter": self.name},
            )
            self._set_state(status=AdapterStatus.TERMINATED, error=message)
            self._emit(ErrorEvent, error=message, error_type="AdapterCrashError")
            self._reject_pending(AdapterCrashError(message, exit_code=returncode, signal=signal_name))
        else:
            self._reject_pending(
                AdapterCrashError("Adapter process exited before responding", exit_code=0)
            )
        self._finish(returncode)

    def _enqueue_log(self, line: str | None) -> None:
        """Queue a line for stream_logs, dropping the oldest when no one keeps up."""
        while self._log_queue.full():
            self._log_queue.get_nowait()
        self._log_queue.put_nowait(line)

    async def stream_logs(self) -> AsyncIterator[str]:
        """Yield stderr lines until the process ends."""
        while True:
            line = await self._log_queue.get()
            if line is None:
                self._log_queue.put_nowait(None)
                return
            yield line

    def buffered_logs(self) -> list[str]:
        """Most recent stderr lines, oldest first."""
        return list(self._log_lines)
