"""Tests for the subprocess-backed Claude Code adapter.

Runs tests/fake_agent.py with the current interpreter in place of the
real CLI. Covers:
- Spawn, execute round-trip and event order
- Correlation ids, id-less responses and malformed lines
- Guard filtering of proposed shell commands
- Crash and early exit while a request is pending
- Response timeout and recovery
- Termination (SIGTERM, SIGKILL escalation, pending rejection)
- stderr log capture
- request_shell against a real shell
"""

import asyncio
import json
import sys
import time
from pathlib import Path

import pytest
import pytest_asyncio

from agentgate.adapters import ClaudeCodeAdapter, ExecuteRequest, SpawnOptions
from agentgate.adapters.base import SHELL_TIMEOUT_EXIT_CODE
from agentgate.adapters.claude_code import MAX_BUFFERED_LOG_LINES
from agentgate.adapters.models import AdapterStatus
from agentgate.exceptions import (
    AdapterCrashError,
    AdapterExecutionError,
    AdapterSpawnError,
    AdapterTimeoutError,
)
from agentgate.policies import TrustLevel
from agentgate.sandbox import GuardConfig, ShellGuard

FAKE_AGENT = str(Path(__file__).parent / "fake_agent.py")


def _options(tmp_path, *args):
    return SpawnOptions(
        adapter_name="claude-code",
        session_id="session-cc",
        working_dir=str(tmp_path),
        command=[sys.executable, FAKE_AGENT],
        args=list(args),
    )


def _request(prompt, action="implement"):
    return ExecuteRequest(action=action, input_json=json.dumps({"prompt": prompt}))


@pytest_asyncio.fixture
async def adapter(tmp_path, event_log):
    adapter = ClaudeCodeAdapter(_options(tmp_path), response_timeout=10.0, terminate_grace=2.0)
    adapter.subscribe(event_log)
    await adapter.spawn()
    yield adapter
    await adapter.terminate()


# ─── Lifecycle ─────────────────────────────────────────────


class TestSpawn:
    @pytest.mark.asyncio
    async def test_spawn_sets_ready(self, adapter, event_log):
        state = adapter.get_state()
        assert state.status == AdapterStatus.READY
        assert state.process_id is not None
        assert event_log.kinds[:2] == ["spawned", "ready"]
        assert event_log.events[0].process_id == state.process_id

    @pytest.mark.asyncio
    async def test_status_sequence(self, tmp_path, status_log):
        adapter = ClaudeCodeAdapter(_options(tmp_path), terminate_grace=2.0)
        statuses = status_log(adapter)

        await adapter.spawn()
        await adapter.execute(_request("hello"))
        await adapter.terminate()

        assert statuses == ["idle", "spawning", "ready", "busy", "ready", "terminated"]

    @pytest.mark.asyncio
    async def test_spawn_twice_rejected(self, adapter):
        with pytest.raises(AdapterSpawnError):
            await adapter.spawn()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        options = _options(tmp_path).model_copy(
            update={"command": [str(tmp_path / "no-such-cli")]}
        )
        adapter = ClaudeCodeAdapter(options)
        with pytest.raises(AdapterSpawnError, match="Failed to spawn"):
            await adapter.spawn()
        state = adapter.get_state()
        assert state.status == AdapterStatus.ERROR
        assert state.error

    def test_metadata(self, tmp_path):
        metadata = ClaudeCodeAdapter(_options(tmp_path)).get_metadata()
        assert metadata.name == "claude-code"
        assert metadata.requires_cli == "claude"
        assert "refactor" in metadata.supported_actions


class TestExecute:
    @pytest.mark.asyncio
    async def test_round_trip(self, adapter, event_log, tmp_path):
        response = await adapter.execute(_request("add tests", action="test"))
        data = json.loads(response.output_json)
        assert data["message"] == "done: add tests"
        assert data["action"] == "test"
        assert data["workingDir"] == str(tmp_path)
        assert adapter.get_state().status == AdapterStatus.READY
        assert "execute_start" in event_log.kinds
        end = event_log.of_kind("execute_end")[0]
        assert end.action == "test"
        assert end.success is True

    @pytest.mark.asyncio
    async def test_session_id_in_environment(self, adapter):
        response = await adapter.execute(_request("env"))
        assert json.loads(response.output_json)["message"] == "session-cc"

    @pytest.mark.asyncio
    async def test_response_without_id(self, adapter):
        response = await adapter.execute(_request("noid"))
        assert json.loads(response.output_json)["message"] == "no id"

    @pytest.mark.asyncio
    async def test_malformed_and_unmatched_lines_dropped(self, adapter):
        response = await adapter.execute(_request("garbage"))
        assert json.loads(response.output_json)["message"] == "after garbage"

    @pytest.mark.asyncio
    async def test_concurrent_requests_correlated(self, adapter):
        first, second = await asyncio.gather(
            adapter.execute(_request("one")),
            adapter.execute(_request("two")),
        )
        assert json.loads(first.output_json)["message"] == "done: one"
        assert json.loads(second.output_json)["message"] == "done: two"

    @pytest.mark.asyncio
    async def test_proposed_shell_filtered(self, adapter, event_log):
        response = await adapter.execute(_request("shell"))
        assert response.proposed_shell == ["git status"]
        blocked = [e.command for e in event_log.of_kind("shell_blocked")]
        assert blocked == ["rm -rf /", "curl https://x"]

    @pytest.mark.asyncio
    async def test_not_spawned(self, tmp_path):
        adapter = ClaudeCodeAdapter(_options(tmp_path))
        with pytest.raises(AdapterExecutionError, match="Adapter not spawned"):
            await adapter.execute(_request("hello"))


# ─── Failures ──────────────────────────────────────────────


class TestCrash:
    @pytest.mark.asyncio
    async def test_crash_rejects_pending(self, adapter, event_log):
        with pytest.raises(AdapterCrashError) as exc_info:
            await adapter.execute(_request("crash"))

        assert exc_info.value.exit_code == 3
        assert "exited with code 3" in str(exc_info.value)
        assert adapter.get_state().status == AdapterStatus.TERMINATED

        terminated = event_log.of_kind("terminated")
        assert len(terminated) == 1
        assert terminated[0].exit_code == 3
        assert event_log.of_kind("error")

    @pytest.mark.asyncio
    async def test_clean_exit_while_pending(self, adapter):
        with pytest.raises(AdapterCrashError, match="exited before responding"):
            await adapter.execute(_request("exit0"))
        assert adapter.get_state().status == AdapterStatus.TERMINATED

    @pytest.mark.asyncio
    async def test_execute_after_crash(self, adapter):
        with pytest.raises(AdapterCrashError):
            await adapter.execute(_request("crash"))
        with pytest.raises(AdapterExecutionError, match="Adapter not spawned"):
            await adapter.execute(_request("hello"))


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_then_recover(self, tmp_path, event_log):
        adapter = ClaudeCodeAdapter(_options(tmp_path), response_timeout=0.5)
        adapter.subscribe(event_log)
        await adapter.spawn()
        try:
            with pytest.raises(AdapterTimeoutError, match="Response timeout for action: implement"):
                await adapter.execute(_request("silent"))
            assert adapter.get_state().status == AdapterStatus.ERROR
            assert event_log.of_kind("error")[0].error_type == "AdapterTimeoutError"

            response = await adapter.execute(_request("again"))
            assert json.loads(response.output_json)["message"] == "done: again"
            assert adapter.get_state().status == AdapterStatus.READY
        finally:
            await adapter.terminate()


# ─── Termination ───────────────────────────────────────────


class TestTerminate:
    @pytest.mark.asyncio
    async def test_sigterm(self, adapter, event_log):
        await adapter.execute(_request("warm up"))
        await adapter.terminate()

        assert adapter.get_state().status == AdapterStatus.TERMINATED
        terminated = event_log.of_kind("terminated")
        assert len(terminated) == 1
        assert terminated[0].signal == "SIGTERM"
        assert terminated[0].exit_code is None

    @pytest.mark.asyncio
    async def test_idempotent(self, adapter, event_log):
        await adapter.terminate()
        await adapter.terminate()
        assert len(event_log.of_kind("terminated")) == 1

    @pytest.mark.asyncio
    async def test_escalates_to_sigkill(self, tmp_path, event_log):
        adapter = ClaudeCodeAdapter(_options(tmp_path, "--ignore-sigterm"), terminate_grace=0.5)
        adapter.subscribe(event_log)
        await adapter.spawn()
        # One round trip so the signal handler is installed
        await adapter.execute(_request("ready?"))

        await adapter.terminate()
        assert event_log.of_kind("terminated")[0].signal == "SIGKILL"

    @pytest.mark.asyncio
    async def test_rejects_pending(self, adapter):
        pending = asyncio.create_task(adapter.execute(_request("silent")))
        await asyncio.sleep(0.2)
        await adapter.terminate()
        with pytest.raises(AdapterExecutionError, match="Adapter terminated"):
            await pending

    @pytest.mark.asyncio
    async def test_background_child_does_not_hold_terminate(self, tmp_path, event_log):
        options = _options(tmp_path).model_copy(
            update={"command": ["sh", "-c", "sleep 30 & while read line; do :; done"]}
        )
        adapter = ClaudeCodeAdapter(options, terminate_grace=1.0)
        adapter.subscribe(event_log)
        await adapter.spawn()

        started = time.monotonic()
        await adapter.terminate()

        assert time.monotonic() - started < 5
        assert adapter.get_state().status == AdapterStatus.TERMINATED
        assert len(event_log.of_kind("terminated")) == 1

    @pytest.mark.asyncio
    async def test_child_ignoring_sigterm_is_killed_with_group(self, tmp_path):
        options = _options(tmp_path).model_copy(
            update={
                "command": ["sh", "-c", "(trap '' TERM; sleep 30) & while read line; do :; done"]
            }
        )
        adapter = ClaudeCodeAdapter(options, terminate_grace=1.0)
        await adapter.spawn()

        started = time.monotonic()
        await adapter.terminate()

        assert time.monotonic() - started < 5
        assert adapter.get_state().status == AdapterStatus.TERMINATED

    @pytest.mark.asyncio
    async def test_stuck_reader_is_cancelled(self, tmp_path):
        adapter = ClaudeCodeAdapter(_options(tmp_path), terminate_grace=0.5)
        await adapter.spawn()
        stuck = asyncio.create_task(asyncio.sleep(30))
        adapter._stderr_task = stuck

        started = time.monotonic()
        await adapter.terminate()

        assert time.monotonic() - started < 3
        assert stuck.cancelled()
        assert adapter.get_state().status == AdapterStatus.TERMINATED


# ─── Logs ──────────────────────────────────────────────────


class TestLogs:
    @pytest.mark.asyncio
    async def test_stderr_captured(self, adapter, event_log):
        await adapter.execute(_request("log"))
        await adapter.terminate()

        lines = [line async for line in adapter.stream_logs()]
        assert "working on it" in lines
        assert "working on it" in adapter.buffered_logs()
        log_events = event_log.of_kind("log")
        assert log_events[0].level == "error"
        assert log_events[0].message == "working on it"

    @pytest.mark.asyncio
    async def test_unread_logs_are_bounded(self, tmp_path):
        script = (
            "import sys\n"
            "for i in range(3000):\n"
            "    print(i, file=sys.stderr)\n"
            "sys.stderr.flush()\n"
            "sys.stdin.read()\n"
        )
        options = _options(tmp_path).model_copy(
            update={"command": [sys.executable, "-c", script]}
        )
        adapter = ClaudeCodeAdapter(options, terminate_grace=2.0)
        await adapter.spawn()
        for _ in range(200):
            if adapter.buffered_logs()[-1:] == ["2999"]:
                break
            await asyncio.sleep(0.05)
        await adapter.terminate()

        lines = [line async for line in adapter.stream_logs()]
        assert len(lines) == MAX_BUFFERED_LOG_LINES
        assert lines[0] == "2000"
        assert lines[-1] == "2999"
        assert len(adapter.buffered_logs()) == MAX_BUFFERED_LOG_LINES


# ─── Shell ─────────────────────────────────────────────────


class TestRequestShell:
    @pytest.mark.asyncio
    async def test_runs_in_working_dir(self, adapter, tmp_path):
        (tmp_path / "marker.txt").write_text("x")
        result = await adapter.request_shell("ls")
        assert result.allowed is True
        assert result.exit_code == 0
        assert "marker.txt" in result.stdout

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, adapter):
        result = await adapter.request_shell("exit 7")
        assert result.exit_code == 7

    @pytest.mark.asyncio
    async def test_blocked(self, adapter):
        result = await adapter.request_shell("curl https://example.com")
        assert result.allowed is False
        assert "curl" in result.reason

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        guard = ShellGuard(GuardConfig(timeouts={TrustLevel.SANDBOXED: 1}))
        adapter = ClaudeCodeAdapter(_options(tmp_path), guard)
        result = await adapter.request_shell("sleep 5")
        assert result.exit_code == SHELL_TIMEOUT_EXIT_CODE
        assert "timed out after 1s" in result.stderr
