"""OpenTelemetry metrics for AgentGate.

Counters for tool calls and Guard verdicts, plus a duration histogram for
model chat calls. Without a configured MeterProvider every call is a no-op.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager

from opentelemetry import metrics

_meter = None
_tool_calls_total = None
_guard_verdicts_total = None
_chat_duration = None
_initialized = False


def _ensure_meter() -> None:
    """Lazily create the meter and instruments."""
    global _meter, _tool_calls_total, _guard_verdicts_total, _chat_duration, _initialized

    if _initialized:
        return

    _initialized = True
    _meter = metrics.get_meter("agentgate", "0.1.0")

    _tool_calls_total = _meter.create_counter(
        "agentgate.tool_calls.total",
        description="Total MCP tool invocations",
        unit="1",
    )
    _guard_verdicts_total = _meter.create_counter(
        "agentgate.guard.verdicts.total",
        description="Total Guard verdicts by outcome",
        unit="1",
    )
    _chat_duration = _meter.create_histogram(
        "agentgate.chat.duration_seconds",
        description="Model chat call duration in seconds",
        unit="s",
    )


def record_tool_call(*, tool_name: str, success: bool) -> None:
    """Record a tool invocation."""
    _ensure_meter()
    _tool_calls_total.add(
        1,
        {"agentgate.tool_name": tool_name, "agentgate.success": str(success)},
    )


def record_guard_verdict(*, trust: str, allowed: bool, severity: str | None = None) -> None:
    """Record a Guard verdict."""
    _ensure_meter()
    _guard_verdicts_total.add(
        1,
        {
            "agentgate.trust": trust,
            "agentgate.allowed": str(allowed),
            "agentgate.severity": severity or "none",
        },
    )


def record_chat_duration(*, driver: str, duration_seconds: float) -> None:
    """Record a model chat call duration."""
    _ensure_meter()
    _chat_duration.record(duration_seconds, {"agentgate.driver": driver})


@contextmanager
def measure_chat_duration(driver: str) -> Generator[None, None, None]:
    """Context manager to measure and record chat call duration."""
    start = time.monotonic()
    try:
        yield
    finally:
        record_chat_duration(driver=driver, duration_seconds=time.monotonic() - start)
