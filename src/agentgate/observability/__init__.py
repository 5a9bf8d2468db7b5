"""AgentGate Observability: OpenTelemetry tracing and metrics.

Opt-in via OTEL_EXPORTER_OTLP_ENDPOINT env var.
Without it, all tracing/metrics calls are no-ops.
"""

from agentgate.observability.metrics import (
    measure_chat_duration,
    record_chat_duration,
    record_guard_verdict,
    record_tool_call,
)
from agentgate.observability.tracing import get_tracer, init_tracing, shutdown

__all__ = [
    "init_tracing",
    "get_tracer",
    "shutdown",
    "measure_chat_duration",
    "record_chat_duration",
    "record_guard_verdict",
    "record_tool_call",
]
