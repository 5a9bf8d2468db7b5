"""OpenTelemetry tracing setup for AgentGate.

Initializes an OTLP exporter when OTEL_EXPORTER_OTLP_ENDPOINT is set and
the OpenTelemetry SDK is installed. Otherwise spans go to the API's
no-op provider and cost nothing.
"""

from __future__ import annotations

import os

from opentelemetry import trace
from opentelemetry.trace import Tracer

from agentgate.logging import get_logger

logger = get_logger("agentgate.observability")

TRACER_NAME = "agentgate"
TRACER_VERSION = "0.1.0"

_tracer: Tracer | None = None
_initialized = False


def init_tracing(
    endpoint: str | None = None,
    service_name: str | None = None,
) -> bool:
    """Initialize OpenTelemetry tracing.

    Args:
        endpoint: OTLP endpoint URL. Falls back to OTEL_EXPORTER_OTLP_ENDPOINT env var.
        service_name: Service name for traces. Falls back to OTEL_SERVICE_NAME env var.

    Returns:
        True if an exporter was installed, False if skipped (no endpoint or no SDK).
    """
    global _tracer, _initialized

    if _initialized:
        return _tracer is not None

    _initialized = True

    endpoint = endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return False

    service_name = service_name or os.environ.get("OTEL_SERVICE_NAME", "agentgate")

    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning("OTLP endpoint configured but opentelemetry-sdk is not installed")
        return False

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(TRACER_NAME, TRACER_VERSION)
    return True


def get_tracer() -> Tracer:
    """Get the AgentGate tracer.

    Returns the exporter-backed tracer if initialized, otherwise whatever the
    global provider hands out (the no-op tracer by default).
    """
    if _tracer is not None:
        return _tracer
    return trace.get_tracer(TRACER_NAME, TRACER_VERSION)


def shutdown() -> None:
    """Flush and shut down the tracer provider."""
    global _tracer, _initialized
    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()
    _tracer = None
    _initialized = False
