"""
AgentGate Structured Logging

Provides a configured logger for AgentGate using stdlib logging
with structured context.

Usage:
    from agentgate.logging import get_logger

    logger = get_logger("agentgate.adapters")
    logger.info("Adapter spawned", extra={"session_id": "s-1", "adapter": "claude-code"})

For production, configure with JSON output:
    from agentgate.logging import configure_logging
    configure_logging(json_output=True, level="INFO")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Structured fields lifted from LogRecord attributes when present
STRUCTURED_FIELDS = (
    "session_id",
    "adapter",
    "action",
    "tool_name",
    "server",
    "trust",
    "severity",
    "command",
    "iteration",
    "duration_ms",
)


class AgentGateFormatter(logging.Formatter):
    """Structured log formatter for AgentGate.

    Outputs either human-readable or JSON format depending on configuration.
    """

    def __init__(self, json_output: bool = False):
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in STRUCTURED_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            log_data["exception"] = f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        if self._json_output:
            return json.dumps(log_data, default=str)

        extra_keys = {
            k: v for k, v in log_data.items() if k not in ("timestamp", "level", "logger", "message")
        }
        extra_str = ""
        if extra_keys:
            extra_str = " | " + " ".join(f"{k}={v}" for k, v in extra_keys.items())

        return (
            f"[{log_data['timestamp']}] {record.levelname:8s} {record.name}: "
            f"{record.getMessage()}{extra_str}"
        )


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """Configure AgentGate logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output JSON format (for log shippers).
    """
    root_logger = logging.getLogger("agentgate")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(AgentGateFormatter(json_output=json_output))
    root_logger.addHandler(handler)

    root_logger.propagate = False


def get_logger(name: str = "agentgate") -> logging.Logger:
    """Get an AgentGate logger instance.

    Args:
        name: Logger name (usually module path like "agentgate.sandbox").
    """
    return logging.getLogger(name)
