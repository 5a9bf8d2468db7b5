"""
AgentGate Adapter Events

Every adapter publishes lifecycle and shell events through an EventBus.
Events are pydantic models discriminated by `kind`, so a listener can
match on the type or serialize them straight to JSON.

Delivery is synchronous and best-effort: a listener that raises is logged
and skipped, and the remaining listeners still receive the event.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from agentgate.logging import get_logger

logger = get_logger("agentgate.adapters.events")


class AdapterEventKind(str, Enum):
    SPAWNED = "spawned"
    READY = "ready"
    EXECUTE_START = "execute_start"
    EXECUTE_END = "execute_end"
    SHELL_PROPOSED = "shell_proposed"
    SHELL_BLOCKED = "shell_blocked"
    SHELL_EXECUTED = "shell_executed"
    LOG = "log"
    ERROR = "error"
    TERMINATED = "terminated"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AdapterEvent(BaseModel):
    """Fields common to every adapter event."""

    session_id: str
    adapter_name: str
    timestamp: datetime = Field(default_factory=_now)


class SpawnedEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.SPAWNED] = AdapterEventKind.SPAWNED
    process_id: int | None = None


class ReadyEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.READY] = AdapterEventKind.READY


class ExecuteStartEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.EXECUTE_START] = AdapterEventKind.EXECUTE_START
    action: str


class ExecuteEndEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.EXECUTE_END] = AdapterEventKind.EXECUTE_END
    action: str
    success: bool


class ShellProposedEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.SHELL_PROPOSED] = AdapterEventKind.SHELL_PROPOSED
    command: str
    rewritten: str | None = None


class ShellBlockedEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.SHELL_BLOCKED] = AdapterEventKind.SHELL_BLOCKED
    command: str
    reason: str
    severity: str | None = None
    suggestion: str | None = None


class ShellExecutedEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.SHELL_EXECUTED] = AdapterEventKind.SHELL_EXECUTED
    command: str
    exit_code: int


class LogEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.LOG] = AdapterEventKind.LOG
    level: Literal["debug", "info", "warn", "error"] = "info"
    message: str


class ErrorEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.ERROR] = AdapterEventKind.ERROR
    error: str
    error_type: str | None = None


class TerminatedEvent(AdapterEvent):
    kind: Literal[AdapterEventKind.TERMINATED] = AdapterEventKind.TERMINATED
    exit_code: int | None = None
    signal: str | None = None


AnyAdapterEvent = Annotated[
    Union[
        SpawnedEvent,
        ReadyEvent,
        ExecuteStartEvent,
        ExecuteEndEvent,
        ShellProposedEvent,
        ShellBlockedEvent,
        ShellExecutedEvent,
        LogEvent,
        ErrorEvent,
        TerminatedEvent,
    ],
    Field(discriminator="kind"),
]

EventListener = Callable[[AdapterEvent], None]


class EventBus:
    """Synchronous fan-out of adapter events to registered listeners."""

    def __init__(self) -> None:
        self._subscribers: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        """Register a listener. Signature: (event) -> None."""
        self._subscribers.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._subscribers = [s for s in self._subscribers if s != listener]

    def emit(self, event: AdapterEvent) -> None:
        """Deliver `event` to every listener, isolating listener failures."""
        for listener in list(self._subscribers):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Event listener failed",
                    extra={"session_id": event.session_id, "adapter": event.adapter_name},
                )

    def __len__(self) -> int:
        return len(self._subscribers)
