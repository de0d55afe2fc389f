"""Session lifecycle states and the status models that report them."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from agentdeck.session.wire import EventType


class SessionStatus(enum.StrEnum):
    """Lifecycle states for a PTY session."""

    STARTING = "starting"
    RUNNING = "running"
    WAITING = "waiting"  # Reserved: nothing in the engine drives this yet
    COMPLETED = "completed"  # Child closed its terminal (end-of-stream)
    ERROR = "error"  # Any transport or emission failure

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ERROR})

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.STARTING: frozenset({SessionStatus.RUNNING, SessionStatus.ERROR}),
    SessionStatus.RUNNING: frozenset(
        {SessionStatus.WAITING, SessionStatus.COMPLETED, SessionStatus.ERROR}
    ),
    SessionStatus.WAITING: frozenset(
        {SessionStatus.RUNNING, SessionStatus.COMPLETED, SessionStatus.ERROR}
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Return True if ``current -> target`` is a legal lifecycle step."""
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class StatusModel:
    """How a family of sessions reports itself on the event sink.

    ``status_topic`` is None for models that track status in the registry
    without announcing it (plain shells).
    """

    name: str
    output_topic: str
    status_topic: str | None = None

    @property
    def reports_status(self) -> bool:
        return self.status_topic is not None


PLAIN_STATUS = StatusModel(name="plain", output_topic=EventType.PTY_OUTPUT)
AGENT_STATUS = StatusModel(
    name="agent",
    output_topic=EventType.AGENT_OUTPUT,
    status_topic=EventType.AGENT_STATUS_CHANGED,
)
