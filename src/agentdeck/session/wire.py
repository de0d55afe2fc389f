"""Wire protocol. Decouples the session engine from the UI.

Events flow from the session pumps to UI subscribers. The engine only
knows the ``EventSink`` protocol; ``Wire`` is the in-process broadcast
implementation used by the runtime and the CLI. Pumps emit from their
own threads, so everything here is thread-safe.
"""

from __future__ import annotations

import enum
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from agentdeck.errors import WireClosedError


class EventType(enum.StrEnum):
    PTY_OUTPUT = "pty-output"
    AGENT_OUTPUT = "agent-output"
    AGENT_STATUS_CHANGED = "agent-status-changed"


class EventSink(Protocol):
    """Anything that can receive session notifications.

    ``emit`` may raise ``EmitError`` when the consumer is gone; the engine
    treats that as fatal to the emitting session only.
    """

    def emit(self, topic: str, session_id: str, payload: dict[str, Any]) -> None: ...


def output_payload(session_id: str, data: bytes) -> dict[str, Any]:
    return {"session_id": session_id, "data": data}


def status_payload(session_id: str, status: str) -> dict[str, Any]:
    return {"session_id": session_id, "status": status}


@dataclass
class WireEvent:
    """An event on the wire."""

    topic: str
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Thread-safe message bus: session pumps -> UI subscribers.

    Multi-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[queue.Queue[WireEvent | None]] = []
        self._closed: bool = False
        self._lock = threading.Lock()

    def emit(self, topic: str, session_id: str, payload: dict[str, Any]) -> None:
        self.send(WireEvent(topic=topic, session_id=session_id, data=payload))

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Raises ``WireClosedError`` after ``close()`` has been called.
        """
        with self._lock:
            if self._closed:
                raise WireClosedError(
                    f"Wire is closed, dropping {event.topic} for session {event.session_id}"
                )
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put_nowait(event)

    def subscribe(self) -> queue.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: queue.Queue[WireEvent | None] = queue.Queue()
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        """Unsubscribe from events."""
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put_nowait(None)
