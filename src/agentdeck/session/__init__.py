"""Event delivery from session pumps to consumers."""

from agentdeck.session.wire import (
    EventSink,
    EventType,
    Wire,
    WireEvent,
    output_payload,
    status_payload,
)

__all__ = [
    "EventSink",
    "EventType",
    "Wire",
    "WireEvent",
    "output_payload",
    "status_payload",
]
