"""Command channel between the engine facade and a session's command pump.

``command_channel()`` returns a connected sender/receiver pair backed by
an unbounded FIFO queue. Senders never block. Once the receiver is closed
(the pump stopped), sends raise ``ChannelClosedError``.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Union

from agentdeck.errors import ChannelClosedError


@dataclass(frozen=True)
class WriteCommand:
    data: bytes


@dataclass(frozen=True)
class ResizeCommand:
    cols: int
    rows: int


@dataclass(frozen=True)
class CloseCommand:
    pass


PtyCommand = Union[WriteCommand, ResizeCommand, CloseCommand]

# Queued by the last sender's close() so a blocked receiver wakes up.
_DISCONNECTED = object()


class _Channel:
    def __init__(self) -> None:
        self.queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self.lock = threading.Lock()
        self.receiver_closed = False
        self.senders = 0


class CommandSender:
    """Producer end of a command channel."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel
        self._closed = False
        with channel.lock:
            channel.senders += 1

    def send(self, command: PtyCommand) -> None:
        channel = self._channel
        with channel.lock:
            if self._closed:
                raise ChannelClosedError("Command sender has been closed")
            if channel.receiver_closed:
                raise ChannelClosedError("Command pump is no longer running")
            channel.queue.put(command)

    def clone(self) -> CommandSender:
        return CommandSender(self._channel)

    def close(self) -> None:
        """Drop this sender. The last one to go disconnects the channel."""
        channel = self._channel
        with channel.lock:
            if self._closed:
                return
            self._closed = True
            channel.senders -= 1
            if channel.senders == 0:
                channel.queue.put(_DISCONNECTED)

    @property
    def is_connected(self) -> bool:
        with self._channel.lock:
            return not self._closed and not self._channel.receiver_closed


class CommandReceiver:
    """Consumer end of a command channel. Owned by exactly one pump."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def recv(self) -> PtyCommand | None:
        """Block until the next command; None once every sender is gone."""
        item = self._channel.queue.get()
        if item is _DISCONNECTED:
            return None
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[PtyCommand]:
        while True:
            command = self.recv()
            if command is None:
                return
            yield command

    def close(self) -> None:
        with self._channel.lock:
            self._channel.receiver_closed = True


def command_channel() -> tuple[CommandSender, CommandReceiver]:
    channel = _Channel()
    return CommandSender(channel), CommandReceiver(channel)
