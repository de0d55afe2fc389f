"""Per-session worker threads.

Every live session owns exactly two daemon threads:

* ``OutputPump`` reads the PTY master and forwards bytes to the sink.
* ``CommandPump`` drains the session's command queue and applies writes,
  resizes and close to the PTY master.

Both report terminal statuses through a callback instead of touching the
registry themselves, and neither ever blocks another session.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

from agentdeck.errors import EmitError
from agentdeck.pty.commands import (
    CloseCommand,
    CommandReceiver,
    PtyCommand,
    ResizeCommand,
    WriteCommand,
)
from agentdeck.pty.handle import PtySize
from agentdeck.pty.status import SessionStatus
from agentdeck.session.wire import EventSink, output_payload

logger = logging.getLogger(__name__)

READ_BUFFER_SIZE = 4096

StatusCallback = Callable[[str, SessionStatus], None]


class Reader(Protocol):
    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


class Writer(Protocol):
    def write_all(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


class Resizable(Protocol):
    def resize(self, size: PtySize) -> None: ...

    def close(self) -> None: ...


class OutputPump(threading.Thread):
    """Move bytes from the PTY master to the event sink.

    Stops on end-of-stream (``COMPLETED``), on a read error or when the
    sink rejects an event (``ERROR``). Output for a session that has
    already been closed is dropped; ``is_live`` decides that. The check is
    not atomic with the emit, so a close racing a read can still let one
    chunk through.
    """

    def __init__(
        self,
        session_id: str,
        reader: Reader,
        sink: EventSink,
        *,
        topic: str,
        on_status: StatusCallback,
        is_live: Callable[[str], bool] | None = None,
        buffer_size: int = READ_BUFFER_SIZE,
    ) -> None:
        super().__init__(name=f"output-pump-{session_id[:8]}", daemon=True)
        self.session_id = session_id
        self._reader = reader
        self._sink = sink
        self._topic = topic
        self._on_status = on_status
        self._is_live = is_live
        self._buffer_size = buffer_size

    def run(self) -> None:
        status = SessionStatus.ERROR
        try:
            status = self._pump()
        except Exception:
            logger.exception("Output pump for session %s crashed", self.session_id)
        finally:
            self._reader.close()
        self._on_status(self.session_id, status)

    def _pump(self) -> SessionStatus:
        session_id = self.session_id
        while True:
            try:
                data = self._reader.read(self._buffer_size)
            except OSError as e:
                logger.warning("PTY read error for session %s: %s", session_id, e)
                return SessionStatus.ERROR

            if not data:
                logger.debug("PTY session %s reached end of stream", session_id)
                return SessionStatus.COMPLETED

            if self._is_live is not None and not self._is_live(session_id):
                logger.debug(
                    "Dropping %d bytes for closed session %s", len(data), session_id
                )
                continue

            try:
                self._sink.emit(self._topic, session_id, output_payload(session_id, data))
            except EmitError as e:
                logger.warning("Failed to emit %s event: %s", self._topic, e)
                return SessionStatus.ERROR


class CommandPump(threading.Thread):
    """Apply queued commands to the PTY master, strictly in order.

    Runs until a ``CloseCommand`` arrives, every sender is gone, or a
    write/resize fails. On exit the receiver is closed so later sends fail
    fast, and the owned write handle and master are released.
    """

    def __init__(
        self,
        session_id: str,
        receiver: CommandReceiver,
        master: Resizable,
        writer: Writer,
        *,
        on_status: StatusCallback,
    ) -> None:
        super().__init__(name=f"command-pump-{session_id[:8]}", daemon=True)
        self.session_id = session_id
        self._receiver = receiver
        self._master = master
        self._writer = writer
        self._on_status = on_status

    def run(self) -> None:
        failed = False
        try:
            for command in self._receiver:
                if isinstance(command, CloseCommand):
                    logger.debug("Command pump for session %s closing", self.session_id)
                    break
                if not self._apply(command):
                    failed = True
                    break
        finally:
            self._receiver.close()
            self._writer.close()
            self._master.close()
        if failed:
            self._on_status(self.session_id, SessionStatus.ERROR)

    def _apply(self, command: PtyCommand) -> bool:
        try:
            if isinstance(command, WriteCommand):
                self._writer.write_all(command.data)
                self._writer.flush()
            elif isinstance(command, ResizeCommand):
                self._master.resize(PtySize(rows=command.rows, cols=command.cols))
        except (OSError, ValueError) as e:
            logger.warning(
                "PTY %s failed for session %s: %s",
                type(command).__name__,
                self.session_id,
                e,
            )
            return False
        return True
