"""Session engine: public facade over the registry and per-session pumps.

One engine type serves both shells and coding agents. What differs is
injected: a command builder per ``create`` call (what to launch) and a
status model per engine (which topics to emit, whether status changes
are announced).
"""

from __future__ import annotations

import logging
import os
import subprocess
import uuid
from typing import Any

from agentdeck.errors import ChannelClosedError, EmitError, SessionSetupError
from agentdeck.pty.builders import CommandBuilder
from agentdeck.pty.commands import (
    CloseCommand,
    ResizeCommand,
    WriteCommand,
    command_channel,
)
from agentdeck.pty.handle import NativePtySystem, PtySystem, validate_dimensions
from agentdeck.pty.pumps import READ_BUFFER_SIZE, CommandPump, OutputPump
from agentdeck.pty.registry import SessionRegistry
from agentdeck.pty.session import Session, SessionHandle
from agentdeck.pty.status import PLAIN_STATUS, SessionStatus, StatusModel
from agentdeck.session.wire import EventSink, status_payload

logger = logging.getLogger(__name__)


class SessionEngine:
    """Creates, drives and tears down PTY sessions.

    Every public call is safe from any thread. Calls never wait for PTY
    I/O: writes and resizes are queued for the session's command pump,
    output arrives on the sink from the session's output pump.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        status_model: StatusModel = PLAIN_STATUS,
        registry: SessionRegistry | None = None,
        pty_system: PtySystem | None = None,
        read_buffer_size: int = READ_BUFFER_SIZE,
        child_env: dict[str, str] | None = None,
    ) -> None:
        self._sink = sink
        self._status_model = status_model
        self._registry = registry if registry is not None else SessionRegistry()
        self._pty_system = pty_system or NativePtySystem()
        self._read_buffer_size = read_buffer_size
        self._child_env = dict(child_env or {})

    @property
    def status_model(self) -> StatusModel:
        return self._status_model

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(
        self,
        working_directory: str,
        builder: CommandBuilder,
        *,
        cols: int,
        rows: int,
        initial_payload: str | None = None,
    ) -> Session:
        """Spawn a child on a new PTY and start its pumps.

        Args:
            working_directory: Directory the child starts in. Must exist.
            builder: Decides the executable and arguments.
            cols: Terminal width in columns.
            rows: Terminal height in rows.
            initial_payload: Text written to the child (plus a newline)
                before any caller-issued write.

        Returns:
            A snapshot of the new session, already ``running``.

        Raises:
            InvalidDimensionsError: cols/rows outside 1..65535.
            SessionSetupError: PTY/spawn failure; nothing is registered.
        """
        size = validate_dimensions(cols, rows)

        if not os.path.isdir(working_directory):
            raise SessionSetupError(
                f"Working directory does not exist: {working_directory}"
            )
        cwd = os.path.abspath(working_directory)
        spec = builder.build(cwd)

        try:
            pair = self._pty_system.openpty(size)
        except OSError as e:
            raise SessionSetupError(f"Failed to open PTY: {e}") from e

        try:
            child = pair.spawn(spec, env=self._child_env)
        except (OSError, subprocess.SubprocessError) as e:
            pair.close()
            raise SessionSetupError(f"Failed to spawn {spec.program}: {e}") from e

        try:
            reader = pair.master.try_clone_reader()
            writer = pair.master.take_writer()
        except OSError as e:
            self._kill(child, "<setup>")
            pair.close()
            raise SessionSetupError(f"Failed to open PTY handles: {e}") from e

        session_id = str(uuid.uuid4())
        session = Session(
            id=session_id,
            kind=builder.kind,
            working_directory=cwd,
            command=spec.argv,
            mode=getattr(builder, "mode", None),
            cols=cols,
            rows=rows,
        )
        sender, receiver = command_channel()

        output_pump = OutputPump(
            session_id,
            reader,
            self._sink,
            topic=self._status_model.output_topic,
            on_status=self._report_status,
            is_live=self._registry.__contains__,
            buffer_size=self._read_buffer_size,
        )
        command_pump = CommandPump(
            session_id,
            receiver,
            pair.master,
            writer,
            on_status=self._report_status,
        )

        session.advance(SessionStatus.RUNNING)
        handle = SessionHandle(session=session, sender=sender, child=child)
        self._registry.insert(handle)
        logger.info(
            "PTY session %s started: pid=%d kind=%s cmd=%s",
            session_id,
            child.pid,
            session.kind,
            " ".join(spec.argv),
        )
        if self._status_model.reports_status:
            self._emit_status(session_id, SessionStatus.RUNNING)

        output_pump.start()
        command_pump.start()

        if initial_payload:
            try:
                sender.send(WriteCommand(f"{initial_payload}\n".encode()))
            except ChannelClosedError as e:
                if session_id in self._registry:
                    self._teardown(self._registry.remove(session_id))
                raise SessionSetupError(f"Failed to send initial payload: {e}") from e

        return self._registry.get(session_id) or session.snapshot()

    def write(self, session_id: str, data: bytes | str) -> None:
        """Queue bytes for the child. Returns before they are written."""
        if isinstance(data, str):
            data = data.encode()
        sender = self._registry.sender(session_id)
        try:
            sender.send(WriteCommand(bytes(data)))
        except ChannelClosedError as e:
            raise ChannelClosedError(f"Failed to send write command: {e}") from e

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        """Queue a terminal resize."""
        validate_dimensions(cols, rows)
        sender = self._registry.record_size(session_id, cols, rows)
        try:
            sender.send(ResizeCommand(cols=cols, rows=rows))
        except ChannelClosedError as e:
            raise ChannelClosedError(f"Failed to send resize command: {e}") from e

    def close(self, session_id: str) -> None:
        """Remove the session, stop its command pump and kill the child.

        Raises ``SessionNotFoundError`` for unknown or already-closed ids.
        Once the session is found, close always succeeds.
        """
        handle = self._registry.remove(session_id)
        self._teardown(handle)
        logger.info("PTY session %s closed", session_id)

    def status(self, session_id: str) -> SessionStatus:
        return self._registry.status(session_id)

    def get(self, session_id: str) -> Session | None:
        return self._registry.get(session_id)

    def list_sessions(self) -> list[Session]:
        return self._registry.list()

    def shutdown(self) -> None:
        """Close every live session. Called on host teardown."""
        handles = self._registry.drain()
        for handle in handles:
            self._teardown(handle)
        if handles:
            logger.info("Closed %d PTY session(s) on shutdown", len(handles))

    def __enter__(self) -> SessionEngine:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def __len__(self) -> int:
        return len(self._registry)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _teardown(self, handle: SessionHandle) -> None:
        try:
            handle.sender.send(CloseCommand())
        except ChannelClosedError as e:
            logger.debug("Close command for session %s not delivered: %s", handle.id, e)
        finally:
            handle.sender.close()
        self._kill(handle.child, handle.id)

    @staticmethod
    def _kill(child: Any, session_id: str) -> None:
        try:
            child.kill()
        except OSError as e:
            logger.warning(
                "Failed to kill child process for session %s: %s", session_id, e
            )

    def _report_status(self, session_id: str, status: SessionStatus) -> None:
        session = self._registry.advance(session_id, status)
        if session is None:
            return
        logger.info("PTY session %s is now %s", session_id, status)
        if self._status_model.reports_status:
            self._emit_status(session_id, status)

    def _emit_status(self, session_id: str, status: SessionStatus) -> None:
        topic = self._status_model.status_topic
        if topic is None:
            return
        try:
            self._sink.emit(topic, session_id, status_payload(session_id, status.value))
        except EmitError as e:
            logger.warning("Failed to emit %s event: %s", topic, e)
