"""Session registry, the engine's single synchronization point."""

from __future__ import annotations

import logging
import threading

from agentdeck.errors import SessionNotFoundError
from agentdeck.pty.commands import CommandSender
from agentdeck.pty.session import Session, SessionHandle
from agentdeck.pty.status import SessionStatus

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Lock-guarded table of live sessions keyed by id.

    Every insert, removal, lookup and status change happens under one
    lock. Nothing in here performs blocking I/O, so holding the lock is
    always short. Ids are remembered after removal and can never be
    registered again; the issued set grows by one short string per session
    for the registry's lifetime.
    """

    def __init__(self) -> None:
        self._handles: dict[str, SessionHandle] = {}
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def insert(self, handle: SessionHandle) -> None:
        with self._lock:
            if handle.id in self._issued:
                raise ValueError(f"Session id already issued: {handle.id}")
            self._issued.add(handle.id)
            self._handles[handle.id] = handle

    def remove(self, session_id: str) -> SessionHandle:
        """Remove and return the entry. Raises if it is not present."""
        with self._lock:
            handle = self._handles.pop(session_id, None)
        if handle is None:
            raise SessionNotFoundError(session_id)
        return handle

    def drain(self) -> list[SessionHandle]:
        """Remove every entry at once (host teardown)."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        return handles

    def sender(self, session_id: str) -> CommandSender:
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is None:
                raise SessionNotFoundError(session_id)
            return handle.sender

    def status(self, session_id: str) -> SessionStatus:
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is None:
                raise SessionNotFoundError(session_id)
            return handle.session.status

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            handle = self._handles.get(session_id)
            return handle.session.snapshot() if handle else None

    def advance(self, session_id: str, target: SessionStatus) -> Session | None:
        """Apply a status change reported by a pump.

        Returns a snapshot if the status changed, None if the session is
        gone or the change was not a legal transition. Removed sessions are
        never resurrected.
        """
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is None:
                logger.debug(
                    "Dropping status %s for closed session %s", target, session_id
                )
                return None
            if not handle.session.advance(target):
                return None
            return handle.session.snapshot()

    def record_size(self, session_id: str, cols: int, rows: int) -> CommandSender:
        """Remember the requested size and return the session's sender."""
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is None:
                raise SessionNotFoundError(session_id)
            handle.session.cols = cols
            handle.session.rows = rows
            return handle.sender

    def list(self) -> list[Session]:
        with self._lock:
            return [h.session.snapshot() for h in self._handles.values()]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
