"""Session records tracked by the registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from agentdeck.pty.builders import AgentMode, SessionKind
from agentdeck.pty.commands import CommandSender
from agentdeck.pty.handle import ChildProcess
from agentdeck.pty.status import SessionStatus, can_transition

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Session:
    """A child process attached to a PTY, from creation to close.

    Instances handed to callers are snapshots; the live record only
    changes under the registry lock.
    """

    id: str
    kind: SessionKind
    working_directory: str
    command: list[str] = field(default_factory=list)
    mode: AgentMode | None = None
    cols: int = 80
    rows: int = 24
    status: SessionStatus = SessionStatus.STARTING
    started_at: str = field(default_factory=_utcnow)
    completed_at: str | None = None

    def advance(self, target: SessionStatus) -> bool:
        """Move to ``target`` if the lifecycle allows it.

        Returns True if the status changed. ``completed_at`` is stamped on
        the (single) transition into a terminal state.
        """
        if target == self.status:
            return False
        if not can_transition(self.status, target):
            logger.debug(
                "Ignoring status change %s -> %s for session %s",
                self.status,
                target,
                self.id,
            )
            return False
        self.status = target
        if target.is_terminal:
            self.completed_at = _utcnow()
        return True

    def snapshot(self) -> Session:
        return replace(self, command=list(self.command))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "working_directory": self.working_directory,
            "command": " ".join(self.command),
            "mode": self.mode.value if self.mode else None,
            "cols": self.cols,
            "rows": self.rows,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass
class SessionHandle:
    """Registry entry: the record plus what the facade needs to drive it."""

    session: Session
    sender: CommandSender
    child: ChildProcess

    @property
    def id(self) -> str:
        return self.session.id
