"""Host runtime with one shell engine and one agent engine on a shared wire.

This is the command surface a UI talks to. It owns the registries for
its lifetime and tears every session down on ``shutdown()``.
"""

from __future__ import annotations

import logging
from typing import Any

from agentdeck.config import DeckConfig
from agentdeck.pty.builders import AgentCommandBuilder, AgentMode, ShellCommandBuilder
from agentdeck.pty.engine import SessionEngine
from agentdeck.pty.handle import PtySystem
from agentdeck.pty.registry import SessionRegistry
from agentdeck.pty.session import Session
from agentdeck.pty.status import AGENT_STATUS, PLAIN_STATUS, SessionStatus
from agentdeck.session.wire import EventSink, Wire

logger = logging.getLogger(__name__)


class DeckRuntime:
    """Application state: both engines, their registries and the wire."""

    def __init__(
        self,
        config: DeckConfig | None = None,
        sink: EventSink | None = None,
        pty_system: PtySystem | None = None,
    ) -> None:
        self.config = config or DeckConfig()
        self.wire = Wire()
        self._sink: EventSink = sink if sink is not None else self.wire

        terminal = self.config.terminal
        common: dict[str, Any] = {
            "pty_system": pty_system,
            "read_buffer_size": terminal.read_buffer_size,
            "child_env": terminal.child_env(),
        }
        self.shells = SessionEngine(
            self._sink,
            status_model=PLAIN_STATUS,
            registry=SessionRegistry(),
            **common,
        )
        self.agents = SessionEngine(
            self._sink,
            status_model=AGENT_STATUS,
            registry=SessionRegistry(),
            **common,
        )
        self._closed = False

    # -- Shell ---------------------------------------------------------

    def create_pty_session(self, working_dir: str, cols: int, rows: int) -> str:
        builder = ShellCommandBuilder(shell=self.config.terminal.shell)
        session = self.shells.create(working_dir, builder, cols=cols, rows=rows)
        return session.id

    def write_pty(self, session_id: str, data: bytes) -> None:
        self.shells.write(session_id, data)

    def resize_pty(self, session_id: str, cols: int, rows: int) -> None:
        self.shells.resize(session_id, cols, rows)

    def close_pty(self, session_id: str) -> None:
        self.shells.close(session_id)

    # -- Agent ---------------------------------------------------------

    def start_agent(
        self,
        worktree_path: str,
        issue_context: str = "",
        mode: AgentMode | str | None = None,
    ) -> Session:
        agent = self.config.agent
        builder = AgentCommandBuilder(
            mode=AgentMode(mode) if mode else agent.default_mode,
            executable=agent.executable,
            plan_flag=agent.plan_flag,
        )
        return self.agents.create(
            worktree_path,
            builder,
            cols=self.config.terminal.cols,
            rows=self.config.terminal.rows,
            initial_payload=issue_context,
        )

    def stop_agent(self, session_id: str) -> None:
        self.agents.close(session_id)

    def send_agent_input(self, session_id: str, input: str) -> None:
        self.agents.write(session_id, input.encode())

    def resize_agent(self, session_id: str, cols: int, rows: int) -> None:
        self.agents.resize(session_id, cols, rows)

    def get_agent_status(self, session_id: str) -> SessionStatus:
        return self.agents.status(session_id)

    # -- Lifecycle -----------------------------------------------------

    def list_sessions(self) -> list[dict[str, Any]]:
        sessions = self.shells.list_sessions() + self.agents.list_sessions()
        return [s.to_dict() for s in sessions]

    def shutdown(self) -> None:
        """Kill all sessions and close the wire. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.shells.shutdown()
        self.agents.shutdown()
        self.wire.close()
        logger.info("All PTY sessions cleaned up")

    def __enter__(self) -> DeckRuntime:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()
