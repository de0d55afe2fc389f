"""Integration tests for SessionEngine on real pseudo-terminals."""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path

import pytest

from agentdeck.errors import SessionNotFoundError, SessionSetupError
from agentdeck.pty.builders import AgentCommandBuilder, AgentMode, ShellCommandBuilder
from agentdeck.pty.engine import SessionEngine
from agentdeck.pty.handle import NativePtySystem, PtySize
from agentdeck.pty.status import AGENT_STATUS, PLAIN_STATUS, SessionStatus

from fakes import RecordingSink, wait_until

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or not os.path.exists("/bin/sh"),
    reason="requires a POSIX pty and /bin/sh",
)


def _output(sink: RecordingSink, topic: str, session_id: str) -> bytes:
    return b"".join(p["data"] for p in sink.of(topic, session_id))


class TestNativePty:
    def test_shell_round_trip(self, tmp_path: Path) -> None:
        sink = RecordingSink()
        with SessionEngine(sink, status_model=PLAIN_STATUS) as engine:
            session = engine.create(
                str(tmp_path), ShellCommandBuilder(shell="/bin/sh"), cols=80, rows=24
            )
            assert engine.status(session.id) == SessionStatus.RUNNING
            engine.write(session.id, b"echo agentdeck-$((40 + 2))\n")
            assert wait_until(
                lambda: b"agentdeck-42" in _output(sink, "pty-output", session.id),
                timeout=5.0,
            )
            engine.write(session.id, b"exit\n")
            assert wait_until(
                lambda: engine.status(session.id) == SessionStatus.COMPLETED, timeout=5.0
            )

    def test_shell_starts_in_working_directory(self, tmp_path: Path) -> None:
        sink = RecordingSink()
        with SessionEngine(sink) as engine:
            session = engine.create(
                str(tmp_path), ShellCommandBuilder(shell="/bin/sh"), cols=80, rows=24
            )
            engine.write(session.id, b"pwd\n")
            expected = os.path.realpath(tmp_path).encode()
            assert wait_until(
                lambda: expected in _output(sink, "pty-output", session.id), timeout=5.0
            )

    def test_close_kills_child(self, tmp_path: Path) -> None:
        sink = RecordingSink()
        with SessionEngine(sink) as engine:
            session = engine.create(
                str(tmp_path), ShellCommandBuilder(shell="/bin/sh"), cols=80, rows=24
            )
            engine.close(session.id)
            with pytest.raises(SessionNotFoundError):
                engine.status(session.id)

    def test_resize_reaches_child(self, tmp_path: Path) -> None:
        if shutil.which("stty") is None:
            pytest.skip("stty not available")
        sink = RecordingSink()
        with SessionEngine(sink) as engine:
            session = engine.create(
                str(tmp_path), ShellCommandBuilder(shell="/bin/sh"), cols=80, rows=24
            )
            engine.resize(session.id, 132, 43)
            engine.write(session.id, b"stty size\n")
            assert wait_until(
                lambda: b"43 132" in _output(sink, "pty-output", session.id), timeout=5.0
            )

    def test_agent_receives_initial_payload(self, tmp_path: Path) -> None:
        cat = shutil.which("cat")
        if cat is None:
            pytest.skip("cat not available")
        sink = RecordingSink()
        with SessionEngine(sink, status_model=AGENT_STATUS) as engine:
            session = engine.create(
                str(tmp_path),
                AgentCommandBuilder(executable=cat),
                cols=80,
                rows=24,
                initial_payload="fix bug #3",
            )
            assert wait_until(
                lambda: b"fix bug #3" in _output(sink, "agent-output", session.id),
                timeout=5.0,
            )
            assert sink.statuses(session.id)[0] == "running"

    def test_agent_exit_reports_completed(self, tmp_path: Path) -> None:
        echo = shutil.which("echo")
        if echo is None:
            pytest.skip("echo not available")
        sink = RecordingSink()
        with SessionEngine(sink, status_model=AGENT_STATUS) as engine:
            session = engine.create(
                str(tmp_path),
                AgentCommandBuilder(mode=AgentMode.PLAN, executable=echo),
                cols=80,
                rows=24,
            )
            assert wait_until(
                lambda: sink.statuses(session.id) == ["running", "completed"], timeout=5.0
            )
            assert b"--plan" in _output(sink, "agent-output", session.id)
            snap = engine.get(session.id)
            assert snap is not None and snap.completed_at is not None

    def test_missing_executable(self, tmp_path: Path) -> None:
        with SessionEngine(RecordingSink()) as engine:
            with pytest.raises(SessionSetupError):
                engine.create(
                    str(tmp_path),
                    AgentCommandBuilder(executable="definitely-not-an-agent-binary"),
                    cols=80,
                    rows=24,
                )
            assert len(engine) == 0

    def test_openpty_applies_size(self) -> None:
        pair = NativePtySystem().openpty(PtySize(rows=30, cols=100))
        try:
            import fcntl
            import struct
            import termios

            packed = fcntl.ioctl(pair._slave_fd, termios.TIOCGWINSZ, b"\0" * 8)
            rows, cols, _, _ = struct.unpack("HHHH", packed)
            assert (rows, cols) == (30, 100)
        finally:
            pair.close()
