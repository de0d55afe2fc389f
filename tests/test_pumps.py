"""Tests for agentdeck.pty.pumps (OutputPump, CommandPump)."""

from __future__ import annotations

import pytest

from agentdeck.errors import ChannelClosedError
from agentdeck.pty.commands import (
    CloseCommand,
    ResizeCommand,
    WriteCommand,
    command_channel,
)
from agentdeck.pty.pumps import CommandPump, OutputPump
from agentdeck.pty.status import SessionStatus

from fakes import FakeMaster, FakeReader, FakeWriter, RecordingSink


class StatusLog:
    def __init__(self) -> None:
        self.calls: list[tuple[str, SessionStatus]] = []

    def __call__(self, session_id: str, status: SessionStatus) -> None:
        self.calls.append((session_id, status))


# ---------------------------------------------------------------------------
# OutputPump
# ---------------------------------------------------------------------------


class TestOutputPump:
    def _pump(
        self,
        reader: FakeReader,
        sink: RecordingSink,
        log: StatusLog,
        is_live=None,
        buffer_size: int = 4096,
    ) -> OutputPump:
        return OutputPump(
            "session-1",
            reader,
            sink,
            topic="pty-output",
            on_status=log,
            is_live=is_live,
            buffer_size=buffer_size,
        )

    def test_forwards_chunks_then_completes(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(b"hello ")
        reader.feed(b"world")
        reader.feed(b"")
        pump = self._pump(reader, sink, log)
        pump.start()
        pump.join(timeout=2)
        assert not pump.is_alive()
        assert [p["data"] for p in sink.of("pty-output")] == [b"hello ", b"world"]
        assert sink.of("pty-output")[0]["session_id"] == "session-1"
        assert log.calls == [("session-1", SessionStatus.COMPLETED)]
        assert reader.closed.is_set()

    def test_zero_byte_read_is_completed_not_error(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(b"")
        pump = self._pump(reader, sink, log)
        pump.run()
        assert log.calls == [("session-1", SessionStatus.COMPLETED)]
        assert sink.events == []

    def test_read_error_is_error(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(b"partial")
        reader.feed(OSError(5, "Input/output error"))
        pump = self._pump(reader, sink, log)
        pump.run()
        assert [p["data"] for p in sink.of("pty-output")] == [b"partial"]
        assert log.calls == [("session-1", SessionStatus.ERROR)]
        assert reader.closed.is_set()

    def test_rejected_emission_is_error(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(fail=True), StatusLog()
        reader.feed(b"data")
        reader.feed(b"more")
        pump = self._pump(reader, sink, log)
        pump.run()
        assert log.calls == [("session-1", SessionStatus.ERROR)]

    def test_unexpected_exception_is_error(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(RuntimeError("boom"))
        pump = self._pump(reader, sink, log)
        pump.run()
        assert log.calls == [("session-1", SessionStatus.ERROR)]
        assert reader.closed.is_set()

    def test_output_for_closed_session_is_dropped(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(b"late")
        reader.feed(b"")
        pump = self._pump(reader, sink, log, is_live=lambda sid: False)
        pump.run()
        assert sink.events == []
        assert log.calls == [("session-1", SessionStatus.COMPLETED)]

    def test_respects_buffer_size(self) -> None:
        reader, sink, log = FakeReader(), RecordingSink(), StatusLog()
        reader.feed(b"x" * 10)
        reader.feed(b"")
        pump = self._pump(reader, sink, log, buffer_size=4)
        pump.run()
        assert sink.of("pty-output")[0]["data"] == b"xxxx"

    def test_thread_name(self) -> None:
        pump = self._pump(FakeReader(), RecordingSink(), StatusLog())
        assert pump.name == "output-pump-session-"
        assert pump.daemon


# ---------------------------------------------------------------------------
# CommandPump
# ---------------------------------------------------------------------------


class TestCommandPump:
    def _pump(self, log: StatusLog) -> tuple[CommandPump, object, FakeMaster, FakeWriter]:
        sender, receiver = command_channel()
        master = FakeMaster()
        writer = master.writer
        pump = CommandPump("session-1", receiver, master, writer, on_status=log)
        return pump, sender, master, writer

    def test_applies_commands_in_order(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        sender.send(WriteCommand(b"A"))
        sender.send(ResizeCommand(cols=100, rows=30))
        sender.send(WriteCommand(b"B"))
        sender.send(ResizeCommand(cols=90, rows=20))
        sender.send(WriteCommand(b"C"))
        sender.send(CloseCommand())
        pump.run()
        assert writer.written == [b"A", b"B", b"C"]
        assert writer.flushes == 3
        assert master.sizes == [(100, 30), (90, 20)]
        assert log.calls == []

    def test_close_releases_handles_and_rejects_sends(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        sender.send(CloseCommand())
        sender.send(WriteCommand(b"never"))
        pump.run()
        assert writer.written == []
        assert writer.closed.is_set()
        assert master.closed.is_set()
        with pytest.raises(ChannelClosedError):
            sender.send(WriteCommand(b"x"))

    def test_stops_when_senders_dropped(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        sender.send(WriteCommand(b"last"))
        sender.close()
        pump.run()
        assert writer.written == [b"last"]
        assert master.closed.is_set()
        assert log.calls == []

    def test_write_failure_stops_pump_with_error(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        writer.error = OSError(32, "Broken pipe")
        sender.send(WriteCommand(b"A"))
        sender.send(WriteCommand(b"B"))
        pump.run()
        assert log.calls == [("session-1", SessionStatus.ERROR)]
        with pytest.raises(ChannelClosedError):
            sender.send(WriteCommand(b"C"))

    def test_resize_failure_stops_pump_with_error(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        master.resize_error = OSError(25, "Inappropriate ioctl for device")
        sender.send(ResizeCommand(cols=10, rows=10))
        sender.send(WriteCommand(b"after"))
        pump.run()
        assert writer.written == []
        assert log.calls == [("session-1", SessionStatus.ERROR)]

    def test_runs_as_thread(self) -> None:
        log = StatusLog()
        pump, sender, master, writer = self._pump(log)
        pump.start()
        sender.send(WriteCommand(b"echo hi\n"))
        sender.send(CloseCommand())
        pump.join(timeout=2)
        assert not pump.is_alive()
        assert writer.written == [b"echo hi\n"]
