"""Native pseudo-terminal handles.

A ``PtyPair`` is the master/slave pair returned by ``pty.openpty()``.
The child is spawned on the slave side with ``subprocess.Popen`` (not
``os.fork``) so spawning stays safe from a multi-threaded host, and in
its own process group so close can kill the whole tree.

The master side is split the same way the pumps split it: the output
pump owns a cloned read handle, the command pump owns the write handle
and the master itself (for resizing). Each handle holds its own fd, so
closing one never invalidates another.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from dataclasses import dataclass
from typing import Protocol

from agentdeck.errors import InvalidDimensionsError
from agentdeck.pty.builders import CommandSpec

logger = logging.getLogger(__name__)

MAX_DIMENSION = 0xFFFF
_REAP_TIMEOUT = 2.0


@dataclass(frozen=True)
class PtySize:
    rows: int
    cols: int
    pixel_width: int = 0
    pixel_height: int = 0

    def pack(self) -> bytes:
        """``struct winsize`` as expected by ``TIOCSWINSZ``."""
        return struct.pack(
            "HHHH", self.rows, self.cols, self.pixel_width, self.pixel_height
        )


def validate_dimensions(cols: int, rows: int) -> PtySize:
    """Return a PtySize, or raise if either side is not in 1..65535."""
    for name, value in (("cols", cols), ("rows", rows)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidDimensionsError(f"Invalid PTY {name}: {value!r}")
        if not 1 <= value <= MAX_DIMENSION:
            raise InvalidDimensionsError(
                f"Invalid PTY size: {cols}x{rows} (each side must be 1..{MAX_DIMENSION})"
            )
    return PtySize(rows=rows, cols=cols)


def _close_fd(fd: int) -> None:
    try:
        os.close(fd)
    except OSError:
        pass


class PtyReader:
    """Read side of the master, owned by the output pump."""

    def __init__(self, fd: int) -> None:
        self._fd = fd
        self._closed = False

    def read(self, size: int) -> bytes:
        try:
            return os.read(self._fd, size)
        except OSError as e:
            # Linux reports a hung-up slave as EIO rather than a 0-byte read.
            if e.errno == errno.EIO:
                return b""
            raise

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            _close_fd(self._fd)


class PtyWriter:
    """Write side of the master, owned by the command pump."""

    def __init__(self, fd: int) -> None:
        self._file = os.fdopen(fd, "wb")

    def write_all(self, data: bytes) -> None:
        self._file.write(data)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        try:
            self._file.close()
        except OSError:
            pass


class PtyMaster:
    """Controlling side of the PTY: hands out I/O handles and resizes."""

    def __init__(self, fd: int) -> None:
        self._fd = fd
        self._writer_taken = False
        self._closed = False

    def try_clone_reader(self) -> PtyReader:
        return PtyReader(os.dup(self._fd))

    def take_writer(self) -> PtyWriter:
        if self._writer_taken:
            raise RuntimeError("PTY writer has already been taken")
        self._writer_taken = True
        return PtyWriter(os.dup(self._fd))

    def resize(self, size: PtySize) -> None:
        fcntl.ioctl(self._fd, termios.TIOCSWINSZ, size.pack())

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            _close_fd(self._fd)


class ChildProcess:
    """Handle on a spawned child; used only to force-terminate it."""

    def __init__(self, proc: subprocess.Popen) -> None:
        self._proc = proc
        # start_new_session makes the child its own process group leader.
        self._pgid = proc.pid

    @property
    def pid(self) -> int:
        return self._proc.pid

    def kill(self) -> None:
        """SIGKILL the entire process group, then reap the child.

        Raises ``OSError`` if the signal could not be delivered for a
        reason other than the group already being gone.
        """
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.debug("Sent SIGKILL to process group %d", self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)

        # Reap to avoid zombies
        try:
            self._proc.wait(timeout=_REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Child %d did not exit after SIGKILL", self.pid)


class PtyPair:
    """A freshly opened master/slave pair."""

    def __init__(self, master_fd: int, slave_fd: int) -> None:
        self.master = PtyMaster(master_fd)
        self._slave_fd: int | None = slave_fd

    def spawn(self, spec: CommandSpec, env: dict[str, str] | None = None) -> ChildProcess:
        """Start ``spec`` with the slave as its stdin/stdout/stderr.

        The parent's copy of the slave fd is always closed afterwards, so
        the master sees end-of-stream once the child side goes away.
        """
        if self._slave_fd is None:
            raise RuntimeError("PTY slave has already been consumed")
        slave_fd = self._slave_fd
        full_env = {**os.environ, **(env or {}), **spec.env}
        try:
            proc = subprocess.Popen(
                spec.argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                env=full_env,
                cwd=spec.cwd,
            )
        finally:
            self._close_slave()
        return ChildProcess(proc)

    def _close_slave(self) -> None:
        if self._slave_fd is not None:
            _close_fd(self._slave_fd)
            self._slave_fd = None

    def close(self) -> None:
        """Release both sides. Only used when setup is abandoned."""
        self._close_slave()
        self.master.close()


class PtySystem(Protocol):
    def openpty(self, size: PtySize) -> PtyPair: ...


class NativePtySystem:
    """Opens real pseudo-terminals through the ``pty`` module."""

    def openpty(self, size: PtySize) -> PtyPair:
        master_fd, slave_fd = pty.openpty()
        pair = PtyPair(master_fd, slave_fd)
        try:
            pair.master.resize(size)
        except OSError:
            pair.close()
            raise
        return pair
