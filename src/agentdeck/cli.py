"""CLI entry point for agentdeck."""

from __future__ import annotations

import logging
import os
import queue
import select
import shutil
import signal
import sys
import termios
import threading
import tty
from typing import Iterator

import typer

from agentdeck import __version__
from agentdeck.config import DeckConfig
from agentdeck.errors import ChannelClosedError, DeckError, SessionNotFoundError
from agentdeck.pty.builders import AgentMode
from agentdeck.pty.engine import SessionEngine
from agentdeck.pty.status import SessionStatus
from agentdeck.runtime import DeckRuntime
from agentdeck.session.wire import WireEvent

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="agentdeck",
    help="Run interactive shells and coding agents on managed pseudo-terminals.",
    no_args_is_help=True,
)

_POLL_INTERVAL = 0.2


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _local_size(config: DeckConfig) -> tuple[int, int]:
    size = shutil.get_terminal_size((config.terminal.cols, config.terminal.rows))
    return size.columns, size.lines


class _RawTerminal:
    """Put the local terminal in raw mode for the duration of a session."""

    def __init__(self, fd: int) -> None:
        self._fd = fd
        self._saved: list | None = None

    def __enter__(self) -> _RawTerminal:
        if os.isatty(self._fd):
            self._saved = termios.tcgetattr(self._fd)
            tty.setraw(self._fd)
        return self

    def __exit__(self, *exc: object) -> None:
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)


def _forward_output(
    session_id: str,
    events: queue.Queue[WireEvent | None],
    stop: threading.Event,
    out_fd: int,
) -> None:
    """Copy output events for ``session_id`` to ``out_fd`` until the wire closes."""
    while not stop.is_set():
        try:
            event = events.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            continue
        if event is None:
            break
        if event.session_id != session_id:
            continue
        data = event.data.get("data")
        if data:
            os.write(out_fd, data)


def _read_stdin(fd: int) -> Iterator[bytes | None]:
    """Yield stdin chunks, or None when nothing arrived within the poll interval."""
    while True:
        ready, _, _ = select.select([fd], [], [], _POLL_INTERVAL)
        if not ready:
            yield None
            continue
        data = os.read(fd, 1024)
        if not data:
            return
        yield data


def _sync_size(engine: SessionEngine, session_id: str) -> None:
    size = shutil.get_terminal_size()
    try:
        engine.resize(session_id, size.columns, size.lines)
    except DeckError as e:
        logger.debug("Resize ignored: %s", e)


def _attach(
    engine: SessionEngine,
    session_id: str,
    events: queue.Queue[WireEvent | None],
    *,
    stdin_fd: int | None = None,
    out_fd: int | None = None,
) -> int:
    """Bridge the local terminal to a session until it ends.

    Returns the process exit code: 0 if the session completed or the user
    closed stdin, 1 on error.
    """
    if stdin_fd is None:
        stdin_fd = sys.stdin.fileno()
    if out_fd is None:
        out_fd = sys.stdout.fileno()

    stop = threading.Event()
    printer = threading.Thread(
        target=_forward_output, args=(session_id, events, stop, out_fd), daemon=True
    )
    printer.start()

    # The handler may run while this thread holds the registry lock, so it
    # only flags the change; the loop below applies it.
    resized = threading.Event()

    def _on_winch(signum: int, frame: object) -> None:
        resized.set()

    previous = signal.signal(signal.SIGWINCH, _on_winch)
    final = SessionStatus.COMPLETED
    try:
        with _RawTerminal(stdin_fd):
            for chunk in _read_stdin(stdin_fd):
                if resized.is_set():
                    resized.clear()
                    _sync_size(engine, session_id)
                try:
                    current = engine.status(session_id)
                except SessionNotFoundError:
                    break
                if current.is_terminal:
                    final = current
                    break
                if chunk is None:
                    continue
                try:
                    engine.write(session_id, chunk)
                except ChannelClosedError as e:
                    logger.debug("Session %s stopped accepting input: %s", session_id, e)
                    final = SessionStatus.ERROR
                    break
    finally:
        signal.signal(signal.SIGWINCH, previous)
        try:
            engine.close(session_id)
        except SessionNotFoundError:
            pass
        stop.set()
        printer.join(timeout=1.0)

    return 0 if final == SessionStatus.COMPLETED else 1


@app.command()
def shell(
    cwd: str = typer.Option(".", "--cwd", help="Working directory for the shell."),
    cols: int | None = typer.Option(None, help="Terminal columns. Defaults to the local terminal."),
    rows: int | None = typer.Option(None, help="Terminal rows. Defaults to the local terminal."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Path to config JSON file."),
) -> None:
    """Open an interactive shell session."""
    config = DeckConfig.load(config_file)
    setup_logging(verbose, config.log_level)
    local_cols, local_rows = _local_size(config)

    with DeckRuntime(config) as runtime:
        events = runtime.wire.subscribe()
        try:
            session_id = runtime.create_pty_session(cwd, cols or local_cols, rows or local_rows)
        except DeckError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        code = _attach(runtime.shells, session_id, events)
    raise typer.Exit(code)


@app.command()
def agent(
    worktree: str = typer.Argument(help="Worktree directory the agent works in."),
    context: str = typer.Option("", "--context", help="Issue context sent as the first input line."),
    mode: AgentMode | None = typer.Option(None, "--mode", "-m", help="Agent mode (plan or act)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Path to config JSON file."),
) -> None:
    """Start the coding agent in a worktree."""
    config = DeckConfig.load(config_file)
    setup_logging(verbose, config.log_level)

    with DeckRuntime(config) as runtime:
        events = runtime.wire.subscribe()
        try:
            session = runtime.start_agent(worktree, context, mode)
        except DeckError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        code = _attach(runtime.agents, session.id, events)
    raise typer.Exit(code)


@app.command()
def version() -> None:
    """Print the agentdeck version."""
    typer.echo(f"agentdeck v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
