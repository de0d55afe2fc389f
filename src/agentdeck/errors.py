"""Exception types raised by the session engine and its collaborators."""

from __future__ import annotations


class DeckError(Exception):
    """Base class for all agentdeck errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SessionSetupError(DeckError):
    """The PTY could not be opened or the child could not be spawned.

    Raised synchronously from ``create``; no session is registered.
    """


class SessionNotFoundError(DeckError):
    """The session id is unknown or has already been closed."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidDimensionsError(DeckError, ValueError):
    """Terminal dimensions are not positive 16-bit integers."""


class ChannelClosedError(DeckError):
    """A command was sent to a queue whose command pump has stopped."""


class EmitError(DeckError):
    """The event sink rejected an emission."""


class WireClosedError(EmitError):
    """The wire has been closed and no longer accepts events."""
