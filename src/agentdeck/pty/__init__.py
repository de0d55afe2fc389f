"""PTY session engine: child processes on managed pseudo-terminals.

Each session pairs a child process with a PTY, an output pump and a
command pump. The engine tracks sessions in a lock-guarded registry and
reports output and status changes through an injected event sink.
"""

from agentdeck.pty.builders import (
    AgentCommandBuilder,
    AgentMode,
    CommandSpec,
    SessionKind,
    ShellCommandBuilder,
)
from agentdeck.pty.engine import SessionEngine
from agentdeck.pty.registry import SessionRegistry
from agentdeck.pty.session import Session
from agentdeck.pty.status import AGENT_STATUS, PLAIN_STATUS, SessionStatus, StatusModel

__all__ = [
    "AGENT_STATUS",
    "AgentCommandBuilder",
    "AgentMode",
    "CommandSpec",
    "PLAIN_STATUS",
    "Session",
    "SessionEngine",
    "SessionKind",
    "SessionRegistry",
    "SessionStatus",
    "ShellCommandBuilder",
    "StatusModel",
]
