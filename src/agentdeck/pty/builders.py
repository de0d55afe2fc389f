"""Command builders that decide what to launch for each kind of session."""

from __future__ import annotations

import enum
import os
import sys
from dataclasses import dataclass, field
from typing import Protocol

_FALLBACK_SHELL = "/bin/bash"
_WINDOWS_SHELL = "cmd.exe"


class SessionKind(enum.StrEnum):
    SHELL = "shell"
    AGENT = "agent"


class AgentMode(enum.StrEnum):
    PLAN = "plan"
    ACT = "act"


@dataclass(frozen=True)
class CommandSpec:
    """Executable, arguments and working directory for a child process."""

    program: str
    args: tuple[str, ...] = ()
    cwd: str = "."
    env: dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


class CommandBuilder(Protocol):
    kind: SessionKind

    def build(self, working_directory: str) -> CommandSpec: ...


def default_shell() -> str:
    """The user's login shell, or the platform default."""
    if sys.platform == "win32":
        return _WINDOWS_SHELL
    return os.environ.get("SHELL") or _FALLBACK_SHELL


@dataclass(frozen=True)
class ShellCommandBuilder:
    """Launch an interactive shell in the working directory."""

    shell: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    kind: SessionKind = field(default=SessionKind.SHELL, init=False)

    def build(self, working_directory: str) -> CommandSpec:
        return CommandSpec(
            program=self.shell or default_shell(),
            cwd=working_directory,
            env=dict(self.env),
        )


@dataclass(frozen=True)
class AgentCommandBuilder:
    """Launch the coding agent inside a worktree.

    Plan mode adds ``plan_flag``; act mode runs the executable bare.
    """

    mode: AgentMode = AgentMode.ACT
    executable: str = "claude"
    plan_flag: str = "--plan"
    env: dict[str, str] = field(default_factory=dict)
    kind: SessionKind = field(default=SessionKind.AGENT, init=False)

    def build(self, working_directory: str) -> CommandSpec:
        args: tuple[str, ...] = ()
        if self.mode == AgentMode.PLAN:
            args = (self.plan_flag,)
        return CommandSpec(
            program=self.executable,
            args=args,
            cwd=working_directory,
            env=dict(self.env),
        )
