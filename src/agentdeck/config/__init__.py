"""Configuration: Pydantic models for agentdeck settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from agentdeck.pty.builders import AgentMode


class TerminalConfig(BaseModel):
    """PTY defaults shared by shell and agent sessions."""

    cols: int = Field(default=80, ge=1, le=0xFFFF)
    rows: int = Field(default=24, ge=1, le=0xFFFF)
    read_buffer_size: int = Field(
        default=4096, ge=1, description="Max bytes per PTY read / output event"
    )
    term: str = Field(
        default="xterm-256color", description="TERM exported to child processes"
    )
    shell: str | None = Field(
        default=None, description="Shell for shell sessions. Defaults to $SHELL."
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment for every child"
    )

    def child_env(self) -> dict[str, str]:
        return {"TERM": self.term, **self.env}


class AgentConfig(BaseModel):
    """Coding agent launch settings."""

    executable: str = Field(default="claude")
    default_mode: AgentMode = Field(default=AgentMode.ACT)
    plan_flag: str = Field(
        default="--plan", description="Argument added when launching in plan mode"
    )


class DeckConfig(BaseModel):
    """Top-level agentdeck configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    log_level: str = Field(default="INFO")

    @classmethod
    def load(cls, config_path: str | None = None) -> DeckConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            AGENTDECK_SHELL             - Shell for shell sessions
            AGENTDECK_TERM              - TERM exported to children
            AGENTDECK_COLS              - Default terminal columns
            AGENTDECK_ROWS              - Default terminal rows
            AGENTDECK_AGENT_EXECUTABLE  - Coding agent executable
            AGENTDECK_AGENT_MODE        - Default agent mode (plan/act)
            AGENTDECK_LOG_LEVEL         - Logging level name
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})
        agent = config_data.get("agent", {})

        env_shell = os.environ.get("AGENTDECK_SHELL")
        if env_shell:
            terminal["shell"] = env_shell

        env_term = os.environ.get("AGENTDECK_TERM")
        if env_term:
            terminal["term"] = env_term

        env_cols = os.environ.get("AGENTDECK_COLS")
        if env_cols:
            terminal["cols"] = int(env_cols)

        env_rows = os.environ.get("AGENTDECK_ROWS")
        if env_rows:
            terminal["rows"] = int(env_rows)

        env_executable = os.environ.get("AGENTDECK_AGENT_EXECUTABLE")
        if env_executable:
            agent["executable"] = env_executable

        env_mode = os.environ.get("AGENTDECK_AGENT_MODE")
        if env_mode:
            agent["default_mode"] = env_mode.lower()

        env_log_level = os.environ.get("AGENTDECK_LOG_LEVEL")
        if env_log_level:
            config_data["log_level"] = env_log_level.upper()

        if terminal:
            config_data["terminal"] = terminal
        if agent:
            config_data["agent"] = agent

        return cls.model_validate(config_data)
