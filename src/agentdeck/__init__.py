"""agentdeck: interactive shell and coding-agent sessions on pseudo-terminals."""

__version__ = "0.1.0"
