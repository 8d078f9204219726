"""codexbridge — stream codex CLI turns to a message channel."""

__version__ = "0.1.0"
