"""Shared constants for the codexbridge runtime."""

from __future__ import annotations

#: Command name used when neither the config nor the environment names one.
DEFAULT_COMMAND = "codex"

#: Environment variable that overrides the executable path.
CODEX_PATH_ENV = "CODEX_PATH"

#: Subcommand that runs a single non-interactive turn.
EXEC_SUBCOMMAND = "exec"

DEFAULT_MODEL = "gpt-5"
DEFAULT_REASONING_EFFORT = "medium"

#: Model families that accept a ``reasoning_effort`` override.
REASONING_MODEL_FAMILIES = ("gpt-5", "o1", "o3", "o4")

#: Prefix for locally minted session identifiers.
SESSION_ID_PREFIX = "codex_"
