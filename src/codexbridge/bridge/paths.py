"""Locate the codex executable and decide how to invoke it."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import NamedTuple

from codexbridge.constants import CODEX_PATH_ENV, DEFAULT_COMMAND

logger = logging.getLogger(__name__)

#: Script extensions that need an interpreter in front of them.
_NODE_EXTENSIONS = (".js", ".mjs", ".cjs")
_PYTHON_EXTENSIONS = (".py",)


class ResolvedCommand(NamedTuple):
    """Executable plus the arguments that precede the subcommand."""

    command: str
    prefix: list[str]

    def argv(self, args: list[str]) -> list[str]:
        """Full argument vector for ``create_subprocess_exec``."""
        return [self.command, *self.prefix, *args]


def configured_command(configured: str | None = None) -> str:
    """Return the configured executable, $CODEX_PATH, or ``codex``."""
    return configured or os.environ.get(CODEX_PATH_ENV) or DEFAULT_COMMAND


def resolve_command(configured: str | None = None) -> ResolvedCommand:
    """Resolve the executable to run.

    Follows a single level of symlink and routes script targets through
    their interpreter.  Never raises: anything unexpected falls back to
    running the configured string directly and lets the spawn report the
    real failure.
    """
    raw = configured_command(configured)
    try:
        target = _follow_symlink(raw)
        interpreter = _interpreter_for(target)
        if interpreter is None:
            logger.debug("Direct execution: %s", raw)
            return ResolvedCommand(raw, [])
        if not Path(target).is_file():
            msg = f"Resolved script not found: {target}"
            raise FileNotFoundError(msg)
        logger.debug("Running %s through %s", target, interpreter)
        return ResolvedCommand(interpreter, [target])
    except (OSError, ValueError) as exc:
        logger.debug("Could not resolve %s (%s), trying direct execution", raw, exc)
        return ResolvedCommand(raw, [])


def _follow_symlink(raw: str) -> str:
    path = Path(raw)
    if not path.is_symlink():
        return raw
    link = os.readlink(path)
    if os.path.isabs(link):
        return link
    return os.path.normpath(os.path.join(os.path.dirname(raw), link))


def _interpreter_for(target: str) -> str | None:
    suffix = Path(target).suffix.lower()
    if suffix in _PYTHON_EXTENSIONS:
        return sys.executable
    if suffix in _NODE_EXTENSIONS:
        return shutil.which("node") or "node"
    return None
