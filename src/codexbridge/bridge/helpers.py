"""Shared helpers for the turn runner."""

from __future__ import annotations

import logging

from codexbridge.bridge.events import ErrorEvent, EventSink
from codexbridge.errors import ErrorType


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def emit_error(
    emit: EventSink,
    error_msg: str,
    error_type: ErrorType | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """Log and emit an error event in one call."""
    if logger:
        logger.error("%s: %s", error_type or "error", error_msg.split("\n", 1)[0])
    emit(ErrorEvent(error=error_msg, error_type=error_type))
