"""Exception hierarchy for codexbridge."""

from __future__ import annotations

from typing import Literal

ErrorType = Literal[
    "directory_not_found",
    "spawn_failure",
    "process_not_found",
    "process_runtime_error",
    "timeout",
    "nonzero_exit",
]


class BridgeError(Exception):
    """Base class for codexbridge errors."""


class LaunchError(BridgeError):
    """The child process could not be started.

    ``kind`` narrows the failure for the client (``directory_not_found``,
    ``process_not_found`` or ``spawn_failure``).
    """

    def __init__(self, kind: ErrorType, message: str) -> None:
        super().__init__(message)
        self.kind: ErrorType = kind
        self.message = message
