"""Registry of live child processes, keyed by session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codexbridge.bridge.tempfiles import TempResources

if TYPE_CHECKING:
    from codexbridge.bridge.launcher import StartupWatchdog

logger = logging.getLogger(__name__)


@dataclass
class ProcessRecord:
    """Bookkeeping for one running turn."""

    key: str
    process: asyncio.subprocess.Process
    temp: TempResources | None = None
    watchdog: StartupWatchdog | None = None
    kill_task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    def cancel_kill(self) -> None:
        """Drop a pending forceful kill (the process has already exited)."""
        if self.kill_task is not None and not self.kill_task.done():
            self.kill_task.cancel()
        self.kill_task = None


class ProcessRegistry:
    """Maps session keys to running processes and aborts them.

    All mutation happens on the event loop, so no locking is needed.
    Removal is idempotent: an abort racing with a normal exit removes the
    entry once and the loser sees nothing.
    """

    def __init__(self, kill_grace: float = 2.0) -> None:
        self._kill_grace = kill_grace
        self._records: dict[str, ProcessRecord] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def keys(self) -> list[str]:
        return list(self._records)

    def get(self, key: str) -> ProcessRecord | None:
        return self._records.get(key)

    def register(self, record: ProcessRecord) -> None:
        """Track *record* under its key, replacing any stale entry."""
        if record.key in self._records:
            logger.warning("Replacing process record for session %s", record.key)
        self._records[record.key] = record

    def remove(self, key: str) -> ProcessRecord | None:
        """Remove and return the record under *key*, if any."""
        return self._records.pop(key, None)

    def discard(self, record: ProcessRecord) -> bool:
        """Remove *record* whatever key it is currently stored under."""
        for key, existing in list(self._records.items()):
            if existing is record:
                del self._records[key]
                return True
        return False

    def rekey(self, old_key: str, new_key: str) -> None:
        """Move the record under *old_key* to *new_key*."""
        if old_key == new_key:
            return
        record = self._records.pop(old_key, None)
        if record is None:
            return
        record.key = new_key
        self.register(record)

    def find(self, session_key: str) -> ProcessRecord | None:
        """Exact lookup, then a substring match in either direction.

        Callers may hold a prefix of the session id, or the registry may
        still hold a provisional key minted before the id was final.
        """
        if not session_key:
            return None
        record = self._records.get(session_key)
        if record is not None:
            return record
        for key, candidate in self._records.items():
            if session_key in key or key in session_key:
                return candidate
        return None

    def abort(self, session_key: str) -> bool:
        """Terminate the process for *session_key*.

        Sends SIGTERM now and schedules SIGKILL after the grace period
        if the process is still running.  Returns whether a live process
        was found, not whether it has exited.
        """
        record = self.find(session_key)
        if record is None:
            logger.debug("No running process for session %s", session_key)
            return False

        self.remove(record.key)
        try:
            record.process.terminate()
        except ProcessLookupError:
            logger.debug("Process for session %s already exited", record.key)
            return False

        logger.info("Aborting session %s (pid %s)", record.key, record.process.pid)
        record.kill_task = asyncio.get_running_loop().create_task(
            self._escalate(record)
        )
        return True

    def abort_all(self) -> int:
        """Abort every tracked process; returns how many were signalled."""
        return sum(1 for key in self.keys() if self.abort(key))

    async def _escalate(self, record: ProcessRecord) -> None:
        await asyncio.sleep(self._kill_grace)
        if record.running:
            logger.warning(
                "Session %s did not exit after SIGTERM, sending SIGKILL", record.key
            )
            with contextlib.suppress(ProcessLookupError):
                record.process.kill()
