"""CodexBridge — runs codex turns and streams their output as events."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from codexbridge.bridge.classifier import OutputClassifier
from codexbridge.bridge.events import EventSink
from codexbridge.bridge.helpers import emit_error, format_stderr_preview
from codexbridge.bridge.launcher import ProcessLauncher, clean_working_dir, terminate_process
from codexbridge.bridge.registry import ProcessRecord, ProcessRegistry
from codexbridge.bridge.session_bridge import SessionBridge, provisional_key
from codexbridge.bridge.tempfiles import Attachment, TempResourceManager
from codexbridge.config.models import BridgeConfig, TurnOptions
from codexbridge.errors import ErrorType, LaunchError
from codexbridge.session.store import SessionStore

logger = logging.getLogger(__name__)

#: Bytes requested per read from the child's pipes.
_READ_SIZE = 4096


@dataclass(frozen=True)
class TurnResult:
    """Outcome of ``CodexBridge.run_turn``."""

    session_id: str | None
    exit_code: int | None
    response: str = ""
    error: ErrorType | None = None
    is_new_session: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0


class CodexBridge:
    """Runs one codex child per turn and forwards its output to a channel.

    Owns the process registry, so ``abort`` can reach any turn started
    through this bridge.  Turns on the same session are expected to run
    one after another.
    """

    def __init__(
        self,
        store: SessionStore,
        config: BridgeConfig | None = None,
        registry: ProcessRegistry | None = None,
    ) -> None:
        self._config = config if config is not None else BridgeConfig()
        self._store = store
        self._registry = (
            registry
            if registry is not None
            else ProcessRegistry(kill_grace=self._config.kill_grace)
        )
        self._temp = TempResourceManager(self._config.temp_subdir)
        self._launcher = ProcessLauncher(
            self._registry,
            codex_path=self._config.codex_path,
            default_model=self._config.default_model,
            reasoning_effort=self._config.reasoning_effort,
            startup_timeout=self._config.startup_timeout,
            kill_grace=self._config.kill_grace,
        )

    @property
    def registry(self) -> ProcessRegistry:
        return self._registry

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def run_turn(
        self,
        prompt: str,
        emit: EventSink,
        *,
        session_id: str | None = None,
        options: TurnOptions | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> TurnResult:
        """Run one turn to completion.

        Never raises for turn failures: they are emitted as ``error``
        events and reported in the returned ``TurnResult``.  Cancelling
        the call kills the child.
        """
        opts = options if options is not None else TurnOptions()
        cwd = clean_working_dir(opts.cwd or os.getcwd())
        is_new = not session_id

        if not os.path.isdir(cwd):
            msg = (
                f"Working directory does not exist: {cwd}\n\n"
                "The project directory has been deleted or moved.\n"
                "Please select a different project or restore the directory."
            )
            emit_error(emit, msg, "directory_not_found", logger)
            return TurnResult(
                session_id=session_id,
                exit_code=None,
                error="directory_not_found",
                is_new_session=is_new,
            )

        temp = self._temp.materialize(attachments, cwd) if attachments else None
        key = session_id or provisional_key()

        def _on_timeout() -> None:
            emit_error(emit, "Codex CLI timeout - no response received", "timeout")

        try:
            record = await self._launcher.launch(
                prompt, opts, cwd=cwd, key=key, temp=temp, on_timeout=_on_timeout
            )
        except LaunchError as exc:
            if temp is not None:
                temp.cleanup()
            emit_error(emit, exc.message, exc.kind, logger)
            return TurnResult(
                session_id=session_id,
                exit_code=None,
                error=exc.kind,
                is_new_session=is_new,
            )
        except BaseException:
            if temp is not None:
                temp.cleanup()
            raise

        session = SessionBridge(self._store, emit, session_id, cwd)
        classifier = OutputClassifier(emit, prompt, self._config.flush_threshold)
        try:
            final_id = session.open(self._registry, key, prompt)
            exit_code, pipe_failed = await self._supervise(record, classifier, emit)
            response = classifier.finish()
        finally:
            self._registry.discard(record)
            if temp is not None:
                temp.cleanup()

        session.complete(exit_code, response)

        error: ErrorType | None = None
        if record.watchdog is not None and record.watchdog.fired:
            error = "timeout"
        elif pipe_failed:
            error = "process_runtime_error"
        elif exit_code != 0:
            error = "nonzero_exit"
            preview = format_stderr_preview(classifier.stderr_text)
            logger.warning(
                "Session %s: codex exited with code %s.%s",
                final_id,
                exit_code,
                f" Stderr:\n  {preview}" if preview else "",
            )

        return TurnResult(
            session_id=final_id,
            exit_code=exit_code,
            response=response,
            error=error,
            is_new_session=is_new,
        )

    def abort(self, session_id: str) -> bool:
        """Abort the running turn for *session_id* (prefix match allowed)."""
        return self._registry.abort(session_id)

    def shutdown(self) -> int:
        """Abort every running turn; returns how many were signalled."""
        return self._registry.abort_all()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _supervise(
        self,
        record: ProcessRecord,
        classifier: OutputClassifier,
        emit: EventSink,
    ) -> tuple[int | None, bool]:
        """Pump both pipes until EOF, then wait for exit.

        Returns ``(exit_code, pipe_failed)``.
        """
        proc = record.process
        watchdog = record.watchdog

        def _on_stdout(chunk: bytes) -> None:
            if watchdog is not None:
                watchdog.disarm()
            classifier.feed(chunk)

        ticker = asyncio.create_task(self._flush_periodically(classifier))
        pipe_failed = False
        try:
            results = await asyncio.gather(
                _pump(proc.stdout, _on_stdout),
                _pump(proc.stderr, classifier.feed_stderr),
                return_exceptions=True,
            )
            failure = next((r for r in results if isinstance(r, Exception)), None)
            if failure is not None:
                pipe_failed = True
                emit_error(
                    emit,
                    f"Codex process error: {failure}",
                    "process_runtime_error",
                    logger,
                )
                await terminate_process(proc, self._config.kill_grace)
            exit_code = await proc.wait()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            raise
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            if watchdog is not None:
                watchdog.disarm()
            record.cancel_kill()

        return exit_code, pipe_failed

    async def _flush_periodically(self, classifier: OutputClassifier) -> None:
        while True:
            await asyncio.sleep(self._config.flush_interval)
            classifier.flush()


async def _pump(
    stream: asyncio.StreamReader | None,
    on_chunk: Callable[[bytes], None],
) -> None:
    """Feed *stream* to *on_chunk* until EOF."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_SIZE)
        if not chunk:
            return
        on_chunk(chunk)
