"""Spawn the codex CLI for a single turn."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from codexbridge.bridge.paths import ResolvedCommand, configured_command, resolve_command
from codexbridge.bridge.registry import ProcessRecord, ProcessRegistry
from codexbridge.bridge.tempfiles import TempResources
from codexbridge.config.models import TurnOptions
from codexbridge.constants import (
    CODEX_PATH_ENV,
    DEFAULT_MODEL,
    DEFAULT_REASONING_EFFORT,
    EXEC_SUBCOMMAND,
    REASONING_MODEL_FAMILIES,
)
from codexbridge.errors import LaunchError

logger = logging.getLogger(__name__)

#: Variables forced on the child so it prints plain, undecorated text.
_PLAIN_OUTPUT_ENV = {
    "TERM": "dumb",
    "NO_COLOR": "1",
    "FORCE_COLOR": "0",
    "CI": "true",
}

_NON_PRINTABLE_RE = re.compile(r"[^\x20-\x7E]")


def clean_working_dir(raw: str) -> str:
    """Strip non-printable characters and surrounding whitespace."""
    return _NON_PRINTABLE_RE.sub("", raw).strip()


def is_reasoning_model(model: str) -> bool:
    """True for model names in a family that accepts reasoning effort."""
    name = model.lower()
    return any(
        name == family or name.startswith(f"{family}-")
        for family in REASONING_MODEL_FAMILIES
    )


def build_args(
    model: str,
    reasoning_effort: str,
    *,
    skip_permissions: bool = False,
    image_paths: Iterable[Path | str] = (),
) -> list[str]:
    """Arguments for one non-interactive ``codex exec`` turn."""
    args = [EXEC_SUBCOMMAND]
    for path in image_paths:
        args.extend(["-i", str(path)])
    args.extend(["-m", model])
    if is_reasoning_model(model):
        args.extend(["-c", f'reasoning_effort="{reasoning_effort}"'])
    args.append("--skip-git-repo-check")
    if skip_permissions:
        args.append("--dangerously-bypass-approvals-and-sandbox")
    return args


def build_env(base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Caller's environment with terminal features and colour disabled."""
    env = dict(os.environ if base is None else base)
    env.update(_PLAIN_OUTPUT_ENV)
    return env


async def terminate_process(proc: asyncio.subprocess.Process, grace: float) -> None:
    """SIGTERM, wait up to *grace* seconds, then SIGKILL."""
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


class StartupWatchdog:
    """Kills a child that produces no output within *timeout* seconds."""

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        timeout: float,
        grace: float,
        on_timeout: Callable[[], None],
    ) -> None:
        self._proc = proc
        self._timeout = timeout
        self._grace = grace
        self._on_timeout = on_timeout
        self._task: asyncio.Task[None] | None = None
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    def disarm(self) -> None:
        """Cancel the timer; a no-op once it has fired or was disarmed."""
        if self._task is not None and not self._task.done() and not self._fired:
            self._task.cancel()

    async def _run(self) -> None:
        await asyncio.sleep(self._timeout)
        self._fired = True
        logger.error("No output after %.0fs, terminating pid %s", self._timeout, self._proc.pid)
        self._on_timeout()
        await terminate_process(self._proc, self._grace)


class ProcessLauncher:
    """Resolves, spawns and registers the child for one turn."""

    def __init__(
        self,
        registry: ProcessRegistry,
        *,
        codex_path: str | None = None,
        default_model: str = DEFAULT_MODEL,
        reasoning_effort: str = DEFAULT_REASONING_EFFORT,
        startup_timeout: float = 60.0,
        kill_grace: float = 2.0,
    ) -> None:
        self._registry = registry
        self._codex_path = codex_path
        self._default_model = default_model
        self._reasoning_effort = reasoning_effort
        self._startup_timeout = startup_timeout
        self._kill_grace = kill_grace

    async def launch(
        self,
        prompt: str,
        options: TurnOptions,
        *,
        cwd: str,
        key: str,
        temp: TempResources | None = None,
        on_timeout: Callable[[], None] = lambda: None,
    ) -> ProcessRecord:
        """Start the child, register it under *key* and send the prompt.

        Raises:
            LaunchError: The working directory vanished or the executable
                could not be started.
        """
        model = options.model or self._default_model
        effort = options.reasoning_effort or self._reasoning_effort
        args = build_args(
            model,
            effort,
            skip_permissions=options.skip_permissions,
            image_paths=temp.paths if temp is not None else (),
        )
        resolved = resolve_command(self._codex_path)

        # The directory may have been removed while attachments were written.
        if not os.path.isdir(cwd):
            msg = (
                f"Working directory was deleted during operation: {cwd}\n\n"
                "The project directory no longer exists.\n"
                "Please select a different project or restore the directory."
            )
            raise LaunchError("directory_not_found", msg)

        logger.info(
            "Starting codex (model=%s, effort=%s, cwd=%s, prompt=%s)",
            model,
            effort if is_reasoning_model(model) else "n/a",
            cwd,
            "yes" if prompt.strip() else "no",
        )
        proc = await self._spawn(resolved, args, cwd)

        record = ProcessRecord(key=key, process=proc, temp=temp)
        self._registry.register(record)
        try:
            record.watchdog = StartupWatchdog(
                proc, self._startup_timeout, self._kill_grace, on_timeout
            )
            record.watchdog.arm()
            await write_prompt(proc, prompt)
        except BaseException:
            # The caller never sees the record, so it is released here.
            if record.watchdog is not None:
                record.watchdog.disarm()
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            self._registry.discard(record)
            raise
        return record

    async def _spawn(
        self, resolved: ResolvedCommand, args: list[str], cwd: str
    ) -> asyncio.subprocess.Process:
        argv = resolved.argv(args)
        logger.debug("Spawning %s in %s", " ".join(argv), cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=build_env(),
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            if not os.path.isdir(cwd):
                msg = (
                    f"Working directory not found: {cwd}\n\n"
                    "The project directory has been deleted or moved.\n"
                    "Please select a different project or restore the directory."
                )
                raise LaunchError("directory_not_found", msg) from exc
            raise LaunchError("process_not_found", self._not_found_message(resolved)) from exc
        except OSError as exc:
            msg = (
                f"Failed to start Codex CLI: {exc}\n\n"
                "Please ensure Codex CLI is installed and accessible:\n"
                "1. Install it globally: npm install -g @openai/codex\n"
                f"2. Or set {CODEX_PATH_ENV} to the full path of the codex executable\n"
                "3. Or add the codex executable to your PATH\n"
                f"Current {CODEX_PATH_ENV}: {os.environ.get(CODEX_PATH_ENV) or '(not set)'}"
            )
            raise LaunchError("spawn_failure", msg) from exc

        logger.debug("Spawned pid %s", proc.pid)
        return proc

    def _not_found_message(self, resolved: ResolvedCommand) -> str:
        return (
            "Codex CLI not found\n\n"
            f"The '{configured_command(self._codex_path)}' command could not be "
            "found on your system.\n\n"
            "Please ensure Codex CLI is installed:\n"
            "1. Install it: npm install -g @openai/codex\n"
            f"2. If installed in a custom location, set {CODEX_PATH_ENV}:\n"
            f"   export {CODEX_PATH_ENV}=/path/to/codex\n"
            "3. Or add the codex executable to your PATH\n\n"
            f"Current {CODEX_PATH_ENV}: {os.environ.get(CODEX_PATH_ENV) or '(not set)'}\n"
            f"Attempted command: {' '.join([resolved.command, *resolved.prefix])}"
        )


async def write_prompt(proc: asyncio.subprocess.Process, prompt: str) -> None:
    """Send *prompt* on stdin and close it; a blank prompt just closes it."""
    if proc.stdin is None:
        return
    try:
        if prompt.strip():
            proc.stdin.write(prompt.encode() + b"\n")
            await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError) as exc:
        logger.warning("Child closed stdin before the prompt was sent: %s", exc)
    finally:
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            proc.stdin.close()
