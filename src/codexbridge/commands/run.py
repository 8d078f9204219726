"""codexbridge run — run one codex turn and print its events."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import logging
import mimetypes
import signal
import sys
from pathlib import Path

import click

from codexbridge.bridge.cli_bridge import CodexBridge, TurnResult
from codexbridge.bridge.events import (
    BridgeEvent,
    CompleteEvent,
    ErrorEvent,
    EventSink,
    MessageEvent,
    SessionCreatedEvent,
    StatusEvent,
    event_to_wire,
)
from codexbridge.bridge.tempfiles import Attachment
from codexbridge.config.models import TurnOptions
from codexbridge.config.parser import ConfigError, load_config
from codexbridge.session.store import JsonlSessionStore

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@click.command()
@click.argument("prompt", required=False, default="")
@click.option(
    "-C",
    "--cd",
    "cwd",
    type=click.Path(file_okay=False),
    default=None,
    help="Working directory for codex (default: current directory).",
)
@click.option("-m", "--model", default=None, help="Model identifier.")
@click.option(
    "--reasoning-effort",
    type=click.Choice(["minimal", "low", "medium", "high"]),
    default=None,
    help="Reasoning effort for reasoning-capable models.",
)
@click.option(
    "--skip-permissions",
    is_flag=True,
    help="Bypass codex approval and sandbox prompts.",
)
@click.option(
    "-s", "--session", "session_id", default=None, help="Continue an existing session."
)
@click.option(
    "-i",
    "--image",
    "images",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Attach an image (repeatable).",
)
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON events.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def run(
    prompt: str,
    cwd: str | None,
    model: str | None,
    reasoning_effort: str | None,
    skip_permissions: bool,
    session_id: str | None,
    images: tuple[Path, ...],
    config_file: str | None,
    as_json: bool,
    verbose: bool,
) -> None:
    """Send PROMPT to codex and stream the response.

    Use "-" as PROMPT to read it from stdin.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if prompt == "-":
        prompt = click.get_text_stream("stdin").read()

    try:
        attachments = [_attachment_from_file(path) for path in images]
    except OSError as exc:
        click.echo(f"Error: cannot read image: {exc}", err=True)
        raise SystemExit(1) from exc

    options = TurnOptions(
        cwd=cwd,
        model=model,
        reasoning_effort=reasoning_effort,
        skip_permissions=skip_permissions,
    )
    bridge = CodexBridge(JsonlSessionStore(config.sessions_dir), config)

    try:
        result = asyncio.run(
            _run_turn(bridge, prompt, _make_printer(as_json), session_id, options, attachments)
        )
    except asyncio.CancelledError:
        raise SystemExit(130) from None

    raise SystemExit(_exit_status(result))


async def _run_turn(
    bridge: CodexBridge,
    prompt: str,
    emit: EventSink,
    session_id: str | None,
    options: TurnOptions,
    attachments: list[Attachment],
) -> TurnResult:
    """Run the turn with SIGINT/SIGTERM wired to abort."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def _abort(sig_name: str) -> None:
        click.echo(f"\nReceived {sig_name}, aborting turn...", err=True)
        if bridge.shutdown() == 0 and task is not None:
            task.cancel()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _abort, sig.name)
            installed.append(sig)

    try:
        return await bridge.run_turn(
            prompt,
            emit,
            session_id=session_id,
            options=options,
            attachments=attachments,
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _make_printer(as_json: bool) -> EventSink:
    def _print(event: BridgeEvent) -> None:
        if as_json:
            click.echo(json.dumps(event_to_wire(event)))
            return
        match event:
            case MessageEvent():
                click.echo(event.content)
            case StatusEvent():
                click.echo(f"[{event.status}]", err=True)
            case ErrorEvent():
                click.echo(f"Error: {event.error.rstrip()}", err=True)
            case SessionCreatedEvent():
                click.echo(f"Session: {event.session_id}", err=True)
            case CompleteEvent():
                if event.exit_code:
                    click.echo(f"codex exited with code {event.exit_code}", err=True)

    return _print


def _attachment_from_file(path: Path) -> Attachment:
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    payload = base64.b64encode(path.read_bytes()).decode("ascii")
    return Attachment(data=f"data:{mime_type};base64,{payload}")


def _exit_status(result: TurnResult) -> int:
    if result.ok:
        return 0
    if result.exit_code is not None and result.exit_code > 0:
        return result.exit_code
    return 1
