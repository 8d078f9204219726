"""codexbridge history — list stored sessions or print one."""

from __future__ import annotations

from pathlib import Path

import click

from codexbridge.session.models import Session
from codexbridge.session.store import JsonlSessionStore

#: Max characters of the first prompt shown in the session list.
_PREVIEW_LEN = 60


@click.command()
@click.argument("session_id", required=False)
@click.option(
    "-d",
    "--sessions-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="sessions",
    help="Directory containing session files (default: ./sessions)",
)
def history(session_id: str | None, sessions_dir: Path) -> None:
    """Show stored conversations.

    If SESSION_ID is provided (a prefix is enough), print that session's
    turns.  If it is omitted, list all sessions.
    """
    store = JsonlSessionStore(sessions_dir)

    if session_id is None:
        _format_session_list(store.list_sessions())
        return

    matches = store.match(session_id)
    if not matches:
        click.echo(f"Session not found: {session_id}", err=True)
        click.echo(
            "\nTip: Run 'codexbridge history' to list all available sessions.",
            err=True,
        )
        raise SystemExit(1)

    if len(matches) > 1 and session_id not in matches:
        click.echo(f"Ambiguous session ID: {session_id}", err=True)
        click.echo("   Matches multiple sessions:", err=True)
        for sid in matches:
            click.echo(f"     • {sid}", err=True)
        raise SystemExit(1)

    resolved = session_id if session_id in matches else matches[0]
    _format_session(store.load(resolved))


def _format_session_list(sessions: list[Session]) -> None:
    if not sessions:
        click.echo("No sessions found.")
        return
    for session in sessions:
        first = next((t.content for t in session.turns if t.role == "user"), "")
        first = " ".join(first.split())
        if len(first) > _PREVIEW_LEN:
            first = first[: _PREVIEW_LEN - 1] + "…"
        click.echo(
            f"{session.id}  {session.last_activity}  "
            f"{len(session.turns):>3} turns  {first}"
        )


def _format_session(session: Session) -> None:
    click.echo(f"Session {session.id}")
    if session.cwd:
        click.echo(f"Directory: {session.cwd}")
    for turn in session.turns:
        click.echo(f"\n[{turn.ts}] {turn.role}:")
        click.echo(turn.content)
