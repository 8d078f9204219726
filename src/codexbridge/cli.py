"""Root CLI group and version flag."""

import signal

import click

# Ensure SIGPIPE doesn't kill the process when stdout is piped into a
# reader that exits early (e.g. ``codexbridge run ... | head``).
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from codexbridge import __version__  # noqa: E402
from codexbridge.commands.history import history  # noqa: E402
from codexbridge.commands.run import run  # noqa: E402


@click.group()
@click.version_option(version=__version__, prog_name="codexbridge")
def cli() -> None:
    """codexbridge — run codex turns and stream their output."""


cli.add_command(run)
cli.add_command(history)
