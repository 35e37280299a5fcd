"""Root Typer app for qmd-remote; command modules attach sub-apps to it."""

from typing import Optional

import typer

from qmd_remote import __version__
from qmd_remote.config import init_logging

app = typer.Typer(name="qmd-remote", no_args_is_help=True)


def _show_version(requested: bool) -> None:
    if not requested:
        return
    typer.echo(f"qmd-remote {__version__}")
    raise typer.Exit()


@app.callback()
def app_callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Print the installed version and exit.",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """Manage the remote inference endpoints used by qmd."""
    init_logging(level=log_level)
