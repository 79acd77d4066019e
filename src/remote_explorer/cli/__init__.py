"""CLI entry point: registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ..logging_config import setup_logging
from ._common import console

app = typer.Typer(
    name="remote-explorer",
    help="Remote Explorer - content-driven exploration of a sandboxed device filesystem",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"remote-explorer {__version__}")
        raise typer.Exit()


@app.callback()
def _global_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Errors only"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Explore a device filesystem by following references found in its files."""
    setup_logging(verbose=verbose, quiet=quiet, log_file=str(log_file) if log_file else None)
    ctx.obj = {"verbose": verbose, "quiet": quiet}


# Import subcommands to register them
from .scan import scan as _scan, resume as _resume  # noqa: F401, E402
from .sessions import (  # noqa: F401, E402
    delete as _delete,
    export as _export,
    sessions as _sessions,
    show as _show,
)


def main() -> None:
    app()
