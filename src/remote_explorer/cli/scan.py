"""Scan and resume commands -- run the exploration loop against a mirror."""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer

from ..bridge import LocalImageBridge
from ..config import ExplorerConfig
from ..exceptions import ExplorerError
from ..exploration import ExplorationOrchestrator
from ..exploration.error_detector import ErrorAnalysis
from ..storage import SQLiteSessionStore
from . import app
from ._common import CONFIG_OPTION, DB_OPTION, console, open_store, resolve_config, stats_table

ROOT_ARGUMENT = typer.Argument(
    ...,
    help="Directory holding a mirror of the device filesystem",
    exists=True,
    file_okay=False,
    dir_okay=True,
    readable=True,
)


@app.command()
def scan(
    ctx: typer.Context,
    root: Path = ROOT_ARGUMENT,
    name: str = typer.Option("", "--name", help="Human-readable session name"),
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", min=1, max=64),
):
    """
    Start a new exploration.

    Reads the bootstrap files, then follows every path referenced by what
    it reads. Press Ctrl-C to pause; the session is saved and can be
    continued with [bold]resume[/bold].

    [bold cyan]Examples:[/bold cyan]

      remote-explorer scan ./tv-image

      remote-explorer scan ./tv-image --batch-size 10 --db scans.db
    """
    cfg = resolve_config(ctx, config, db, batch_size)
    _run(cfg, root, session_id=None, name=name)


@app.command()
def resume(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to continue"),
    root: Path = ROOT_ARGUMENT,
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", min=1, max=64),
):
    """
    Continue a paused session as a new run.

    Paths that failed transiently in earlier runs are retried first.
    """
    cfg = resolve_config(ctx, config, db, batch_size)
    open_store(cfg)
    _run(cfg, root, session_id=session_id)


def _run(cfg: ExplorerConfig, root: Path, session_id: Optional[str], name: str = "") -> None:
    try:
        bridge = LocalImageBridge(root, read_function=cfg.read_function)
        with SQLiteSessionStore(cfg.store_path) as store:
            orchestrator = ExplorationOrchestrator(bridge, store, cfg)
            asyncio.run(_explore(orchestrator, session_id, name))
    except ExplorerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    session = orchestrator.session
    console.print()
    console.print(stats_table(orchestrator.stats, title=f"Session {session.id} ({session.status})"))
    if session.status == "paused":
        console.print(
            f"\nResume with: [bold]remote-explorer resume {session.id} {root}[/bold]"
        )


async def _explore(orchestrator: ExplorationOrchestrator, session_id: Optional[str], name: str) -> None:
    loop = asyncio.get_running_loop()
    pause_tasks = []

    def request_pause() -> None:
        if orchestrator.state == "running":
            console.print("[yellow]Pausing after the current batch...[/yellow]")
            pause_tasks.append(asyncio.ensure_future(orchestrator.pause()))

    def announce_auto_pause(analysis: ErrorAnalysis) -> None:
        console.print(
            f"[bold yellow]Auto-paused[/bold yellow] after {analysis.consecutive_count} "
            f"consecutive {analysis.type.value} errors. {analysis.recommendation}"
        )

    orchestrator.events.on_auto_pause(announce_auto_pause)

    try:
        loop.add_signal_handler(signal.SIGINT, request_pause)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        installed = False

    try:
        with console.status("Scanning...") as status:
            orchestrator.events.on_stats(
                lambda s: status.update(
                    f"Scanning: {s.scanned}/{s.total} scanned, {s.success} found, {s.queued} queued"
                )
            )
            if session_id:
                await orchestrator.load(session_id)
                await orchestrator.resume()
            else:
                await orchestrator.start(name=name)
            await orchestrator.wait()
            if pause_tasks:
                await asyncio.gather(*pause_tasks, return_exceptions=True)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
