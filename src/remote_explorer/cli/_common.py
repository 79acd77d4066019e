"""Shared CLI helpers."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..config import ExplorerConfig, load_config
from ..exceptions import ExplorerError
from ..exploration.models import ExplorationStats
from ..storage import SQLiteSessionStore

console = Console()

CONFIG_OPTION = typer.Option(
    None,
    "-c",
    "--config",
    help="Configuration file (TOML)",
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
)
DB_OPTION = typer.Option(None, "--db", help="Session database (default: from config)")


def resolve_config(
    ctx: Optional[typer.Context] = None,
    config: Optional[Path] = None,
    db: Optional[Path] = None,
    batch_size: Optional[int] = None,
) -> ExplorerConfig:
    """Build configuration from CLI options."""
    obj = (ctx.obj if ctx is not None else None) or {}
    overrides = {
        "batch_size": batch_size,
        "store_path": str(db) if db is not None else None,
        "verbose": obj.get("verbose", False),
        "quiet": obj.get("quiet", False),
    }
    try:
        return load_config(config_file=config, **overrides)
    except ExplorerError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)


def open_store(cfg: ExplorerConfig, must_exist: bool = True) -> SQLiteSessionStore:
    path = Path(cfg.store_path)
    if must_exist and not path.exists():
        console.print(f"[yellow]No session database at {path}.[/yellow] Run [bold]remote-explorer scan[/bold] first.")
        raise typer.Exit(1)
    return SQLiteSessionStore(path)


def format_timestamp(ts: Optional[str]) -> str:
    """Trim an ISO timestamp to date + time."""
    if not ts:
        return "-"
    ts = ts.replace("T", " ")
    if "+" in ts:
        ts = ts[: ts.index("+")]
    if "." in ts:
        ts = ts[: ts.index(".")]
    return ts


def stats_table(stats: ExplorationStats, title: str = "Exploration") -> Table:
    table = Table(title=title, show_header=False, pad_edge=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Known paths", str(stats.total))
    table.add_row("Scanned", f"{stats.scanned} ({stats.progress:.1f}%)")
    table.add_row("Found", f"[green]{stats.success}[/green]")
    table.add_row("Not found", str(stats.failed))
    table.add_row("Text / binary", f"{stats.text} / {stats.binary}")
    table.add_row("Queued", str(stats.queued))
    table.add_row("Parked for retry", str(stats.parked))
    table.add_row("Variables", str(stats.variables))
    table.add_row("Deferred templates", str(stats.deferred_templates))
    for method, count in stats.discovery.items():
        table.add_row(f"Discovered via {method}", str(count))
    return table
