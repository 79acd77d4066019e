"""Session management commands -- list, inspect, export and delete."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..exceptions import StorageError
from ..exploration.persistence import session_from_payload
from . import app
from ._common import CONFIG_OPTION, DB_OPTION, console, format_timestamp, open_store, resolve_config, stats_table


@app.command()
def sessions(
    ctx: typer.Context,
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """
    List stored sessions, most recently updated first.
    """
    cfg = resolve_config(ctx, config, db)
    try:
        with open_store(cfg) as store:
            items = store.list()
    except StorageError as e:
        console.print(f"[red]Error reading sessions:[/red] {e}")
        raise typer.Exit(1)

    if not items:
        console.print("[yellow]No sessions recorded yet.[/yellow]")
        raise typer.Exit(0)

    if json_output:
        print(
            json.dumps(
                [{**asdict(m), "can_resume": m.can_resume} for m in items],
                indent=2,
            )
        )
        return

    table = Table(title="Sessions", show_lines=False, pad_edge=True)
    table.add_column("ID", style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Files", justify="right")
    table.add_column("Found", justify="right", style="green")
    table.add_column("Text / Bin", justify="right")
    table.add_column("Runs", justify="right")
    table.add_column("Updated", style="dim")
    table.add_column("", style="yellow")

    for m in items:
        table.add_row(
            m.session_id,
            m.name if m.name != m.session_id else "",
            m.status,
            str(m.total_files),
            str(m.success_count),
            f"{m.text_count} / {m.binary_count}",
            str(m.total_runs),
            format_timestamp(m.last_modified),
            "resumable" if m.can_resume else "",
        )

    console.print()
    console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to inspect"),
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """
    Show counters, variables and deferred templates of a session.
    """
    cfg = resolve_config(ctx, config, db)
    try:
        with open_store(cfg) as store:
            data = store.load(session_id)
        session = session_from_payload(data)
    except StorageError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print()
    console.print(stats_table(session.stats(), title=f"Session {session.id} ({session.status})"))

    runs = data.get("runs", [])
    if runs:
        table = Table(title="Runs")
        table.add_column("Run", justify="right")
        table.add_column("Started")
        table.add_column("Files", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Status")
        for run in runs:
            table.add_row(
                str(run["run_id"]),
                format_timestamp(run["timestamp"]),
                str(run["files_scanned"]),
                f"{run['duration_seconds']:.1f}s",
                run["status"],
            )
        console.print(table)

    if session.variables:
        table = Table(title="Variables")
        table.add_column("Name", style="bold")
        table.add_column("Value", style="cyan")
        table.add_column("Confidence")
        table.add_column("Found in", style="dim")
        for name in sorted(session.variables):
            for value in session.variables[name]:
                table.add_row(name, value.value, value.confidence, value.discovered_in)
        console.print(table)

    if session.deferred_templates:
        table = Table(title="Deferred templates")
        table.add_column("Template", style="bold")
        table.add_column("Waiting for", style="yellow")
        table.add_column("Found in", style="dim")
        for deferred in session.deferred_templates:
            table.add_row(deferred.template, ", ".join(sorted(deferred.variables)), deferred.discovered_in)
        console.print(table)

    info = data.get("error_info")
    if info:
        console.print(f"\n[yellow]Last error:[/yellow] {info['last_error']}")
        console.print(f"[yellow]Recommendation:[/yellow] {info['recommendation']}")


@app.command()
def export(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON here instead of stdout"),
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """
    Export a full session as JSON.
    """
    cfg = resolve_config(ctx, config, db)
    try:
        with open_store(cfg) as store:
            data = store.load(session_id)
    except StorageError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    text = json.dumps(data, indent=2)
    if output is None:
        print(text)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Exported[/green] {len(data.get('results', []))} records to {output}")


@app.command()
def delete(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config: Optional[Path] = CONFIG_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """
    Delete a stored session and all of its runs.
    """
    cfg = resolve_config(ctx, config, db)
    if not yes:
        typer.confirm(f"Delete session {session_id}?", abort=True)
    try:
        with open_store(cfg) as store:
            store.delete(session_id)
    except StorageError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] {session_id}")
