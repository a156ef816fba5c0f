"""
Database commands for discat (`discat db`).

Compiles the repository into a read-only SQLite snapshot and reports on an
existing snapshot.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..core.database import compile_database, open_snapshot, query_album, snapshot_stats
from .common import console, get_settings, handle_errors, load_tree, open_repo

app = typer.Typer(
    no_args_is_help=True,
    help="Compile the repository into a SQLite snapshot and inspect it.",
)


def _database_path(ctx: typer.Context, output: Optional[Path]) -> Path:
    return (output or get_settings(ctx).resolved_database_path).expanduser()


@app.command("compile")
def db_compile(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Database file (defaults to <repository>/repo.db)."
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Refuse to compile when the repository has any violation."
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Rebuild the database snapshot from the album documents."""
    with handle_errors():
        repo = open_repo(ctx)
        tree = load_tree(repo)
        report = compile_database(tree, _database_path(ctx, output), strict=strict)

    if json_output:
        typer.echo(json.dumps(report.as_dict(), ensure_ascii=False, indent=2))
        return
    for document, reason in report.excluded:
        console.print(f"  [yellow]excluded[/yellow] {escape(document)}: {escape(reason)}")
    console.print(
        f"[green]✅ Compiled {report.albums} album(s), {report.discs} disc(s), "
        f"{report.tracks} track(s)[/green] into [blue]{report.output}[/blue]"
    )


@app.command("stats")
def db_stats(
    ctx: typer.Context,
    database: Optional[Path] = typer.Option(
        None, "--database", "-d", help="Database file (defaults to <repository>/repo.db)."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON to stdout."),
):
    """Show what a compiled snapshot contains."""
    with handle_errors():
        conn = open_snapshot(_database_path(ctx, database))
        try:
            stats = snapshot_stats(conn)
        finally:
            conn.close()

    if json_output:
        typer.echo(json.dumps(stats, ensure_ascii=False))
        return

    table = Table(title="Database Snapshot")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta")
    for key, value in stats.items():
        table.add_row(key, escape(str(value)))
    console.print(table)


@app.command("show")
def db_show(
    ctx: typer.Context,
    catalog: str = typer.Argument(..., help="Catalog of the album to look up."),
    database: Optional[Path] = typer.Option(
        None, "--database", "-d", help="Database file (defaults to <repository>/repo.db)."
    ),
):
    """Print one album from the snapshot as JSON."""
    with handle_errors():
        conn = open_snapshot(_database_path(ctx, database))
        try:
            album = query_album(conn, catalog)
        finally:
            conn.close()
    if album is None:
        console.print(f"[red]Album {escape(catalog)} is not in the snapshot.[/red]")
        raise typer.Exit(1)
    typer.echo(json.dumps(album, ensure_ascii=False, indent=2))
