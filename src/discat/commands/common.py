"""Helpers shared by the command groups."""

from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import DiscatSettings, load_settings
from ..core.errors import DiscatError
from ..core.repository import RepoContext, RepositoryTree
from ..core.validation import ValidationReport

console = Console()
err_console = Console(stderr=True)


def get_settings(ctx: typer.Context) -> DiscatSettings:
    """Settings loaded by the root callback (loaded here if it did not run)."""
    root = ctx.find_root()
    if not isinstance(root.obj, DiscatSettings):
        root.obj = load_settings()
    return root.obj


def open_repo(ctx: typer.Context) -> RepoContext:
    settings = get_settings(ctx)
    return RepoContext.open(settings.repository_path, workers=settings.workers)


def load_tree(repo: RepoContext) -> RepositoryTree:
    return RepositoryTree.load(repo)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn engine errors into a red message and exit code 1."""
    try:
        yield
    except DiscatError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        violations = getattr(e, "violations", None)
        if violations and len(violations) > 1:
            for v in violations:
                err_console.print(f"  - {escape(str(v))}")
        raise typer.Exit(1)


def print_report(report: ValidationReport, json_output: bool = False, title: Optional[str] = None):
    """Print a validation report as a table plus a summary line, or as JSON."""
    if json_output:
        typer.echo(report.to_json())
        return

    if report.violations:
        table = Table(title=title or "Violations")
        table.add_column("Album", style="cyan", no_wrap=True)
        table.add_column("Kind", style="magenta")
        table.add_column("Detail")
        table.add_column("Fixable", justify="center")
        for v in report.violations:
            table.add_row(
                escape(v.location),
                v.kind.value,
                escape(v.detail),
                "yes" if v.fixable else "",
            )
        console.print(table)

    summary = f"checked {report.checked}, failed {report.failed}, fixed {report.fixed}"
    if report.ok:
        console.print(f"[green]✅ {summary}[/green]")
    else:
        console.print(f"[red]❌ {summary}[/red]")
