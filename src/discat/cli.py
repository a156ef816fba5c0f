"""
discat CLI - Main entry point using Typer.

This module configures the main Typer application, registers all command groups,
and defines global options like --version and --verbose.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.traceback import install

from .commands import config, db, repo
from .core.config import load_settings
from .core.errors import DiscatError
from .core.logging_util import setup_logging

# Install a rich traceback handler for readable exceptions
install(show_locals=False)

console = Console()

# Create the main Typer app instance
app = typer.Typer(
    name="discat",
    help="💿 discat - A version-controlled catalog of music release metadata.",
    epilog="Use `discat [COMMAND] --help` for more info on a specific command.",
    no_args_is_help=True,  # Show help if no command is provided
    pretty_exceptions_enable=False,  # Disable Typer's default handler to use Rich's
)

app.add_typer(
    repo.app,
    name="repo",
    help="📚 Create, import into, validate and migrate a metadata repository.",
)
app.add_typer(db.app, name="db", help="🗄️ Compile and inspect the SQLite snapshot.")
app.add_typer(config.app, name="config", help="🔧 Manage paths and other settings.")


def _version_callback(value: bool):
    if value:
        from . import __version__

        console.print(f"discat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,  # Use None as the default for a pure flag
        "--version",
        "-V",
        help="Show the application version and exit.",
        callback=_version_callback,
        is_eager=True,  # Process this before any command
    ),
    repository: Optional[Path] = typer.Option(
        None,
        "--repo",
        "-C",
        help="Repository to operate on (overrides the configured path).",
    ),
    verbose: bool = typer.Option(None, "--verbose", "-v", help="Enable DEBUG-level logging."),
    quiet: bool = typer.Option(
        None, "--quiet", "-q", help="Reduce logging to warnings and errors."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Emit logs as JSON lines to stderr."
    ),
):
    """
    discat CLI - Keep album metadata in plain text and compile it for other tools.
    """
    # Configure logging once, early
    setup_logging(json_logs=json_logs, verbose=bool(verbose), quiet=bool(quiet))

    try:
        ctx.obj = load_settings(
            repository_path=repository.expanduser().resolve() if repository else None
        )
    except DiscatError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def cli():
    """Main entry point for the console script defined in pyproject.toml."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Operation cancelled by user.[/yellow]")
        raise typer.Exit(130)


if __name__ == "__main__":
    cli()
