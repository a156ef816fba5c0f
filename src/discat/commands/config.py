"""
Configuration commands for discat (`discat config`).

This module handles user-facing configuration:
- Setting the repository and database paths
- Viewing the merged settings
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from ..core.config import (
    LOCAL_SETTINGS_FILE,
    USER_SETTINGS_FILE,
    load_settings,
    save_settings,
    settings_payload,
)
from ..core.errors import DiscatError
from .common import console, get_settings, handle_errors

app = typer.Typer(
    no_args_is_help=True,
    help="Manage repository paths and other settings.",
)


@app.command("path")
def config_path(
    ctx: typer.Context,
    repository_path: Optional[Path] = typer.Option(
        None, "--repository", "-r", help="Set the path of the metadata repository."
    ),
    database_path: Optional[Path] = typer.Option(
        None, "--db", help="Set a custom path for the compiled database (repo.db)."
    ),
    user: bool = typer.Option(
        False, "--user", help="Save to the user settings file instead of ./settings.toml."
    ),
):
    """
    View or update the repository and database paths.

    Running the command with no options will display the current paths.
    """
    settings = get_settings(ctx)
    changed = False
    with handle_errors():
        try:
            if repository_path:
                settings.repository_path = repository_path.expanduser().resolve()
                console.print(f"Repository path set to: [blue]{settings.repository_path}[/blue]")
                changed = True
            if database_path:
                settings.database_path = database_path.expanduser().resolve()
                console.print(f"Database path set to: [blue]{settings.database_path}[/blue]")
                changed = True
        except ValueError as e:
            raise DiscatError(f"Invalid setting: {e}") from e

        if changed:
            target = save_settings(settings, user_scope=user)
            console.print(f"[green]✅ Settings saved to {target}.[/green]")
            return

    console.print("[bold]Current Paths:[/bold]")
    console.print(f"  Repository: [blue]{settings.repository_path}[/blue]")
    console.print(f"  Database:   [blue]{settings.resolved_database_path}[/blue]")


@app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON to stdout."),
    reload: bool = typer.Option(
        False, "--reload", help="Re-read the settings files instead of using startup values."
    ),
):
    """Display the merged configuration and where it was read from."""
    with handle_errors():
        settings = load_settings() if reload else get_settings(ctx)
    data = settings_payload(settings)
    data["database_path"] = str(settings.resolved_database_path)
    data["musicbrainz_user_agent"] = settings.musicbrainz_user_agent
    data["files"] = {
        "local": str(LOCAL_SETTINGS_FILE.resolve()),
        "user": str(USER_SETTINGS_FILE),
    }

    if json_output:
        typer.echo(json.dumps(data, ensure_ascii=False))
        return

    console.print("[bold]Current Configuration[/bold]")
    for key in ("repository_path", "database_path", "workers", "http_timeout", "editor"):
        if key in data:
            console.print(f"  {key}: [blue]{escape(str(data[key]))}[/blue]")
    console.print(f"  musicbrainz_user_agent: [blue]{escape(data['musicbrainz_user_agent'])}[/blue]")
    console.print("\n[bold]Settings files:[/bold]")
    for scope, path in data["files"].items():
        console.print(f"  {scope}: [blue]{escape(path)}[/blue]")
