"""
Repository commands for discat (`discat repo`).

This module covers the lifecycle of a metadata repository:
- Creating or cloning a repository and keeping a clone up to date
- Adding albums from local directories or MusicBrainz
- Editing, validating, printing and migrating album documents
- Applying repository metadata onto FLAC files
"""

import dataclasses
import json
import uuid
from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.markup import escape

from ..core import vcs
from ..core.catalog import parse_reference
from ..core.errors import AlbumNotFound, DecodeError, DiscatError
from ..core.export import ExportFormat, render
from ..core.importer import add_album, build_candidate
from ..core.migration import MigrationReport, migrate, run_migration
from ..core.repository import (
    REPO_FILE,
    AlbumEntry,
    RepoContext,
    RepositoryTree,
    init_repository,
    read_document,
)
from ..core.validation import (
    RuleContext,
    ValidationReport,
    Violation,
    fix_repository,
    run_album_rules,
    validate_repository,
)
from .common import console, get_settings, handle_errors, load_tree, open_repo, print_report

app = typer.Typer(
    no_args_is_help=True,
    help="Create, import into, validate and migrate a metadata repository.",
)


def _check_document(repo: RepoContext, path: Path) -> List[Violation]:
    try:
        album = read_document(path)
    except DecodeError as e:
        raise DiscatError(f"Document no longer decodes: {e}") from e
    return run_album_rules(RuleContext(album=album, path=path, ctx=repo))


def _edit(ctx: typer.Context, repo: RepoContext, path: Path) -> None:
    settings = get_settings(ctx)
    click.edit(filename=str(path), editor=settings.editor)
    violations = _check_document(repo, path)
    print_report(ValidationReport(checked=1, violations=violations))
    if violations:
        raise typer.Exit(1)


def _find(tree: RepositoryTree, text: str) -> AlbumEntry:
    """Look an album up by catalog or by album_id."""
    try:
        uuid.UUID(text)
    except ValueError:
        return tree.get(parse_reference(text).catalog)
    entry = tree.find_by_id(text)
    if entry is None:
        raise AlbumNotFound(text)
    return entry


@app.command("init")
def repo_init(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(
        None, help="Directory for the new repository (defaults to the configured path)."
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Repository name."),
    layout: str = typer.Option("flat", "--layout", help="Document layout: flat or bucketed."),
    edition: str = typer.Option("1", "--edition", help="Edition label stored in repo.toml."),
):
    """Create repo.toml and an empty album directory."""
    root = (path or get_settings(ctx).repository_path).expanduser().resolve()
    with handle_errors():
        try:
            repo = init_repository(root, name or root.name, layout=layout, edition=edition)
        except ValueError as e:
            raise DiscatError(str(e)) from e
    console.print(
        f"[green]✅ Initialized repository[/green] [bold]{escape(repo.config.name)}[/bold] "
        f"(version {repo.config.version}, {repo.config.layout} layout) at [blue]{repo.root}[/blue]"
    )


@app.command("clone")
def repo_clone(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Remote git URL of the repository."),
    path: Optional[Path] = typer.Argument(
        None, help="Local directory (defaults to the configured path)."
    ),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch to check out."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up after this many seconds."
    ),
):
    """Clone a remote repository."""
    target = (path or get_settings(ctx).repository_path).expanduser().resolve()
    with handle_errors():
        vcs.clone(url, target, timeout=timeout, branch=branch)
        if not (target / REPO_FILE).exists():
            console.print(f"[yellow]Warning: the clone has no {REPO_FILE}.[/yellow]")
            return
        repo = RepoContext.open(target)
    console.print(
        f"[green]✅ Cloned[/green] [bold]{escape(repo.config.name)}[/bold] into [blue]{target}[/blue]"
    )


@app.command("pull")
def repo_pull(
    ctx: typer.Context,
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up after this many seconds."
    ),
):
    """Fast-forward the repository from its git remote."""
    with handle_errors():
        repo = open_repo(ctx)
        output = vcs.fetch(repo.root, timeout=timeout)
    console.print(escape(output.strip()) or "[green]Up to date.[/green]")


@app.command("add")
def repo_add(
    ctx: typer.Context,
    directory: Path = typer.Argument(
        ..., exists=True, file_okay=False, help="Album directory: `[YYMMDD][CATALOG] Title`."
    ),
    artist: Optional[str] = typer.Option(None, "--artist", "-a", help="Override the album artist."),
    release: Optional[str] = typer.Option(
        None, "--release", help="Take metadata from this MusicBrainz release id instead."
    ),
    read_tags: bool = typer.Option(
        True, "--tags/--no-tags", help="Read titles and artists from FLAC tags."
    ),
    edit: bool = typer.Option(False, "--edit", "-e", help="Open the new document in an editor."),
):
    """Import an album directory into the repository."""
    with handle_errors():
        repo = open_repo(ctx)
        tree = load_tree(repo)
        if release:
            from ..plugins.musicbrainz import MusicBrainzSource

            settings = get_settings(ctx)
            source = MusicBrainzSource(
                user_agent=settings.musicbrainz_user_agent, timeout=settings.http_timeout
            )
            album = source.fetch(release)
        else:
            reader = None
            if read_tags:
                from ..plugins.flac import FlacTagReader

                reader = FlacTagReader()
            album = build_candidate(directory, reader=reader)
        if artist:
            album = dataclasses.replace(album, artist=artist)
        path = add_album(repo, tree, album, source_dir=directory)
    console.print(f"[green]✅ Added[/green] {escape(album.catalog)} at [blue]{repo.relative(path)}[/blue]")
    if edit:
        with handle_errors():
            _edit(ctx, repo, path)


@app.command("fetch")
def repo_fetch(
    ctx: typer.Context,
    catalog: str = typer.Argument(..., help="Catalog number to look up."),
    release: Optional[str] = typer.Option(
        None, "--release", help="Fetch this MusicBrainz release id instead of searching."
    ),
    print_only: bool = typer.Option(
        False, "--print", "-p", help="Print the fetched document instead of adding it."
    ),
):
    """Fetch an album from MusicBrainz and add it to the repository."""
    from ..plugins.musicbrainz import MusicBrainzSource

    settings = get_settings(ctx)
    with handle_errors():
        source = MusicBrainzSource(
            user_agent=settings.musicbrainz_user_agent, timeout=settings.http_timeout
        )
        album = source.fetch(release) if release else source.search_catalog(catalog)
        if album is None:
            raise AlbumNotFound(catalog)
        album = dataclasses.replace(album, catalog=catalog)
        if print_only:
            typer.echo(render(album, ExportFormat.TOML, clean=True), nl=False)
            return
        repo = open_repo(ctx)
        path = add_album(repo, load_tree(repo), album)
    console.print(f"[green]✅ Added[/green] {escape(catalog)} at [blue]{repo.relative(path)}[/blue]")


@app.command("edit")
def repo_edit(
    ctx: typer.Context,
    reference: str = typer.Argument(..., help="Catalog or album_id of the album to edit."),
):
    """Open an album document in your editor and re-check it afterwards."""
    with handle_errors():
        repo = open_repo(ctx)
        entry = _find(load_tree(repo), reference)
        _edit(ctx, repo, entry.path)


@app.command("apply")
def repo_apply(
    ctx: typer.Context,
    reference: str = typer.Argument(..., help="Catalog or album_id of the album."),
    directory: Path = typer.Argument(
        ..., exists=True, file_okay=False, help="Directory holding the album's FLAC files."
    ),
):
    """Write repository metadata onto an album's FLAC files."""
    from ..plugins.flac import FlacTagWriter, apply_album

    with handle_errors():
        repo = open_repo(ctx)
        entry = _find(load_tree(repo), reference)
        count = apply_album(entry.album, directory, FlacTagWriter())
    console.print(f"[green]✅ Tagged {count} file(s) for {escape(entry.catalog)}[/green]")


@app.command("validate")
def repo_validate(
    ctx: typer.Context,
    fix: bool = typer.Option(False, "--fix", help="Repair fixable violations in place."),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Check every album document in the repository."""
    with handle_errors():
        repo = open_repo(ctx)
        tree = load_tree(repo)
        violations = validate_repository(tree)
        fixed = 0
        if fix and any(v.fixable for v in violations):
            fixed = fix_repository(repo, violations)
            tree = tree.reload()
            violations = validate_repository(tree)
    report = ValidationReport(checked=tree.document_count, violations=violations, fixed=fixed)
    print_report(report, json_output=json_output)
    if not report.ok:
        raise typer.Exit(1)


@app.command("print")
def repo_print(
    ctx: typer.Context,
    reference: str = typer.Argument(
        ..., help="`CATALOG`, `CATALOG/DISC` or an album_id."
    ),
    fmt: ExportFormat = typer.Option(
        ExportFormat.TITLE, "--type", "-t", case_sensitive=False, help="Output format."
    ),
    clean: bool = typer.Option(
        False, "--no-generated-by", "--clean", help="Leave out the `Generated by` comment."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write to a file instead of stdout."
    ),
):
    """Print one album (or disc) in a given format."""
    with handle_errors():
        repo = open_repo(ctx)
        tree = load_tree(repo)
        entry = _find(tree, reference)
        disc_index = None
        if entry.album.album_id != reference:
            disc_index = parse_reference(reference).disc_index
        text = render(entry.album, fmt, disc_index=disc_index, clean=clean)
    if output:
        output.write_text(text, encoding="utf-8")
        console.print(f"Wrote [blue]{output}[/blue]")
    else:
        typer.echo(text, nl=False)


def _print_migration(report: MigrationReport, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(report.as_dict(), ensure_ascii=False, indent=2))
        return
    verb = "would change" if report.dry_run else "changed"
    for rel in report.changed:
        console.print(f"  {verb}: [blue]{escape(rel)}[/blue]")
    for rel, error in report.failures:
        console.print(f"  [red]failed[/red]: {escape(rel)}: {escape(error)}")
    summary = (
        f"checked {report.checked}, {verb} {len(report.changed)}, failed {len(report.failures)}; "
        f"version {report.from_version} -> {report.to_version}"
    )
    console.print(f"[{'green' if report.ok else 'red'}]{summary}[/]")


migrate_app = typer.Typer(help="Upgrade album documents to a newer repository format.")
app.add_typer(migrate_app, name="migrate")


@migrate_app.callback(invoke_without_command=True)
def repo_migrate(
    ctx: typer.Context,
    to: Optional[int] = typer.Option(None, "--to", help="Target version (default: latest)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing."),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Migrate every document up to the target repository version."""
    if ctx.invoked_subcommand is not None:
        return
    with handle_errors():
        report = migrate(open_repo(ctx), target_version=to, dry_run=dry_run)
    _print_migration(report, json_output)
    if not report.ok:
        raise typer.Exit(1)


@migrate_app.command("album-id")
def repo_migrate_album_id(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing."),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Assign an album_id to every document that lacks one."""
    with handle_errors():
        report = run_migration(open_repo(ctx), "assign-album-id", dry_run=dry_run)
    _print_migration(report, json_output)
    if not report.ok:
        raise typer.Exit(1)
