"""
Database compilation using the built-in `sqlite3` module.

The repository's text documents are the source of truth; the database is a
read-only snapshot built from them for fast lookups by other tools. Every
compile is a full rebuild into `<output>.tmp` that is renamed over the
previous snapshot when complete, so readers only ever see a whole snapshot.

Rows are written in catalog, disc and track order with inherited values
resolved, which makes two compiles of the same repository identical except
for `repo_info.compiled_at`.
"""

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import CompileError, DiscatError
from .repository import AlbumEntry, RepositoryTree
from .validation import validate_repository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE repo_info (
    name TEXT NOT NULL,
    edition TEXT NOT NULL,
    version INTEGER NOT NULL,
    compiled_at TEXT NOT NULL
);

CREATE TABLE albums (
    album_id TEXT PRIMARY KEY,
    catalog TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    edition TEXT,
    artist TEXT NOT NULL,
    release_date TEXT NOT NULL,
    track_type TEXT NOT NULL,
    compilation INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE discs (
    id INTEGER PRIMARY KEY,
    album_id TEXT NOT NULL REFERENCES albums(album_id),
    disc_index INTEGER NOT NULL,
    catalog TEXT NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    track_type TEXT NOT NULL,
    UNIQUE(album_id, disc_index)
);

CREATE TABLE tracks (
    id INTEGER PRIMARY KEY,
    disc_id INTEGER NOT NULL REFERENCES discs(id),
    album_id TEXT NOT NULL REFERENCES albums(album_id),
    track_index INTEGER NOT NULL,
    ordinal INTEGER NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    track_type TEXT NOT NULL,
    UNIQUE(disc_id, track_index)
);

CREATE INDEX idx_disc_album ON discs (album_id);
CREATE INDEX idx_track_disc ON tracks (disc_id);
CREATE INDEX idx_track_album ON tracks (album_id);
CREATE INDEX idx_album_artist ON albums (artist);
CREATE INDEX idx_album_title ON albums (title);
CREATE INDEX idx_track_artist ON tracks (artist);
CREATE INDEX idx_track_title ON tracks (title);
"""


@dataclass
class CompileReport:
    output: Path
    compiled_at: str
    albums: int = 0
    discs: int = 0
    tracks: int = 0
    excluded: List[Tuple[str, str]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "output": str(self.output),
            "compiled_at": self.compiled_at,
            "albums": self.albums,
            "discs": self.discs,
            "tracks": self.tracks,
            "excluded": [{"document": d, "reason": r} for d, r in self.excluded],
        }


# --- Writing ---


def init_db(conn: sqlite3.Connection) -> None:
    """Creates the snapshot tables in an empty database."""
    conn.executescript(SCHEMA)


def insert_album(conn: sqlite3.Connection, entry: AlbumEntry) -> Tuple[int, int]:
    """Insert one album with its discs and tracks. Returns (discs, tracks)."""
    album = entry.album
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO albums (album_id, catalog, title, edition, artist, release_date,
                            track_type, compilation)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            album.album_id,
            album.catalog,
            album.title,
            album.edition,
            album.artist,
            str(album.release_date),
            album.resolved_type.value,
            1 if album.compilation else 0,
        ),
    )
    tracks = 0
    for di, disc in enumerate(album.discs, start=1):
        cur.execute(
            """
            INSERT INTO discs (album_id, disc_index, catalog, title, artist, track_type)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                album.album_id,
                di,
                disc.resolved_catalog(album),
                disc.resolved_title(album),
                disc.resolved_artist(album),
                disc.resolved_type(album).value,
            ),
        )
        disc_id = cur.lastrowid
        cur.executemany(
            """
            INSERT INTO tracks (disc_id, album_id, track_index, ordinal, title, artist,
                                track_type)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    disc_id,
                    album.album_id,
                    ti,
                    tracks + ti,
                    track.title,
                    track.resolved_artist(disc, album),
                    track.resolved_type(disc, album).value,
                )
                for ti, track in enumerate(disc.tracks, start=1)
            ],
        )
        tracks += len(disc.tracks)
    return len(album.discs), tracks


def _select_entries(tree: RepositoryTree, report: CompileReport) -> List[AlbumEntry]:
    """Entries that can be stored, in catalog order. The rest go to `report.excluded`."""
    ctx = tree.ctx
    for failure in tree.failures:
        report.excluded.append((ctx.relative(failure.path), f"decode error: {failure.error}"))

    selected: List[AlbumEntry] = []
    seen_ids: Dict[str, str] = {}
    seen_catalogs: Dict[str, str] = {}
    for entry in tree.entries:
        rel = ctx.relative(entry.path)
        album_id = entry.album.album_id
        if album_id is None:
            report.excluded.append((rel, "missing album_id"))
        elif entry.catalog in seen_catalogs:
            report.excluded.append((rel, f"duplicate catalog (kept {seen_catalogs[entry.catalog]})"))
        elif album_id in seen_ids:
            report.excluded.append((rel, f"duplicate album_id (kept {seen_ids[album_id]})"))
        else:
            seen_catalogs[entry.catalog] = rel
            seen_ids[album_id] = rel
            selected.append(entry)
    return selected


def _reserve(tmp: Path) -> None:
    try:
        fd = os.open(tmp, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        raise CompileError(
            f"{tmp} exists; another compile is running or a previous one crashed "
            "(remove the file to continue)"
        ) from None
    os.close(fd)


def compile_database(
    tree: RepositoryTree,
    output: Union[str, Path],
    strict: bool = False,
    compiled_at: Optional[str] = None,
) -> CompileReport:
    """Build a fresh snapshot of `tree` at `output`.

    Raises:
        CompileError: in strict mode when the repository has violations, or
            when another compile holds the temporary file.
    """
    output = Path(output)
    if strict:
        violations = validate_repository(tree)
        if violations:
            exc = CompileError(
                f"Repository has {len(violations)} violation(s); refusing to compile in strict mode"
            )
            exc.violations = violations
            raise exc

    stamp = compiled_at or datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    report = CompileReport(output=output, compiled_at=stamp)
    entries = _select_entries(tree, report)
    for document, reason in report.excluded:
        logger.warning("Excluding %s: %s", document, reason)

    output.parent.mkdir(parents=True, exist_ok=True)
    tmp = output.with_name(output.name + ".tmp")
    _reserve(tmp)
    try:
        conn = sqlite3.connect(tmp)
        try:
            init_db(conn)
            config = tree.ctx.config
            conn.execute(
                "INSERT INTO repo_info (name, edition, version, compiled_at) VALUES (?, ?, ?, ?)",
                (config.name, config.edition, config.version, stamp),
            )
            for entry in entries:
                discs, tracks = insert_album(conn, entry)
                report.albums += 1
                report.discs += discs
                report.tracks += tracks
            conn.commit()
        finally:
            conn.close()
        os.replace(tmp, output)
    except sqlite3.Error as e:
        tmp.unlink(missing_ok=True)
        raise CompileError(f"Failed to write database: {e}") from e
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info(
        "Compiled %d album(s), %d disc(s), %d track(s) into %s",
        report.albums,
        report.discs,
        report.tracks,
        output,
    )
    return report


# --- Reading ---


def open_snapshot(path: Union[str, Path]) -> sqlite3.Connection:
    """Open a compiled snapshot read-only."""
    path = Path(path)
    if not path.is_file():
        raise DiscatError(f"No database at {path}; run `discat db compile` first")
    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def snapshot_stats(conn: sqlite3.Connection) -> Dict[str, Any]:
    info = conn.execute("SELECT name, edition, version, compiled_at FROM repo_info").fetchone()
    stats: Dict[str, Any] = dict(info) if info else {}
    for table in ("albums", "discs", "tracks"):
        stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    return stats


def query_album(conn: sqlite3.Connection, catalog: str) -> Optional[Dict[str, Any]]:
    """An album with its discs and tracks as nested dicts, or None."""
    row = conn.execute("SELECT * FROM albums WHERE catalog = ?", (catalog,)).fetchone()
    if row is None:
        return None
    album = dict(row)
    album["compilation"] = bool(album["compilation"])
    album["discs"] = []
    discs = conn.execute(
        "SELECT * FROM discs WHERE album_id = ? ORDER BY disc_index", (album["album_id"],)
    ).fetchall()
    for disc_row in discs:
        disc = dict(disc_row)
        disc["tracks"] = [
            dict(t)
            for t in conn.execute(
                "SELECT track_index, ordinal, title, artist, track_type FROM tracks "
                "WHERE disc_id = ? ORDER BY track_index",
                (disc["id"],),
            )
        ]
        del disc["id"]
        del disc["album_id"]
        album["discs"].append(disc)
    return album
