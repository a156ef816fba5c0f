"""
Repository format migrations.

Each migration is a text transformation of one album document, tagged with
the repository format version it upgrades to. Transformations edit the
document text directly instead of decoding and re-encoding it, so comments,
key order and formatting survive. A transformation returns the new text, or
None when the document needs no change.
"""

import logging
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .codec import decode
from .errors import DecodeError, MigrationError
from .repository import RepoContext, atomic_write, document_paths

logger = logging.getLogger(__name__)

_ALBUM_HEADER_RE = re.compile(r"^[ \t]*\[[ \t]*album[ \t]*\][ \t]*(?:#[^\r\n]*)?(\r?\n|$)", re.M)
_TABLE_HEADER_RE = re.compile(r"^[ \t]*\[", re.M)
_ALBUM_ID_KEY_RE = re.compile(r"""^[ \t]*(?:album_id|"album_id"|'album_id')[ \t]*=""", re.M)


def _album_section(text: str) -> Tuple[int, int, str]:
    """(start, end, newline) of the body of the `[album]` table."""
    m = _ALBUM_HEADER_RE.search(text)
    if not m:
        raise MigrationError("no [album] table header")
    start = m.end()
    nxt = _TABLE_HEADER_RE.search(text, start)
    end = nxt.start() if nxt else len(text)
    return start, end, m.group(1)


def has_album_id(text: str) -> bool:
    start, end, _ = _album_section(text)
    return _ALBUM_ID_KEY_RE.search(text, start, end) is not None


def assign_album_id(text: str, album_id: Optional[str] = None) -> Optional[str]:
    """Insert `album_id = "<uuid4>"` right after the `[album]` header."""
    start, end, newline = _album_section(text)
    if _ALBUM_ID_KEY_RE.search(text, start, end):
        return None
    album_id = album_id or str(uuid.uuid4())
    if newline:
        line = f'album_id = "{album_id}"{newline}'
        return text[:start] + line + text[start:]
    # header is the last line of the file
    eol = "\r\n" if "\r\n" in text else "\n"
    return f'{text}{eol}album_id = "{album_id}"{eol}'


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    transform: Callable[[str], Optional[str]]
    description: str = ""


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        version=2,
        name="assign-album-id",
        transform=assign_album_id,
        description="Give every album a stable UUID album_id",
    ),
)

# Version 1 is the baseline format and has no migration of its own
CURRENT_VERSION = max(m.version for m in MIGRATIONS)


def get_migration(name: str) -> Migration:
    for migration in MIGRATIONS:
        if migration.name == name:
            return migration
    known = ", ".join(m.name for m in MIGRATIONS)
    raise MigrationError(f"Unknown migration {name!r}; available: {known}")


@dataclass
class MigrationReport:
    from_version: int
    to_version: int
    dry_run: bool = False
    checked: int = 0
    changed: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_dict(self) -> Dict[str, Any]:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "dry_run": self.dry_run,
            "checked": self.checked,
            "changed": list(self.changed),
            "failures": [{"path": p, "error": e} for p, e in self.failures],
        }


def migrate_document(text: str, migrations: Sequence[Migration]) -> Optional[str]:
    """Apply `migrations` in order. Returns the new text or None if unchanged."""
    decode(text)
    current = text
    for migration in migrations:
        result = migration.transform(current)
        if result is not None:
            current = result
    if current == text:
        return None
    decode(current)
    return current


def _apply(
    ctx: RepoContext, migrations: Sequence[Migration], report: MigrationReport
) -> MigrationReport:
    paths = document_paths(ctx)

    def _one(path: Path) -> Tuple[Path, Optional[str], Optional[str]]:
        try:
            raw = path.read_bytes()
            new = migrate_document(raw.decode("utf-8"), migrations)
            if new is not None and not report.dry_run:
                atomic_write(path, new.encode("utf-8"))
            return path, new, None
        except (OSError, UnicodeDecodeError, DecodeError, MigrationError) as e:
            return path, None, str(e)

    with ThreadPoolExecutor(max_workers=max(1, ctx.workers)) as ex:
        for path, new, error in ex.map(_one, paths):
            report.checked += 1
            rel = ctx.relative(path)
            if error is not None:
                logger.warning("Migration failed for %s: %s", rel, error)
                report.failures.append((rel, error))
            elif new is not None:
                logger.debug("%s %s", "Would migrate" if report.dry_run else "Migrated", rel)
                report.changed.append(rel)
    return report


def migrate(
    ctx: RepoContext, target_version: Optional[int] = None, dry_run: bool = False
) -> MigrationReport:
    """Upgrade every document (and repo.toml) to `target_version`.

    The recorded repository version only advances when every document
    migrated cleanly.
    """
    current = ctx.config.version
    target = CURRENT_VERSION if target_version is None else target_version
    if target > CURRENT_VERSION:
        raise MigrationError(
            f"Unknown repository version {target}; this release supports up to {CURRENT_VERSION}"
        )
    if target <= current:
        logger.info("Repository is already at version %d", current)
        return MigrationReport(from_version=current, to_version=current, dry_run=dry_run)

    pending = [m for m in MIGRATIONS if current < m.version <= target]
    logger.info(
        "Migrating repository from version %d to %d (%s)",
        current,
        target,
        ", ".join(m.name for m in pending) or "no document changes",
    )
    report = _apply(
        ctx, pending, MigrationReport(from_version=current, to_version=target, dry_run=dry_run)
    )
    if report.failures:
        report.to_version = current
        logger.warning(
            "%d document(s) failed; repository version stays at %d",
            len(report.failures),
            current,
        )
    elif not dry_run:
        ctx.config.version = target
        ctx.config.save(ctx.root)
    return report


def run_migration(ctx: RepoContext, name: str, dry_run: bool = False) -> MigrationReport:
    """Run one migration over every document regardless of the recorded version."""
    migration = get_migration(name)
    version = ctx.config.version
    report = MigrationReport(from_version=version, to_version=version, dry_run=dry_run)
    return _apply(ctx, [migration], report)
