"""
Repository validation.

Checks are small functions registered with `@album_rule` (one album at a
time) or `@repository_rule` (the whole tree, for uniqueness). A check yields
`Violation`s and never raises for bad data, so a run always reports every
problem in the repository instead of stopping at the first one.
"""

import json
import logging
import shutil
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from .album import Album
from .catalog import is_valid_catalog
from .errors import (
    AlbumAlreadyExists,
    AlbumInfoMismatch,
    CatalogFilenameMismatch,
    DiscatError,
    InvalidArtistName,
    InvalidCatalogFormat,
    MigrationError,
)
from .migration import assign_album_id
from .naming import date_code, parse_album_dirname, sanitize
from .repository import RepoContext, RepositoryTree, atomic_write

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    DECODE_ERROR = "decode_error"
    INVALID_CATALOG_FORMAT = "invalid_catalog_format"
    CATALOG_FILENAME_MISMATCH = "catalog_filename_mismatch"
    CATALOG_PATH_MISMATCH = "catalog_path_mismatch"
    INVALID_ARTIST_NAME = "invalid_artist_name"
    EMPTY_DISCS = "empty_discs"
    EMPTY_TRACKS = "empty_tracks"
    MISSING_ALBUM_ID = "missing_album_id"
    INVALID_ALBUM_ID = "invalid_album_id"
    DUPLICATE_CATALOG = "duplicate_catalog"
    DUPLICATE_ALBUM_ID = "duplicate_album_id"
    ALBUM_ALREADY_EXISTS = "album_already_exists"
    ALBUM_INFO_MISMATCH = "album_info_mismatch"


FIXABLE_KINDS = frozenset({ViolationKind.MISSING_ALBUM_ID, ViolationKind.CATALOG_PATH_MISMATCH})

# Album artists that mean "many people" are only valid on compilations
VARIOUS_ARTISTS = frozenset({"various artists", "v.a.", "va"})
PLACEHOLDER_ARTISTS = frozenset({"unknown artist", "[unknown artist]", "unknown", "<unknown>"})


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    catalog: Optional[str]
    detail: str
    disc_index: Optional[int] = None
    track_index: Optional[int] = None
    path: Optional[str] = None

    @property
    def fixable(self) -> bool:
        return self.kind in FIXABLE_KINDS

    @property
    def location(self) -> str:
        where = self.catalog or self.path or "<unknown>"
        if self.disc_index is not None:
            where += f"/{self.disc_index}"
            if self.track_index is not None:
                where += f"#{self.track_index}"
        return where

    def sort_key(self):
        return (
            self.catalog or "",
            self.disc_index or 0,
            self.track_index or 0,
            self.kind.value,
            self.path or "",
            self.detail,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "catalog": self.catalog,
            "disc": self.disc_index,
            "track": self.track_index,
            "path": self.path,
            "detail": self.detail,
            "fixable": self.fixable,
        }

    def __str__(self) -> str:
        return f"{self.location}: {self.kind.value}: {self.detail}"


@dataclass
class RuleContext:
    """What an album rule gets to look at. `path` is None for candidates."""

    album: Album
    path: Optional[Path] = None
    ctx: Optional[RepoContext] = None

    @property
    def relpath(self) -> Optional[str]:
        if self.path is None:
            return None
        return self.ctx.relative(self.path) if self.ctx else str(self.path)

    def violation(
        self,
        kind: ViolationKind,
        detail: str,
        disc_index: Optional[int] = None,
        track_index: Optional[int] = None,
    ) -> Violation:
        return Violation(
            kind=kind,
            catalog=self.album.catalog,
            detail=detail,
            disc_index=disc_index,
            track_index=track_index,
            path=self.relpath,
        )


AlbumRule = Callable[[RuleContext], Iterable[Violation]]
RepositoryRule = Callable[[RepositoryTree], Iterable[Violation]]


@dataclass(frozen=True)
class _Registered:
    name: str
    func: Callable[..., Iterable[Violation]]
    needs_path: bool = False


ALBUM_RULES: List[_Registered] = []
REPOSITORY_RULES: List[_Registered] = []


def album_rule(name: Optional[str] = None, *, needs_path: bool = False):
    """Register a per-album check. `needs_path` rules are skipped for candidates."""

    def decorator(func: AlbumRule) -> AlbumRule:
        ALBUM_RULES.append(_Registered(name or func.__name__, func, needs_path))
        return func

    return decorator


def repository_rule(name: Optional[str] = None):
    def decorator(func: RepositoryRule) -> RepositoryRule:
        REPOSITORY_RULES.append(_Registered(name or func.__name__, func))
        return func

    return decorator


# --- Album rules ---


@album_rule("catalog-format")
def check_catalog_format(rc: RuleContext) -> Iterator[Violation]:
    if not is_valid_catalog(rc.album.catalog):
        yield rc.violation(
            ViolationKind.INVALID_CATALOG_FORMAT,
            f"{rc.album.catalog!r} is not a valid catalog number",
        )
    for di, disc in enumerate(rc.album.discs, start=1):
        if disc.catalog is not None and not is_valid_catalog(disc.catalog):
            yield rc.violation(
                ViolationKind.INVALID_CATALOG_FORMAT,
                f"disc catalog {disc.catalog!r} is not a valid catalog number",
                disc_index=di,
            )


@album_rule("catalog-filename", needs_path=True)
def check_catalog_filename(rc: RuleContext) -> Iterator[Violation]:
    implied = rc.ctx.layout.catalog_from_path(rc.path)
    if implied != rc.album.catalog:
        yield rc.violation(
            ViolationKind.CATALOG_FILENAME_MISMATCH,
            f"document is named {rc.path.name} but declares catalog {rc.album.catalog}",
        )


@album_rule("catalog-path", needs_path=True)
def check_catalog_path(rc: RuleContext) -> Iterator[Violation]:
    layout = rc.ctx.layout
    # A wrong file name is already reported; only judge the directory here
    if layout.catalog_from_path(rc.path) != rc.album.catalog:
        return
    if not is_valid_catalog(rc.album.catalog):
        return
    if not layout.is_expected_location(rc.path, rc.ctx.root):
        yield rc.violation(
            ViolationKind.CATALOG_PATH_MISMATCH,
            f"expected at {layout.resolve(rc.album.catalog)} under the {layout.name} layout",
        )


def artist_problem(name: str, allow_various: bool = False) -> Optional[str]:
    """Why `name` is not an acceptable artist name, or None."""
    if not name.strip():
        return "artist name is empty"
    if name != name.strip():
        return f"artist name {name!r} has leading or trailing whitespace"
    folded = name.casefold()
    if folded in PLACEHOLDER_ARTISTS:
        return f"{name!r} is a placeholder, not an artist"
    if folded in VARIOUS_ARTISTS and not allow_various:
        return f"{name!r} is only allowed on albums flagged as compilation"
    return None


@album_rule("artist-names")
def check_artist_names(rc: RuleContext) -> Iterator[Violation]:
    album = rc.album
    problem = artist_problem(album.artist, allow_various=album.compilation)
    if problem:
        yield rc.violation(ViolationKind.INVALID_ARTIST_NAME, problem)
    for di, disc in enumerate(album.discs, start=1):
        if disc.artist is not None:
            problem = artist_problem(disc.artist, allow_various=album.compilation)
            if problem:
                yield rc.violation(ViolationKind.INVALID_ARTIST_NAME, problem, disc_index=di)
        for ti, track in enumerate(disc.tracks, start=1):
            if track.artist is not None:
                problem = artist_problem(track.artist)
                if problem:
                    yield rc.violation(
                        ViolationKind.INVALID_ARTIST_NAME, problem, disc_index=di, track_index=ti
                    )


@album_rule("non-empty")
def check_non_empty(rc: RuleContext) -> Iterator[Violation]:
    if not rc.album.discs:
        yield rc.violation(ViolationKind.EMPTY_DISCS, "album has no discs")
    for di, disc in enumerate(rc.album.discs, start=1):
        if not disc.tracks:
            yield rc.violation(ViolationKind.EMPTY_TRACKS, "disc has no tracks", disc_index=di)


@album_rule("album-id")
def check_album_id(rc: RuleContext) -> Iterator[Violation]:
    album_id = rc.album.album_id
    if album_id is None:
        if rc.ctx is None or rc.ctx.config.version >= 2:
            yield rc.violation(ViolationKind.MISSING_ALBUM_ID, "album has no album_id")
        return
    try:
        uuid.UUID(album_id)
    except ValueError:
        yield rc.violation(ViolationKind.INVALID_ALBUM_ID, f"{album_id!r} is not a UUID")


# --- Repository rules ---


@repository_rule("duplicate-catalog")
def check_duplicate_catalogs(tree: RepositoryTree) -> Iterator[Violation]:
    for catalog in tree.catalogs():
        entries = tree.entries_for(catalog)
        if len(entries) > 1:
            paths = [tree.ctx.relative(e.path) for e in entries]
            for path in paths[1:]:
                yield Violation(
                    kind=ViolationKind.DUPLICATE_CATALOG,
                    catalog=catalog,
                    detail=f"catalog already defined in {paths[0]}",
                    path=path,
                )


@repository_rule("duplicate-album-id")
def check_duplicate_album_ids(tree: RepositoryTree) -> Iterator[Violation]:
    seen: Dict[str, str] = {}
    for entry in tree:
        album_id = entry.album.album_id
        if album_id is None:
            continue
        path = tree.ctx.relative(entry.path)
        if album_id in seen:
            yield Violation(
                kind=ViolationKind.DUPLICATE_ALBUM_ID,
                catalog=entry.catalog,
                detail=f"album_id {album_id} already used by {seen[album_id]}",
                path=path,
            )
        else:
            seen[album_id] = path


# --- Runners ---


def run_album_rules(rc: RuleContext) -> List[Violation]:
    violations: List[Violation] = []
    for rule in ALBUM_RULES:
        if rule.needs_path and (rc.path is None or rc.ctx is None):
            continue
        violations.extend(rule.func(rc))
    return violations


def _sorted(violations: Iterable[Violation]) -> List[Violation]:
    return sorted(violations, key=Violation.sort_key)


def validate_repository(tree: RepositoryTree) -> List[Violation]:
    """Every violation in `tree`, sorted by catalog, disc, track and kind."""
    ctx = tree.ctx

    def _check(entry) -> List[Violation]:
        return run_album_rules(RuleContext(album=entry.album, path=entry.path, ctx=ctx))

    violations: List[Violation] = []
    with ThreadPoolExecutor(max_workers=max(1, ctx.workers)) as ex:
        for found in ex.map(_check, tree.entries):
            violations.extend(found)

    for failure in tree.failures:
        violations.append(
            Violation(
                kind=ViolationKind.DECODE_ERROR,
                catalog=ctx.layout.catalog_from_path(failure.path),
                detail=f"{failure.error.kind.value}: {failure.error.message}"
                + (f" (at {failure.error.field})" if failure.error.field else ""),
                path=ctx.relative(failure.path),
            )
        )

    for rule in REPOSITORY_RULES:
        violations.extend(rule.func(tree))

    result = _sorted(violations)
    logger.debug("Validated %d documents, %d violation(s)", tree.document_count, len(result))
    return result


def _dirname_mismatches(album: Album, source_dir: Path) -> Iterator[Violation]:
    def mismatch(detail: str) -> Violation:
        return Violation(
            kind=ViolationKind.ALBUM_INFO_MISMATCH,
            catalog=album.catalog,
            detail=detail,
            path=str(source_dir),
        )

    try:
        info = parse_album_dirname(source_dir.name)
    except ValueError as e:
        yield mismatch(str(e))
        return
    if info.catalog != album.catalog:
        yield mismatch(f"directory catalog {info.catalog} differs from {album.catalog}")
    if info.title != sanitize(album.full_title):
        yield mismatch(f"directory title {info.title!r} differs from {album.full_title!r}")
    if info.disc_count != len(album.discs):
        yield mismatch(f"directory says {info.disc_count} disc(s), album has {len(album.discs)}")
    expected = date_code(album.release_date, long=len(info.date_code) == 8)
    if info.date_code != expected:
        yield mismatch(f"directory date {info.date_code} differs from {album.release_date}")


def validate_candidate(
    candidate: Album,
    tree: RepositoryTree,
    source_dir: Optional[Union[str, Path]] = None,
) -> List[Violation]:
    """Check an album that is about to be added to `tree`."""
    violations = run_album_rules(RuleContext(album=candidate, ctx=tree.ctx))
    if candidate.catalog in tree:
        existing = tree.get(candidate.catalog)
        violations.append(
            Violation(
                kind=ViolationKind.ALBUM_ALREADY_EXISTS,
                catalog=candidate.catalog,
                detail=f"already stored at {tree.ctx.relative(existing.path)}",
            )
        )
    if candidate.album_id is not None:
        owner = tree.find_by_id(candidate.album_id)
        if owner is not None:
            violations.append(
                Violation(
                    kind=ViolationKind.DUPLICATE_ALBUM_ID,
                    catalog=candidate.catalog,
                    detail=f"album_id {candidate.album_id} already used by {owner.catalog}",
                )
            )
    if source_dir is not None:
        violations.extend(_dirname_mismatches(candidate, Path(source_dir)))
    return _sorted(violations)


# --- Reporting ---


@dataclass
class ValidationReport:
    checked: int
    violations: List[Violation] = field(default_factory=list)
    fixed: int = 0

    @property
    def failed(self) -> int:
        """Number of distinct albums with at least one violation."""
        return len({v.catalog or v.path for v in self.violations})

    @property
    def ok(self) -> bool:
        return not self.violations

    def as_dict(self) -> Dict[str, Any]:
        return {
            "checked": self.checked,
            "failed": self.failed,
            "fixed": self.fixed,
            "violations": [v.as_dict() for v in self.violations],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=indent)


def _fix_one(ctx: RepoContext, violation: Violation) -> bool:
    if violation.path is None:
        return False
    path = ctx.root / violation.path
    if violation.kind is ViolationKind.MISSING_ALBUM_ID:
        text = path.read_bytes().decode("utf-8")
        new = assign_album_id(text)
        if new is None:
            return False
        atomic_write(path, new.encode("utf-8"))
        logger.info("Assigned album_id to %s", violation.path)
        return True
    if violation.kind is ViolationKind.CATALOG_PATH_MISMATCH:
        target = ctx.path_for(violation.catalog)
        if target.exists():
            logger.warning(
                "Not moving %s: %s already exists", violation.path, ctx.relative(target)
            )
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(path), str(target))
        logger.info("Moved %s to %s", violation.path, ctx.relative(target))
        return True
    return False


def fix_repository(ctx: RepoContext, violations: Sequence[Violation]) -> int:
    """Repair the fixable violations in place. Returns how many were fixed.

    Trees loaded before the fix are stale; reload them before validating again.
    """
    fixed = 0
    for violation in violations:
        if not violation.fixable:
            continue
        try:
            if _fix_one(ctx, violation):
                fixed += 1
        except (OSError, UnicodeDecodeError, MigrationError) as e:
            logger.warning("Could not fix %s: %s", violation, e)
    return fixed


# Raised in this order of precedence when several kinds are present
_EXCEPTION_ORDER = (
    ViolationKind.ALBUM_ALREADY_EXISTS,
    ViolationKind.INVALID_CATALOG_FORMAT,
    ViolationKind.CATALOG_FILENAME_MISMATCH,
    ViolationKind.ALBUM_INFO_MISMATCH,
    ViolationKind.INVALID_ARTIST_NAME,
)


def _exception_for(violation: Violation) -> DiscatError:
    kind = violation.kind
    if kind is ViolationKind.ALBUM_ALREADY_EXISTS:
        return AlbumAlreadyExists(violation.catalog)
    if kind is ViolationKind.INVALID_CATALOG_FORMAT:
        return InvalidCatalogFormat(violation.catalog)
    if kind is ViolationKind.CATALOG_FILENAME_MISMATCH:
        return CatalogFilenameMismatch(str(violation))
    if kind is ViolationKind.ALBUM_INFO_MISMATCH:
        return AlbumInfoMismatch(str(violation))
    if kind is ViolationKind.INVALID_ARTIST_NAME:
        return InvalidArtistName(str(violation))
    return DiscatError(str(violation))


def raise_for_violations(violations: Sequence[Violation]) -> None:
    """Raise the exception matching the most significant violation, if any.

    The raised exception carries the full list as `.violations`.
    """
    if not violations:
        return
    ranked = sorted(
        violations,
        key=lambda v: (
            _EXCEPTION_ORDER.index(v.kind) if v.kind in _EXCEPTION_ORDER else len(_EXCEPTION_ORDER),
            v.sort_key(),
        ),
    )
    exc = _exception_for(ranked[0])
    exc.violations = list(violations)
    raise exc
