"""
Repository settings, the per-invocation context and the repository tree.

A repository is a directory holding `repo.toml` and an `album/` directory of
album documents. `RepoContext` bundles everything the engine needs to know
about one repository (root, settings, layout policy, worker count) and is
passed explicitly to every component.

`RepositoryTree.load` walks the album directory and decodes every document.
Documents are independent, so decoding is spread over a thread pool; failures
are collected next to the successfully decoded entries instead of aborting
the walk. The tree is read-only once built. Anything that rewrites documents
(migrate, fix, add) must load a fresh tree afterwards.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import toml

from .album import Album
from .catalog import ALBUM_DIR, DOCUMENT_SUFFIX, LAYOUTS, LayoutPolicy, get_layout
from .codec import DocumentEncoder, decode, encode
from .errors import AlbumNotFound, DecodeError, DecodeErrorKind, MalformedRepository

logger = logging.getLogger(__name__)

REPO_FILE = "repo.toml"
REPO_KEYS = ("name", "edition", "version", "layout", "cover", "lyric")
ASSET_KEYS = ("enable", "root")


@dataclass
class AssetSetting:
    """Where the repository keeps an asset kind (covers, lyrics), if at all."""

    enable: bool
    root: Optional[str] = None

    @classmethod
    def from_table(cls, key: str, table) -> "AssetSetting":
        if not isinstance(table, dict):
            raise MalformedRepository(f"[repo.{key}] must be a table")
        unknown = sorted(set(table) - set(ASSET_KEYS))
        if unknown:
            raise MalformedRepository(f"Unknown keys in [repo.{key}]: {', '.join(unknown)}")
        enable = table.get("enable")
        if not isinstance(enable, bool):
            raise MalformedRepository(f"[repo.{key}] needs a boolean `enable`")
        root = table.get("root")
        if root is not None and not isinstance(root, str):
            raise MalformedRepository(f"[repo.{key}] `root` must be a string")
        return cls(enable=enable, root=root)

    def to_table(self) -> Dict[str, object]:
        table: Dict[str, object] = {"enable": self.enable}
        if self.root is not None:
            table["root"] = self.root
        return table


def _asset(repo, key: str) -> Optional[AssetSetting]:
    if key not in repo:
        return None
    return AssetSetting.from_table(key, repo[key])


@dataclass
class RepositoryConfig:
    """The `[repo]` table of repo.toml."""

    name: str
    edition: str = "1"
    version: int = 1
    layout: str = "flat"
    cover: Optional[AssetSetting] = None
    lyric: Optional[AssetSetting] = None

    @classmethod
    def from_str(cls, text: str) -> "RepositoryConfig":
        try:
            data = toml.loads(text)
        except toml.TomlDecodeError as e:
            raise MalformedRepository(f"{REPO_FILE} is not valid TOML: {e}") from e
        repo = data.get("repo")
        if not isinstance(repo, dict):
            raise MalformedRepository(f"{REPO_FILE} has no [repo] table")
        unknown = sorted(set(repo) - set(REPO_KEYS))
        if unknown:
            raise MalformedRepository(f"Unknown keys in [repo]: {', '.join(unknown)}")
        if not isinstance(repo.get("name"), str):
            raise MalformedRepository("[repo] needs a string `name`")

        version = repo.get("version", 1)
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise MalformedRepository(f"Invalid repository version: {version!r}")
        layout = repo.get("layout", "flat")
        if layout not in LAYOUTS:
            raise MalformedRepository(
                f"Unknown layout {layout!r}; expected one of: {', '.join(sorted(LAYOUTS))}"
            )
        return cls(
            name=repo["name"],
            edition=str(repo.get("edition", "1")),
            version=version,
            layout=layout,
            cover=_asset(repo, "cover"),
            lyric=_asset(repo, "lyric"),
        )

    @classmethod
    def load(cls, root: Path) -> "RepositoryConfig":
        path = root / REPO_FILE
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise MalformedRepository(f"{root} is not a repository (no {REPO_FILE})") from None
        return cls.from_str(text)

    def to_str(self) -> str:
        repo: Dict[str, object] = {
            "name": self.name,
            "edition": self.edition,
            "version": self.version,
            "layout": self.layout,
        }
        if self.cover is not None:
            repo["cover"] = self.cover.to_table()
        if self.lyric is not None:
            repo["lyric"] = self.lyric.to_table()
        return toml.dumps({"repo": repo}, encoder=DocumentEncoder())

    def save(self, root: Path) -> None:
        atomic_write(root / REPO_FILE, self.to_str().encode("utf-8"))


@dataclass
class RepoContext:
    root: Path
    config: RepositoryConfig
    layout: LayoutPolicy
    workers: int = 4

    @classmethod
    def open(cls, root: Union[str, Path], workers: int = 4) -> "RepoContext":
        root = Path(root).expanduser().resolve()
        config = RepositoryConfig.load(root)
        return cls(root=root, config=config, layout=get_layout(config.layout), workers=workers)

    @property
    def album_root(self) -> Path:
        return self.root / ALBUM_DIR

    def path_for(self, catalog: str) -> Path:
        return self.root / self.layout.resolve(catalog)

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)


@dataclass
class AlbumEntry:
    path: Path
    album: Album

    @property
    def catalog(self) -> str:
        return self.album.catalog


@dataclass
class LoadFailure:
    path: Path
    error: DecodeError


def atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".part")
    tmp.write_bytes(data)
    os.replace(tmp, path)


def document_paths(ctx: RepoContext) -> List[Path]:
    """Every album document below the album directory, sorted."""
    if not ctx.album_root.is_dir():
        return []
    return sorted(
        p
        for p in ctx.album_root.rglob(f"*{DOCUMENT_SUFFIX}")
        if p.is_file() and not p.name.startswith(".")
    )


def read_document(path: Path) -> Album:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(
            DecodeErrorKind.MALFORMED_SYNTAX, f"unreadable: {e}", path=str(path)
        ) from e
    return decode(data, path=str(path))


def write_album(ctx: RepoContext, album: Album, path: Optional[Path] = None) -> Path:
    """Encode `album` and write it to `path` (default: its resolved location)."""
    target = path or ctx.path_for(album.catalog)
    atomic_write(target, encode(album))
    logger.debug("Wrote %s", ctx.relative(target))
    return target


def init_repository(
    root: Union[str, Path],
    name: str,
    *,
    layout: str = "flat",
    edition: str = "1",
    version: Optional[int] = None,
) -> RepoContext:
    """Create repo.toml and the album directory in `root`."""
    from .migration import CURRENT_VERSION

    root = Path(root).expanduser().resolve()
    if (root / REPO_FILE).exists():
        raise MalformedRepository(f"{root} already contains {REPO_FILE}")
    get_layout(layout)
    config = RepositoryConfig(
        name=name, edition=edition, version=version or CURRENT_VERSION, layout=layout
    )
    root.mkdir(parents=True, exist_ok=True)
    config.save(root)
    (root / ALBUM_DIR).mkdir(exist_ok=True)
    logger.info("Initialized repository %r at %s", name, root)
    return RepoContext.open(root)


class RepositoryTree:
    """Index of every album document in a repository."""

    def __init__(
        self,
        ctx: RepoContext,
        entries: Sequence[AlbumEntry],
        failures: Sequence[LoadFailure] = (),
    ):
        self.ctx = ctx
        self.entries: Tuple[AlbumEntry, ...] = tuple(
            sorted(entries, key=lambda e: (e.catalog, str(e.path)))
        )
        self.failures: Tuple[LoadFailure, ...] = tuple(
            sorted(failures, key=lambda f: str(f.path))
        )
        self._by_catalog: Dict[str, List[AlbumEntry]] = {}
        for entry in self.entries:
            self._by_catalog.setdefault(entry.catalog, []).append(entry)

    @classmethod
    def load(cls, ctx: RepoContext) -> "RepositoryTree":
        paths = document_paths(ctx)
        logger.debug("Loading %d documents from %s", len(paths), ctx.album_root)

        def _load_one(path: Path) -> Union[AlbumEntry, LoadFailure]:
            try:
                return AlbumEntry(path=path, album=read_document(path))
            except DecodeError as e:
                return LoadFailure(path=path, error=e)

        entries: List[AlbumEntry] = []
        failures: List[LoadFailure] = []
        with ThreadPoolExecutor(max_workers=max(1, ctx.workers)) as ex:
            for result in ex.map(_load_one, paths):
                if isinstance(result, LoadFailure):
                    logger.warning("Failed to decode %s: %s", ctx.relative(result.path), result.error)
                    failures.append(result)
                else:
                    entries.append(result)
        return cls(ctx, entries, failures)

    def reload(self) -> "RepositoryTree":
        return RepositoryTree.load(self.ctx)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[AlbumEntry]:
        return iter(self.entries)

    def __contains__(self, catalog: object) -> bool:
        return catalog in self._by_catalog

    def catalogs(self) -> List[str]:
        return sorted(self._by_catalog)

    def albums(self) -> List[Album]:
        return [e.album for e in self.entries]

    def entries_for(self, catalog: str) -> List[AlbumEntry]:
        return list(self._by_catalog.get(catalog, ()))

    def get(self, catalog: str) -> AlbumEntry:
        entries = self._by_catalog.get(catalog)
        if not entries:
            raise AlbumNotFound(catalog)
        return entries[0]

    def find_by_id(self, album_id: str) -> Optional[AlbumEntry]:
        for entry in self.entries:
            if entry.album.album_id == album_id:
                return entry
        return None

    @property
    def document_count(self) -> int:
        return len(self.entries) + len(self.failures)
