import uuid
from pathlib import Path
from typing import Optional, Sequence

import pytest

from discat.core import config as config_mod
from discat.core.album import Album, Disc, ReleaseDate, Track
from discat.core.repository import RepoContext, init_repository, write_album


def stable_id(catalog: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"discat:{catalog}"))


def _make_album(
    catalog: str,
    tracks: Sequence[int] = (3,),
    *,
    title: Optional[str] = None,
    artist: str = "ClariS",
    with_id: bool = True,
    **fields,
) -> Album:
    discs = [
        Disc(tracks=[Track(title=f"Track {d}-{t}") for t in range(1, n + 1)])
        for d, n in enumerate(tracks, start=1)
    ]
    return Album(
        catalog=catalog,
        title=title or f"Album {catalog}",
        artist=artist,
        release_date=fields.pop("release_date", ReleaseDate(2021, 4, 14)),
        album_id=stable_id(catalog) if with_id else None,
        discs=discs,
        **fields,
    )


@pytest.fixture
def make_album():
    """Factory for albums with numbered tracks; `tracks` gives tracks per disc."""
    return _make_album


@pytest.fixture
def repo(tmp_path) -> RepoContext:
    """An empty version 2 repository with the flat layout."""
    return init_repository(tmp_path / "repo", "test-repo")


@pytest.fixture
def bucketed_repo(tmp_path) -> RepoContext:
    return init_repository(tmp_path / "bucketed", "bucketed-repo", layout="bucketed")


@pytest.fixture
def v1_repo(tmp_path) -> RepoContext:
    return init_repository(tmp_path / "legacy", "legacy-repo", version=1)


@pytest.fixture
def store():
    """Write an album into a repository (at its resolved path unless `path` is given)."""

    def _store(ctx: RepoContext, album: Album, path: Optional[str] = None) -> Path:
        return write_album(ctx, album, ctx.root / path if path else None)

    return _store


@pytest.fixture
def write_text():
    """Write raw document text at a path relative to the repository root."""

    def _write(ctx: RepoContext, rel: str, text: str) -> Path:
        path = ctx.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


SAMPLE_DOCUMENT = """\
[album]
album_id = "0f4a5a4e-1c6e-4d57-a3c5-4bb1f0a6d1a2"
title = "夏凪ぎ/宝物になった日"
artist = "やなぎなぎ"
date = 2020-12-16
type = "normal"
catalog = "KSLA-0178"

[[discs]]
catalog = "KSLA-0178"

[[discs.tracks]]
title = "夏凪ぎ"

[[discs.tracks]]
title = "宝物になった日"

[[discs.tracks]]
title = "夏凪ぎ (Instrumental)"
type = "instrumental"
"""


@pytest.fixture
def sample_document() -> str:
    return SAMPLE_DOCUMENT


@pytest.fixture
def isolated_settings(monkeypatch, tmp_path):
    """Keep the user's own settings files and DISCAT_* variables out of the way."""
    monkeypatch.chdir(tmp_path)
    user_dir = tmp_path / "user-config"
    monkeypatch.setattr(config_mod, "USER_SETTINGS_FILE", user_dir / "settings.toml")
    monkeypatch.setattr(config_mod, "USER_SECRETS_FILE", user_dir / ".secrets.toml")
    for key in ("REPOSITORY_PATH", "DATABASE_PATH", "WORKERS", "HTTP_TIMEOUT", "EDITOR"):
        monkeypatch.delenv(f"DISCAT_{key}", raising=False)
    monkeypatch.delenv("DISCAT_IGNORE_LOCAL_SETTINGS", raising=False)
