"""
Building album candidates from directories of audio files and adding them.

A candidate directory follows the `[YYMMDD][CATALOG] Title [N Discs]`
convention. Single disc albums keep their tracks directly in the directory;
multi-disc albums have one sub-directory per disc, sorted by name. Tag data
comes from a `TagReader` when one is given, otherwise from `NN. Title.flac`
file names.
"""

import dataclasses
import logging
import re
import uuid
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .album import Album, Disc, Track
from .errors import AlbumInfoMismatch
from .naming import AlbumDirName, parse_album_dirname, parse_track_filename
from .repository import RepoContext, RepositoryTree, write_album
from .validation import PLACEHOLDER_ARTISTS, raise_for_violations, validate_candidate

__all__ = [
    "AUDIO_SUFFIXES",
    "AlbumDirName",
    "UNKNOWN_ARTIST",
    "add_album",
    "build_candidate",
    "parse_album_dirname",
]

logger = logging.getLogger(__name__)

AUDIO_SUFFIXES = (".flac",)
UNKNOWN_ARTIST = "[Unknown Artist]"
VARIOUS_ARTISTS = "Various Artists"

_EDITION_RE = re.compile(r"^(?P<title>.+?)【(?P<edition>[^】]+)】$")


def _audio_files(directory: Path) -> List[Path]:
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in AUDIO_SUFFIXES
    )


def _disc_directories(directory: Path, disc_count: int) -> List[Path]:
    if disc_count <= 1:
        return [directory]
    subdirs = sorted(p for p in directory.iterdir() if p.is_dir())
    if len(subdirs) != disc_count:
        raise AlbumInfoMismatch(
            f"{directory.name} announces {disc_count} discs but has {len(subdirs)} sub-directories"
        )
    return subdirs


def _consensus(names: Iterable[Optional[str]]) -> Tuple[Optional[str], int]:
    """The most common usable name and the number of distinct usable names."""
    counts = Counter(
        n for n in names if n and n.strip() and n.casefold() not in PLACEHOLDER_ARTISTS
    )
    if not counts:
        return None, 0
    return counts.most_common(1)[0][0], len(counts)


def build_candidate(directory: Union[str, Path], reader=None) -> Album:
    """Build an Album from a candidate directory.

    `reader` is a `TagReader`; without one, titles come from file names and
    the album artist is unknown.

    Raises:
        AlbumInfoMismatch: when the directory name does not follow the
            convention or the disc layout does not match it.
    """
    directory = Path(directory)
    try:
        info = parse_album_dirname(directory.name)
    except ValueError as e:
        raise AlbumInfoMismatch(str(e)) from None

    title, edition = info.title, None
    m = _EDITION_RE.match(info.title)
    if m:
        title, edition = m.group("title"), m.group("edition")

    discs: List[Disc] = []
    track_artists: List[Optional[str]] = []
    album_artists: List[Optional[str]] = []
    for disc_dir in _disc_directories(directory, info.disc_count):
        tracks = []
        for path in _audio_files(disc_dir):
            tags = reader.read(path) if reader is not None else None
            track_title = (tags and tags.title) or parse_track_filename(path.stem) or path.stem
            artist = tags.artist if tags else None
            if tags:
                album_artists.append(tags.album_artist)
            track_artists.append(artist)
            tracks.append(Track(title=track_title, artist=artist))
        discs.append(Disc(tracks=tracks))

    compilation = False
    album_artist, _ = _consensus(album_artists)
    if album_artist is None:
        album_artist, distinct = _consensus(track_artists)
        if distinct > 1:
            album_artist, compilation = VARIOUS_ARTISTS, True
    if album_artist is None:
        album_artist = UNKNOWN_ARTIST

    album = Album(
        catalog=info.catalog,
        title=title,
        edition=edition,
        artist=album_artist,
        release_date=info.release_date,
        compilation=compilation,
        discs=discs,
    )
    album.format()
    logger.debug(
        "Built candidate %s with %d disc(s), %d track(s)",
        album.catalog,
        len(album.discs),
        album.track_count,
    )
    return album


def add_album(
    ctx: RepoContext,
    tree: RepositoryTree,
    album: Album,
    source_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Validate `album` against `tree` and write it as a new document.

    Repositories at format version 2 or later get an `album_id` assigned
    when the album has none. The tree is not modified; reload it to see
    the new album.

    Raises:
        AlbumAlreadyExists, AlbumInfoMismatch, ...: for the most significant
            violation found; nothing is written in that case.
    """
    if album.album_id is None and ctx.config.version >= 2:
        album = dataclasses.replace(album, album_id=str(uuid.uuid4()))
    raise_for_violations(validate_candidate(album, tree, source_dir=source_dir))
    path = write_album(ctx, album)
    logger.info("Added %s at %s", album.catalog, ctx.relative(path))
    return path
