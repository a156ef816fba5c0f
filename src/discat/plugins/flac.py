"""
FLAC tag access using Mutagen.

`FlacTagReader` feeds the importer with titles and artists from Vorbis
comments; `apply_album` writes a repository album back onto a directory of
FLAC files, one disc per sub-directory for multi-disc albums.
"""

import logging
from pathlib import Path
from typing import List, Optional

from mutagen import MutagenError
from mutagen.flac import FLAC

from ..core.album import Album
from ..core.errors import AlbumInfoMismatch, DiscatError
from .base import TagReader, TagWriter, TrackTags

logger = logging.getLogger(__name__)

AUDIO_SUFFIX = ".flac"


def _first(audio: FLAC, key: str) -> Optional[str]:
    values = audio.get(key)
    if not values:
        return None
    value = str(values[0]).strip()
    return value or None


def _number(value: Optional[str]) -> Optional[int]:
    # "3/12" style values carry the total after the slash
    if not value:
        return None
    head = value.split("/", 1)[0].strip()
    return int(head) if head.isdigit() else None


def _open(path: Path) -> FLAC:
    try:
        return FLAC(path)
    except (MutagenError, OSError) as e:
        raise DiscatError(f"Cannot read FLAC file {path}: {e}") from e


class FlacTagReader(TagReader):
    def read(self, path: Path) -> TrackTags:
        audio = _open(path)
        return TrackTags(
            title=_first(audio, "title"),
            artist=_first(audio, "artist"),
            album=_first(audio, "album"),
            album_artist=_first(audio, "albumartist"),
            date=_first(audio, "date"),
            track_number=_number(_first(audio, "tracknumber")),
            disc_number=_number(_first(audio, "discnumber")),
        )


class FlacTagWriter(TagWriter):
    def write(self, path: Path, tags: dict) -> None:
        audio = _open(path)
        for key, value in tags.items():
            if value is not None:
                audio[key] = [str(value)]
        audio.save()


def audio_files(directory: Path) -> List[Path]:
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == AUDIO_SUFFIX
    )


def disc_directories(album: Album, directory: Path) -> List[Path]:
    """The directory holding each disc of `album` below `directory`."""
    if len(album.discs) <= 1:
        return [directory]
    subdirs = sorted(p for p in directory.iterdir() if p.is_dir())
    if len(subdirs) != len(album.discs):
        raise AlbumInfoMismatch(
            f"{album.catalog} has {len(album.discs)} discs but {directory} "
            f"has {len(subdirs)} disc directories"
        )
    return subdirs


def apply_album(album: Album, directory: Path, writer: Optional[TagWriter] = None) -> int:
    """Write `album`'s metadata to the FLAC files in `directory`.

    Returns the number of files tagged.

    Raises:
        AlbumInfoMismatch: when the disc or track counts on disk differ
            from the album.
    """
    writer = writer or FlacTagWriter()
    directory = Path(directory)
    disc_dirs = disc_directories(album, directory)

    planned = []
    for di, (disc, disc_dir) in enumerate(zip(album.discs, disc_dirs), start=1):
        files = audio_files(disc_dir)
        if len(files) != len(disc.tracks):
            raise AlbumInfoMismatch(
                f"{album.catalog} disc {di} has {len(disc.tracks)} tracks but "
                f"{disc_dir} has {len(files)} FLAC files"
            )
        planned.append((di, disc, files))

    tagged = 0
    for di, disc, files in planned:
        for ti, (track, path) in enumerate(zip(disc.tracks, files), start=1):
            writer.write(
                path,
                {
                    "TITLE": track.title,
                    "ARTIST": track.resolved_artist(disc, album),
                    "ALBUM": disc.resolved_title(album),
                    "ALBUMARTIST": disc.resolved_artist(album),
                    "DATE": str(album.release_date),
                    "TRACKNUMBER": ti,
                    "TRACKTOTAL": len(disc.tracks),
                    "DISCNUMBER": di,
                    "DISCTOTAL": len(album.discs),
                },
            )
            logger.debug("Tagged %s", path)
            tagged += 1
    return tagged
