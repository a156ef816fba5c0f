"""
Render an album (or one of its discs) for other tools.

`render` is a pure function of the album: it never modifies it, and every
format except `cue` writes the whole album unless a disc is selected.
"""

import dataclasses
import json
from enum import Enum
from typing import Optional

from .. import __version__
from .album import Album, Disc
from .codec import encode_text, to_dict
from .errors import InvalidReference
from .naming import track_filename


class ExportFormat(str, Enum):
    TITLE = "title"
    ARTIST = "artist"
    DATE = "date"
    CUE = "cue"
    TOML = "toml"
    JSON = "json"


GENERATED_BY = f"Generated by discat v{__version__}"


def _select_disc(album: Album, disc_index: int) -> Disc:
    try:
        return album.disc(disc_index)
    except IndexError:
        raise InvalidReference(
            f"{album.catalog}/{disc_index}",
            f"album has {len(album.discs)} disc(s)",
        ) from None


def render_cue(album: Album, disc_index: int = 1, clean: bool = False) -> str:
    """A cue sheet listing one disc as `NN. Title.flac` files."""
    disc = _select_disc(album, disc_index)
    lines = [
        f'TITLE "{disc.resolved_title(album)}"',
        f'PERFORMER "{disc.resolved_artist(album)}"',
        f'REM DATE "{album.release_date}"',
    ]
    if not clean:
        lines.append(f'REM COMMENT "{GENERATED_BY}"')
    for ti, track in enumerate(disc.tracks, start=1):
        lines.extend(
            [
                f'FILE "{track_filename(ti, track.title)}" WAVE',
                "  TRACK 01 AUDIO",
                f'    TITLE "{track.title}"',
                f'    PERFORMER "{track.resolved_artist(disc, album)}"',
                "    INDEX 01 00:00:00",
            ]
        )
    return "\n".join(lines) + "\n"


def render(
    album: Album,
    fmt: str,
    disc_index: Optional[int] = None,
    clean: bool = False,
) -> str:
    """Render `album` in `fmt` (see `ExportFormat`).

    With `disc_index` the output is limited to that disc where the format
    allows it. `clean` drops the "Generated by" marker.
    """
    fmt = ExportFormat(fmt)
    if disc_index is not None:
        disc = _select_disc(album, disc_index)

    if fmt is ExportFormat.TITLE:
        if disc_index is not None:
            return disc.resolved_title(album) + "\n"
        return album.full_title + "\n"
    if fmt is ExportFormat.ARTIST:
        if disc_index is not None:
            return disc.resolved_artist(album) + "\n"
        return album.artist + "\n"
    if fmt is ExportFormat.DATE:
        return f"{album.release_date}\n"
    if fmt is ExportFormat.CUE:
        return render_cue(album, disc_index or 1, clean=clean)

    scoped = album
    if disc_index is not None:
        scoped = dataclasses.replace(album, discs=[disc])
    if fmt is ExportFormat.TOML:
        text = encode_text(scoped)
        return text if clean else f"# {GENERATED_BY}\n{text}"
    return json.dumps(to_dict(scoped), ensure_ascii=False, indent=2) + "\n"
