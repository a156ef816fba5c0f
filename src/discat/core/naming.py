"""
Naming conventions for album source directories and audio files.

Source directories are named `[YYMMDD][CATALOG] Title [N Discs]`; the disc
suffix is left out for single disc albums and an eight digit `YYYYMMDD` date
is accepted too. Audio files are named `NN. Title.flac`.
"""

import re
from typing import NamedTuple, Optional

from .album import Album, ReleaseDate

DIRNAME_RE = re.compile(
    r"^\[(?P<date>\d{6}|\d{8})\]\[(?P<catalog>[^\]]+)\] (?P<title>.+?)"
    r"(?: \[(?P<discs>\d+) Discs?\])?$"
)
TRACK_FILENAME_RE = re.compile(r"^(?P<number>\d+)\s*[.\-]\s*(?P<title>.+)$")

# Characters that cannot appear in file names, with their full-width stand-ins
_UNSAFE = str.maketrans(
    {
        "/": "／",
        "\\": "＼",
        ":": "：",
        "*": "＊",
        "?": "？",
        '"': "＂",
        "<": "＜",
        ">": "＞",
        "|": "｜",
    }
)


class AlbumDirName(NamedTuple):
    release_date: ReleaseDate
    catalog: str
    title: str
    disc_count: int
    date_code: str


def sanitize(name: str) -> str:
    return name.translate(_UNSAFE)


def parse_album_dirname(name: str) -> AlbumDirName:
    """Split a source directory name into its parts.

    Raises ValueError when the name does not follow the convention.
    """
    m = DIRNAME_RE.match(name.strip())
    if not m:
        raise ValueError(f"{name!r} does not look like `[YYMMDD][CATALOG] Title`")
    code = m.group("date")
    if len(code) == 6:
        year, month, day = 2000 + int(code[:2]), int(code[2:4]), int(code[4:])
    else:
        year, month, day = int(code[:4]), int(code[4:6]), int(code[6:])
    # 00 stands for an unknown month or day
    release_date = ReleaseDate(
        year,
        month or None,
        (day or None) if month else None,
    )
    discs = m.group("discs")
    return AlbumDirName(
        release_date=release_date,
        catalog=m.group("catalog"),
        title=m.group("title"),
        disc_count=int(discs) if discs else 1,
        date_code=code,
    )


def date_code(release_date: ReleaseDate, long: bool = False) -> str:
    year = release_date.year if long else release_date.year % 100
    width = 4 if long else 2
    return f"{year:0{width}d}{release_date.month or 0:02d}{release_date.day or 0:02d}"


def album_dirname(album: Album) -> str:
    name = f"[{date_code(album.release_date)}][{album.catalog}] {sanitize(album.full_title)}"
    if len(album.discs) > 1:
        name += f" [{len(album.discs)} Discs]"
    return name


def track_filename(track_index: int, title: str, suffix: str = ".flac") -> str:
    return f"{track_index:02d}. {sanitize(title)}{suffix}"


def parse_track_filename(stem: str) -> Optional[str]:
    """Title part of an `NN. Title` file stem, or None."""
    m = TRACK_FILENAME_RE.match(stem)
    return m.group("title").strip() if m else None
