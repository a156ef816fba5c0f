"""
The in-memory album model.

An `Album` holds an ordered list of `Disc`s, each holding an ordered list of
`Track`s. Discs and tracks may omit their title, artist and type; omitted
values are inherited from the enclosing disc or album. The dataclasses keep
exactly what the document says (so a document decodes and re-encodes to the
same thing) and the `resolved_*` helpers apply inheritance.
"""

import datetime as _dt
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Union


class TrackType(str, Enum):
    """Closed set of track kinds. Unknown values are rejected by the codec."""

    NORMAL = "normal"
    INSTRUMENTAL = "instrumental"
    ABSOLUTE = "absolute"
    DRAMA = "drama"
    RADIO = "radio"
    VOCAL = "vocal"

    @classmethod
    def values(cls) -> List[str]:
        return [t.value for t in cls]


_PARTIAL_DATE_RE = re.compile(r"^(\d{4})(?:-(\d{2})(?:-(\d{2}))?)?$")


@dataclass(frozen=True, order=True)
class ReleaseDate:
    """A release date that may only be known to the year or month."""

    year: int
    month: Optional[int] = None
    day: Optional[int] = None

    def __post_init__(self):
        if self.day is not None and self.month is None:
            raise ValueError("a day requires a month")
        if self.month is not None and not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")
        if self.day is not None:
            # Raises ValueError for impossible dates such as 2021-02-30
            _dt.date(self.year, self.month, self.day)

    @classmethod
    def parse(cls, value: Union[str, _dt.date]) -> "ReleaseDate":
        if isinstance(value, _dt.datetime):
            value = value.date()
        if isinstance(value, _dt.date):
            return cls(value.year, value.month, value.day)
        if isinstance(value, str):
            m = _PARTIAL_DATE_RE.match(value.strip())
            if m:
                year, month, day = m.groups()
                return cls(
                    int(year),
                    int(month) if month else None,
                    int(day) if day else None,
                )
        raise ValueError(f"not a release date: {value!r}")

    @property
    def is_complete(self) -> bool:
        return self.day is not None

    def to_toml(self) -> Union[str, _dt.date]:
        """TOML value for this date: a native date when complete, else a string."""
        if self.is_complete:
            return _dt.date(self.year, self.month, self.day)
        return str(self)

    def __str__(self) -> str:
        if self.month is None:
            return f"{self.year:04d}"
        if self.day is None:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


@dataclass(frozen=True)
class Lyric:
    """A lyric file stored next to the audio, with an optional lrc offset in ms."""

    file: str
    offset: Optional[int] = None


@dataclass
class Track:
    title: str
    artist: Optional[str] = None
    track_type: Optional[TrackType] = None
    lyric: Optional[Lyric] = None

    def resolved_artist(self, disc: "Disc", album: "Album") -> str:
        return self.artist if self.artist is not None else disc.resolved_artist(album)

    def resolved_type(self, disc: "Disc", album: "Album") -> TrackType:
        if self.track_type is not None:
            return self.track_type
        return disc.resolved_type(album)


@dataclass
class Disc:
    catalog: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    track_type: Optional[TrackType] = None
    tracks: List[Track] = field(default_factory=list)

    def resolved_catalog(self, album: "Album") -> str:
        return self.catalog if self.catalog is not None else album.catalog

    def resolved_title(self, album: "Album") -> str:
        return self.title if self.title is not None else album.title

    def resolved_artist(self, album: "Album") -> str:
        return self.artist if self.artist is not None else album.artist

    def resolved_type(self, album: "Album") -> TrackType:
        return self.track_type if self.track_type is not None else album.resolved_type


@dataclass
class Album:
    catalog: str
    title: str
    artist: str
    release_date: ReleaseDate
    album_id: Optional[str] = None
    edition: Optional[str] = None
    track_type: Optional[TrackType] = None
    compilation: bool = False
    tags: List[str] = field(default_factory=list)
    discs: List[Disc] = field(default_factory=list)

    @property
    def resolved_type(self) -> TrackType:
        return self.track_type or TrackType.NORMAL

    @property
    def full_title(self) -> str:
        if self.edition:
            return f"{self.title}【{self.edition}】"
        return self.title

    @property
    def track_count(self) -> int:
        return sum(len(d.tracks) for d in self.discs)

    def disc(self, disc_index: int) -> Disc:
        """Return the disc at a 1-based index."""
        if disc_index < 1 or disc_index > len(self.discs):
            raise IndexError(f"{self.catalog} has no disc {disc_index}")
        return self.discs[disc_index - 1]

    def iter_tracks(self) -> Iterator[Tuple[int, int, Disc, Track]]:
        """Yield (disc_index, track_index, disc, track), both indexes 1-based."""
        for di, disc in enumerate(self.discs, start=1):
            for ti, track in enumerate(disc.tracks, start=1):
                yield di, ti, disc, track

    def format(self) -> None:
        """Drop disc and track values that merely repeat the inherited value."""
        for disc in self.discs:
            if disc.title == self.title:
                disc.title = None
            if disc.artist == self.artist:
                disc.artist = None
            if disc.track_type is not None and disc.track_type == self.resolved_type:
                disc.track_type = None
            for track in disc.tracks:
                if track.artist == disc.resolved_artist(self):
                    track.artist = None
                if (
                    track.track_type is not None
                    and track.track_type == disc.resolved_type(self)
                ):
                    track.track_type = None
