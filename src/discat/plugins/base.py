"""
Defines the capability interfaces the engine talks to.

The core never imports a concrete adapter. Commands pick an implementation
(mutagen for FLAC tags, requests for MusicBrainz) and hand it to the core,
which only relies on the abstract methods below.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.album import Album


@dataclass
class TrackTags:
    """The subset of an audio file's tags the importer cares about."""

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    date: Optional[str] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None


class TagReader(ABC):
    """Reads tags from one audio file."""

    @abstractmethod
    def read(self, path: Path) -> TrackTags:
        pass


class TagWriter(ABC):
    """Writes tags to one audio file."""

    @abstractmethod
    def write(self, path: Path, tags: dict) -> None:
        """
        Replace the given tags on `path`.

        Keys are Vorbis comment names (TITLE, ARTIST, ...); other tags on
        the file are left alone.
        """
        pass


class MetadataSource(ABC):
    """An external service albums can be fetched from."""

    name: str = ""

    @abstractmethod
    def fetch(self, release_id: str) -> Album:
        """Fetch one release by the service's own identifier."""
        pass

    @abstractmethod
    def search_catalog(self, catalog: str) -> Optional[Album]:
        """Fetch the first release carrying `catalog`, or None."""
        pass
