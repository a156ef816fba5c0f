"""
MusicBrainz metadata source.

Fetches releases from the MusicBrainz web service (JSON flavour of `/ws/2`)
with `requests` and maps them onto repository albums. Track types are not
known to MusicBrainz, so everything comes back as `normal` and is left for
the user to adjust.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..core.album import Album, Disc, ReleaseDate, Track
from ..core.config import DEFAULT_USER_AGENT
from ..core.errors import DiscatError
from ..core.retry import retry_with_backoff
from .base import MetadataSource

MUSICBRAINZ_API_URL = "https://musicbrainz.org/ws/2"
RELEASE_INCLUDES = "artist-credits+labels+recordings"

logger = logging.getLogger(__name__)


class _RetryableStatus(Exception):
    """A 503 (rate limited) or other server side hiccup."""


def credit_name(credits: List[Dict[str, Any]]) -> str:
    """Join an artist-credit list the way MusicBrainz displays it."""
    parts = []
    for credit in credits or []:
        name = credit.get("name") or (credit.get("artist") or {}).get("name", "")
        parts.append(f"{name}{credit.get('joinphrase', '')}")
    return "".join(parts).strip()


def release_to_album(release: Dict[str, Any], catalog: Optional[str] = None) -> Album:
    """Map a MusicBrainz release document onto an Album."""
    artist = credit_name(release.get("artist-credit", []))
    if not catalog:
        for info in release.get("label-info") or []:
            if info.get("catalog-number"):
                catalog = info["catalog-number"].strip()
                break
    if not catalog:
        raise DiscatError(f"Release {release.get('id')} has no catalog number")
    if not release.get("date"):
        raise DiscatError(f"Release {release.get('id')} has no release date")
    try:
        release_date = ReleaseDate.parse(release["date"])
    except ValueError as e:
        raise DiscatError(f"Release {release.get('id')}: {e}") from e

    discs = []
    for medium in release.get("media") or []:
        tracks = []
        for item in medium.get("tracks") or []:
            track_artist = credit_name(item.get("artist-credit", [])) or None
            tracks.append(
                Track(
                    title=item.get("title") or (item.get("recording") or {}).get("title", ""),
                    artist=track_artist if track_artist != artist else None,
                )
            )
        discs.append(Disc(title=medium.get("title") or None, tracks=tracks))

    return Album(
        catalog=catalog,
        title=release.get("title", ""),
        artist=artist,
        release_date=release_date,
        discs=discs,
    )


class MusicBrainzSource(MetadataSource):
    name = "musicbrainz"

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
        retries: int = 3,
    ):
        self.timeout = timeout
        self.retries = retries
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{MUSICBRAINZ_API_URL}/{path}"
        params = {**params, "fmt": "json"}

        def _once() -> Dict[str, Any]:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            if resp.status_code >= 500:
                raise _RetryableStatus(f"HTTP {resp.status_code} from {url}")
            if resp.status_code == 404:
                raise DiscatError(f"Not found on MusicBrainz: {path}")
            resp.raise_for_status()
            return resp.json()

        try:
            return retry_with_backoff(
                _once,
                retries=self.retries,
                retry_on=(requests.ConnectionError, requests.Timeout, _RetryableStatus),
            )
        except (requests.RequestException, _RetryableStatus, ValueError) as e:
            raise DiscatError(f"MusicBrainz request failed: {e}") from e

    def fetch(self, release_id: str) -> Album:
        logger.debug("Fetching MusicBrainz release %s", release_id)
        release = self._get(f"release/{release_id}", {"inc": RELEASE_INCLUDES})
        return release_to_album(release)

    def search_catalog(self, catalog: str) -> Optional[Album]:
        result = self._get("release", {"query": f'catno:"{catalog}"', "limit": 1})
        releases = result.get("releases") or []
        if not releases:
            return None
        release = self._get(f"release/{releases[0]['id']}", {"inc": RELEASE_INCLUDES})
        return release_to_album(release, catalog=catalog)
