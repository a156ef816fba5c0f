"""
Album document codec.

Album documents are TOML files shaped like this:

    [album]
    album_id = "8b2c6a3e-..."
    title = "夏凪ぎ/宝物になった日"
    artist = "やなぎなぎ"
    date = 2020-12-16
    type = "normal"
    catalog = "KSLA-0178"

    [[discs]]
    catalog = "KSLA-0178"

    [[discs.tracks]]
    title = "夏凪ぎ"

Decoding is strict: unknown keys, unknown track types and values of the
wrong type are all errors. Encoding writes keys in one fixed order and omits
unset optional values, so `decode(encode(album)) == album` and re-encoding a
decoded document is byte-stable.
"""

from typing import Any, Dict, List, Optional, Union

import toml
from toml.decoder import InlineTableDict

from .album import Album, Disc, Lyric, ReleaseDate, Track, TrackType
from .errors import DecodeError, DecodeErrorKind

ALBUM_KEYS = (
    "album_id",
    "title",
    "edition",
    "artist",
    "date",
    "type",
    "catalog",
    "compilation",
    "tags",
)
DISC_KEYS = ("catalog", "title", "artist", "type", "tracks")
TRACK_KEYS = ("title", "artist", "type", "lyric")
LYRIC_KEYS = ("file", "offset")
TOP_LEVEL_KEYS = ("album", "discs")

_MISSING = object()


def _error(kind: DecodeErrorKind, message: str, where: str) -> DecodeError:
    return DecodeError(kind, message, field=where)


def _reject_unknown(table: Dict[str, Any], allowed, where: str) -> None:
    for key in table:
        if key not in allowed:
            raise _error(DecodeErrorKind.UNKNOWN_FIELD, f"unknown key {key!r}", where)


def _get_str(table: Dict[str, Any], key: str, where: str, required: bool = False) -> Optional[str]:
    value = table.get(key, _MISSING)
    if value is _MISSING:
        if required:
            raise _error(
                DecodeErrorKind.MISSING_REQUIRED_FIELD, f"missing {key!r}", where
            )
        return None
    if not isinstance(value, str):
        raise _error(
            DecodeErrorKind.INVALID_VALUE,
            f"{key!r} must be a string, got {type(value).__name__}",
            f"{where}.{key}",
        )
    return value


def _get_type(table: Dict[str, Any], where: str) -> Optional[TrackType]:
    value = _get_str(table, "type", where)
    if value is None:
        return None
    try:
        return TrackType(value)
    except ValueError:
        raise _error(
            DecodeErrorKind.INVALID_ENUM_VALUE,
            f"unknown track type {value!r}, expected one of {', '.join(TrackType.values())}",
            f"{where}.type",
        ) from None


def _get_tables(table: Dict[str, Any], key: str, where: str) -> List[Dict[str, Any]]:
    value = table.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise _error(
            DecodeErrorKind.INVALID_VALUE, f"{key!r} must be an array of tables", where
        )
    return value


def _get_lyric(table: Dict[str, Any], where: str) -> Optional[Lyric]:
    value = table.get("lyric", _MISSING)
    if value is _MISSING:
        return None
    where = f"{where}.lyric"
    if isinstance(value, str):
        return Lyric(value)
    if not isinstance(value, dict):
        raise _error(
            DecodeErrorKind.INVALID_VALUE, "'lyric' must be a string or a table", where
        )
    _reject_unknown(value, LYRIC_KEYS, where)
    offset = value.get("offset")
    if offset is not None and (isinstance(offset, bool) or not isinstance(offset, int)):
        raise _error(
            DecodeErrorKind.INVALID_VALUE, "'offset' must be an integer", f"{where}.offset"
        )
    return Lyric(_get_str(value, "file", where, required=True), offset)


def _decode_track(table: Dict[str, Any], where: str) -> Track:
    _reject_unknown(table, TRACK_KEYS, where)
    return Track(
        title=_get_str(table, "title", where, required=True),
        artist=_get_str(table, "artist", where),
        track_type=_get_type(table, where),
        lyric=_get_lyric(table, where),
    )


def _decode_disc(table: Dict[str, Any], where: str) -> Disc:
    _reject_unknown(table, DISC_KEYS, where)
    tracks = [
        _decode_track(t, f"{where}.tracks[{i}]")
        for i, t in enumerate(_get_tables(table, "tracks", where))
    ]
    return Disc(
        catalog=_get_str(table, "catalog", where),
        title=_get_str(table, "title", where),
        artist=_get_str(table, "artist", where),
        track_type=_get_type(table, where),
        tracks=tracks,
    )


def _decode_album(table: Dict[str, Any], discs: List[Disc]) -> Album:
    where = "album"
    _reject_unknown(table, ALBUM_KEYS, where)

    raw_date = table.get("date", _MISSING)
    if raw_date is _MISSING:
        raise _error(DecodeErrorKind.MISSING_REQUIRED_FIELD, "missing 'date'", where)
    try:
        release_date = ReleaseDate.parse(raw_date)
    except ValueError as e:
        raise _error(DecodeErrorKind.INVALID_VALUE, str(e), "album.date") from None

    compilation = table.get("compilation", False)
    if not isinstance(compilation, bool):
        raise _error(
            DecodeErrorKind.INVALID_VALUE, "'compilation' must be a boolean", "album.compilation"
        )

    tags = table.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise _error(
            DecodeErrorKind.INVALID_VALUE, "'tags' must be an array of strings", "album.tags"
        )

    return Album(
        album_id=_get_str(table, "album_id", where),
        catalog=_get_str(table, "catalog", where, required=True),
        title=_get_str(table, "title", where, required=True),
        edition=_get_str(table, "edition", where),
        artist=_get_str(table, "artist", where, required=True),
        release_date=release_date,
        track_type=_get_type(table, where),
        compilation=compilation,
        tags=list(tags),
        discs=discs,
    )


def decode(data: Union[bytes, str], path: Optional[str] = None) -> Album:
    """Parse an album document.

    Raises:
        DecodeError: with `kind` set to the failure class and `path` set
            when given.
    """
    try:
        try:
            text = data.decode("utf-8") if isinstance(data, bytes) else data
        except UnicodeDecodeError as e:
            raise DecodeError(DecodeErrorKind.MALFORMED_SYNTAX, f"not UTF-8: {e}") from None
        try:
            doc = toml.loads(text)
        except (toml.TomlDecodeError, IndexError) as e:
            raise DecodeError(DecodeErrorKind.MALFORMED_SYNTAX, str(e)) from None

        _reject_unknown(doc, TOP_LEVEL_KEYS, "<document>")
        album_doc = doc.get("album", _MISSING)
        if album_doc is _MISSING:
            raise DecodeError(
                DecodeErrorKind.MISSING_REQUIRED_FIELD, "missing [album] table"
            )
        if not isinstance(album_doc, dict):
            raise DecodeError(DecodeErrorKind.INVALID_VALUE, "[album] must be a table")

        discs = [
            _decode_disc(t, f"discs[{i}]")
            for i, t in enumerate(_get_tables(doc, "discs", "<document>"))
        ]
        return _decode_album(album_doc, discs)
    except DecodeError as e:
        if path is not None and e.path is None:
            raise e.with_path(path) from None
        raise


# --- Encoding ---

_SHORT_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _dump_str(value: str) -> str:
    """Basic TOML string with every control character escaped.

    C0, DEL and C1 characters without a short escape are written as \\uXXXX.
    """
    out = []
    for ch in value:
        code = ord(ch)
        if ch in _SHORT_ESCAPES:
            out.append(_SHORT_ESCAPES[ch])
        elif code < 0x20 or 0x7F <= code <= 0x9F:
            out.append(f"\\u{code:04x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


class DocumentEncoder(toml.TomlPreserveInlineDictEncoder):
    """Keeps inline tables inline and escapes strings with `_dump_str`."""

    def __init__(self):
        super().__init__()
        self.dump_funcs[str] = _dump_str


class _InlineTable(dict, InlineTableDict):
    pass


def _put(table: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        table[key] = value


def _type_value(track_type: Optional[TrackType]) -> Optional[str]:
    return track_type.value if track_type is not None else None


def album_table(album: Album) -> Dict[str, Any]:
    table: Dict[str, Any] = {}
    _put(table, "album_id", album.album_id)
    _put(table, "title", album.title)
    _put(table, "edition", album.edition)
    _put(table, "artist", album.artist)
    _put(table, "date", album.release_date.to_toml())
    _put(table, "type", _type_value(album.track_type))
    _put(table, "catalog", album.catalog)
    if album.compilation:
        table["compilation"] = True
    if album.tags:
        table["tags"] = list(album.tags)
    return table


def _lyric_value(lyric: Lyric) -> Any:
    if lyric.offset is None:
        return lyric.file
    return _InlineTable(file=lyric.file, offset=lyric.offset)


def disc_table(disc: Disc) -> Dict[str, Any]:
    table: Dict[str, Any] = {}
    _put(table, "catalog", disc.catalog)
    _put(table, "title", disc.title)
    _put(table, "artist", disc.artist)
    _put(table, "type", _type_value(disc.track_type))
    tracks = []
    for track in disc.tracks:
        t: Dict[str, Any] = {"title": track.title}
        _put(t, "artist", track.artist)
        _put(t, "type", _type_value(track.track_type))
        if track.lyric is not None:
            t["lyric"] = _lyric_value(track.lyric)
        tracks.append(t)
    table["tracks"] = tracks
    return table


def _tidy(text: str) -> str:
    """One blank line before each table header, none elsewhere."""
    out: List[str] = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        if line.startswith("[") and out:
            out.append("")
        out.append(line)
    return "\n".join(out) + "\n"


def encode_text(album: Album) -> str:
    # [album] is dumped on its own so it always comes first; an empty disc
    # list is left out entirely since a bare `discs = []` would land inside
    # the [album] table.
    text = toml.dumps({"album": album_table(album)}, encoder=DocumentEncoder())
    if album.discs:
        text += "\n" + toml.dumps(
            {"discs": [disc_table(d) for d in album.discs]}, encoder=DocumentEncoder()
        )
    return _tidy(text)


def encode(album: Album) -> bytes:
    return encode_text(album).encode("utf-8")


def _lyric_dict(lyric: Optional[Lyric]) -> Optional[Dict[str, Any]]:
    if lyric is None:
        return None
    return {"file": lyric.file, "offset": lyric.offset}


def to_dict(album: Album) -> Dict[str, Any]:
    """JSON-friendly view of an album with inherited values resolved."""
    discs = []
    for disc in album.discs:
        discs.append(
            {
                "catalog": disc.resolved_catalog(album),
                "title": disc.resolved_title(album),
                "artist": disc.resolved_artist(album),
                "type": disc.resolved_type(album).value,
                "tracks": [
                    {
                        "title": t.title,
                        "artist": t.resolved_artist(disc, album),
                        "type": t.resolved_type(disc, album).value,
                        "lyric": _lyric_dict(t.lyric),
                    }
                    for t in disc.tracks
                ],
            }
        )
    return {
        "album_id": album.album_id,
        "catalog": album.catalog,
        "title": album.title,
        "edition": album.edition,
        "artist": album.artist,
        "date": str(album.release_date),
        "type": album.resolved_type.value,
        "compilation": album.compilation,
        "tags": list(album.tags),
        "discs": discs,
    }
