"""
Catalog identifiers and their mapping onto the repository tree.

A catalog (e.g. `KSLA-0178`, or `LACA-9356~7` for a two disc set) is the
primary key of an album. Layout policies turn a catalog into the relative
path of its document; they are pure functions of the catalog string so that
two machines always agree on where an album lives.

References address an album or one of its discs: `KSLA-0178` or
`KSLA-0178/2`. Disc ids `0` and `1` both mean the first disc.
"""

import re
from abc import ABC, abstractmethod
from pathlib import PurePath, PurePosixPath
from typing import Dict, NamedTuple, Optional, Type

from .errors import InvalidCatalogFormat, InvalidReference

CATALOG_RE = re.compile(r"^[A-Za-z0-9]+(?:[-_.][A-Za-z0-9]+)*(?:~[0-9]+)?$")
VENDOR_RE = re.compile(r"^[A-Za-z]+")

ALBUM_DIR = "album"
DOCUMENT_SUFFIX = ".toml"


def is_valid_catalog(catalog: str) -> bool:
    return bool(catalog) and CATALOG_RE.match(catalog) is not None


def check_catalog(catalog: str) -> str:
    """Return the catalog unchanged, or raise InvalidCatalogFormat."""
    if not isinstance(catalog, str) or not is_valid_catalog(catalog):
        raise InvalidCatalogFormat(str(catalog))
    return catalog


# --- Layout policies ---


class LayoutPolicy(ABC):
    """Maps catalogs to document paths relative to the repository root."""

    name: str = ""
    version: int = 0

    @abstractmethod
    def directory_for(self, catalog: str) -> PurePosixPath:
        """Directory (relative to the root) holding the catalog's document."""

    def resolve(self, catalog: str) -> PurePosixPath:
        check_catalog(catalog)
        return self.directory_for(catalog) / f"{catalog}{DOCUMENT_SUFFIX}"

    def catalog_from_path(self, path: PurePath) -> str:
        """The catalog a document path implies (its file stem)."""
        name = PurePath(path).name
        if name.endswith(DOCUMENT_SUFFIX):
            return name[: -len(DOCUMENT_SUFFIX)]
        return name

    def is_expected_location(self, path: PurePath, root: PurePath) -> bool:
        """True when `path` is where this policy would put its own catalog."""
        catalog = self.catalog_from_path(path)
        if not is_valid_catalog(catalog):
            return False
        try:
            rel = PurePosixPath(*PurePath(path).relative_to(root).parts)
        except ValueError:
            return False
        return rel == self.resolve(catalog)


class FlatLayout(LayoutPolicy):
    """`album/<catalog>.toml`"""

    name = "flat"
    version = 1

    def directory_for(self, catalog: str) -> PurePosixPath:
        return PurePosixPath(ALBUM_DIR)


class BucketedLayout(LayoutPolicy):
    """`album/<VENDOR>/<catalog>.toml`, bucketed by the catalog's vendor code."""

    name = "bucketed"
    version = 2

    @staticmethod
    def vendor(catalog: str) -> str:
        m = VENDOR_RE.match(catalog)
        return m.group(0).upper() if m else "_"

    def directory_for(self, catalog: str) -> PurePosixPath:
        return PurePosixPath(ALBUM_DIR) / self.vendor(catalog)


LAYOUTS: Dict[str, Type[LayoutPolicy]] = {
    FlatLayout.name: FlatLayout,
    BucketedLayout.name: BucketedLayout,
}

DEFAULT_LAYOUT = FlatLayout.name


def get_layout(name: Optional[str] = None) -> LayoutPolicy:
    """Instantiate the layout policy registered under `name`."""
    key = name or DEFAULT_LAYOUT
    try:
        return LAYOUTS[key]()
    except KeyError:
        raise ValueError(
            f"Unknown layout {key!r}; expected one of: {', '.join(sorted(LAYOUTS))}"
        ) from None


def resolve(catalog: str, layout: Optional[LayoutPolicy] = None) -> PurePosixPath:
    return (layout or get_layout()).resolve(catalog)


# --- References ---


class Reference(NamedTuple):
    catalog: str
    disc_index: Optional[int] = None

    def __str__(self) -> str:
        return render_reference(self.catalog, self.disc_index)


def parse_reference(text: str) -> Reference:
    """Parse `catalog` or `catalog/<disc_id>`.

    Disc ids are 1-based; `0` is accepted as an alias of `1`.
    """
    if not text:
        raise InvalidReference(text, "empty reference")
    parts = text.split("/")
    if len(parts) > 2:
        raise InvalidReference(text, "expected `catalog` or `catalog/<disc>`")
    catalog = parts[0]
    if not is_valid_catalog(catalog):
        raise InvalidReference(text, f"invalid catalog {catalog!r}")
    if len(parts) == 1:
        return Reference(catalog)

    disc_id = parts[1]
    if not (disc_id.isascii() and disc_id.isdigit()):
        raise InvalidReference(text, f"disc id must be a non-negative integer, got {disc_id!r}")
    disc_index = int(disc_id)
    return Reference(catalog, disc_index if disc_index > 0 else 1)


def render_reference(catalog: str, disc_index: Optional[int] = None) -> str:
    check_catalog(catalog)
    if disc_index is None:
        return catalog
    if disc_index < 1:
        raise InvalidReference(f"{catalog}/{disc_index}", "disc index must be >= 1")
    return f"{catalog}/{disc_index}"
