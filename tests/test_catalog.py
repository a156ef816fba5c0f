from pathlib import Path, PurePosixPath

import pytest

from discat.core.catalog import (
    BucketedLayout,
    FlatLayout,
    Reference,
    get_layout,
    is_valid_catalog,
    parse_reference,
    render_reference,
    resolve,
)
from discat.core.errors import InvalidCatalogFormat, InvalidReference


@pytest.mark.parametrize(
    "catalog",
    ["KSLA-0178", "LACA-9356~7", "SVWC_70001", "GNCA.1234", "12345", "abc-1"],
)
def test_valid_catalogs(catalog):
    assert is_valid_catalog(catalog)


@pytest.mark.parametrize(
    "catalog",
    ["", "KSLA 0178", "KSLA--0178", "-KSLA", "KSLA/0178", "KSLA-0178~", "../etc", "カタログ"],
)
def test_invalid_catalogs(catalog):
    assert not is_valid_catalog(catalog)


def test_flat_layout_resolves_under_album_dir():
    assert FlatLayout().resolve("KSLA-0178") == PurePosixPath("album/KSLA-0178.toml")
    assert resolve("KSLA-0178") == PurePosixPath("album/KSLA-0178.toml")


def test_bucketed_layout_groups_by_vendor():
    layout = BucketedLayout()
    assert layout.resolve("KSLA-0178") == PurePosixPath("album/KSLA/KSLA-0178.toml")
    assert layout.resolve("abc-1") == PurePosixPath("album/ABC/abc-1.toml")
    assert layout.resolve("12345") == PurePosixPath("album/_/12345.toml")


def test_resolve_is_deterministic_and_stable():
    layout = get_layout("bucketed")
    first = [layout.resolve(c) for c in ("KSLA-0178", "LACA-9356~7", "SVWC-70001")]
    second = [get_layout("bucketed").resolve(c) for c in ("KSLA-0178", "LACA-9356~7", "SVWC-70001")]
    assert first == second


def test_resolve_rejects_invalid_catalog():
    with pytest.raises(InvalidCatalogFormat):
        resolve("not a catalog")


def test_expected_location(tmp_path):
    layout = BucketedLayout()
    root = Path(tmp_path)
    assert layout.is_expected_location(root / "album" / "KSLA" / "KSLA-0178.toml", root)
    assert not layout.is_expected_location(root / "album" / "KSLA-0178.toml", root)
    assert FlatLayout().is_expected_location(root / "album" / "KSLA-0178.toml", root)


def test_unknown_layout():
    with pytest.raises(ValueError):
        get_layout("sharded")


def test_parse_reference_album_and_disc():
    assert parse_reference("KSLA-0178") == Reference("KSLA-0178", None)
    assert parse_reference("KSLA-0178/2") == ("KSLA-0178", 2)


def test_disc_zero_and_one_both_mean_first_disc():
    assert parse_reference("KSLA-0178/0").disc_index == 1
    assert parse_reference("KSLA-0178/1").disc_index == 1


@pytest.mark.parametrize(
    "text", ["", "KSLA-0178/1/2", "KSLA-0178/x", "KSLA-0178/-1", "bad catalog/1", "/1"]
)
def test_parse_reference_errors(text):
    with pytest.raises(InvalidReference):
        parse_reference(text)


def test_render_reference():
    assert render_reference("KSLA-0178") == "KSLA-0178"
    assert render_reference("KSLA-0178", 3) == "KSLA-0178/3"
    assert str(parse_reference("KSLA-0178/3")) == "KSLA-0178/3"
    with pytest.raises(InvalidReference):
        render_reference("KSLA-0178", 0)
