import copy
import json

import pytest

from discat.core.codec import decode
from discat.core.errors import InvalidReference
from discat.core.export import GENERATED_BY, ExportFormat, render, render_cue


@pytest.fixture
def album(make_album):
    album = make_album("CAT-001", title="Album", tracks=(2, 1), edition="Deluxe")
    album.discs[1].title = "Bonus"
    album.discs[1].artist = "Guest"
    return album


def test_title_and_artist(album):
    assert render(album, "title") == "Album【Deluxe】\n"
    assert render(album, ExportFormat.TITLE, disc_index=2) == "Bonus\n"
    assert render(album, "artist") == "ClariS\n"
    assert render(album, "artist", disc_index=2) == "Guest\n"
    assert render(album, "date") == "2021-04-14\n"


def test_cue_sheet(album):
    cue = render_cue(album)
    lines = cue.splitlines()
    assert lines[:4] == [
        'TITLE "Album"',
        'PERFORMER "ClariS"',
        'REM DATE "2021-04-14"',
        f'REM COMMENT "{GENERATED_BY}"',
    ]
    assert lines.count("  TRACK 01 AUDIO") == 2
    assert 'FILE "01. Track 1-1.flac" WAVE' in lines
    assert 'FILE "02. Track 1-2.flac" WAVE' in lines


def test_cue_for_second_disc_without_marker(album):
    cue = render(album, "cue", disc_index=2, clean=True)
    assert cue.startswith('TITLE "Bonus"\nPERFORMER "Guest"\n')
    assert "REM COMMENT" not in cue
    assert '    PERFORMER "Guest"' in cue


def test_toml_export(album):
    text = render(album, "toml")
    assert text.startswith(f"# {GENERATED_BY}\n[album]\n")
    assert decode(text) == album
    assert render(album, "toml", clean=True).startswith("[album]\n")


def test_json_export_resolves_inheritance(album):
    data = json.loads(render(album, "json"))
    assert data["catalog"] == "CAT-001"
    assert [d["artist"] for d in data["discs"]] == ["ClariS", "Guest"]
    assert data["discs"][1]["tracks"][0]["artist"] == "Guest"


def test_disc_scoped_export_leaves_album_alone(album):
    before = copy.deepcopy(album)
    data = json.loads(render(album, "json", disc_index=2))
    assert [d["title"] for d in data["discs"]] == ["Bonus"]
    assert album == before


def test_unknown_disc(album):
    with pytest.raises(InvalidReference):
        render(album, "title", disc_index=3)
    with pytest.raises(InvalidReference):
        render_cue(album, disc_index=5)


def test_unknown_format(album):
    with pytest.raises(ValueError):
        render(album, "xml")
