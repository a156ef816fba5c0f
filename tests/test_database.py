import sqlite3
from contextlib import closing

import pytest

from discat.core.album import TrackType
from discat.core.database import compile_database, open_snapshot, query_album, snapshot_stats
from discat.core.errors import CompileError, DiscatError
from discat.core.repository import RepositoryTree

STAMP = "2024-01-01T00:00:00+00:00"


def _dump(path):
    conn = sqlite3.connect(path)
    try:
        return list(conn.iterdump())
    finally:
        conn.close()


def test_compile_counts(repo, make_album, store, tmp_path):
    store(repo, make_album("CAT-001", tracks=(5, 6)))
    store(repo, make_album("CAT-002", tracks=(8,)))
    output = tmp_path / "out" / "repo.db"

    report = compile_database(RepositoryTree.load(repo), output)
    assert (report.albums, report.discs, report.tracks) == (2, 3, 19)
    assert report.excluded == []
    assert output.is_file()
    assert not output.with_name("repo.db.tmp").exists()

    with closing(open_snapshot(output)) as conn:
        stats = snapshot_stats(conn)
    assert (stats["albums"], stats["discs"], stats["tracks"]) == (2, 3, 19)
    assert stats["name"] == "test-repo"
    assert stats["version"] == 2


def test_compile_is_deterministic(repo, make_album, store, tmp_path):
    for catalog in ("CAT-003", "CAT-001", "CAT-002"):
        store(repo, make_album(catalog, tracks=(2, 3)))
    tree = RepositoryTree.load(repo)

    compile_database(tree, tmp_path / "a.db", compiled_at=STAMP)
    compile_database(tree.reload(), tmp_path / "b.db", compiled_at=STAMP)
    assert _dump(tmp_path / "a.db") == _dump(tmp_path / "b.db")


def test_compile_replaces_previous_snapshot(repo, make_album, store, tmp_path):
    output = tmp_path / "repo.db"
    store(repo, make_album("CAT-001"))
    compile_database(RepositoryTree.load(repo), output)
    store(repo, make_album("CAT-002"))
    report = compile_database(RepositoryTree.load(repo), output)
    assert report.albums == 2
    with closing(open_snapshot(output)) as conn:
        assert snapshot_stats(conn)["albums"] == 2


def test_rows_hold_resolved_values(repo, make_album, store, tmp_path):
    album = make_album("CAT-001", tracks=(2, 2), track_type=TrackType.DRAMA)
    album.discs[1].artist = "Guest"
    album.discs[1].tracks[1].track_type = TrackType.INSTRUMENTAL
    store(repo, album)
    output = tmp_path / "repo.db"
    compile_database(RepositoryTree.load(repo), output)

    with closing(open_snapshot(output)) as conn:
        data = query_album(conn, "CAT-001")
        assert query_album(conn, "CAT-404") is None
    assert data["album_id"] == album.album_id
    assert data["compilation"] is False
    assert data["release_date"] == "2021-04-14"
    first, second = data["discs"]
    assert (first["disc_index"], first["artist"], first["catalog"]) == (1, "ClariS", "CAT-001")
    assert second["artist"] == "Guest"
    assert [t["ordinal"] for t in first["tracks"] + second["tracks"]] == [1, 2, 3, 4]
    assert [t["track_index"] for t in second["tracks"]] == [1, 2]
    assert [t["artist"] for t in second["tracks"]] == ["Guest", "Guest"]
    assert [t["track_type"] for t in second["tracks"]] == ["drama", "instrumental"]


def test_broken_documents_are_excluded(repo, make_album, store, write_text, tmp_path):
    store(repo, make_album("CAT-001"))
    store(repo, make_album("CAT-002", with_id=False))
    store(repo, make_album("CAT-001"), path="album/copy/CAT-001.toml")
    write_text(repo, "album/BROKEN-1.toml", "[album\n")

    report = compile_database(RepositoryTree.load(repo), tmp_path / "repo.db")
    assert report.albums == 1
    excluded = dict(report.excluded)
    assert set(excluded) == {"album/BROKEN-1.toml", "album/CAT-002.toml", "album/copy/CAT-001.toml"}
    assert excluded["album/CAT-002.toml"] == "missing album_id"
    assert excluded["album/copy/CAT-001.toml"].startswith("duplicate catalog")
    assert report.as_dict()["excluded"][0]["document"] == "album/BROKEN-1.toml"


def test_strict_compile_refuses_violations(repo, make_album, store, tmp_path):
    store(repo, make_album("CAT-001", artist="Unknown Artist"))
    output = tmp_path / "repo.db"
    with pytest.raises(CompileError) as exc:
        compile_database(RepositoryTree.load(repo), output, strict=True)
    assert len(exc.value.violations) == 1
    assert not output.exists()


def test_compile_refuses_when_tmp_file_exists(repo, make_album, store, tmp_path):
    store(repo, make_album("CAT-001"))
    output = tmp_path / "repo.db"
    lock = tmp_path / "repo.db.tmp"
    lock.write_bytes(b"")
    with pytest.raises(CompileError):
        compile_database(RepositoryTree.load(repo), output)
    assert lock.exists()
    assert not output.exists()


def test_snapshot_is_read_only(repo, make_album, store, tmp_path):
    store(repo, make_album("CAT-001"))
    output = tmp_path / "repo.db"
    compile_database(RepositoryTree.load(repo), output)
    conn = open_snapshot(output)
    try:
        with pytest.raises(sqlite3.OperationalError):
            conn.execute("DELETE FROM albums")
    finally:
        conn.close()


def test_open_missing_snapshot(tmp_path):
    with pytest.raises(DiscatError):
        open_snapshot(tmp_path / "nope.db")
