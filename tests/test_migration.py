import uuid

import pytest

from discat.core.codec import decode, encode_text
from discat.core.errors import MigrationError
from discat.core.migration import (
    CURRENT_VERSION,
    MIGRATIONS,
    assign_album_id,
    get_migration,
    has_album_id,
    migrate,
    run_migration,
)
from discat.core.repository import RepoContext, RepositoryConfig


DOC_WITHOUT_ID = """\
# keep this comment
[album]
title = "T"   # trailing comment
artist = "A"
date = 2020-01-02
catalog = "ABC-1"

[[discs]]

[[discs.tracks]]
title = "x"
"""


def test_assign_album_id_only_inserts_one_line():
    result = assign_album_id(DOC_WITHOUT_ID, album_id="1b4e28ba-2fa1-11d2-883f-0016d3cca427")
    expected = DOC_WITHOUT_ID.replace(
        "[album]\n", '[album]\nalbum_id = "1b4e28ba-2fa1-11d2-883f-0016d3cca427"\n'
    )
    assert result == expected
    assert decode(result).album_id == "1b4e28ba-2fa1-11d2-883f-0016d3cca427"


def test_assign_album_id_generates_uuid4():
    album_id = decode(assign_album_id(DOC_WITHOUT_ID)).album_id
    assert uuid.UUID(album_id).version == 4


def test_assign_album_id_keeps_crlf_line_endings():
    text = DOC_WITHOUT_ID.replace("\n", "\r\n")
    result = assign_album_id(text, album_id="x-id")
    assert '[album]\r\nalbum_id = "x-id"\r\n' in result
    assert "\n" not in result.replace("\r\n", "")


def test_assign_album_id_when_header_is_last_line():
    result = assign_album_id('catalog = "loose"\n[album]', album_id="x-id")
    assert result == 'catalog = "loose"\n[album]\nalbum_id = "x-id"\n'


def test_assign_album_id_is_idempotent():
    once = assign_album_id(DOC_WITHOUT_ID)
    assert has_album_id(once)
    assert assign_album_id(once) is None


def test_album_id_in_another_table_does_not_count():
    text = DOC_WITHOUT_ID + 'album_id = "in the track table"\n'
    assert not has_album_id(text)
    assert assign_album_id(text) is not None


def test_assign_album_id_without_album_table():
    with pytest.raises(MigrationError):
        assign_album_id('[[discs]]\ncatalog = "X"\n')


def test_migration_registry():
    assert CURRENT_VERSION == 2
    assert [m.version for m in MIGRATIONS] == sorted(m.version for m in MIGRATIONS)
    assert get_migration("assign-album-id").version == 2
    with pytest.raises(MigrationError):
        get_migration("nope")


def _legacy_repo(v1_repo, make_album, store, count=3):
    return [store(v1_repo, make_album(f"CAT-{i:03d}", with_id=False)) for i in range(count)]


def test_migrate_upgrades_documents_and_version(v1_repo, make_album, store):
    paths = _legacy_repo(v1_repo, make_album, store)
    before = [p.read_text(encoding="utf-8") for p in paths]

    report = migrate(v1_repo)
    assert report.ok
    assert (report.from_version, report.to_version) == (1, 2)
    assert report.checked == 3
    assert len(report.changed) == 3
    assert RepositoryConfig.load(v1_repo.root).version == 2

    for path, old in zip(paths, before):
        new = path.read_text(encoding="utf-8")
        assert len(new.splitlines()) == len(old.splitlines()) + 1
        assert decode(new).album_id is not None

    again = migrate(RepoContext.open(v1_repo.root))
    assert again.changed == []
    assert again.to_version == 2


def test_migrate_dry_run_changes_nothing(v1_repo, make_album, store):
    paths = _legacy_repo(v1_repo, make_album, store)
    before = [p.read_bytes() for p in paths]

    report = migrate(v1_repo, dry_run=True)
    assert report.dry_run
    assert len(report.changed) == 3
    assert [p.read_bytes() for p in paths] == before
    assert RepositoryConfig.load(v1_repo.root).version == 1


def test_migrate_failure_keeps_version(v1_repo, make_album, store, write_text):
    _legacy_repo(v1_repo, make_album, store, count=2)
    write_text(v1_repo, "album/BROKEN-1.toml", "[album\n")

    report = migrate(v1_repo)
    assert not report.ok
    assert [p for p, _ in report.failures] == ["album/BROKEN-1.toml"]
    assert report.to_version == 1
    assert len(report.changed) == 2
    assert RepositoryConfig.load(v1_repo.root).version == 1


def test_migrate_rejects_unknown_target(v1_repo):
    with pytest.raises(MigrationError):
        migrate(v1_repo, target_version=CURRENT_VERSION + 1)


def test_migrate_to_current_version_is_noop(repo, make_album, store):
    path = store(repo, make_album("CAT-001", with_id=False))
    before = path.read_bytes()
    report = migrate(repo, target_version=1)
    assert report.changed == []
    assert path.read_bytes() == before


def test_run_migration_by_name(repo, make_album, store):
    existing = store(repo, make_album("CAT-001"))
    before = existing.read_bytes()
    missing = store(repo, make_album("CAT-002", with_id=False))

    report = run_migration(repo, "assign-album-id")
    assert report.changed == [repo.relative(missing)]
    assert decode(missing.read_bytes()).album_id is not None
    assert report.to_version == repo.config.version
    assert existing.read_bytes() == before


def test_migrated_document_round_trips(v1_repo, make_album, store):
    path = store(v1_repo, make_album("CAT-001", with_id=False))
    migrate(v1_repo)
    text = path.read_text(encoding="utf-8")
    assert encode_text(decode(text)) == text
