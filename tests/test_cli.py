import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from discat import __version__
from discat.cli import app
from discat.core.repository import RepoContext

runner = CliRunner()

pytestmark = pytest.mark.usefixtures("isolated_settings")


def invoke(repo, *args):
    return runner.invoke(app, ["-C", str(repo.root), "--quiet", *args])


def test_version():
    res = runner.invoke(app, ["--version"])
    assert res.exit_code == 0, res.output
    assert f"discat v{__version__}" in res.output


def test_repo_init(tmp_path):
    target = tmp_path / "meta"
    res = runner.invoke(
        app, ["--quiet", "repo", "init", str(target), "--name", "mine", "--layout", "bucketed"]
    )
    assert res.exit_code == 0, res.output
    ctx = RepoContext.open(target)
    assert ctx.config.name == "mine"
    assert ctx.layout.name == "bucketed"

    again = runner.invoke(app, ["--quiet", "repo", "init", str(target)])
    assert again.exit_code == 1
    assert "Error" in again.output


def test_repo_init_unknown_layout(tmp_path):
    res = runner.invoke(app, ["repo", "init", str(tmp_path / "x"), "--layout", "sharded"])
    assert res.exit_code == 1


def test_missing_repository(tmp_path):
    res = runner.invoke(app, ["-C", str(tmp_path / "nowhere"), "repo", "validate"])
    assert res.exit_code == 1
    assert "repo.toml" in res.output


def test_validate_clean(repo, make_album, store):
    store(repo, make_album("CAT-001"))
    store(repo, make_album("CAT-002"))
    res = invoke(repo, "repo", "validate")
    assert res.exit_code == 0, res.output
    assert "checked 2, failed 0" in res.output


def test_validate_json_reports_violations(repo, make_album, store):
    store(repo, make_album("CAT-001", artist="V.A."))
    store(repo, make_album("CAT-002"))
    res = invoke(repo, "repo", "validate", "--json")
    assert res.exit_code == 1
    data = json.loads(res.stdout)
    assert data["checked"] == 2
    assert data["failed"] == 1
    assert data["violations"][0]["kind"] == "invalid_artist_name"
    assert data["violations"][0]["catalog"] == "CAT-001"


def test_validate_fix(bucketed_repo, make_album, store):
    store(bucketed_repo, make_album("KSLA-0178"), path="album/KSLA-0178.toml")
    res = invoke(bucketed_repo, "repo", "validate", "--fix", "--json")
    assert res.exit_code == 0, res.output
    data = json.loads(res.stdout)
    assert data["fixed"] == 1
    assert data["violations"] == []
    assert (bucketed_repo.root / "album" / "KSLA" / "KSLA-0178.toml").is_file()


def test_print(repo, make_album, store, tmp_path):
    album = make_album("CAT-001", tracks=(2, 1))
    album.discs[1].artist = "Guest"
    store(repo, album)

    assert invoke(repo, "repo", "print", "CAT-001").stdout == "Album CAT-001\n"
    assert invoke(repo, "repo", "print", "CAT-001/2", "-t", "artist").stdout == "Guest\n"
    assert invoke(repo, "repo", "print", album.album_id, "-t", "date").stdout == "2021-04-14\n"

    cue = invoke(repo, "repo", "print", "CAT-001/0", "--type", "cue").stdout
    assert cue.startswith('TITLE "Album CAT-001"\n')
    assert "REM COMMENT" in cue

    output = tmp_path / "album.toml"
    res = invoke(repo, "repo", "print", "CAT-001", "-t", "toml", "--clean", "-o", str(output))
    assert res.exit_code == 0, res.output
    assert output.read_text(encoding="utf-8") == repo.path_for("CAT-001").read_text(
        encoding="utf-8"
    )


def test_print_unknown_album(repo):
    res = invoke(repo, "repo", "print", "CAT-404")
    assert res.exit_code == 1
    bad = invoke(repo, "repo", "print", "CAT 404/x")
    assert bad.exit_code == 1


def test_add_directory(repo, tmp_path):
    directory = tmp_path / "[210414][CAT-005] Hello"
    directory.mkdir()
    (directory / "01. First.flac").write_bytes(b"")

    res = invoke(repo, "repo", "add", str(directory), "--no-tags")
    assert res.exit_code == 1
    assert not repo.path_for("CAT-005").exists()

    res = invoke(repo, "repo", "add", str(directory), "--no-tags", "--artist", "ClariS")
    assert res.exit_code == 0, res.output
    assert repo.path_for("CAT-005").is_file()

    again = invoke(repo, "repo", "add", str(directory), "--no-tags", "--artist", "ClariS")
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_edit_rechecks_document(repo, make_album, store, monkeypatch):
    path = store(repo, make_album("CAT-001"))

    def fake_edit(filename=None, editor=None, **kwargs):
        text = Path(filename).read_text(encoding="utf-8")
        Path(filename).write_text(text.replace('"ClariS"', '"Unknown Artist"'), encoding="utf-8")

    monkeypatch.setattr("discat.commands.repo.click.edit", fake_edit)
    res = invoke(repo, "repo", "edit", "CAT-001")
    assert res.exit_code == 1
    assert "Unknown Artist" in path.read_text(encoding="utf-8")


def test_add_with_edit_opens_new_document(repo, tmp_path, monkeypatch):
    directory = tmp_path / "[210414][CAT-006] Hello"
    directory.mkdir()
    (directory / "01. First.flac").write_bytes(b"")
    opened = []

    def fake_edit(filename=None, editor=None, **kwargs):
        opened.append(Path(filename))

    monkeypatch.setattr("discat.commands.repo.click.edit", fake_edit)
    res = invoke(repo, "repo", "add", str(directory), "--no-tags", "--artist", "ClariS", "-e")
    assert res.exit_code == 0, res.output
    assert opened == [repo.path_for("CAT-006")]


def test_migrate(v1_repo, make_album, store):
    store(v1_repo, make_album("CAT-001", with_id=False))
    store(v1_repo, make_album("CAT-002", with_id=False))

    dry = invoke(v1_repo, "repo", "migrate", "--dry-run", "--json")
    assert dry.exit_code == 0, dry.output
    assert len(json.loads(dry.stdout)["changed"]) == 2
    assert RepoContext.open(v1_repo.root).config.version == 1

    res = invoke(v1_repo, "repo", "migrate", "--json")
    assert res.exit_code == 0, res.output
    data = json.loads(res.stdout)
    assert (data["from_version"], data["to_version"]) == (1, 2)
    assert RepoContext.open(v1_repo.root).config.version == 2

    res = invoke(v1_repo, "repo", "validate")
    assert res.exit_code == 0, res.output


def test_migrate_album_id(repo, make_album, store):
    store(repo, make_album("CAT-001", with_id=False))
    res = invoke(repo, "repo", "migrate", "album-id", "--json")
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["changed"] == ["album/CAT-001.toml"]


def test_db_compile_stats_and_show(repo, make_album, store):
    store(repo, make_album("CAT-001", tracks=(5, 6)))
    store(repo, make_album("CAT-002", tracks=(8,)))

    res = invoke(repo, "db", "compile", "--json")
    assert res.exit_code == 0, res.output
    report = json.loads(res.stdout)
    assert (report["albums"], report["discs"], report["tracks"]) == (2, 3, 19)
    assert Path(report["output"]) == repo.root / "repo.db"

    stats = json.loads(invoke(repo, "db", "stats", "--json").stdout)
    assert stats["tracks"] == 19
    assert stats["name"] == "test-repo"

    shown = json.loads(invoke(repo, "db", "show", "CAT-002").stdout)
    assert len(shown["discs"][0]["tracks"]) == 8
    assert invoke(repo, "db", "show", "CAT-404").exit_code == 1


def test_db_compile_strict(repo, make_album, store):
    store(repo, make_album("CAT-001", artist=""))
    res = invoke(repo, "db", "compile", "--strict")
    assert res.exit_code == 1
    assert not (repo.root / "repo.db").exists()


def test_db_stats_without_snapshot(repo):
    res = invoke(repo, "db", "stats")
    assert res.exit_code == 1


def test_config_path_set_and_show(tmp_path):
    meta = str((tmp_path / "meta").resolve())
    res = runner.invoke(app, ["config", "path", "--repository", meta])
    assert res.exit_code == 0, res.output
    assert Path("settings.toml").exists()

    res = runner.invoke(app, ["--quiet", "config", "show", "--json"])
    assert res.exit_code == 0, res.output
    data = json.loads(res.stdout)
    assert data["repository_path"] == meta
    assert data["database_path"] == str(Path(meta) / "repo.db")
    assert data["workers"] == 4


def test_config_path_prints_current_paths():
    res = runner.invoke(app, ["config", "path"])
    assert res.exit_code == 0, res.output
    assert "Current Paths:" in res.output
