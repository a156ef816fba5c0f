"""Smoke tests for the discat package layout."""

from importlib.util import find_spec

from typer.testing import CliRunner


def test_packages_are_importable():
    for name in ("discat", "discat.core", "discat.plugins", "discat.commands"):
        assert find_spec(name) is not None, name


def test_command_groups_are_registered():
    from discat.cli import app

    res = CliRunner().invoke(app, ["--help"])
    assert res.exit_code == 0, res.output
    for group in ("repo", "db", "config"):
        assert group in res.output
