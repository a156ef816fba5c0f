"""Command groups for the discat CLI.

This package provides sub-apps that are mounted by discat.cli.
"""

from . import config as config  # noqa: F401
from . import db as db  # noqa: F401
from . import repo as repo  # noqa: F401

__all__ = [
    "repo",
    "db",
    "config",
]
