"""discat: a version-controlled catalog of music release metadata."""

__version__ = "0.3.0"
