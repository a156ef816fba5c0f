# src/discat/core/errors.py

from enum import Enum
from typing import Optional


class DiscatError(Exception):
    """Base application error for discat.

    Use this for predictable, user-facing error messages that should be
    caught by the CLI and displayed nicely. Every engine failure derives
    from it so callers can catch one type.
    """

    pass


class MalformedRepository(DiscatError):
    """repo.toml is missing, unreadable or carries unknown settings."""


class InvalidCatalogFormat(DiscatError):
    def __init__(self, catalog: str):
        super().__init__(f"Invalid catalog format: {catalog!r}")
        self.catalog = catalog


class InvalidReference(DiscatError):
    def __init__(self, reference: str, reason: str):
        super().__init__(f"Invalid reference {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason


class AlbumAlreadyExists(DiscatError):
    def __init__(self, catalog: str):
        super().__init__(f"Album {catalog} already exists in the repository")
        self.catalog = catalog


class AlbumNotFound(DiscatError):
    def __init__(self, catalog: str):
        super().__init__(f"Album {catalog} not found")
        self.catalog = catalog


class CatalogFilenameMismatch(DiscatError):
    pass


class InvalidArtistName(DiscatError):
    pass


class AlbumInfoMismatch(DiscatError):
    pass


class DecodeErrorKind(str, Enum):
    MALFORMED_SYNTAX = "malformed_syntax"
    UNKNOWN_FIELD = "unknown_field"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_VALUE = "invalid_value"


class DecodeError(DiscatError):
    """An album document could not be turned into an Album."""

    def __init__(
        self,
        kind: DecodeErrorKind,
        message: str,
        *,
        field: Optional[str] = None,
        path: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.field = field
        self.path = path
        super().__init__(str(self))

    def with_path(self, path: str) -> "DecodeError":
        return DecodeError(self.kind, self.message, field=self.field, path=path)

    def __str__(self) -> str:
        where = f"{self.path}: " if self.path else ""
        at = f" (at {self.field})" if self.field else ""
        return f"{where}{self.kind.value}: {self.message}{at}"


class MigrationError(DiscatError):
    pass


class TransportError(DiscatError):
    """Raised by the VCS adapter. Never retried by the engine."""


class CompileError(DiscatError):
    pass
