"""
Configuration management using Dynaconf and Pydantic.

Settings are layered: Dynaconf reads `settings.toml` / `.secrets.toml` from the
working directory and the user config directory plus `DISCAT_*` environment
variables; a project-local `settings.toml` overlay and explicit environment
overrides are applied on top. Pydantic validates the merged result into a
typed `DiscatSettings` object.

`load_settings` builds a fresh object on every call. The CLI loads it once
per invocation and hands it down explicitly; nothing here caches state for
the process.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from dynaconf import Dynaconf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import DiscatError

# Determine a user-scoped config directory (XDG-style)
USER_CONFIG_DIR = Path.home() / ".config" / "discat"
USER_SETTINGS_FILE = USER_CONFIG_DIR / "settings.toml"
USER_SECRETS_FILE = USER_CONFIG_DIR / ".secrets.toml"

# Project-local settings (CWD) to support isolated runs and tests
LOCAL_SETTINGS_FILE = Path("settings.toml")

DEFAULT_DATABASE_NAME = "repo.db"
DEFAULT_USER_AGENT = "discat/0.3 ( https://github.com/discat/discat )"

# Settings keys that may be overridden from DISCAT_<KEY> environment variables
_ENV_KEYS = ("repository_path", "database_path", "workers", "http_timeout", "editor")


class DiscatSettings(BaseModel):
    """A Pydantic model that defines and validates all application settings."""

    repository_path: Path = Field(default_factory=lambda: Path.cwd())
    database_path: Optional[Path] = None
    workers: int = 4
    http_timeout: float = 20.0
    musicbrainz_user_agent: str = DEFAULT_USER_AGENT
    editor: Optional[str] = None

    # Pydantic v2 configuration
    model_config = ConfigDict(validate_assignment=True)

    @field_validator("workers")
    @classmethod
    def _positive_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v

    @property
    def resolved_database_path(self) -> Path:
        return self.database_path or (self.repository_path / DEFAULT_DATABASE_NAME)


def _dynaconf_layer() -> Dict[str, Any]:
    loader = Dynaconf(
        envvar_prefix="DISCAT",
        settings_files=[
            "settings.toml",
            ".secrets.toml",
            str(USER_SETTINGS_FILE),
            str(USER_SECRETS_FILE),
        ],
        environments=False,
        load_dotenv=True,
    )
    # Dynaconf upper-cases keys; the model uses snake_case names
    return {str(k).lower(): v for k, v in (loader.as_dict() or {}).items()}


def load_settings(**overrides: Any) -> DiscatSettings:
    """Build settings from every configured layer.

    Keyword overrides (e.g. from CLI options) win over all other layers;
    `None` values are ignored.
    """
    config_dict: Dict[str, Any] = {}

    # 1) Dynaconf loader (project + user scope + DISCAT_ env)
    config_dict.update(_dynaconf_layer())

    # 2) Optional project-local settings.toml overlay
    ignore_local = os.getenv("DISCAT_IGNORE_LOCAL_SETTINGS") == "1"
    if (not ignore_local) and LOCAL_SETTINGS_FILE.exists():
        try:
            local_data = toml.loads(LOCAL_SETTINGS_FILE.read_text(encoding="utf-8")) or {}
        except (OSError, toml.TomlDecodeError) as e:
            raise DiscatError(f"Could not read {LOCAL_SETTINGS_FILE}: {e}") from e
        config_dict.update(local_data)

    # 3) Explicit environment overrides
    for key in _ENV_KEYS:
        value = os.getenv(f"DISCAT_{key.upper()}")
        if value:
            config_dict[key] = value

    # 4) Caller overrides
    config_dict.update({k: v for k, v in overrides.items() if v is not None})

    known = {k: v for k, v in config_dict.items() if k in DiscatSettings.model_fields}
    try:
        return DiscatSettings(**known)
    except ValidationError as e:
        raise DiscatError(f"Configuration error:\n{e}") from e


def settings_payload(settings: DiscatSettings) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "repository_path": str(settings.repository_path),
        "workers": settings.workers,
        "http_timeout": settings.http_timeout,
    }
    if settings.database_path is not None:
        data["database_path"] = str(settings.database_path)
    if settings.editor:
        data["editor"] = settings.editor
    return data


def save_settings(settings: DiscatSettings, *, user_scope: bool = False) -> Path:
    """Persist settings to the project-local (or user) settings.toml."""
    target = USER_SETTINGS_FILE if user_scope else LOCAL_SETTINGS_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(toml.dumps(settings_payload(settings)), encoding="utf-8")
    return target
