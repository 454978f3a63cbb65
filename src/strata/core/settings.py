"""Process-wide settings for strata.

``StrataSettings`` reads ``STRATA_*`` environment variables and a ``.env``
file.  The CLI layers named connection profiles (:mod:`strata.core.config`)
on top of it.

Fields
──────
database_url      : Connection URL (``sqlite:///path``, ``sqlite://:memory:``, ``mysql://...``)
migrations_dir    : Directory of ``<sequence>_<identifier>.py`` migration files
migrations_table  : Name of the applied-sequence ledger table
fetch_chunk_size  : Rows per batch when hydrating records (EAV load granularity)
log_level         : structlog level
log_format        : ``json`` or ``console``
config_file       : TOML file holding ``[connections.<name>]`` profiles

Tags:
    settings, configuration, pydantic, environment, strata

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrataSettings(BaseSettings):
    """strata configuration.

    All fields can be set via ``STRATA_*`` environment variables (e.g.
    ``STRATA_DATABASE_URL=mysql://app:secret@db/app``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="STRATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///strata.db")

    # ── Migrations ───────────────────────────────────────────────
    migrations_dir: Path = Field(default=Path("migrations"))
    migrations_table: str = Field(default="__migrations__")

    # ── Mapping ──────────────────────────────────────────────────
    fetch_chunk_size: int = Field(default=256, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Paths ────────────────────────────────────────────────────
    config_file: Path = Field(default=Path("strata.toml"))

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @field_validator("migrations_table")
    @classmethod
    def _check_table(cls, value: str) -> str:
        if not value.replace("_", "").isalnum():
            raise ValueError(f"invalid migrations table name: {value!r}")
        return value

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


_settings_cache: dict[str, StrataSettings] = {}


def get_settings(*, _force_reload: bool = False) -> StrataSettings:
    """Load, validate, and cache the process settings."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = StrataSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["StrataSettings", "get_settings", "clear_settings_cache"]
