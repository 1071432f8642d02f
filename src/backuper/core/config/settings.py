"""
Process settings for the backup daemon.

Manifesto:
    The YAML config file describes *what* to back up; the environment
    describes *where this process runs*. Container deployments mount the
    save and backup directories and pass their paths as ``SAVE_DIR`` and
    ``BACKUP_DIR``, so those two are read without the ``BACKUPER_`` prefix
    and act as fallbacks for the config file values.

Environment variables:
    BACKUPER_CONFIG_FILE            path of the YAML config (default ``config.yml``)
    BACKUPER_LOG_LEVEL              DEBUG / INFO / WARNING / ERROR
    BACKUPER_LOG_JSON               force JSON (true) or console (false) logs
    BACKUPER_SNAPSHOT_DIR           where temporary snapshots are written
    BACKUPER_RCON_TIMEOUT_SECONDS   socket timeout for RCON
    BACKUPER_MAX_RECONNECTS         reconnect attempts after a connection reset
    BACKUP_DIR / SAVE_DIR           fallbacks for ``backup_dir`` / ``save_dir``

Tags:
    settings, configuration, pydantic, environment, backuper-core
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackuperSettings(BaseSettings):
    """Environment-driven settings, validated at startup."""

    model_config = SettingsConfigDict(
        env_prefix="BACKUPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Config file ──────────────────────────────────────────────
    config_file: Path = Field(
        default=Path("config.yml"),
        description="YAML file with targets, commands and RCON settings",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Structlog log level")
    log_json: bool | None = Field(
        default=None,
        description="JSON logs when true, console when false, auto-detect when unset",
    )

    # ── Storage ──────────────────────────────────────────────────
    snapshot_dir: Path | None = Field(
        default=None,
        description="Directory for per-tick snapshot files (system temp dir when unset)",
    )
    backup_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("BACKUP_DIR", "BACKUPER_BACKUP_DIR"),
        description="Fallback root for target directories",
    )
    save_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("SAVE_DIR", "BACKUPER_SAVE_DIR"),
        description="Fallback path of the game save directory",
    )

    # ── RCON ─────────────────────────────────────────────────────
    rcon_timeout_seconds: float = Field(default=10.0, gt=0)
    max_reconnects: int = Field(default=3, ge=0, le=100)


@lru_cache(maxsize=1)
def get_settings() -> BackuperSettings:
    """Return the cached process settings."""
    return BackuperSettings()


__all__ = ["BackuperSettings", "get_settings"]
