"""Load and validate the YAML configuration file.

Usage::

    from backuper.core.config import load_config

    config = load_config(Path("config.yml"))
    for target in config.targets:
        print(target.name, target.interval)

Example YAML::

    preset: minecraft
    rcon_password: secret
    backup_dir: /backups
    save_dir: /data/world
    backups:
      - name: hourly
        max_backups: 24
        interval: every hour
        backup_mode: simple
      - name: daily
        max_backups: 14
        interval: daily

Resolution rules:
    - ``rcon_address`` falls back to the preset's default, and may only be
      omitted without a preset when no commands are configured.
    - ``commands_before`` / ``commands_after`` are newline separated. Unset
      means "preset defaults" (or none); an empty string means none.
    - ``backup_dir`` / ``save_dir`` fall back to ``BACKUP_DIR`` / ``SAVE_DIR``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from backuper.core.errors import (
    ConfigError,
    IntervalParseError,
    InvalidConfigError,
    MissingConfigError,
)
from backuper.core.interval import IntervalSpec
from backuper.core.logging import get_logger
from backuper.core.models import (
    BackupMode,
    BackuperConfig,
    BackupTarget,
    GamePreset,
    RconEndpoint,
)

from .settings import BackuperSettings, get_settings

logger = get_logger(__name__)


class BackupTargetSpec(BaseModel):
    """One entry of the ``backups`` list."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Target name; also its directory name")
    max_backups: int = Field(..., ge=1, description="Number of backups kept for this target")
    interval: IntervalSpec = Field(..., description="Interval expression, e.g. 'every 2 hours'")
    backup_mode: BackupMode = Field(
        default=BackupMode.REPLACE_NEWEST_WITH_MODIFIED_ONLY,
        description="simple, modifies-only or file-diff",
    )

    @field_validator("interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> IntervalSpec:
        if isinstance(value, IntervalSpec):
            return value
        if not isinstance(value, str):
            raise ValueError("interval must be a string")
        try:
            return IntervalSpec.parse(value)
        except IntervalParseError as exc:
            raise ValueError(exc.message) from exc

    @field_validator("name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        if value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError("name must be a plain directory name")
        return value

    def to_target(self, backup_dir: Path) -> BackupTarget:
        """Convert to the runtime ``BackupTarget``."""
        return BackupTarget(
            name=self.name,
            directory=backup_dir / self.name,
            retention_limit=self.max_backups,
            interval=self.interval,
            mode=self.backup_mode,
        )


class ConfigFileSpec(BaseModel):
    """Top-level shape of ``config.yml``."""

    model_config = ConfigDict(extra="ignore")

    preset: GamePreset | None = None
    rcon_address: str | None = None
    rcon_password: str = ""
    commands_before: str | None = None
    commands_after: str | None = None
    backup_dir: Path | None = None
    save_dir: Path | None = None
    backups: list[BackupTargetSpec]

    @classmethod
    def from_yaml(cls, yaml_content: str) -> ConfigFileSpec:
        """Parse and validate YAML content."""
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", cause=e) from e
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"])
            raise InvalidConfigError(
                key, first.get("input"), f"Invalid configuration for {key}: {first['msg']}", cause=e
            ) from e


def _command_lines(text: str | None, preset: GamePreset | None, *, before: bool) -> tuple[str, ...]:
    if text is None:
        return tuple(preset.default_commands(before)) if preset else ()
    return tuple(line for line in text.splitlines() if line.strip())


def _resolve_rcon(spec: ConfigFileSpec) -> RconEndpoint | None:
    address = spec.rcon_address
    if address is None:
        if spec.preset is not None:
            address = spec.preset.default_rcon_address
        elif spec.commands_before is None and spec.commands_after is None:
            return None
        else:
            raise MissingConfigError(
                "rcon_address", "rcon_address is required if no preset are defined"
            )
    try:
        return RconEndpoint.parse(address)
    except ValueError as e:
        raise InvalidConfigError("rcon_address", address, cause=e) from e


def resolve_config(spec: ConfigFileSpec, settings: BackuperSettings | None = None) -> BackuperConfig:
    """Apply presets and environment fallbacks to a validated spec."""
    settings = settings or get_settings()

    backup_dir = spec.backup_dir or settings.backup_dir
    if backup_dir is None:
        raise MissingConfigError("backup_dir", "backup_dir not found")
    save_dir = spec.save_dir or settings.save_dir
    if save_dir is None:
        raise MissingConfigError("save_dir", "save_dir not found")

    names = [target.name for target in spec.backups]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise InvalidConfigError("backups", duplicates, f"duplicate backup names: {', '.join(duplicates)}")

    return BackuperConfig(
        save_dir=save_dir,
        targets=tuple(target.to_target(backup_dir) for target in spec.backups),
        preset=spec.preset,
        rcon=_resolve_rcon(spec),
        rcon_password=spec.rcon_password,
        commands_before=_command_lines(spec.commands_before, spec.preset, before=True),
        commands_after=_command_lines(spec.commands_after, spec.preset, before=False),
    )


def load_config(path: Path | None = None, settings: BackuperSettings | None = None) -> BackuperConfig:
    """Read, validate and resolve the configuration file.

    Raises:
        ConfigError: the file is unreadable, malformed or inconsistent.
    """
    settings = settings or get_settings()
    path = path or settings.config_file

    logger.debug("config_loading", path=str(path))
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}", cause=e).with_context(path=path) from e

    config = resolve_config(ConfigFileSpec.from_yaml(content), settings)
    logger.debug(
        "config_loaded",
        path=str(path),
        targets=[target.name for target in config.targets],
        rcon=str(config.rcon) if config.rcon else None,
    )
    return config


__all__ = [
    "BackupTargetSpec",
    "ConfigFileSpec",
    "resolve_config",
    "load_config",
]
