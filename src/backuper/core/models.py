"""
Runtime models for the backup daemon.

These are the validated, immutable shapes the daemon works with after the
configuration file has been loaded. The YAML-facing pydantic specs live in
:mod:`backuper.core.config.loader` and convert into these dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .interval import IntervalSpec


class BackupMode(str, Enum):
    """How a target stores consecutive backups.

    Only ``SIMPLE`` has distinct behaviour today; the replacement modes are
    accepted and stored, and currently behave like ``SIMPLE``.
    """

    SIMPLE = "simple"
    # replace the previously newest backup with one containing only modified files
    REPLACE_NEWEST_WITH_MODIFIED_ONLY = "modifies-only"
    # replace the previously newest backup with a binary patch against the new one
    REPLACE_NEWEST_WITH_BINARY_DIFF = "file-diff"


class GamePreset(str, Enum):
    """Known game servers with default RCON settings and commands."""

    MINECRAFT = "minecraft"

    @property
    def default_rcon_address(self) -> str:
        return "localhost:25575"

    def default_commands(self, before: bool) -> list[str]:
        """Commands that pause (before) or resume (after) world saving."""
        if before:
            return ["save-off", "save-all"]
        return ["save-on"]


@dataclass(frozen=True)
class RconEndpoint:
    """Host and port of the game server's RCON listener."""

    host: str
    port: int

    @classmethod
    def parse(cls, address: str) -> RconEndpoint:
        """Parse ``host:port`` (IPv6 hosts in brackets: ``[::1]:25575``)."""
        host, sep, port = address.strip().rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"expected host:port, got {address!r}")
        number = int(port)
        if not 0 < number < 65536:
            raise ValueError(f"port out of range in {address!r}")
        return cls(host=host.strip("[]"), port=number)

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class BackupTarget:
    """One independently scheduled backup destination."""

    name: str
    directory: Path
    retention_limit: int
    interval: IntervalSpec
    mode: BackupMode = BackupMode.SIMPLE

    def __post_init__(self) -> None:
        if self.retention_limit < 1:
            raise ValueError(f"retention_limit must be positive, got {self.retention_limit}")


@dataclass(frozen=True)
class BackuperConfig:
    """Fully resolved daemon configuration."""

    save_dir: Path
    targets: tuple[BackupTarget, ...]
    preset: GamePreset | None = None
    rcon: RconEndpoint | None = None
    rcon_password: str = ""
    commands_before: tuple[str, ...] = field(default_factory=tuple)
    commands_after: tuple[str, ...] = field(default_factory=tuple)

    @property
    def minecraft_quirks(self) -> bool:
        return self.preset is GamePreset.MINECRAFT

    @property
    def needs_session(self) -> bool:
        return bool(self.commands_before or self.commands_after)


__all__ = [
    "BackupMode",
    "GamePreset",
    "RconEndpoint",
    "BackupTarget",
    "BackuperConfig",
]
