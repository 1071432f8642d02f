"""
Core primitives of game-save-backuper.

- ``interval``: interval expressions, boundary detection and alignment
- ``ledger``: crash-safe retention ledger per backup target
- ``archive``: deterministic tar snapshots of the save directory
- ``session``: RCON command session with reconnect on reset
- ``scheduling``: the main loop and the per-tick coordinator
- ``config``: YAML config file and environment settings
"""

from backuper.core.errors import (
    ArchiveError,
    BackuperError,
    ConfigError,
    ErrorCategory,
    IntervalParseError,
    LedgerError,
    ProtocolError,
    StorageError,
    TickAbortedError,
)
from backuper.core.interval import IntervalSpec
from backuper.core.ledger import RetentionLedger, RetentionResult, parse_ledger
from backuper.core.models import (
    BackupMode,
    BackuperConfig,
    BackupTarget,
    GamePreset,
    RconEndpoint,
)

__all__ = [
    # Errors
    "ErrorCategory",
    "BackuperError",
    "ConfigError",
    "IntervalParseError",
    "ProtocolError",
    "StorageError",
    "ArchiveError",
    "LedgerError",
    "TickAbortedError",
    # Interval
    "IntervalSpec",
    # Ledger
    "RetentionLedger",
    "RetentionResult",
    "parse_ledger",
    # Models
    "BackupMode",
    "BackuperConfig",
    "BackupTarget",
    "GamePreset",
    "RconEndpoint",
]
