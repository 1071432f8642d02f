"""
Crash-safe retention ledger for one backup target.

Each target directory holds its archives plus ``files.txt``, the ledger: the
ordered list of backup identifiers that are considered live. The ledger, not
the directory listing, is the source of truth for retention.

Manifesto:
    A backup daemon gets killed at arbitrary points (container restarts,
    host reboots). Whatever instant that happens at, the ledger must be
    either the complete old list or the complete new list. Garbage files
    are acceptable; a truncated ledger is not.

Architecture:
    ::

        record(identifier, source)
          1. <identifier>.tar         created exclusively, copied, fsync
          2. files.txt                "\\n<identifier>\\n" appended, fsync
          3. parse files.txt          excess = len(entries) - retention_limit
          4. excess > 0:
               .files.txt             kept entries written, fsync
               os.replace             .files.txt -> files.txt (atomic), fsync dir
               evicted archives       deleted, missing ones ignored
          5. replacement modes        no-op

    A crash between 1 and 2 leaves an orphaned archive without an entry.
    A crash before the rename leaves the old ledger untouched.

Ledger format:
    Newline separated. ``#`` starts a comment that runs to the end of the
    line. Lines with nothing but whitespace or control characters are
    ignored. Every other line is one identifier, oldest first.

Tags:
    retention, ledger, atomic-rename, fsync, crash-safety, backuper-core
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from .errors import LedgerError
from .logging import get_logger
from .models import BackupMode, BackupTarget

logger = get_logger(__name__)

LEDGER_NAME = "files.txt"
COMPACTION_NAME = ".files.txt"
ARCHIVE_SUFFIXES = (".tar", ".diff.tar")


def parse_ledger(data: bytes) -> list[bytes]:
    """Split raw ledger content into identifiers, oldest first.

    >>> parse_ledger(b"b1\\n\\n# note\\nb2\\n")
    [b'b1', b'b2']
    """
    entries: list[bytes] = []
    for line in data.split(b"\n"):
        content = line.split(b"#", 1)[0]
        if any(byte > 0x20 and byte != 0x7F for byte in content):
            entries.append(content.strip())
    return entries


def fsync_directory(path: Path) -> None:
    """Persist directory metadata (renames) where the platform supports it."""
    if os.name == "nt":
        return
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


@dataclass
class RetentionResult:
    """Outcome of one ``RetentionLedger.record`` call."""

    identifier: str
    archive: Path
    kept: list[str] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)
    failed_deletions: dict[str, str] = field(default_factory=dict)

    @property
    def compacted(self) -> bool:
        return bool(self.evicted)


class RetentionLedger:
    """Append-only ledger plus archives of a single backup target."""

    def __init__(
        self,
        directory: Path,
        retention_limit: int,
        *,
        name: str | None = None,
        mode: BackupMode = BackupMode.SIMPLE,
    ):
        if retention_limit < 1:
            raise ValueError(f"retention_limit must be positive, got {retention_limit}")
        self.directory = Path(directory)
        self.retention_limit = retention_limit
        self.name = name or self.directory.name
        self.mode = mode

    @classmethod
    def for_target(cls, target: BackupTarget) -> RetentionLedger:
        return cls(target.directory, target.retention_limit, name=target.name, mode=target.mode)

    @property
    def ledger_path(self) -> Path:
        return self.directory / LEDGER_NAME

    @property
    def compaction_path(self) -> Path:
        return self.directory / COMPACTION_NAME

    def archive_path(self, identifier: str, suffix: str = ".tar") -> Path:
        return self.directory / f"{identifier}{suffix}"

    def entries(self) -> list[str]:
        """Current ledger entries, oldest first (empty when no ledger exists)."""
        try:
            data = self.ledger_path.read_bytes()
        except FileNotFoundError:
            return []
        return [entry.decode("utf-8", errors="replace") for entry in parse_ledger(data)]

    # ------------------------------------------------------------------
    def record(self, identifier: str, source: BinaryIO) -> RetentionResult:
        """Store a new backup and enforce the retention limit.

        ``source`` is read from its current position to the end.

        Raises:
            LedgerError: any step up to and including the ledger rename failed.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._error("back up directory creation", e) from e

        archive = self._materialize(identifier, source)
        self._append(identifier)

        try:
            entries = parse_ledger(self.ledger_path.read_bytes())
        except OSError as e:
            raise self._error("reading files.txt", e) from e

        result = RetentionResult(identifier=identifier, archive=archive)
        excess = max(0, len(entries) - self.retention_limit)
        evicted, kept = entries[:excess], entries[excess:]
        result.kept = [entry.decode("utf-8", errors="replace") for entry in kept]

        if excess:
            logger.info(
                "retention_limit_exceeded",
                target=self.name,
                limit=self.retention_limit,
                excess=excess,
                kept=len(kept),
            )
            self._compact(kept)
            for raw in evicted:
                self._evict(raw, result)
        else:
            logger.debug(
                "retention_within_limit",
                target=self.name,
                limit=self.retention_limit,
                count=len(entries),
            )

        if self.mode is not BackupMode.SIMPLE and len(kept) >= 2:
            # TODO: replace the previously newest archive once a modified-only/binary-diff format exists
            logger.debug("replacement_mode_skipped", target=self.name, mode=self.mode.value)

        return result

    # ------------------------------------------------------------------
    def _materialize(self, identifier: str, source: BinaryIO) -> Path:
        path = self.archive_path(identifier)
        try:
            with path.open("xb") as out:
                shutil.copyfileobj(source, out)
                out.flush()
                os.fsync(out.fileno())
        except FileExistsError as e:
            raise self._error(f"backup file {path.name} already exists", e) from e
        except OSError as e:
            raise self._error("saving backup to file", e) from e
        logger.debug("backup_saved", target=self.name, path=str(path))
        return path

    def _append(self, identifier: str) -> None:
        try:
            with self.ledger_path.open("ab") as ledger:
                ledger.write(f"\n{identifier}\n".encode())
                ledger.flush()
                os.fsync(ledger.fileno())
        except OSError as e:
            raise self._error("appending to files.txt", e) from e
        logger.debug("ledger_appended", target=self.name, identifier=identifier)

    def _compact(self, kept: list[bytes]) -> None:
        content = b"\n".join(kept) + b"\n" if kept else b""
        try:
            with self.compaction_path.open("wb") as side:
                side.write(content)
                side.flush()
                os.fsync(side.fileno())
            os.replace(self.compaction_path, self.ledger_path)
            fsync_directory(self.directory)
        except OSError as e:
            raise self._error("creating new files.txt", e) from e

    def _evict(self, raw: bytes, result: RetentionResult) -> None:
        try:
            identifier = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error(
                "backup_delete_failed",
                target=self.name,
                entry=raw.hex(),
                error=f"invalid utf8 at {e.start}",
            )
            result.failed_deletions[raw.decode("utf-8", errors="replace")] = str(e)
            return

        logger.debug("backup_deleting", target=self.name, identifier=identifier)
        errors: list[str] = []
        for suffix in ARCHIVE_SUFFIXES:
            try:
                self.archive_path(identifier, suffix).unlink(missing_ok=True)
            except OSError as e:
                errors.append(str(e))
        if errors:
            logger.error("backup_delete_failed", target=self.name, identifier=identifier, error="; ".join(errors))
            result.failed_deletions[identifier] = "; ".join(errors)
        else:
            result.evicted.append(identifier)

    def _error(self, step: str, cause: BaseException) -> LedgerError:
        return LedgerError(f"{step}: {cause}", target=self.name, cause=cause).with_context(
            directory=self.directory
        )


__all__ = [
    "LEDGER_NAME",
    "COMPACTION_NAME",
    "RetentionLedger",
    "RetentionResult",
    "fsync_directory",
    "parse_ledger",
]
