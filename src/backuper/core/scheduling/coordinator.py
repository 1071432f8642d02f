"""
One backup tick: quiesce the server, snapshot once, fan out to targets.

Manifesto:
    The save directory is archived exactly once per tick no matter how many
    targets are due. The game server is told to stop writing for as short a
    time as possible: only while the snapshot is being taken. Targets never
    affect each other; a full disk under one target directory does not
    prevent the others from getting their backup.

Architecture:
    ::

        run(due, now)
          │
          ├── before-commands   sequential; failure → TickAbortedError
          ├── create_snapshot   worker thread
          ├── after-commands    always run (finally); failure propagates
          │
          ├── asyncio.gather ─┬── to_thread(ledger.record)   target A
          │                   ├── to_thread(ledger.record)   target B
          │                   └── ...                        failures logged
          │
          └── snapshot.discard()

Tags:
    orchestration, snapshot, fan-out, asyncio, backuper-core
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from backuper.core.archive import Snapshot, create_snapshot
from backuper.core.errors import BackuperError, TickAbortedError
from backuper.core.ledger import RetentionLedger, RetentionResult
from backuper.core.logging import LogContext, get_logger
from backuper.core.models import BackuperConfig, BackupTarget
from backuper.core.session import CommandSession
from backuper.core.timestamps import backup_identifier

logger = get_logger(__name__)

LedgerFactory = Callable[[BackupTarget], RetentionLedger]


@dataclass
class TickReport:
    """What one coordinator run produced."""

    identifier: str
    results: dict[str, RetentionResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, object]:
        return {
            "identifier": self.identifier,
            "saved": sorted(self.results),
            "failed": dict(self.failures),
        }


class SnapshotCoordinator:
    """Runs the command/snapshot/fan-out sequence for the due targets."""

    def __init__(
        self,
        config: BackuperConfig,
        session: CommandSession | None,
        *,
        snapshot_dir: Path | None = None,
        ledger_factory: LedgerFactory = RetentionLedger.for_target,
    ):
        self.config = config
        self.session = session
        self.snapshot_dir = snapshot_dir
        self.ledger_factory = ledger_factory

    async def run(self, due: Sequence[BackupTarget], now: datetime) -> TickReport:
        """Back up ``save_dir`` into every target in ``due``.

        Raises:
            TickAbortedError: a before-command failed; nothing was archived.
            ProtocolError: an after-command failed; no target was written.
            ArchiveError: the snapshot could not be created.
        """
        identifier = backup_identifier(now)
        report = TickReport(identifier=identifier)
        if not due:
            return report

        logger.info("backup_tick_started", identifier=identifier, targets=[t.name for t in due])

        for command in self.config.commands_before:
            try:
                await self._execute(command)
            except BackuperError as e:
                raise TickAbortedError(command, e) from e

        snapshot: Snapshot | None = None
        try:
            snapshot = await asyncio.to_thread(
                create_snapshot, self.config.save_dir, self.snapshot_dir
            )
        finally:
            try:
                for command in self.config.commands_after:
                    await self._execute(command)
            except BaseException:
                if snapshot is not None:
                    snapshot.discard()
                raise

        with snapshot:
            outcomes = await asyncio.gather(
                *(self._save(target, identifier, snapshot) for target in due)
            )

        for target, outcome in zip(due, outcomes):
            if isinstance(outcome, RetentionResult):
                report.results[target.name] = outcome
            else:
                report.failures[target.name] = outcome

        logger.info(
            "backup_tick_finished",
            identifier=identifier,
            saved=len(report.results),
            failed=len(report.failures),
        )
        return report

    async def _execute(self, command: str) -> str:
        if self.session is None:
            raise TickAbortedError(command, RuntimeError("no command session configured"))
        return await self.session.execute(command)

    async def _save(
        self, target: BackupTarget, identifier: str, snapshot: Snapshot
    ) -> RetentionResult | str:
        async with LogContext(target=target.name):
            try:
                ledger = self.ledger_factory(target)
                result = await asyncio.to_thread(self._record, ledger, identifier, snapshot)
            except (BackuperError, OSError) as e:
                logger.error("backup_target_failed", identifier=identifier, error=str(e))
                return str(e)
            except Exception as e:
                logger.exception("backup_target_failed", identifier=identifier, error=str(e))
                return str(e) or type(e).__name__
            logger.info(
                "backup_target_saved",
                identifier=identifier,
                kept=len(result.kept),
                evicted=len(result.evicted),
            )
            return result

    @staticmethod
    def _record(ledger: RetentionLedger, identifier: str, snapshot: Snapshot) -> RetentionResult:
        with snapshot.open() as source:
            return ledger.record(identifier, source)


__all__ = ["LedgerFactory", "SnapshotCoordinator", "TickReport"]
