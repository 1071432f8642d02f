"""Backup scheduler - the daemon's main loop.

Manifesto:
    The loop never asks "when is the next backup of target X"; it asks, on
    every wake-up, "did target X's interval boundary fall between the last
    wake-up and this one". Waking on fixed five-minute marks and comparing
    consecutive instants keeps the schedule stable across restarts, clock
    jumps and slow ticks, and makes every tick testable with two datetimes.

Tags:
    scheduling, main-loop, interval-boundaries, asyncio, backuper-core

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  BACKUP SCHEDULER                                                             │
│                                                                               │
│   begin = now()                                                               │
│   loop:                                                                       │
│     sleep(compute_sleep_time(now))          wake on 5-minute marks            │
│     end = now()                                                               │
│     due = [t for t in targets if t.interval.is_passed(begin, end)]            │
│     due → SnapshotCoordinator.run(due, end)  errors logged, loop continues    │
│     begin = end                                                               │
│                                                                               │
│   health() → tick counters, last tick, last error                            │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from backuper.core.logging import get_logger
from backuper.core.models import BackupTarget
from backuper.core.timestamps import to_iso8601, utc_now

from .clock import compute_sleep_time
from .coordinator import SnapshotCoordinator, TickReport

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Statistics for the backup scheduler."""

    tick_count: int = 0
    ticks_with_backups: int = 0
    ticks_failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None


class BackupScheduler:
    """Wakes periodically and hands due targets to the coordinator.

    Example:
        >>> scheduler = BackupScheduler(config.targets, coordinator)
        >>> asyncio.run(scheduler.run_forever())
    """

    def __init__(
        self,
        targets: Sequence[BackupTarget],
        coordinator: SnapshotCoordinator,
        *,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            targets: Backup targets, each with its own interval
            coordinator: Runs commands, snapshot and fan-out for a tick
            clock: Source of the current instant (UTC by default)
            sleep: Coroutine used to wait between ticks
        """
        self.targets = tuple(targets)
        self.coordinator = coordinator
        self._clock = clock
        self._sleep = sleep
        self._begin = clock()
        self._stats = SchedulerStats()

    @property
    def begin(self) -> datetime:
        """Instant of the previous wake-up (or of construction)."""
        return self._begin

    @property
    def stats(self) -> SchedulerStats:
        return self._stats

    def due_targets(self, begin: datetime, end: datetime) -> list[BackupTarget]:
        """Targets whose interval boundary is crossed in ``[begin, end)``."""
        if end <= begin:
            return []
        return [target for target in self.targets if target.interval.is_passed(begin, end)]

    # === Tick Processing ===

    async def step(self) -> TickReport | None:
        """Sleep until the next wake-up and process one tick.

        Tick failures are logged and recorded, never raised.
        """
        wait = compute_sleep_time(self._clock().time())
        logger.debug("scheduler_sleeping", seconds=wait.total_seconds())
        await self._sleep(wait.total_seconds())

        end = self._clock()
        begin, self._begin = self._begin, end
        self._stats.tick_count += 1
        self._stats.last_tick = end

        if end - begin <= timedelta(0):
            logger.warning("clock_not_advanced", begin=to_iso8601(begin), end=to_iso8601(end))
            return None

        due = self.due_targets(begin, end)
        if not due:
            logger.debug("no_backups_due", begin=to_iso8601(begin), end=to_iso8601(end))
            return None

        self._stats.ticks_with_backups += 1
        try:
            report = await self.coordinator.run(due, end)
        except Exception as e:
            self._stats.ticks_failed += 1
            self._stats.last_error = str(e)
            logger.exception("backup_step_failed", targets=[t.name for t in due], error=str(e))
            return None

        self._stats.last_error = None if report.ok else "; ".join(
            f"{name}: {error}" for name, error in report.failures.items()
        )
        return report

    async def run_forever(self) -> None:
        """Process ticks until cancelled."""
        logger.info(
            "scheduler_started",
            targets={t.name: str(t.interval) for t in self.targets},
        )
        try:
            while True:
                await self.step()
        finally:
            logger.info("scheduler_stopped", ticks=self._stats.tick_count)

    def health(self) -> dict[str, Any]:
        """Get scheduler health as a dictionary."""
        return {
            "healthy": self._stats.last_error is None,
            "targets": [t.name for t in self.targets],
            "last_tick": to_iso8601(self._stats.last_tick),
            "stats": {
                "tick_count": self._stats.tick_count,
                "ticks_with_backups": self._stats.ticks_with_backups,
                "ticks_failed": self._stats.ticks_failed,
                "last_error": self._stats.last_error,
            },
        }


__all__ = ["BackupScheduler", "SchedulerStats"]
