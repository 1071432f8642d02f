"""Scheduling package for game-save-backuper.

Manifesto:
    Backups are due when an interval boundary falls between two consecutive
    wake-ups of the loop, not when a countdown expires. The package splits
    that into three parts so each can be tested without a clock: wake-up
    computation, the loop itself, and the per-tick snapshot fan-out.

Quick Start::

    from backuper.core.scheduling import BackupScheduler, SnapshotCoordinator

    coordinator = SnapshotCoordinator(config, session)
    scheduler = BackupScheduler(config.targets, coordinator)
    await scheduler.run_forever()
"""

from .clock import compute_sleep_time, next_wake
from .coordinator import LedgerFactory, SnapshotCoordinator, TickReport
from .service import BackupScheduler, SchedulerStats

__all__ = [
    # Clock
    "compute_sleep_time",
    "next_wake",
    # Coordinator
    "LedgerFactory",
    "SnapshotCoordinator",
    "TickReport",
    # Service
    "BackupScheduler",
    "SchedulerStats",
]
