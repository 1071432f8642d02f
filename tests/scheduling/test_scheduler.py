"""Tests for the scheduler loop and its wake-up clock."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, time, timedelta

import pytest

from backuper.core.interval import IntervalSpec
from backuper.core.scheduling import BackupScheduler, TickReport, compute_sleep_time, next_wake


class TestComputeSleepTime:
    @pytest.mark.parametrize(
        ("now", "expected"),
        [
            (time(0, 0), timedelta(minutes=5)),
            (time(0, 4, 59), timedelta(seconds=1)),
            (time(12, 7, 30), timedelta(minutes=2, seconds=30)),
            (time(13, 55), timedelta(minutes=5)),
            (time(23, 50, 50), timedelta(minutes=4, seconds=10)),
            (time(23, 55), timedelta(minutes=5)),
            (time(23, 59, 59), timedelta(seconds=1)),
            (time(23, 59, 59, 500000), timedelta(microseconds=500000)),
        ],
    )
    def test_vectors(self, now, expected):
        assert compute_sleep_time(now) == expected

    def test_never_negative(self):
        for hour in range(24):
            for minute in range(60):
                assert compute_sleep_time(time(hour, minute, 59, 999999)) > timedelta(0)

    def test_next_wake_is_midnight_at_end_of_day(self):
        assert next_wake(datetime(2022, 1, 2, 23, 57, tzinfo=UTC)) == datetime(2022, 1, 3, tzinfo=UTC)


class FakeClock:
    """Returns scripted instants; ``sleep`` advances it."""

    def __init__(self, start: datetime):
        self.now = start
        self.slept: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += timedelta(seconds=seconds)


class FakeCoordinator:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.runs: list[tuple[list[str], datetime]] = []

    async def run(self, due, now):
        self.runs.append(([t.name for t in due], now))
        if self.error is not None:
            raise self.error
        return TickReport(identifier="x")


@pytest.fixture
def targets(make_target):
    return (
        make_target("quarter", 2, IntervalSpec.EVERY_15_MINUTES),
        make_target("hourly", 2, IntervalSpec.EVERY_1_HOUR),
        make_target("daily", 2, IntervalSpec.EVERY_1_DAY),
    )


class TestStep:
    @pytest.mark.asyncio
    async def test_sleeps_to_next_mark(self, targets):
        clock = FakeClock(datetime(2022, 1, 2, 3, 2, 30, tzinfo=UTC))
        scheduler = BackupScheduler(targets, FakeCoordinator(), clock=clock, sleep=clock.sleep)

        await scheduler.step()

        assert clock.slept == [150.0]
        assert scheduler.begin == datetime(2022, 1, 2, 3, 5, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_due_targets_follow_boundaries(self, targets):
        clock = FakeClock(datetime(2022, 1, 2, 23, 40, tzinfo=UTC))
        coordinator = FakeCoordinator()
        scheduler = BackupScheduler(targets, coordinator, clock=clock, sleep=clock.sleep)

        for _ in range(5):
            await scheduler.step()

        # wake-ups: 23:45, 23:50, 23:55, 00:00, 00:05
        assert coordinator.runs == [
            (["quarter"], datetime(2022, 1, 2, 23, 45, tzinfo=UTC)),
            (["quarter", "hourly", "daily"], datetime(2022, 1, 3, 0, 0, tzinfo=UTC)),
        ]
        assert scheduler.stats.tick_count == 5
        assert scheduler.stats.ticks_with_backups == 2

    @pytest.mark.asyncio
    async def test_failures_are_recorded_not_raised(self, targets):
        clock = FakeClock(datetime(2022, 1, 2, 3, 55, tzinfo=UTC))
        coordinator = FakeCoordinator(error=RuntimeError("boom"))
        scheduler = BackupScheduler(targets, coordinator, clock=clock, sleep=clock.sleep)

        assert await scheduler.step() is None
        await scheduler.step()

        assert scheduler.stats.ticks_failed == 1
        assert scheduler.health()["healthy"] is False
        assert scheduler.health()["stats"]["last_error"] == "boom"
        assert scheduler.begin == datetime(2022, 1, 2, 4, 5, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_clock_going_backwards_skips_evaluation(self, targets):
        clock = FakeClock(datetime(2022, 1, 2, 3, 55, tzinfo=UTC))
        coordinator = FakeCoordinator()

        async def jump_back(seconds: float) -> None:
            clock.now -= timedelta(hours=1)

        scheduler = BackupScheduler(targets, coordinator, clock=clock, sleep=jump_back)
        assert await scheduler.step() is None
        assert coordinator.runs == []
        assert scheduler.begin == datetime(2022, 1, 2, 2, 55, tzinfo=UTC)


class TestHealth:
    def test_initial_health(self, targets):
        scheduler = BackupScheduler(targets, FakeCoordinator())
        health = scheduler.health()
        assert health["healthy"] is True
        assert health["targets"] == ["quarter", "hourly", "daily"]
        assert health["last_tick"] is None
        assert health["stats"]["tick_count"] == 0

    def test_due_targets_rejects_empty_window(self, targets):
        scheduler = BackupScheduler(targets, FakeCoordinator())
        instant = datetime(2022, 1, 2, tzinfo=UTC)
        assert scheduler.due_targets(instant, instant) == []


class TestRunForever:
    @pytest.mark.asyncio
    async def test_keeps_ticking_after_failed_ticks(self, targets):
        clock = FakeClock(datetime(2022, 1, 2, 3, 40, tzinfo=UTC))
        coordinator = FakeCoordinator(error=RuntimeError("boom"))

        async def sleep(seconds: float) -> None:
            if len(clock.slept) == 4:
                raise asyncio.CancelledError
            await clock.sleep(seconds)

        scheduler = BackupScheduler(targets, coordinator, clock=clock, sleep=sleep)

        with pytest.raises(asyncio.CancelledError):
            await scheduler.run_forever()

        # wake-ups: 03:45, 03:50, 03:55, 04:00
        assert coordinator.runs == [
            (["quarter"], datetime(2022, 1, 2, 3, 45, tzinfo=UTC)),
            (["quarter", "hourly"], datetime(2022, 1, 2, 4, 0, tzinfo=UTC)),
        ]
        assert scheduler.stats.tick_count == 4
        assert scheduler.stats.ticks_failed == 2
        assert scheduler.health()["healthy"] is False
