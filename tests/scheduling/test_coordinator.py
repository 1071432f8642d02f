"""Tests for SnapshotCoordinator."""

from __future__ import annotations

import dataclasses
import tarfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from backuper.core.errors import LedgerError, ProtocolError, TickAbortedError
from backuper.core.ledger import RetentionLedger
from backuper.core.scheduling import SnapshotCoordinator

NOW = datetime(2022, 1, 2, 3, 0, 0, tzinfo=UTC)
IDENTIFIER = "backup-2022-01-02-03-00-00"


class FakeSession:
    """Records commands; raises for the ones listed in ``failing``."""

    def __init__(self, failing: set[str] | None = None, log: list[str] | None = None):
        self.failing = failing or set()
        self.log = log if log is not None else []

    async def execute(self, command: str) -> str:
        self.log.append(command)
        if command in self.failing:
            raise ProtocolError(f"{command} failed")
        return ""


def with_commands(config, before=("save-off", "save-all"), after=("save-on",)):
    return dataclasses.replace(config, commands_before=before, commands_after=after)


def snapshot_files(directory: Path) -> list[Path]:
    return list(directory.glob(".snapshot-*.tar"))


class TestRun:
    @pytest.mark.asyncio
    async def test_backs_up_every_due_target(self, config, tmp_path: Path):
        session = FakeSession()
        coordinator = SnapshotCoordinator(with_commands(config), session, snapshot_dir=tmp_path)

        report = await coordinator.run(config.targets, NOW)

        assert report.ok
        assert report.identifier == IDENTIFIER
        assert sorted(report.results) == ["daily", "hourly"]
        assert session.log == ["save-off", "save-all", "save-on"]
        for target in config.targets:
            archive = target.directory / f"{IDENTIFIER}.tar"
            with tarfile.open(archive) as tar:
                assert "level.dat" in tar.getnames()
            assert RetentionLedger.for_target(target).entries() == [IDENTIFIER]
        assert snapshot_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_targets_share_identical_archives(self, config, tmp_path: Path):
        await SnapshotCoordinator(config, None, snapshot_dir=tmp_path).run(config.targets, NOW)

        hourly, daily = (t.directory / f"{IDENTIFIER}.tar" for t in config.targets)
        assert hourly.read_bytes() == daily.read_bytes()

    @pytest.mark.asyncio
    async def test_only_due_targets_are_written(self, config, tmp_path: Path):
        hourly, daily = config.targets
        await SnapshotCoordinator(config, None, snapshot_dir=tmp_path).run([hourly], NOW)

        assert (hourly.directory / f"{IDENTIFIER}.tar").exists()
        assert not daily.directory.exists()

    @pytest.mark.asyncio
    async def test_nothing_due(self, config, tmp_path: Path):
        session = FakeSession()
        report = await SnapshotCoordinator(with_commands(config), session).run([], NOW)

        assert report.results == {}
        assert session.log == []


class TestCommandFailures:
    @pytest.mark.asyncio
    async def test_before_command_failure_aborts_tick(self, config, tmp_path: Path):
        session = FakeSession(failing={"save-off"})
        coordinator = SnapshotCoordinator(with_commands(config), session, snapshot_dir=tmp_path)

        with pytest.raises(TickAbortedError) as exc_info:
            await coordinator.run(config.targets, NOW)

        assert exc_info.value.command == "save-off"
        assert session.log == ["save-off"]
        assert snapshot_files(tmp_path) == []
        assert not any(t.directory.exists() for t in config.targets)

    @pytest.mark.asyncio
    async def test_after_commands_run_when_snapshot_fails(self, config, tmp_path: Path):
        broken = dataclasses.replace(with_commands(config), save_dir=tmp_path / "missing")
        session = FakeSession()

        with pytest.raises(Exception, match="save directory does not exist"):
            await SnapshotCoordinator(broken, session, snapshot_dir=tmp_path).run(config.targets, NOW)

        assert session.log == ["save-off", "save-all", "save-on"]

    @pytest.mark.asyncio
    async def test_after_command_failure_aborts_fan_out(self, config, tmp_path: Path):
        session = FakeSession(failing={"save-on"})
        coordinator = SnapshotCoordinator(with_commands(config), session, snapshot_dir=tmp_path)

        with pytest.raises(ProtocolError):
            await coordinator.run(config.targets, NOW)

        assert not any(t.directory.exists() for t in config.targets)
        assert snapshot_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_commands_without_session(self, config, tmp_path: Path):
        coordinator = SnapshotCoordinator(with_commands(config), None, snapshot_dir=tmp_path)
        with pytest.raises(TickAbortedError):
            await coordinator.run(config.targets, NOW)


class TestTargetIsolation:
    @pytest.mark.asyncio
    async def test_one_failing_target_does_not_stop_others(self, config, tmp_path: Path):
        hourly, daily = config.targets
        daily.directory.mkdir(parents=True)
        # an archive with this identifier already exists for "daily"
        (daily.directory / f"{IDENTIFIER}.tar").write_bytes(b"old")

        report = await SnapshotCoordinator(config, None, snapshot_dir=tmp_path).run(config.targets, NOW)

        assert not report.ok
        assert list(report.results) == ["hourly"]
        assert "already exists" in report.failures["daily"]
        assert (hourly.directory / f"{IDENTIFIER}.tar").exists()
        assert report.to_dict()["failed"] == report.failures

    @pytest.mark.asyncio
    async def test_ledger_factory_errors_are_isolated(self, config, tmp_path: Path):
        def factory(target):
            if target.name == "daily":
                raise LedgerError("disk full", target=target.name)
            return RetentionLedger.for_target(target)

        coordinator = SnapshotCoordinator(config, None, snapshot_dir=tmp_path, ledger_factory=factory)
        report = await coordinator.run(config.targets, NOW)

        assert list(report.results) == ["hourly"]
        assert report.failures == {"daily": "disk full"}

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_isolated(self, config, tmp_path: Path):
        """A bug in one target's ledger still yields a report for the others."""

        def factory(target):
            if target.name == "daily":
                raise RuntimeError("boom")
            return RetentionLedger.for_target(target)

        coordinator = SnapshotCoordinator(config, None, snapshot_dir=tmp_path, ledger_factory=factory)
        report = await coordinator.run(config.targets, NOW)

        hourly, _ = config.targets
        assert list(report.results) == ["hourly"]
        assert report.failures == {"daily": "boom"}
        assert (hourly.directory / f"{IDENTIFIER}.tar").exists()
        assert snapshot_files(tmp_path) == []
