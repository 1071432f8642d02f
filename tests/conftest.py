"""
Shared pytest fixtures and configuration for game-save-backuper tests.

This module provides:
- ``src`` on ``sys.path`` so tests run without an editable install
- ``unit`` marker on every test without an explicit marker
- Fixtures for save directories, targets and configs built on ``tmp_path``
"""

import sys
from pathlib import Path

import pytest

# Ensure backuper package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from backuper.core.config import get_settings
from backuper.core.interval import IntervalSpec
from backuper.core.models import BackuperConfig, BackupMode, BackupTarget


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep host environment variables and .env files out of the settings."""
    for name in ("BACKUP_DIR", "SAVE_DIR", "BACKUPER_CONFIG_FILE", "BACKUPER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Filesystem Fixtures
# =============================================================================


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    """A small game save directory with nested folders."""
    root = tmp_path / "world"
    (root / "region").mkdir(parents=True)
    (root / "level.dat").write_bytes(b"level")
    (root / "region" / "r.0.0.mca").write_bytes(b"\x00" * 64)
    (root / "region" / "r.-1.0.mca").write_bytes(b"\x01" * 32)
    (root / "session.lock").write_text("lock")
    return root


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    root = tmp_path / "backups"
    root.mkdir()
    return root


@pytest.fixture
def make_target(backup_dir: Path):
    """Factory for simple-mode targets below ``backup_dir``."""

    def _make(
        name: str = "hourly",
        limit: int = 3,
        interval: IntervalSpec = IntervalSpec.EVERY_1_HOUR,
    ) -> BackupTarget:
        return BackupTarget(
            name=name,
            directory=backup_dir / name,
            retention_limit=limit,
            interval=interval,
            mode=BackupMode.SIMPLE,
        )

    return _make


@pytest.fixture
def config(save_dir: Path, make_target) -> BackuperConfig:
    """Two targets, no remote commands."""
    return BackuperConfig(
        save_dir=save_dir,
        targets=(
            make_target("hourly", 3, IntervalSpec.EVERY_1_HOUR),
            make_target("daily", 2, IntervalSpec.EVERY_1_DAY),
        ),
    )
