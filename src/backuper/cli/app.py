"""
Root Typer application for game-save-backuper.

Commands:
    run        start the backup daemon
    check      validate the config file and list the targets
    interval   parse an interval expression and show its last boundary
    ledger     list the backups recorded in a target directory
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import typer

from backuper import __version__
from backuper.cli.utils import console, fail, print_dict, print_table
from backuper.core.config import BackuperSettings, get_settings, load_config
from backuper.core.errors import BackuperError, IntervalParseError
from backuper.core.interval import IntervalSpec
from backuper.core.ledger import LEDGER_NAME, RetentionLedger
from backuper.core.logging import configure_logging, get_logger
from backuper.core.models import BackuperConfig
from backuper.core.scheduling import BackupScheduler, SnapshotCoordinator
from backuper.core.session import CommandSession
from backuper.core.timestamps import to_iso8601

logger = get_logger(__name__)

app = typer.Typer(
    name="game-save-backuper",
    help="game-save-backuper: scheduled backups of a game server's save directory.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("game-save-backuper")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"game-save-backuper {v}")
        raise typer.Exit()


@app.callback()
def root(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """game-save-backuper CLI: run the daemon and inspect its state."""


# ── Daemon wiring ────────────────────────────────────────────────────────


def build_scheduler(config: BackuperConfig, settings: BackuperSettings) -> BackupScheduler:
    """Wire session, coordinator and scheduler for a loaded config."""
    session = None
    if config.needs_session:
        session = CommandSession(
            config.rcon,
            config.rcon_password,
            minecraft_quirks=config.minecraft_quirks,
            timeout=settings.rcon_timeout_seconds,
            max_reconnects=settings.max_reconnects,
        )
    coordinator = SnapshotCoordinator(config, session, snapshot_dir=settings.snapshot_dir)
    return BackupScheduler(config.targets, coordinator)


async def _serve(scheduler: BackupScheduler) -> None:
    session = scheduler.coordinator.session
    try:
        await scheduler.run_forever()
    finally:
        if session is not None:
            await session.close()


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run_daemon(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Path of config.yml"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="DEBUG, INFO, WARNING, ERROR"),
    json_logs: bool | None = typer.Option(None, "--json/--console", help="Log format (auto when omitted)"),
) -> None:
    """Start the backup daemon (runs until interrupted)."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=json_logs if json_logs is not None else settings.log_json,
    )

    try:
        config = load_config(config_file, settings)
    except BackuperError as e:
        logger.error("startup_failed", **e.to_dict())
        raise fail(e) from e

    scheduler = build_scheduler(config, settings)
    try:
        asyncio.run(_serve(scheduler))
    except KeyboardInterrupt:
        logger.info("interrupted")


@app.command("check")
def check_config(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Path of config.yml"),
) -> None:
    """Validate the config file and list the backup targets."""
    try:
        config = load_config(config_file, get_settings())
    except BackuperError as e:
        raise fail(e) from e

    print_dict(
        {
            "save_dir": config.save_dir,
            "preset": config.preset.value if config.preset else "-",
            "rcon": config.rcon or "-",
            "commands_before": ", ".join(config.commands_before) or "-",
            "commands_after": ", ".join(config.commands_after) or "-",
        },
        title="Configuration",
    )
    print_table(
        ["name", "interval", "max_backups", "mode", "directory"],
        (
            (t.name, t.interval, t.retention_limit, t.mode.value, t.directory)
            for t in config.targets
        ),
        title="Backup targets",
    )


@app.command("interval")
def show_interval(
    expression: str = typer.Argument(..., help="Interval expression, e.g. 'every 2 hours'"),
    at: str | None = typer.Option(None, "--at", help="ISO-8601 instant (default: now, UTC)"),
) -> None:
    """Parse an interval and show the last boundary at or before an instant."""
    try:
        spec = IntervalSpec.parse(expression)
    except IntervalParseError as e:
        raise fail(e) from e

    if at is None:
        instant = datetime.now(UTC)
    else:
        try:
            instant = datetime.fromisoformat(at)
        except ValueError as e:
            raise fail(f"invalid --at value: {at!r}") from e
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)

    print_dict(
        {
            "interval": spec,
            "granularity": spec.granularity,
            "at": to_iso8601(instant),
            "last_boundary": to_iso8601(spec.get_last_date_until(instant)),
        },
        title="Interval",
    )


@app.command("ledger")
def show_ledger(
    directory: Path = typer.Argument(..., help="Target directory containing files.txt"),
) -> None:
    """List the backups recorded in a target directory, oldest first."""
    if not (directory / LEDGER_NAME).is_file():
        raise fail(f"no {LEDGER_NAME} in {directory}")

    entries = RetentionLedger(directory, 1).entries()
    if not entries:
        console.print("[dim]No backups.[/dim]")
        return
    print_table(
        ["#", "identifier", "archive"],
        (
            (index, entry, "yes" if (directory / f"{entry}.tar").exists() else "missing")
            for index, entry in enumerate(entries, start=1)
        ),
        title=f"Backups in {directory}",
    )


def main() -> None:
    """Console-script entry point."""
    app()


__all__ = ["app", "build_scheduler", "main"]
