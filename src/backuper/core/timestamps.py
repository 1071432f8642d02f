"""
UTC clock and backup identifier helpers (stdlib-only).

All instants handled by the daemon are timezone-aware UTC datetimes. Backup
identifiers are derived from the tick instant at second granularity, which is
what keeps ledger entries unique in practice.
"""

from datetime import UTC, datetime

BACKUP_NAME_FORMAT = "backup-%Y-%m-%d-%H-%M-%S"


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def backup_identifier(instant: datetime) -> str:
    """Format the identifier of a backup taken at ``instant``.

    >>> backup_identifier(datetime(2022, 1, 2, 3, 4, 5, tzinfo=UTC))
    'backup-2022-01-02-03-04-05'
    """
    if instant.tzinfo is not None:
        instant = instant.astimezone(UTC)
    return instant.strftime(BACKUP_NAME_FORMAT)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()
