"""Wake-up times of the scheduler loop.

The loop wakes on five-minute marks of the wall clock (00:00, 00:05, ...).
The last mark of a day is midnight itself: from 23:55 onwards the loop
sleeps exactly until the end of the day.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

_DAY = timedelta(days=1)


def _since_midnight(now: time) -> timedelta:
    return timedelta(
        hours=now.hour, minutes=now.minute, seconds=now.second, microseconds=now.microsecond
    )


def compute_sleep_time(now: time) -> timedelta:
    """Time from ``now`` to the next five-minute mark.

    >>> compute_sleep_time(time(0, 0))
    datetime.timedelta(seconds=300)
    >>> compute_sleep_time(time(23, 59, 59))
    datetime.timedelta(seconds=1)
    """
    elapsed = _since_midnight(now)
    if now.hour == 23 and now.minute >= 55:
        return max(timedelta(0), _DAY - elapsed)
    minutes = (now.minute // 5 + 1) * 5
    wake = timedelta(hours=now.hour, minutes=minutes)
    return max(timedelta(0), wake - elapsed)


def next_wake(now: datetime) -> datetime:
    """The instant the loop should wake up after ``now``."""
    return now + compute_sleep_time(now.time())


__all__ = ["compute_sleep_time", "next_wake"]
