"""
Backup interval expressions.

An interval is written the way a person says it (``every 2 hours``,
``half-daily``, ``6 month``, ``every1week``) and resolves to one of a closed
set of calendar granularities. Each granularity partitions time into
*buckets*; a target is due when the tick window crosses a bucket boundary.

Manifesto:
    Backups should land on predictable wall-clock boundaries (every
    ``**:00``, every Monday, every quarter) rather than "N minutes after the
    daemon happened to start". Bucket comparison gives exactly that, and it
    is stateless: nothing has to be remembered across restarts.

Architecture:
    ::

        "every 2 hours" ──► _Parser ──► IntervalSpec.EVERY_2_HOURS
                                              │
                          ┌───────────────────┴───────────────────┐
                          ▼                                       ▼
                 is_passed(since, until)              get_last_date_until(t)
                 bucket(since) != bucket(until)       first instant of bucket(t)

    Granularities and their buckets:

        5/10/15/20/30 minute, 1/2/4/6/8/12 hour   seconds since midnight // period
        1 day                                     calendar date
        1 week                                    ISO (year, week), Monday start
        1/2/3/4/6 month                           zero-based month // N (Jan anchored)
        1 year                                    calendar year

Grammar:
    ::

        spec   := ["every"] body
        body   := "half" unit | [number] unit
        number := digit+
        unit   := year | month | week | day | hour | minute word families

    Whitespace and ``-`` separate tokens and may be omitted. Unit words are
    case-sensitive (``m`` is minute, ``M`` is month).

Tags:
    interval, parser, calendar, buckets, scheduling, backuper-core
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from typing import Any, NamedTuple

from .errors import (
    EmptyIntervalError,
    InvalidCharacterError,
    NumberOverflowError,
    UnexpectedTokenError,
    UnsupportedIntervalError,
)

_U32_MAX = 2**32 - 1

# str.isspace() is wider than the grammar allows (it accepts \v and unicode).
_SEPARATORS = frozenset(" \t\n\r\x0c-")


class IntervalSpec(Enum):
    """Supported backup intervals; the value is the canonical display form."""

    EVERY_5_MINUTES = "every 5 minute"
    EVERY_10_MINUTES = "every 10 minute"
    EVERY_15_MINUTES = "every 15 minute"
    EVERY_20_MINUTES = "every 20 minute"
    EVERY_30_MINUTES = "every 30 minute"
    EVERY_1_HOUR = "every 1 hour"
    EVERY_2_HOURS = "every 2 hour"
    EVERY_4_HOURS = "every 4 hour"
    EVERY_6_HOURS = "every 6 hour"
    EVERY_8_HOURS = "every 8 hour"
    EVERY_12_HOURS = "every 12 hour"
    EVERY_1_DAY = "every 1 day"
    EVERY_1_WEEK = "every 1 week"
    EVERY_1_MONTH = "every 1 month"
    EVERY_2_MONTHS = "every 2 month"
    EVERY_3_MONTHS = "every 3 month"
    EVERY_4_MONTHS = "every 4 month"
    EVERY_6_MONTHS = "every 6 month"
    EVERY_1_YEAR = "every 1 year"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> IntervalSpec:
        """Parse a human-readable interval expression.

        Raises:
            IntervalParseError: one of its subclasses, describing the problem.
        """
        return _Parser(text).parse()

    @property
    def granularity(self) -> str:
        """Name of the bucket family (``clock``, ``day``, ``week``, ``month``, ``year``)."""
        return _RULES[self].granularity

    def is_passed(self, since: datetime, until: datetime) -> bool:
        """Whether a boundary of this interval is crossed in ``[since, until)``.

        ``since`` must be earlier than ``until``.
        """
        if not since < until:
            raise ValueError(f"since ({since}) must be earlier than until ({until})")
        bucket = _RULES[self].bucket
        return bucket(since) != bucket(until)

    def get_last_date_until(self, instant: datetime) -> datetime:
        """The most recent boundary of this interval at or before ``instant``."""
        return _RULES[self].align(instant)


# =============================================================================
# BUCKETS AND ALIGNMENT
# =============================================================================


class _Rule(NamedTuple):
    granularity: str
    bucket: Callable[[datetime], Any]
    align: Callable[[datetime], datetime]


def _seconds_since_midnight(t: datetime) -> int:
    return t.hour * 3600 + t.minute * 60 + t.second


def _midnight(t: datetime, day: date | None = None) -> datetime:
    day = day or t.date()
    return t.replace(
        year=day.year, month=day.month, day=day.day,
        hour=0, minute=0, second=0, microsecond=0,
    )


def _clock_rule(period_seconds: int) -> _Rule:
    def bucket(t: datetime) -> int:
        return _seconds_since_midnight(t) // period_seconds

    def align(t: datetime) -> datetime:
        start = _seconds_since_midnight(t) // period_seconds * period_seconds
        return t.replace(hour=start // 3600, minute=start % 3600 // 60, second=0, microsecond=0)

    return _Rule("clock", bucket, align)


def _month_rule(months: int) -> _Rule:
    def bucket(t: datetime) -> int:
        return (t.month - 1) // months

    def align(t: datetime) -> datetime:
        first_month = (t.month - 1) // months * months + 1
        return _midnight(t, date(t.year, first_month, 1))

    return _Rule("month", bucket, align)


def _iso_week(t: datetime) -> tuple[int, int]:
    iso = t.isocalendar()
    return iso.year, iso.week


def _week_start(t: datetime) -> datetime:
    year, week = _iso_week(t)
    return _midnight(t, date.fromisocalendar(year, week, 1))


_MINUTE = 60
_HOUR = 60 * _MINUTE

_RULES: dict[IntervalSpec, _Rule] = {
    IntervalSpec.EVERY_5_MINUTES: _clock_rule(5 * _MINUTE),
    IntervalSpec.EVERY_10_MINUTES: _clock_rule(10 * _MINUTE),
    IntervalSpec.EVERY_15_MINUTES: _clock_rule(15 * _MINUTE),
    IntervalSpec.EVERY_20_MINUTES: _clock_rule(20 * _MINUTE),
    IntervalSpec.EVERY_30_MINUTES: _clock_rule(30 * _MINUTE),
    IntervalSpec.EVERY_1_HOUR: _clock_rule(1 * _HOUR),
    IntervalSpec.EVERY_2_HOURS: _clock_rule(2 * _HOUR),
    IntervalSpec.EVERY_4_HOURS: _clock_rule(4 * _HOUR),
    IntervalSpec.EVERY_6_HOURS: _clock_rule(6 * _HOUR),
    IntervalSpec.EVERY_8_HOURS: _clock_rule(8 * _HOUR),
    IntervalSpec.EVERY_12_HOURS: _clock_rule(12 * _HOUR),
    IntervalSpec.EVERY_1_DAY: _Rule("day", lambda t: t.date(), _midnight),
    IntervalSpec.EVERY_1_WEEK: _Rule("week", _iso_week, _week_start),
    IntervalSpec.EVERY_1_MONTH: _month_rule(1),
    IntervalSpec.EVERY_2_MONTHS: _month_rule(2),
    IntervalSpec.EVERY_3_MONTHS: _month_rule(3),
    IntervalSpec.EVERY_4_MONTHS: _month_rule(4),
    IntervalSpec.EVERY_6_MONTHS: _month_rule(6),
    IntervalSpec.EVERY_1_YEAR: _Rule(
        "year",
        lambda t: t.year,
        lambda t: _midnight(t, date(t.year, 1, 1)),
    ),
}


# =============================================================================
# PARSER
# =============================================================================


class _Unit(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    EVERY = "every"
    HALF = "half"


# A parsed token is either a keyword or a count.
_Token = _Unit | int

_KEYWORDS: dict[str, _Unit] = {
    **dict.fromkeys(("minutely", "minutes", "minute", "min", "mins", "m"), _Unit.MINUTE),
    **dict.fromkeys(("hourly", "hours", "hour", "hr", "hrs", "h"), _Unit.HOUR),
    **dict.fromkeys(("daily", "days", "day", "d"), _Unit.DAY),
    **dict.fromkeys(("weekly", "weeks", "week", "w"), _Unit.WEEK),
    **dict.fromkeys(("monthly", "months", "month", "M"), _Unit.MONTH),
    **dict.fromkeys(("yearly", "years", "year", "y"), _Unit.YEAR),
    "half": _Unit.HALF,
    "every": _Unit.EVERY,
}

_HALVES: dict[_Unit, IntervalSpec] = {
    _Unit.YEAR: IntervalSpec.EVERY_6_MONTHS,
    _Unit.DAY: IntervalSpec.EVERY_12_HOURS,
    _Unit.HOUR: IntervalSpec.EVERY_30_MINUTES,
}

_SUPPORTED: dict[tuple[int, _Unit], IntervalSpec] = {
    (1, _Unit.YEAR): IntervalSpec.EVERY_1_YEAR,
    (6, _Unit.MONTH): IntervalSpec.EVERY_6_MONTHS,
    (4, _Unit.MONTH): IntervalSpec.EVERY_4_MONTHS,
    (3, _Unit.MONTH): IntervalSpec.EVERY_3_MONTHS,
    (2, _Unit.MONTH): IntervalSpec.EVERY_2_MONTHS,
    (1, _Unit.MONTH): IntervalSpec.EVERY_1_MONTH,
    (1, _Unit.WEEK): IntervalSpec.EVERY_1_WEEK,
    (1, _Unit.DAY): IntervalSpec.EVERY_1_DAY,
    (12, _Unit.HOUR): IntervalSpec.EVERY_12_HOURS,
    (8, _Unit.HOUR): IntervalSpec.EVERY_8_HOURS,
    (6, _Unit.HOUR): IntervalSpec.EVERY_6_HOURS,
    (4, _Unit.HOUR): IntervalSpec.EVERY_4_HOURS,
    (2, _Unit.HOUR): IntervalSpec.EVERY_2_HOURS,
    (1, _Unit.HOUR): IntervalSpec.EVERY_1_HOUR,
    (30, _Unit.MINUTE): IntervalSpec.EVERY_30_MINUTES,
    (20, _Unit.MINUTE): IntervalSpec.EVERY_20_MINUTES,
    (15, _Unit.MINUTE): IntervalSpec.EVERY_15_MINUTES,
    (10, _Unit.MINUTE): IntervalSpec.EVERY_10_MINUTES,
    (5, _Unit.MINUTE): IntervalSpec.EVERY_5_MINUTES,
}


def _display(token: _Token) -> str:
    return token.value if isinstance(token, _Unit) else str(token)


def _is_ascii_letter(char: str) -> bool:
    return ("a" <= char <= "z") or ("A" <= char <= "Z")


def _is_ascii_digit(char: str) -> bool:
    return "0" <= char <= "9"


class _Parser:
    """Single-pass tokenizer and parser over the expression text."""

    def __init__(self, src: str):
        self.src = src
        self.index = 0

    def _skip_separators(self) -> bool:
        """Advance past separators; True when the input is exhausted."""
        while self.index < len(self.src) and self.src[self.index] in _SEPARATORS:
            self.index += 1
        return self.index >= len(self.src)

    def _take_while(self, predicate: Callable[[str], bool]) -> str:
        begin = self.index
        while self.index < len(self.src) and predicate(self.src[self.index]):
            self.index += 1
        return self.src[begin:self.index]

    def _keyword(self) -> _Unit:
        word = self._take_while(_is_ascii_letter)
        try:
            return _KEYWORDS[word]
        except KeyError:
            raise UnexpectedTokenError(word) from None

    def _number(self) -> int:
        digits = self._take_while(_is_ascii_digit).lstrip("0")
        # int() refuses digit runs past the interpreter conversion limit
        if len(digits) > len(str(_U32_MAX)):
            raise NumberOverflowError()
        value = int(digits or "0")
        if value > _U32_MAX:
            raise NumberOverflowError()
        return value

    def _token(self) -> _Token | None:
        if self._skip_separators():
            return None
        char = self.src[self.index]
        if _is_ascii_digit(char):
            return self._number()
        if _is_ascii_letter(char):
            return self._keyword()
        raise InvalidCharacterError(self.index)

    def _expect(self, after: str) -> _Token:
        token = self._token()
        if token is None:
            raise UnexpectedTokenError(after)
        return token

    def parse(self) -> IntervalSpec:
        token = self._token()
        if token is None:
            raise EmptyIntervalError()
        if token is _Unit.EVERY:
            token = self._expect("every")

        if token is _Unit.HALF:
            token = self._expect("half")
            if token not in _HALVES:
                raise UnsupportedIntervalError(f"half {_display(token)}")
            interval = _HALVES[token]
        else:
            count = 1
            if isinstance(token, int):
                count = token
                token = self._expect(str(count))
            interval = self._lookup(count, token)

        trailing = self._token()
        if trailing is not None:
            raise UnexpectedTokenError(_display(trailing))
        return interval

    @staticmethod
    def _lookup(count: int, token: _Token) -> IntervalSpec:
        if isinstance(token, int):
            raise UnexpectedTokenError("")
        if token in (_Unit.EVERY, _Unit.HALF):
            raise UnexpectedTokenError(token.value)
        try:
            return _SUPPORTED[(count, token)]
        except KeyError:
            raise UnsupportedIntervalError(f"{count} {token.value}") from None


__all__ = ["IntervalSpec"]
