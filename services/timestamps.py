"""Timestamp reconciliation for spreadsheet date/time cells.

Spreadsheet exports encode the reading time in several ways: a serial day
count (optionally paired with a fractional-day time cell), a native date or
datetime value produced by the workbook reader, or free text in one of a
handful of regional layouts. Everything here is pure; callers decide what to
do with an unresolvable pair.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional, Sequence

_SECONDS_PER_DAY = 86400

EXPLICIT_FORMATS: Sequence[str] = (
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)

# Serial 60 is the 1900-02-29 that spreadsheet calendars inherited from Lotus.
_PHANTOM_LEAP_SERIAL = 60
_PHANTOM_LEAP_DAY = (1900, 2, 29)
_SERIAL_BASE_BEFORE_LEAP = date(1899, 12, 31)
_SERIAL_BASE_AFTER_LEAP = date(1899, 12, 30)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class _CalendarMoment:
    """A calendar day plus an offset from its midnight.

    Kept separate from ``datetime`` so the phantom leap day survives until
    it is rendered.
    """

    year: int
    month: int
    day: int
    offset: timedelta = timedelta(0)

    @property
    def is_phantom(self) -> bool:
        return (self.year, self.month, self.day) == _PHANTOM_LEAP_DAY

    def with_time(self, offset: timedelta) -> "_CalendarMoment":
        return _CalendarMoment(self.year, self.month, self.day, offset)

    def to_instant(self) -> datetime:
        if self.is_phantom and self.offset >= timedelta(days=1):
            # The phantom day still occupies a whole day: 24h after it is day 61.
            midnight = datetime(1900, 2, 28, tzinfo=timezone.utc)
        elif self.is_phantom:
            # Calendar-lenient: the day after 1900-02-28 is 1900-03-01.
            midnight = datetime(1900, 3, 1, tzinfo=timezone.utc)
        else:
            midnight = datetime(self.year, self.month, self.day, tzinfo=timezone.utc)
        return midnight + self.offset

    def to_iso(self) -> str:
        if self.is_phantom and timedelta(0) <= self.offset < timedelta(days=1):
            clock = datetime(2000, 1, 1) + self.offset
            return f"1900-02-29T{clock:%H:%M:%S}.{clock.microsecond // 1000:03d}Z"
        return format_instant(self.to_instant())

    @classmethod
    def from_datetime(cls, value: datetime) -> "_CalendarMoment":
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        offset = timedelta(
            hours=value.hour,
            minutes=value.minute,
            seconds=value.second,
            microseconds=value.microsecond,
        )
        return cls(value.year, value.month, value.day, offset)


def format_instant(value: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def parse_instant(value: str) -> datetime:
    """Inverse of :func:`format_instant`; accepts any ISO-8601 instant."""
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    if candidate.startswith("1900-02-29"):
        candidate = "1900-03-01" + candidate[len("1900-02-29"):]
    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def serial_to_calendar(serial: int) -> tuple[int, int, int]:
    """Map a spreadsheet day count to ``(year, month, day)``.

    Day 1 is 1900-01-01 and day 60 is the non-existent 1900-02-29.
    """
    if serial == _PHANTOM_LEAP_SERIAL:
        return _PHANTOM_LEAP_DAY
    base = _SERIAL_BASE_BEFORE_LEAP if serial < _PHANTOM_LEAP_SERIAL else _SERIAL_BASE_AFTER_LEAP
    day = base + timedelta(days=serial)
    return day.year, day.month, day.day


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_date_text(text: str) -> Optional[datetime]:
    candidate = text.strip()
    if not candidate:
        return None

    iso_candidate = candidate[:-1] + "+00:00" if candidate.endswith("Z") else candidate
    try:
        return datetime.fromisoformat(iso_candidate)
    except ValueError:
        pass

    for fmt in EXPLICIT_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue

    for fmt in EXPLICIT_FORMATS:
        date_only = fmt.split(" ", 1)[0]
        try:
            return datetime.strptime(candidate, date_only)
        except ValueError:
            continue
    return None


def _date_moment(date_cell: Any) -> Optional[_CalendarMoment]:
    if _is_number(date_cell):
        if not math.isfinite(date_cell):
            return None
        try:
            year, month, day = serial_to_calendar(math.trunc(date_cell))
        except OverflowError:
            return None
        return _CalendarMoment(year, month, day)

    if isinstance(date_cell, datetime):
        return _CalendarMoment.from_datetime(date_cell)

    if isinstance(date_cell, date):
        return _CalendarMoment(date_cell.year, date_cell.month, date_cell.day)

    if isinstance(date_cell, str):
        parsed = _parse_date_text(date_cell)
        if parsed is None:
            return None
        return _CalendarMoment.from_datetime(parsed)

    return None


def _time_offset(time_cell: Any, current: timedelta) -> Optional[timedelta]:
    """Return the time-of-day overlay, ``current`` when nothing applies, None when malformed."""
    if time_cell is None:
        return current

    sub_second = timedelta(microseconds=current.microseconds)

    if _is_number(time_cell):
        if not math.isfinite(time_cell):
            return None
        seconds = round(time_cell * _SECONDS_PER_DAY, 3)
        hours = math.floor(seconds / 3600)
        minutes = math.floor((seconds % 3600) / 60)
        secs = math.floor(seconds % 60)
        return timedelta(hours=hours, minutes=minutes, seconds=secs) + sub_second

    if isinstance(time_cell, str):
        parts = time_cell.split(":")
        if len(parts) < 2:
            return current
        numbers: list[int] = []
        for part in parts[:3]:
            match = _LEADING_INT.match(part)
            if match is None:
                return None
            numbers.append(int(match.group(1)))
        hours, minutes = numbers[0], numbers[1]
        secs = numbers[2] if len(numbers) > 2 else 0
        return timedelta(hours=hours, minutes=minutes, seconds=secs) + sub_second

    if isinstance(time_cell, timedelta):
        return time_cell

    if isinstance(time_cell, (time, datetime)):
        return timedelta(
            hours=time_cell.hour, minutes=time_cell.minute, seconds=time_cell.second
        ) + sub_second

    return current


def _resolve_moment(date_cell: Any, time_cell: Any = None) -> Optional[_CalendarMoment]:
    moment = _date_moment(date_cell)
    if moment is None:
        return None
    offset = _time_offset(time_cell, moment.offset)
    if offset is None:
        return None
    return moment.with_time(offset)


def resolve(date_cell: Any, time_cell: Any = None) -> Optional[str]:
    """Resolve a date cell (and optional time cell) to an ISO-8601 UTC string."""
    moment = _resolve_moment(date_cell, time_cell)
    if moment is None:
        return None
    try:
        return moment.to_iso()
    except OverflowError:
        return None


def resolve_instant(date_cell: Any, time_cell: Any = None) -> Optional[datetime]:
    """Resolve a date/time cell pair to an aware UTC ``datetime``."""
    moment = _resolve_moment(date_cell, time_cell)
    if moment is None:
        return None
    try:
        return moment.to_instant()
    except OverflowError:
        return None
