"""Date normalization for Playback Reporting timestamps.

The plugin's exports carry dates in several encodings depending on plugin
version and how the export was produced. Each encoding has its own parser in
``DATE_PARSERS``; ``parse_date`` tries them in order and returns the first
aware UTC datetime produced.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

log = structlog.get_logger()

DateParser = Callable[[str], datetime | None]

# Values above this are Unix milliseconds rather than seconds
UNIX_MILLIS_THRESHOLD = 100_000_000_000

_SQL_7_FRACTION = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2})\.(\d{7})$")
_SQL_ANY_FRACTION = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2})\.(\d+)$")
_SQL_NO_FRACTION = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2})$")
_JS_DATE = re.compile(
    r"^(\w{3})\s+(\w{3})\s+(\d{1,2})\s+(\d{4})\s+(\d{2}:\d{2}:\d{2})\s+GMT([-+]\d{4})"
    r"(?:\s+\([^)]*\))?$"
)
_UNIX = re.compile(r"^-?\d+$")
# Extended ISO date followed by a time; date-only and basic-format values are rejected
_ISO_WITH_TIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")


def _utc(date_part: str, time_part: str, fraction: str = "") -> datetime | None:
    text = f"{date_part}T{time_part}"
    fmt = "%Y-%m-%dT%H:%M:%S"
    if fraction:
        # strptime's %f takes at most six digits
        text += "." + fraction[:6]
        fmt += ".%f"
    try:
        return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_sql_datetime_7(value: str) -> datetime | None:
    """``2024-01-15 10:30:00.1234567`` (SQL Server datetime2)."""
    m = _SQL_7_FRACTION.match(value)
    return _utc(*m.groups()) if m else None


def parse_sql_datetime_fraction(value: str) -> datetime | None:
    """``2024-01-15 10:30:00.123`` with any fraction width."""
    m = _SQL_ANY_FRACTION.match(value)
    return _utc(*m.groups()) if m else None


def parse_sql_datetime(value: str) -> datetime | None:
    """``2024-01-15 10:30:00``."""
    m = _SQL_NO_FRACTION.match(value)
    return _utc(*m.groups()) if m else None


def parse_iso8601(value: str) -> datetime | None:
    """ISO-8601 with an explicit offset or ``Z``; naive values are left for the next parser."""
    if not _ISO_WITH_TIME.match(value):
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return None
    return dt.astimezone(timezone.utc)


def parse_naive_iso8601(value: str) -> datetime | None:
    if not _ISO_WITH_TIME.match(value):
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=timezone.utc)


def parse_js_date(value: str) -> datetime | None:
    """JavaScript ``Date.toString()``: ``Mon Jan 15 2024 10:30:00 GMT+0000``."""
    m = _JS_DATE.match(value)
    if not m:
        return None
    weekday, month, day, year, clock, offset = m.groups()
    try:
        dt = datetime.strptime(
            f"{weekday} {month} {day} {year} {clock} {offset}", "%a %b %d %Y %H:%M:%S %z"
        )
    except ValueError:
        return None
    return dt.astimezone(timezone.utc)


def parse_unix_timestamp(value: str) -> datetime | None:
    if not _UNIX.match(value):
        return None
    ts = int(value)
    if ts > UNIX_MILLIS_THRESHOLD:
        ts //= 1000
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


DATE_PARSERS: tuple[DateParser, ...] = (
    parse_sql_datetime_7,
    parse_sql_datetime_fraction,
    parse_sql_datetime,
    parse_iso8601,
    parse_naive_iso8601,
    parse_js_date,
    parse_unix_timestamp,
)


def parse_date(value: str | None) -> datetime | None:
    """Return an aware UTC datetime for ``value``, or None when no parser accepts it."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    for parser in DATE_PARSERS:
        dt = parser(text)
        if dt is not None:
            return dt
    log.warning("dates.unrecognized", value=text[:64])
    return None
