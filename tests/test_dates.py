from datetime import datetime, timezone

import pytest

from Playlog.dates import (
    DATE_PARSERS,
    parse_date,
    parse_iso8601,
    parse_naive_iso8601,
    parse_js_date,
    parse_sql_datetime_7,
    parse_unix_timestamp,
)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_sql_datetime_seven_digit_fraction_is_truncated():
    dt = parse_date("2024-01-15 10:30:00.1234567")
    assert dt == _utc(2024, 1, 15, 10, 30, 0, 123456)
    assert dt.replace(microsecond=0) == _utc(2024, 1, 15, 10, 30, 0)


def test_sql_datetime_without_fraction():
    assert parse_date("2024-01-15 10:30:00") == _utc(2024, 1, 15, 10, 30, 0)


@pytest.mark.parametrize(
    "raw,micro",
    [("2024-01-15 10:30:00.5", 500000), ("2024-01-15 10:30:00.123", 123000)],
)
def test_sql_datetime_variable_fraction(raw, micro):
    assert parse_date(raw) == _utc(2024, 1, 15, 10, 30, 0, micro)


def test_iso8601_with_offset_is_converted_to_utc():
    assert parse_date("2024-01-15T12:30:00+02:00") == _utc(2024, 1, 15, 10, 30, 0)
    assert parse_date("2024-01-15T10:30:00Z") == _utc(2024, 1, 15, 10, 30, 0)


def test_naive_iso8601_is_assumed_utc():
    assert parse_iso8601("2024-01-15T10:30:00") is None
    assert parse_date("2024-01-15T10:30:00") == _utc(2024, 1, 15, 10, 30, 0)


def test_javascript_date_string():
    assert parse_date("Mon Jan 15 2024 10:30:00 GMT+0000") == _utc(2024, 1, 15, 10, 30, 0)
    assert parse_date("Mon Jan 15 2024 12:30:00 GMT+0200") == _utc(2024, 1, 15, 10, 30, 0)
    assert parse_js_date(
        "Mon Jan 15 2024 10:30:00 GMT+0000 (Coordinated Universal Time)"
    ) == _utc(2024, 1, 15, 10, 30, 0)


def test_unix_seconds_and_milliseconds():
    assert parse_date("1700000000") == _utc(2023, 11, 14, 22, 13, 20)
    assert parse_date("1700000000000") == _utc(2023, 11, 14, 22, 13, 20)


def test_unix_threshold_is_exclusive():
    # 10^11 itself is still read as seconds
    assert parse_unix_timestamp("100000000000") == datetime.fromtimestamp(
        100_000_000_000, tz=timezone.utc
    )


@pytest.mark.parametrize("raw", ["not a date", "", "   ", "2024-13-45 99:99:99", "15/01/2024"])
def test_unrecognized_strings_return_none(raw):
    assert parse_date(raw) is None


def test_none_returns_none():
    assert parse_date(None) is None


def test_invalid_fixed_width_value_falls_through_to_later_parsers():
    # Month 13 fails every strategy rather than raising
    assert parse_sql_datetime_7("2024-13-15 10:30:00.1234567") is None
    assert parse_date("2024-13-15 10:30:00.1234567") is None


def test_surrounding_whitespace_is_ignored():
    assert parse_date("  2024-01-15 10:30:00\n") == _utc(2024, 1, 15, 10, 30, 0)


def test_parsers_are_ordered_fixed_width_first():
    assert DATE_PARSERS[0] is parse_sql_datetime_7
    assert DATE_PARSERS[-1] is parse_unix_timestamp


@pytest.mark.parametrize("raw", ["2024-01-15", "2024-01-15T", "20240115T103000"])
def test_iso_values_without_a_time_are_rejected(raw):
    assert parse_naive_iso8601(raw) is None
    assert parse_iso8601(raw) is None
    assert parse_date(raw) is None
