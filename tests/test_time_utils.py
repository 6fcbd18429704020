"""Tests for time utilities."""

import pytest
from datetime import date, datetime, timezone, timedelta

from wastetrack.utils.time import parse_timestamp, storage_cutoff, storage_now, to_storage, to_utc_z, utc_now_z


def test_utc_now_z_always_ends_with_z():
    """Test that utc_now_z() always ends with Z."""
    result = utc_now_z()
    assert result.endswith('Z'), f"Expected result to end with 'Z', got: {result}"
    assert '+00:00Z' not in result


def test_to_utc_z_raises_on_naive_datetime():
    """Test that to_utc_z() raises ValueError for naive datetime."""
    with pytest.raises(ValueError, match="Naive datetime not allowed"):
        to_utc_z(datetime.now())


def test_to_utc_z_converts_non_utc_timezone():
    est = timezone(timedelta(hours=-5))
    dt_est = datetime(2025, 12, 23, 12, 0, 0, tzinfo=est)
    assert to_utc_z(dt_est).startswith('2025-12-23T17:00:00')


def test_to_storage_has_fixed_precision():
    """Whole-second datetimes still carry microseconds so stored values sort as strings."""
    whole = to_storage(datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc))
    fractional = to_storage(datetime(2025, 1, 1, 0, 0, 0, 500, tzinfo=timezone.utc))
    assert whole == '2025-01-01T00:00:00.000000Z'
    assert whole < fractional


def test_to_storage_passthrough_and_dates():
    assert to_storage(None) is None
    assert to_storage('2025-01-01') == '2025-01-01'
    assert to_storage(date(2025, 3, 4)) == '2025-03-04'
    assert to_storage(datetime(2025, 1, 1, 12, 0)) == '2025-01-01T12:00:00.000000Z'


def test_parse_timestamp_variants():
    expected = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert parse_timestamp('2025-01-01T12:00:00.000000Z') == expected
    assert parse_timestamp('2025-01-01T13:00:00+01:00') == expected
    assert parse_timestamp('2025-01-01') == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp(None) is None
    assert parse_timestamp('') is None


def test_storage_cutoff_is_in_the_past():
    assert storage_cutoff(days=1) < storage_now()
    assert storage_cutoff(hours=1) > storage_cutoff(days=1)
