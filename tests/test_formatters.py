"""Tests for display formatting helpers."""
from datetime import datetime, timezone

from utils.formatters import format_value, format_duration, format_timestamp


def test_format_value_units():
    assert format_value(312.5, "ms") == "312.50 ms"
    assert format_value(7.2, "%") == "7.20%"
    assert format_value(1536, "MB") == "1,536.00 MB"
    assert format_value(1) == "1.00"
    assert format_value(None, "ms") == "N/A"


def test_format_duration():
    assert format_duration(None) == "ongoing"
    assert format_duration(0) == "0s"
    assert format_duration(45) == "45s"
    assert format_duration(725) == "12m 5s"
    assert format_duration(3600) == "1h 0m"
    assert format_duration(3 * 3600 + 20 * 60) == "3h 20m"
    assert format_duration(2 * 86400 + 4 * 3600 + 59) == "2d 4h"


def test_format_timestamp():
    ts = datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)
    assert format_timestamp(ts) == "2024-06-01 12:30 UTC"
    assert format_timestamp(None) == "N/A"
    assert format_timestamp("2024-06-01T12:30:00+00:00") == "2024-06-01 12:30 UTC"
    assert format_timestamp("not a date") == "not a date"
