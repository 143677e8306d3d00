"""Tests for RouterOS value parsers."""

import pytest

from core.parsers import parse_bytes, parse_flag, parse_int, parse_uptime


class TestParseUptime:
    @pytest.mark.parametrize(
        "uptime, seconds",
        [
            ("1w2d3h4m5s", 788645),
            ("3h", 10800),
            ("45m10s", 2710),
            ("2d", 172800),
            ("0s", 0),
            ("", 0),
            ("garbage", 0),
        ],
    )
    def test_values(self, uptime: str, seconds: int) -> None:
        assert parse_uptime(uptime) == seconds

    def test_units_are_independent_of_order(self) -> None:
        assert parse_uptime("5s4m") == 245

    def test_milliseconds_are_not_minutes(self) -> None:
        assert parse_uptime("1m30s500ms") == 90

    def test_none(self) -> None:
        assert parse_uptime(None) == 0


class TestParseBytes:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("512MiB", 536870912),
            ("1KiB", 1024),
            ("1.5GiB", 1610612736),
            ("2TiB", 2 * 1024 ** 4),
            ("268435456", 268435456),
            (1048576, 1048576),
            (0, 0),
            ("", 0),
            (None, 0),
            ("unknown", 0),
        ],
    )
    def test_values(self, value, expected: int) -> None:
        assert parse_bytes(value) == expected


class TestParseInt:
    def test_percent(self) -> None:
        assert parse_int("12%") == 12

    def test_default(self) -> None:
        assert parse_int("n/a", 5) == 5
        assert parse_int(None, 1) == 1

    def test_int_passthrough(self) -> None:
        assert parse_int(7) == 7


@pytest.mark.parametrize(
    "value, expected",
    [("true", True), ("yes", True), ("True", True), ("false", False), ("no", False), (None, False)],
)
def test_parse_flag(value, expected: bool) -> None:
    assert parse_flag(value) is expected
