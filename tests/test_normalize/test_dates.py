"""Tests for date parsing and formatting helpers."""

from datetime import datetime, timezone

from ledgerlink.normalize.dates import (
    day_key,
    now_iso,
    parse_day_month_year,
    parse_instant,
    to_iso,
    within_days,
)


class TestParseInstant:
    def test_space_separated_is_utc(self):
        dt = parse_instant("2024-03-01 10:15:30")
        assert dt == datetime(2024, 3, 1, 10, 15, 30, tzinfo=timezone.utc)

    def test_z_suffix(self):
        dt = parse_instant("2024-03-01T10:15:30.000Z")
        assert dt == datetime(2024, 3, 1, 10, 15, 30, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        dt = parse_instant("2024-03-01T01:00:00+02:00")
        assert dt == datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc)

    def test_date_only(self):
        assert parse_instant("2024-03-01") == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_invalid(self):
        assert parse_instant("") is None
        assert parse_instant(None) is None
        assert parse_instant("yesterday") is None
        assert parse_instant("2024-13-01") is None


class TestDayMonthYear:
    def test_four_digit_year(self):
        assert parse_day_month_year("05/01/2024") == datetime(2024, 1, 5, tzinfo=timezone.utc)

    def test_two_digit_year(self):
        assert parse_day_month_year("5/1/24") == datetime(2024, 1, 5, tzinfo=timezone.utc)

    def test_impossible_day(self):
        assert parse_day_month_year("31/02/2024") is None

    def test_not_matching(self):
        assert parse_day_month_year("2024-01-05") is None
        assert parse_day_month_year("") is None


class TestFormatting:
    def test_to_iso_milliseconds(self):
        dt = datetime(2024, 3, 1, 10, 15, 30, 123456, tzinfo=timezone.utc)
        assert to_iso(dt) == "2024-03-01T10:15:30.123Z"

    def test_now_iso_shape(self):
        value = now_iso()
        assert value.endswith("Z")
        assert parse_instant(value) is not None


class TestDayKey:
    def test_utc_day(self):
        assert day_key("2024-03-01T23:59:59.000Z") == "2024-03-01"

    def test_offset_shifts_day(self):
        assert day_key("2024-03-02T00:30:00+01:00") == "2024-03-01"

    def test_unparseable_falls_back_to_raw(self):
        assert day_key(" garbage ") == "garbage"


class TestWithinDays:
    def test_inclusive_boundary(self):
        assert within_days("2024-03-01T00:00:00Z", "2024-03-05T00:00:00Z", 4)
        assert not within_days("2024-03-01T00:00:00Z", "2024-03-06T00:00:00Z", 4)

    def test_order_independent(self):
        assert within_days("2024-03-05T00:00:00Z", "2024-03-01T00:00:00Z", 4)

    def test_unparseable(self):
        assert not within_days("nope", "2024-03-01T00:00:00Z", 4)
