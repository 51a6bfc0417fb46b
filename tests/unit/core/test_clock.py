"""Tests for DayClock — reference-zone day truncation."""

from __future__ import annotations

from datetime import date, datetime, timezone

from bandwidth.core.clock import DayClock


def _fixed(value: datetime):
    return lambda: value


class TestDayTruncation:
    def test_today_in_reference_zone(self):
        # 23:30 UTC on Feb 1 is already Feb 2 in Berlin
        clock = DayClock("Europe/Berlin", now=_fixed(datetime(2026, 2, 1, 23, 30, tzinfo=timezone.utc)))
        assert clock.today() == date(2026, 2, 2)

    def test_day_of_aware_datetime(self):
        clock = DayClock("America/New_York")
        moment = datetime(2026, 2, 2, 3, 0, tzinfo=timezone.utc)
        assert clock.day_of(moment) == date(2026, 2, 1)

    def test_day_of_naive_datetime_is_local(self):
        clock = DayClock("America/New_York")
        assert clock.day_of(datetime(2026, 2, 2, 3, 0)) == date(2026, 2, 2)

    def test_day_of_date_passthrough(self):
        assert DayClock().day_of(date(2026, 2, 2)) == date(2026, 2, 2)

    def test_is_today(self):
        clock = DayClock(now=_fixed(datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)))
        assert clock.is_today(date(2026, 2, 10))
        assert not clock.is_today(date(2026, 2, 9))


class TestBounds:
    def test_day_bounds_span_one_day(self):
        start, end = DayClock("UTC").day_bounds(date(2026, 2, 10))
        assert (end - start).total_seconds() == 86400

    def test_dst_day_is_shorter(self):
        # Europe/Berlin springs forward on 2026-03-29
        start, end = DayClock("Europe/Berlin").day_bounds(date(2026, 3, 29))
        assert (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds() == 23 * 3600

    def test_minutes_since_midnight(self):
        clock = DayClock(now=_fixed(datetime(2026, 2, 10, 16, 45, tzinfo=timezone.utc)))
        assert clock.minutes_since_midnight() == 16 * 60 + 45
