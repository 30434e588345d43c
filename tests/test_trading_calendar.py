"""Tests for TradingCalendar and the pure date helpers.

Every date is a calendar day in Asia/Seoul (UTC+9, no DST), regardless of
the instant's own offset or the host timezone.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from simtrade.config import CalendarSettings
from simtrade.exceptions import ValidationError
from simtrade.trading_calendar import (
    TradingCalendar,
    add_days,
    equals,
    format_date,
    is_weekend,
    iter_days,
    month_label,
    month_start,
    parse,
    parse_month_label,
    previous_month_label,
    trading_days,
    week_start,
)

KST = ZoneInfo("Asia/Seoul")


def _calendar_at(instant: datetime) -> TradingCalendar:
    return TradingCalendar(clock=lambda: instant)


class TestNormalize:
    """normalize() maps instants onto the market-timezone calendar day."""

    def test_utc_evening_is_next_day_in_seoul(self) -> None:
        """2025-11-11 15:30 UTC is 2025-11-12 00:30 KST."""
        cal = _calendar_at(datetime(2025, 11, 12, tzinfo=timezone.utc))
        instant = datetime(2025, 11, 11, 15, 30, tzinfo=timezone.utc)
        assert cal.normalize(instant) == date(2025, 11, 12)

    def test_just_before_midnight_stays_same_day(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, tzinfo=timezone.utc))
        instant = datetime(2025, 11, 11, 14, 59, 59, tzinfo=timezone.utc)
        assert cal.normalize(instant) == date(2025, 11, 11)

    def test_naive_datetime_rejected(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, tzinfo=timezone.utc))
        with pytest.raises(ValidationError):
            cal.normalize(datetime(2025, 11, 11, 12, 0))

    def test_today_uses_market_timezone(self) -> None:
        """The UTC clock still says Nov 11, Seoul is already on Nov 12."""
        cal = _calendar_at(datetime(2025, 11, 11, 16, 0, tzinfo=timezone.utc))
        assert cal.today() == date(2025, 11, 12)

    def test_unknown_timezone_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TradingCalendar(CalendarSettings(timezone="Mars/Olympus"))


class TestDayBounds:
    def test_start_and_end_of_day(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, tzinfo=timezone.utc))
        start = cal.start_of_day(date(2025, 11, 12))
        end = cal.end_of_day(date(2025, 11, 12))
        assert start == datetime(2025, 11, 12, 0, 0, tzinfo=KST)
        assert end.date() == date(2025, 11, 12)
        assert cal.normalize(start) == cal.normalize(end) == date(2025, 11, 12)


class TestMarketSession:
    def test_open_during_session(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, 10, 0, tzinfo=KST))
        assert cal.is_market_open() is True

    def test_closed_after_session(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, 15, 31, tzinfo=KST))
        assert cal.is_market_open() is False

    def test_closed_on_weekend(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 15, 10, 0, tzinfo=KST))
        assert cal.is_market_open() is False

    def test_latest_trading_day_on_sunday_is_friday(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 16, 10, 0, tzinfo=KST))
        assert cal.latest_trading_day() == date(2025, 11, 14)

    def test_latest_trading_day_on_weekday_is_today(self) -> None:
        cal = _calendar_at(datetime(2025, 11, 12, 10, 0, tzinfo=KST))
        assert cal.latest_trading_day() == date(2025, 11, 12)


class TestParseAndFormat:
    def test_parse_valid(self) -> None:
        assert parse("2025-11-12") == date(2025, 11, 12)

    @pytest.mark.parametrize("text", ["2025-13-01", "2025-02-30", "20251112", "2025-1-5", ""])
    def test_parse_invalid(self, text: str) -> None:
        with pytest.raises(ValidationError):
            parse(text)

    def test_format_is_zero_padded(self) -> None:
        assert format_date(date(2025, 1, 5)) == "2025-01-05"

    def test_equals_ignores_time(self) -> None:
        assert equals(datetime(2025, 11, 12, 1, 0), date(2025, 11, 12))
        assert not equals(date(2025, 11, 12), date(2025, 11, 13))


class TestDayArithmetic:
    def test_add_days_across_month(self) -> None:
        assert add_days(date(2025, 1, 31), 1) == date(2025, 2, 1)
        assert add_days(date(2025, 3, 1), -1) == date(2025, 2, 28)

    def test_weekend(self) -> None:
        assert is_weekend(date(2025, 11, 15))  # Saturday
        assert is_weekend(date(2025, 11, 16))  # Sunday
        assert not is_weekend(date(2025, 11, 17))

    def test_iter_days_inclusive(self) -> None:
        days = list(iter_days(date(2025, 11, 10), date(2025, 11, 12)))
        assert days == [date(2025, 11, 10), date(2025, 11, 11), date(2025, 11, 12)]

    def test_trading_days_excludes_weekend(self) -> None:
        days = trading_days(date(2025, 11, 14), date(2025, 11, 17))
        assert days == [date(2025, 11, 14), date(2025, 11, 17)]

    def test_week_and_month_start(self) -> None:
        assert week_start(date(2025, 11, 12)) == date(2025, 11, 10)
        assert week_start(date(2025, 11, 10)) == date(2025, 11, 10)
        assert month_start(date(2025, 11, 12)) == date(2025, 11, 1)


class TestMonthLabels:
    def test_month_label(self) -> None:
        assert month_label(date(2025, 3, 9)) == "2025-03"

    def test_previous_month_wraps_year(self) -> None:
        assert previous_month_label(date(2026, 1, 1)) == "2025-12"

    def test_parse_month_label(self) -> None:
        assert parse_month_label("2025-11") == (2025, 11)

    @pytest.mark.parametrize("label", ["2025-13", "2025-1", "November", "2025-11-01"])
    def test_parse_month_label_invalid(self, label: str) -> None:
        with pytest.raises(ValidationError):
            parse_month_label(label)
