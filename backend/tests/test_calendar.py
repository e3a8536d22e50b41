from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from backend.card_reports.services.calendar import (
    format_date_range,
    get_calendar_info,
    month_bounds,
    term_of,
    to_report_datetime,
)

JST = timezone(timedelta(hours=9))


def test_first_week_is_clamped_to_the_month() -> None:
    info = get_calendar_info(date(2024, 1, 3), JST)

    assert info.term == 1
    assert info.week_start == datetime(2024, 1, 1, 0, 0, tzinfo=JST)
    assert info.week_end == datetime(2024, 1, 6, 23, 59, 59, tzinfo=JST)
    assert info.is_last_day_of_term is False


def test_saturday_closes_the_term_and_sunday_opens_the_next() -> None:
    saturday = get_calendar_info(date(2024, 1, 6), JST)
    sunday = get_calendar_info(date(2024, 1, 7), JST)

    assert saturday.term == 1
    assert saturday.is_last_day_of_term is True
    assert sunday.term == 2
    assert sunday.week_start == datetime(2024, 1, 7, tzinfo=JST)


def test_last_week_of_leap_february_ends_on_the_29th() -> None:
    info = get_calendar_info(date(2024, 2, 29), JST)

    assert info.term == 5
    assert info.week_start.date() == date(2024, 2, 25)
    assert info.week_end.date() == date(2024, 2, 29)
    assert info.is_last_day_of_term is True
    assert info.is_last_day_of_month is True


def test_utc_instant_is_bucketed_in_report_time() -> None:
    # 2024-01-31 16:00 UTC is already February 1st in UTC+9.
    info = get_calendar_info(datetime(2024, 1, 31, 16, 0, tzinfo=timezone.utc), JST)

    assert (info.year, info.month, info.day) == (2024, 2, 1)
    assert info.term == 1


def test_naive_datetime_is_taken_as_report_time() -> None:
    local = to_report_datetime(datetime(2024, 1, 5, 23, 30), JST)

    assert local.tzinfo == JST
    assert local.day == 5


def test_timestamp_is_epoch_milliseconds() -> None:
    info = get_calendar_info(datetime(2024, 1, 1, 0, 0, tzinfo=JST), JST)

    midnight_utc = datetime(2023, 12, 31, 15, 0, tzinfo=timezone.utc)
    assert info.timestamp == int(midnight_utc.timestamp() * 1000)


def test_month_starting_on_saturday_reaches_a_sixth_term() -> None:
    assert date(2020, 8, 1).weekday() == 5
    assert term_of(date(2020, 8, 31)) == 6


@pytest.mark.parametrize("year", [2023, 2024, 2025])
def test_weeks_never_leave_their_month(year: int) -> None:
    current = date(year, 1, 1)
    while current.year == year:
        info = get_calendar_info(current, JST)
        first, last = month_bounds(info.year, info.month)

        assert 1 <= info.term <= 6
        assert first <= info.week_start.date() <= current <= info.week_end.date() <= last
        following = get_calendar_info(current + timedelta(days=1), JST)
        assert info.is_last_day_of_month == (following.month != info.month)
        assert info.is_last_day_of_term == (
            following.month != info.month or following.term != info.term
        )
        current += timedelta(days=1)


def test_format_date_range() -> None:
    assert format_date_range(date(2024, 1, 1), date(2024, 1, 6)) == "2024/01/01 ~ 2024/01/06"
