"""Calendar and term calculations in the fixed report timezone.

A *term* is a week of the month. Weeks run Sunday to Saturday and are clamped
to the month, so the first and last terms of a month may be shorter than seven
days. The term number is ``ceil((day + weekday_of_first) / 7)`` with Sunday as
weekday 0.

All calculations use a fixed UTC offset (UTC+09:00 unless configured
otherwise) and never depend on the host timezone.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Union

from ..config import get_settings

DateLike = Union[datetime, date]

DATE_RANGE_FORMAT = "%Y/%m/%d"


@dataclass(frozen=True)
class CalendarInfo:
    """Calendar fields of one instant in the report timezone."""

    year: int
    month: int
    day: int
    term: int
    week_start: datetime
    week_end: datetime
    is_last_day_of_term: bool
    is_last_day_of_month: bool
    timestamp: int

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)


def report_timezone() -> tzinfo:
    return get_settings().report_timezone


def now_in_report_timezone(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz or report_timezone())


def to_report_datetime(value: DateLike, tz: Optional[tzinfo] = None) -> datetime:
    """Express ``value`` in the report timezone.

    Naive datetimes are taken to already be report-local time and plain dates
    mean local midnight.
    """

    zone = tz or report_timezone()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=zone)
        return value.astimezone(zone)
    return datetime.combine(value, time.min, tzinfo=zone)


def _sunday_based_weekday(value: date) -> int:
    return (value.weekday() + 1) % 7


def term_of(value: date) -> int:
    first_weekday = _sunday_based_weekday(value.replace(day=1))
    return (value.day + first_weekday + 6) // 7


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _is_last_day_of_term(value: date) -> bool:
    following = value + timedelta(days=1)
    return following.month != value.month or term_of(following) != term_of(value)


def _is_last_day_of_month(value: date) -> bool:
    return (value + timedelta(days=1)).month != value.month


def get_calendar_info(value: DateLike, tz: Optional[tzinfo] = None) -> CalendarInfo:
    zone = tz or report_timezone()
    local = to_report_datetime(value, zone)
    day = local.date()

    first_of_month, last_of_month = month_bounds(day.year, day.month)
    weekday = _sunday_based_weekday(day)
    start_day = max(day - timedelta(days=weekday), first_of_month)
    end_day = min(day + timedelta(days=6 - weekday), last_of_month)

    return CalendarInfo(
        year=day.year,
        month=day.month,
        day=day.day,
        term=term_of(day),
        week_start=datetime.combine(start_day, time.min, tzinfo=zone),
        week_end=datetime.combine(end_day, time(23, 59, 59), tzinfo=zone),
        is_last_day_of_term=_is_last_day_of_term(day),
        is_last_day_of_month=_is_last_day_of_month(day),
        timestamp=int(local.timestamp() * 1000),
    )


def day_bounds(value: date, tz: Optional[tzinfo] = None) -> tuple[datetime, datetime]:
    zone = tz or report_timezone()
    return (
        datetime.combine(value, time.min, tzinfo=zone),
        datetime.combine(value, time(23, 59, 59), tzinfo=zone),
    )


def format_date_range(start: DateLike, end: DateLike) -> str:
    return f"{start.strftime(DATE_RANGE_FORMAT)} ~ {end.strftime(DATE_RANGE_FORMAT)}"


def days_in_range(start: date, end: date) -> int:
    """Number of calendar days in ``[start, end]``, inclusive."""

    return (end - start).days + 1


__all__ = [
    "CalendarInfo",
    "DateLike",
    "day_bounds",
    "days_in_range",
    "format_date_range",
    "get_calendar_info",
    "month_bounds",
    "now_in_report_timezone",
    "report_timezone",
    "term_of",
    "to_report_datetime",
]
