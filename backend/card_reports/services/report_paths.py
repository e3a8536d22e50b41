"""Storage paths for source records and reports.

Every path used by the report engine is built here so incremental writes,
recalculation and the maintenance scripts always agree on key formatting::

    details/{year}/{MM}/term{n}/{d}/{sequence}
    reports/daily/{year}-{MM}/{DD}
    reports/weekly/{year}-{MM}/term{n}
    reports/monthly/{year}/{MM}
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from ..errors import RecalculationValidationError
from .calendar import CalendarInfo

DETAILS_ROOT = "details"
REPORTS_ROOT = "reports"
THRESHOLDS_CONFIG_PATH = "config/report_thresholds"

_TERM_TOKEN = re.compile(r"^term(\d+)$")


class ReportType(str, enum.Enum):
    """Report granularities maintained by the engine."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


ALL_REPORT_TYPES: tuple[ReportType, ...] = (
    ReportType.DAILY,
    ReportType.WEEKLY,
    ReportType.MONTHLY,
)


def parse_report_types(values: Union[str, Iterable[str], None]) -> list[ReportType]:
    """Parse report type names, accepting a comma separated string or an iterable.

    Order is preserved and duplicates are dropped. ``None`` selects every type.
    """

    if values is None:
        return list(ALL_REPORT_TYPES)
    if isinstance(values, str):
        raw_values = values.split(",")
    else:
        raw_values = list(values)

    parsed: list[ReportType] = []
    for raw in raw_values:
        name = raw.value if isinstance(raw, ReportType) else str(raw).strip().lower()
        if not name:
            continue
        try:
            report_type = ReportType(name)
        except ValueError as exc:
            raise RecalculationValidationError(f"Unknown report type: {raw}") from exc
        if report_type not in parsed:
            parsed.append(report_type)

    if not parsed:
        raise RecalculationValidationError("At least one report type is required")
    return parsed


def pad2(value: Union[int, str]) -> str:
    return f"{int(value):02d}"


def term_token(term: int) -> str:
    return f"term{int(term)}"


def parse_term_token(token: str) -> int:
    match = _TERM_TOKEN.match(token.strip())
    if match is None:
        raise ValueError(f"Invalid term token: {token!r}")
    return int(match.group(1))


def collection_root(report_type: ReportType) -> str:
    return f"{REPORTS_ROOT}/{ReportType(report_type).value}"


def daily_report_path(year: int, month: int, day: int) -> str:
    return f"{REPORTS_ROOT}/daily/{year}-{pad2(month)}/{pad2(day)}"


def weekly_report_path(year: int, month: int, term: int) -> str:
    return f"{REPORTS_ROOT}/weekly/{year}-{pad2(month)}/{term_token(term)}"


def monthly_report_path(year: int, month: int) -> str:
    return f"{REPORTS_ROOT}/monthly/{year}/{pad2(month)}"


def details_prefix(
    year: int,
    month: Optional[int] = None,
    term: Optional[int] = None,
    day: Optional[int] = None,
) -> str:
    """Build a details branch path down to the deepest level given."""

    segments = [DETAILS_ROOT, str(year)]
    if month is not None:
        segments.append(pad2(month))
        if term is not None:
            segments.append(term_token(term))
            if day is not None:
                segments.append(str(int(day)))
    return "/".join(segments)


def details_path(year: int, month: int, term: int, day: int, sequence: Union[int, str]) -> str:
    return f"{details_prefix(year, month, term, day)}/{sequence}"


@dataclass(frozen=True)
class RecordKey:
    """Hierarchical key of a source record."""

    year: int
    month: int
    term: int
    day: int
    sequence: str

    @property
    def path(self) -> str:
        return details_path(self.year, self.month, self.term, self.day, self.sequence)

    @classmethod
    def from_calendar(cls, info: CalendarInfo, sequence: Union[int, str]) -> "RecordKey":
        return cls(
            year=info.year,
            month=info.month,
            term=info.term,
            day=info.day,
            sequence=str(sequence),
        )

    @classmethod
    def from_path(cls, path: str) -> "RecordKey":
        segments = [segment for segment in path.strip("/").split("/") if segment]
        if len(segments) != 6 or segments[0] != DETAILS_ROOT:
            raise ValueError(f"Not a source record path: {path!r}")
        _, year, month, token, day, sequence = segments
        try:
            return cls(
                year=int(year),
                month=int(month),
                term=parse_term_token(token),
                day=int(day),
                sequence=sequence,
            )
        except ValueError as exc:
            raise ValueError(f"Not a source record path: {path!r}") from exc


@dataclass(frozen=True)
class BucketKey:
    """Identity of one daily, weekly or monthly report."""

    report_type: ReportType
    year: int
    month: int
    day: Optional[int] = None
    term: Optional[int] = None

    def __post_init__(self) -> None:
        if self.report_type is ReportType.DAILY and self.day is None:
            raise ValueError("Daily buckets require a day")
        if self.report_type is ReportType.WEEKLY and self.term is None:
            raise ValueError("Weekly buckets require a term")

    @property
    def path(self) -> str:
        if self.report_type is ReportType.DAILY:
            return daily_report_path(self.year, self.month, self.day)
        if self.report_type is ReportType.WEEKLY:
            return weekly_report_path(self.year, self.month, self.term)
        return monthly_report_path(self.year, self.month)

    @property
    def label(self) -> str:
        base = f"{self.year}-{pad2(self.month)}"
        if self.report_type is ReportType.DAILY:
            return f"{base}-{pad2(self.day)}"
        if self.report_type is ReportType.WEEKLY:
            return f"{base} {term_token(self.term)}"
        return base

    @classmethod
    def for_calendar(cls, report_type: ReportType, info: CalendarInfo) -> "BucketKey":
        """Bucket of a calendar day, with the term computed from the date."""

        report_type = ReportType(report_type)
        if report_type is ReportType.DAILY:
            return cls(report_type, info.year, info.month, day=info.day)
        if report_type is ReportType.WEEKLY:
            return cls(report_type, info.year, info.month, term=info.term)
        return cls(report_type, info.year, info.month)

    @classmethod
    def for_record(cls, report_type: ReportType, key: RecordKey) -> "BucketKey":
        """Bucket of a stored record, with the term taken from its stored path."""

        report_type = ReportType(report_type)
        if report_type is ReportType.DAILY:
            return cls(report_type, key.year, key.month, day=key.day)
        if report_type is ReportType.WEEKLY:
            return cls(report_type, key.year, key.month, term=key.term)
        return cls(report_type, key.year, key.month)
