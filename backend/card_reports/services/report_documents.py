"""Shape of stored report documents shared by every writer."""

from __future__ import annotations

from datetime import date, datetime, time, tzinfo
from typing import Any, Iterable, Mapping, Optional

from .. import schemas
from .calendar import get_calendar_info, month_bounds, report_timezone
from .document_store import SERVER_TIMESTAMP
from .report_paths import BucketKey, ReportType

ACTOR_SYSTEM = "system"
ACTOR_API_UPDATE = "api-update"
ACTOR_API_DELETE = "api-delete"
ACTOR_API_REACTIVATE = "api-reactivate"
ACTOR_SCHEDULED_RECALCULATION = "scheduled-recalculation"
ACTOR_SCRIPT = "script-execution"
ACTOR_HTTP_API = "http-api"
ACTOR_CLEANUP_SCRIPT = "report-cleanup-script"
ACTOR_RESUM_SCRIPT = "report-resum-script"
ACTOR_DAILY_SCHEDULE = "daily-report-schedule"
ACTOR_WEEKLY_SCHEDULE = "weekly-report-schedule"
ACTOR_MONTHLY_SCHEDULE = "monthly-report-schedule"

REPORT_MODELS: dict[ReportType, type[schemas.ReportDocument]] = {
    ReportType.DAILY: schemas.DailyReport,
    ReportType.WEEKLY: schemas.WeeklyReport,
    ReportType.MONTHLY: schemas.MonthlyReport,
}

_THRESHOLD_REPORT_FLAGS = (
    "notified_level1",
    "notified_level2",
    "notified_level3",
    "report_delivered",
)

NOTIFICATION_FLAGS: dict[ReportType, tuple[str, ...]] = {
    ReportType.DAILY: ("notified_for_delivery",),
    ReportType.WEEKLY: _THRESHOLD_REPORT_FLAGS,
    ReportType.MONTHLY: _THRESHOLD_REPORT_FLAGS,
}

DELIVERY_FLAGS: dict[ReportType, str] = {
    ReportType.DAILY: "notified_for_delivery",
    ReportType.WEEKLY: "report_delivered",
    ReportType.MONTHLY: "report_delivered",
}


def _first_day_of_term(year: int, month: int, term: int) -> date:
    first, last = month_bounds(year, month)
    offset = (first.weekday() + 1) % 7
    day = min(max(7 * (term - 1) - offset + 1, 1), last.day)
    return date(year, month, day)


def bucket_window(bucket: BucketKey, tz: Optional[tzinfo] = None) -> dict[str, datetime]:
    """Date fields of a new report for ``bucket``."""

    zone = tz or report_timezone()
    if bucket.report_type is ReportType.DAILY:
        day = date(bucket.year, bucket.month, bucket.day)
        return {"date": datetime.combine(day, time.min, tzinfo=zone)}
    if bucket.report_type is ReportType.WEEKLY:
        info = get_calendar_info(_first_day_of_term(bucket.year, bucket.month, bucket.term), zone)
        return {"week_start": info.week_start, "week_end": info.week_end}
    first, last = month_bounds(bucket.year, bucket.month)
    return {
        "month_start": datetime.combine(first, time.min, tzinfo=zone),
        "month_end": datetime.combine(last, time(23, 59, 59), tzinfo=zone),
    }


def carried_flags(report_type: ReportType, existing: Optional[Mapping[str, Any]]) -> dict[str, bool]:
    """Notification flags of ``existing``, defaulting to ``False``."""

    source = existing or {}
    return {flag: bool(source.get(flag, False)) for flag in NOTIFICATION_FLAGS[report_type]}


def new_report(
    bucket: BucketKey,
    *,
    total_amount: int,
    total_count: int,
    member_ids: Iterable[str],
    actor: str,
    flags: Optional[Mapping[str, bool]] = None,
    tz: Optional[tzinfo] = None,
) -> dict[str, Any]:
    model = REPORT_MODELS[bucket.report_type](
        total_amount=total_amount,
        total_count=total_count,
        member_ids=list(member_ids),
        last_updated_by=actor,
        **bucket_window(bucket, tz),
        **carried_flags(bucket.report_type, flags),
    )
    data = model.model_dump(mode="json")
    data["last_updated_at"] = SERVER_TIMESTAMP
    return data


def parse_report(report_type: ReportType, data: Mapping[str, Any]) -> schemas.ReportDocument:
    return REPORT_MODELS[ReportType(report_type)].model_validate(dict(data))


def report_type_of_path(path: str) -> ReportType:
    segments = path.strip("/").split("/")
    if len(segments) < 2 or segments[0] != "reports":
        raise ValueError(f"Not a report path: {path!r}")
    return ReportType(segments[1])
