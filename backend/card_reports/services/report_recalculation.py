"""Batch rebuild of reports from the source records of a date range."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional, Union

from ..config import Settings, get_settings
from ..errors import RecalculationValidationError, ReportServiceError, error_context
from .data_explorer import SourceRecordExplorer, as_report_date
from .document_store import DocumentSnapshot, DocumentStore
from .report_documents import ACTOR_SCRIPT, new_report
from .report_paths import ALL_REPORT_TYPES, BucketKey, ReportType, pad2, parse_report_types
from .source_records import SourceRecord

LOGGER = logging.getLogger(__name__)

DATE_STATS_LIMIT = 10

DateInput = Union[date, datetime]


def _zero_counts() -> dict[str, int]:
    return {report_type.value: 0 for report_type in ALL_REPORT_TYPES}


@dataclass
class RecalculationError:
    report_type: str
    bucket: str
    message: str


@dataclass
class RecalculationResult:
    """Outcome of one recalculation run."""

    start_date: date
    end_date: date
    report_types: list[ReportType]
    executed_by: str
    dry_run: bool = False
    success: bool = False
    total_processed: int = 0
    created: dict[str, int] = field(default_factory=_zero_counts)
    updated: dict[str, int] = field(default_factory=_zero_counts)
    errors: list[RecalculationError] = field(default_factory=list)
    expected_processing: Optional[dict[str, int]] = None
    date_stats: Optional[list[dict[str, Any]]] = None

    @property
    def total_created(self) -> int:
        return sum(self.created.values())

    @property
    def total_updated(self) -> int:
        return sum(self.updated.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "executed_by": self.executed_by,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "report_types": [report_type.value for report_type in self.report_types],
            "total_processed": self.total_processed,
            "created": dict(self.created),
            "updated": dict(self.updated),
            "errors": [asdict(error) for error in self.errors],
            "expected_processing": self.expected_processing,
            "date_stats": self.date_stats,
        }


def validate_recalculation_range(
    start_date: date, end_date: date, max_days: Optional[int] = None
) -> None:
    """Reject ranges that are reversed or longer than ``max_days``."""

    if start_date > end_date:
        raise RecalculationValidationError(
            f"Start date {start_date} must not be after end date {end_date}"
        )
    limit = max_days if max_days is not None else get_settings().max_recalculation_days
    if (end_date - start_date).days > limit:
        raise RecalculationValidationError(
            f"Recalculation ranges are limited to {limit} days ({start_date} - {end_date})"
        )


def group_records(
    report_type: ReportType, records: Iterable[SourceRecord]
) -> dict[BucketKey, list[SourceRecord]]:
    """Group records by bucket, taking the week from the stored term token."""

    groups: dict[BucketKey, list[SourceRecord]] = {}
    for record in records:
        groups.setdefault(BucketKey.for_record(report_type, record.key), []).append(record)
    return groups


class ReportRecalculationService:
    """Rebuild daily, weekly and monthly reports from the stored records.

    Totals are recomputed from the active records, ``member_ids`` lists every
    discovered record and notification flags are carried over from the stored
    report. Rerunning over the same data produces the same reports.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        explorer: Optional[SourceRecordExplorer] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.explorer = explorer or SourceRecordExplorer(store, tz=self.settings.report_timezone)

    @property
    def tz(self):
        return self.settings.report_timezone

    def recalculate(
        self,
        start_date: DateInput,
        end_date: DateInput,
        report_types: Union[str, Iterable[str], None] = None,
        executed_by: str = ACTOR_SCRIPT,
        dry_run: bool = False,
    ) -> RecalculationResult:
        start = as_report_date(start_date, self.tz)
        end = as_report_date(end_date, self.tz)
        if start > end:
            raise RecalculationValidationError(
                f"Start date {start} must not be after end date {end}"
            )
        types = parse_report_types(report_types)

        result = RecalculationResult(
            start_date=start,
            end_date=end,
            report_types=types,
            executed_by=executed_by,
            dry_run=dry_run,
        )
        LOGGER.info(
            "Recalculating %s reports from %s to %s (executed by %s, dry run: %s)",
            ",".join(report_type.value for report_type in types),
            start,
            end,
            executed_by,
            dry_run,
        )

        records = self.explorer.explore(start, end)
        result.total_processed = len(records)
        if not records:
            LOGGER.warning("No card usage records between %s and %s", start, end)
            result.success = True
            return result

        if dry_run:
            return self._preview(records, result)

        for report_type in types:
            self._rebuild(report_type, records, result)

        result.success = len(result.errors) * 2 < len(types)
        LOGGER.info(
            "Recalculation finished: created=%s updated=%s errors=%s success=%s",
            result.created,
            result.updated,
            len(result.errors),
            result.success,
        )
        return result

    def _preview(
        self, records: list[SourceRecord], result: RecalculationResult
    ) -> RecalculationResult:
        expected = _zero_counts()
        for report_type in result.report_types:
            expected[report_type.value] = len(group_records(report_type, records))

        per_day: dict[str, dict[str, Any]] = {}
        for record in records:
            key = record.key
            label = f"{key.year}-{pad2(key.month)}-{pad2(key.day)}"
            stats = per_day.setdefault(label, {"date": label, "count": 0, "total_amount": 0})
            stats["count"] += 1
            stats["total_amount"] += record.amount

        result.expected_processing = expected
        result.date_stats = [per_day[label] for label in sorted(per_day)[:DATE_STATS_LIMIT]]
        result.success = True
        LOGGER.info("Dry run: expected report writes %s", expected)
        if len(per_day) > DATE_STATS_LIMIT:
            LOGGER.info("Dry run: %s more days not listed", len(per_day) - DATE_STATS_LIMIT)
        return result

    def _rebuild(
        self, report_type: ReportType, records: list[SourceRecord], result: RecalculationResult
    ) -> None:
        groups = group_records(report_type, records)
        LOGGER.info("Rebuilding %s %s reports", len(groups), report_type.value)
        for bucket in sorted(groups, key=lambda item: item.path):
            try:
                with error_context(
                    "recalculate", report_type=report_type.value, bucket=bucket.path
                ):
                    created = self.write_bucket(bucket, groups[bucket], result.executed_by)
                    self.store.commit()
            except ReportServiceError as exc:
                LOGGER.error("Failed to rebuild %s: %s", bucket.path, exc)
                result.errors.append(
                    RecalculationError(
                        report_type=report_type.value,
                        bucket=bucket.label,
                        message=str(exc),
                    )
                )
                continue
            counter = result.created if created else result.updated
            counter[report_type.value] += 1

    def write_bucket(self, bucket: BucketKey, records: list[SourceRecord], actor: str) -> bool:
        """Overwrite ``bucket`` with totals of ``records``; return whether it was created."""

        active = [record for record in records if record.is_active]
        total_amount = sum(record.amount for record in active)
        member_ids = list(dict.fromkeys(record.path for record in records))

        def rebuild(snapshot: Optional[DocumentSnapshot]) -> dict[str, Any]:
            return new_report(
                bucket,
                total_amount=total_amount,
                total_count=len(active),
                member_ids=member_ids,
                actor=actor,
                flags=snapshot.data if snapshot is not None else None,
                tz=self.tz,
            )

        before, _ = self.store.modify(bucket.path, rebuild)
        LOGGER.debug(
            "%s %s: amount=%s count=%s",
            "Created" if before is None else "Overwrote",
            bucket.path,
            total_amount,
            len(active),
        )
        return before is None
