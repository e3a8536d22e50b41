"""Incremental report updates driven by single source record events.

Every bucket write is an optimistic read-modify-write through
:meth:`DocumentStore.modify`, so two records landing in the same bucket at the
same time both end up in the totals. Weekly and monthly buckets are checked
against the alert thresholds after each write; the level flag is stored before
the alert goes out so a retry never alerts twice.
"""

from __future__ import annotations

import enum
import logging
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from ..config import Settings, get_settings
from ..errors import InvalidRecordError, error_context
from .calendar import get_calendar_info
from .document_store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore
from .notifications import (
    ReportNotifier,
    alert_channel,
    alert_notification,
    usage_notification,
)
from .report_documents import (
    ACTOR_API_DELETE,
    ACTOR_API_REACTIVATE,
    ACTOR_API_UPDATE,
    ACTOR_SYSTEM,
    new_report,
)
from .report_paths import (
    DETAILS_ROOT,
    BucketKey,
    ReportType,
    parse_report_types,
)
from .source_records import SourceRecord, decode_record
from .thresholds import ReportThresholds, evaluate_threshold, load_report_thresholds

LOGGER = logging.getLogger(__name__)

Mutation = Callable[[Optional[DocumentSnapshot]], Optional[Mapping[str, Any]]]


class AggregationOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


def _members(data: Mapping[str, Any]) -> list[str]:
    return [str(member) for member in data.get("member_ids") or []]


def _adjusted(
    data: Mapping[str, Any],
    *,
    amount_delta: int,
    count_delta: int,
    member_ids: list[str],
    actor: str,
) -> dict[str, Any]:
    return {
        **data,
        "total_amount": int(data.get("total_amount", 0)) + amount_delta,
        "total_count": max(int(data.get("total_count", 0)) + count_delta, 0),
        "member_ids": member_ids,
        "last_updated_by": actor,
        "last_updated_at": SERVER_TIMESTAMP,
    }


class ReportAggregationService:
    """Apply single record changes to the daily, weekly and monthly reports."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        notifier: Optional[ReportNotifier] = None,
        settings: Optional[Settings] = None,
        thresholds: Optional[ReportThresholds] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._thresholds = thresholds

    @property
    def tz(self):
        return self.settings.report_timezone

    @property
    def thresholds(self) -> ReportThresholds:
        return self.resolve_thresholds()

    def resolve_thresholds(self) -> ReportThresholds:
        """Load and validate the alert levels once; raises ``ConfigurationError``."""

        if self._thresholds is None:
            self._thresholds = load_report_thresholds(self.store, self.settings)
        return self._thresholds

    def bucket_for(self, report_type: ReportType, record: SourceRecord) -> BucketKey:
        """Bucket of ``record``, using the term of its stored path.

        Recalculation groups by the same stored term, so both writers always
        target one weekly report per record.
        """

        key = record.key
        if report_type is ReportType.WEEKLY:
            info = get_calendar_info(date(key.year, key.month, key.day), self.tz)
            if info.term != key.term:
                LOGGER.warning(
                    "Record %s is stored under term%s but its day falls in term%s",
                    record.path,
                    key.term,
                    info.term,
                )
        return BucketKey.for_record(report_type, key)

    def _write(
        self,
        report_types: Union[str, Iterable[str], None],
        record: SourceRecord,
        operation: str,
        mutation_for: Callable[[BucketKey], Mutation],
        *,
        check_thresholds: bool,
    ) -> dict[ReportType, AggregationOutcome]:
        requested = parse_report_types(report_types)
        if check_thresholds and any(item is not ReportType.DAILY for item in requested):
            # Misconfigured levels must fail before the first bucket is written.
            self.resolve_thresholds()
        outcomes: dict[ReportType, AggregationOutcome] = {}
        for report_type in requested:
            bucket = self.bucket_for(report_type, record)
            with error_context(
                operation,
                report_type=report_type.value,
                bucket=bucket.path,
                record=record.path,
            ):
                before, written = self.store.modify(bucket.path, mutation_for(bucket))
                if written is None:
                    outcomes[report_type] = (
                        AggregationOutcome.SKIPPED if before is None else AggregationOutcome.UNCHANGED
                    )
                    continue
                self.store.commit()
                outcomes[report_type] = (
                    AggregationOutcome.CREATED if before is None else AggregationOutcome.UPDATED
                )
                LOGGER.debug("%s %s for %s", outcomes[report_type].value, bucket.path, record.path)
                if check_thresholds and report_type is not ReportType.DAILY:
                    self.check_thresholds(bucket, written)
        return outcomes

    def apply(
        self,
        record: SourceRecord,
        report_types: Union[str, Iterable[str], None] = None,
        *,
        actor: str = ACTOR_SYSTEM,
    ) -> dict[ReportType, AggregationOutcome]:
        """Add a newly stored record to each requested report.

        A record that is already listed in a report's members leaves that
        report unchanged, so replaying an event is harmless.
        """

        if not record.is_active:
            LOGGER.info("Skipping inactive record %s", record.path)
            return {
                report_type: AggregationOutcome.SKIPPED
                for report_type in parse_report_types(report_types)
            }

        def mutation_for(bucket: BucketKey) -> Mutation:
            def add(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
                if snapshot is None:
                    return new_report(
                        bucket,
                        total_amount=record.amount,
                        total_count=1,
                        member_ids=[record.path],
                        actor=actor,
                        tz=self.tz,
                    )
                members = _members(snapshot.data)
                if record.path in members:
                    LOGGER.info("%s already counted in %s", record.path, bucket.path)
                    return None
                return _adjusted(
                    snapshot.data,
                    amount_delta=record.amount,
                    count_delta=1,
                    member_ids=[*members, record.path],
                    actor=actor,
                )

            return add

        return self._write(report_types, record, "aggregate", mutation_for, check_thresholds=True)

    def apply_amount_change(
        self,
        record: SourceRecord,
        amount_diff: int,
        report_types: Union[str, Iterable[str], None] = None,
        *,
        actor: str = ACTOR_API_UPDATE,
    ) -> dict[ReportType, AggregationOutcome]:
        """Shift the totals of existing reports after a record's amount changed."""

        if amount_diff == 0 or not record.is_active:
            return {
                report_type: AggregationOutcome.SKIPPED
                for report_type in parse_report_types(report_types)
            }

        def mutation_for(bucket: BucketKey) -> Mutation:
            def shift(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
                if snapshot is None:
                    LOGGER.warning("No report at %s to adjust for %s", bucket.path, record.path)
                    return None
                return _adjusted(
                    snapshot.data,
                    amount_delta=amount_diff,
                    count_delta=0,
                    member_ids=_members(snapshot.data),
                    actor=actor,
                )

            return shift

        return self._write(
            report_types,
            record,
            "aggregate.amount_change",
            mutation_for,
            check_thresholds=amount_diff > 0,
        )

    def apply_deactivation(
        self,
        record: SourceRecord,
        report_types: Union[str, Iterable[str], None] = None,
        *,
        actor: str = ACTOR_API_DELETE,
    ) -> dict[ReportType, AggregationOutcome]:
        """Remove a soft-deleted record's amount from its reports.

        The record stays in ``member_ids`` so the report keeps its history.
        """

        def mutation_for(bucket: BucketKey) -> Mutation:
            def subtract(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
                if snapshot is None:
                    LOGGER.warning("No report at %s to deactivate %s in", bucket.path, record.path)
                    return None
                members = _members(snapshot.data)
                if record.path not in members:
                    return None
                return _adjusted(
                    snapshot.data,
                    amount_delta=-record.amount,
                    count_delta=-1,
                    member_ids=members,
                    actor=actor,
                )

            return subtract

        return self._write(
            report_types, record, "aggregate.deactivate", mutation_for, check_thresholds=False
        )

    def apply_reactivation(
        self,
        record: SourceRecord,
        report_types: Union[str, Iterable[str], None] = None,
        *,
        actor: str = ACTOR_API_REACTIVATE,
    ) -> dict[ReportType, AggregationOutcome]:
        """Count a restored record again, creating its reports when needed."""

        def mutation_for(bucket: BucketKey) -> Mutation:
            def restore(snapshot: Optional[DocumentSnapshot]) -> dict[str, Any]:
                if snapshot is None:
                    return new_report(
                        bucket,
                        total_amount=record.amount,
                        total_count=1,
                        member_ids=[record.path],
                        actor=actor,
                        tz=self.tz,
                    )
                members = _members(snapshot.data)
                if record.path not in members:
                    members.append(record.path)
                return _adjusted(
                    snapshot.data,
                    amount_delta=record.amount,
                    count_delta=1,
                    member_ids=members,
                    actor=actor,
                )

            return restore

        return self._write(
            report_types, record, "aggregate.reactivate", mutation_for, check_thresholds=True
        )

    def check_thresholds(self, bucket: BucketKey, data: Mapping[str, Any]) -> Optional[int]:
        """Flag and announce the highest newly crossed alert level of ``bucket``.

        Returns the level that fired, if any.
        """

        levels = self.thresholds.for_report_type(bucket.report_type)
        evaluation = evaluate_threshold(int(data.get("total_amount", 0)), data, levels)
        if evaluation is None:
            return None

        def set_flag(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
            if snapshot is None or snapshot.data.get(evaluation.flag):
                return None
            return {**snapshot.data, evaluation.flag: True}

        _, written = self.store.modify(bucket.path, set_flag)
        if written is None:
            LOGGER.debug("%s on %s was already flagged", evaluation.flag, bucket.path)
            return None
        self.store.commit()
        LOGGER.info(
            "%s crossed level %s (%s) at %s",
            bucket.path,
            evaluation.level,
            evaluation.threshold,
            data.get("total_amount"),
        )
        if self.notifier is not None:
            self.notifier.notify(
                alert_channel(bucket.report_type),
                alert_notification(bucket, written, evaluation),
            )
        return evaluation.level


def handle_record_created(
    store: DocumentStore,
    path: str,
    payload: Optional[Mapping[str, Any]],
    *,
    notifier: Optional[ReportNotifier] = None,
    settings: Optional[Settings] = None,
    report_types: Union[str, Iterable[str], None] = None,
) -> dict[ReportType, AggregationOutcome]:
    """Aggregate a source record that was just written under ``details/``."""

    if not path.strip("/").startswith(f"{DETAILS_ROOT}/"):
        LOGGER.warning("Ignoring document outside %s: %s", DETAILS_ROOT, path)
        return {}

    settings = settings or get_settings()
    try:
        record = decode_record(path, payload, settings.report_timezone)
    except ValueError as exc:
        raise InvalidRecordError(str(exc)) from exc
    if record is None:
        raise InvalidRecordError(f"Record {path} has no numeric amount")
    if not record.is_active:
        LOGGER.info("Record %s is inactive; nothing to aggregate", record.path)
        return {}

    service = ReportAggregationService(store, notifier=notifier, settings=settings)
    outcomes = service.apply(record, report_types)
    if notifier is not None:
        notifier.notify_usage(usage_notification(record))
    return outcomes
