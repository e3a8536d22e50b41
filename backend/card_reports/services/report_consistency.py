"""Repair helpers that check reports against their member records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from ..config import Settings, get_settings
from ..errors import ReportServiceError, error_context
from .data_explorer import SourceRecordExplorer
from .document_store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore
from .report_documents import ACTOR_CLEANUP_SCRIPT, ACTOR_RESUM_SCRIPT, report_type_of_path
from .report_paths import ALL_REPORT_TYPES, DETAILS_ROOT, ReportType, collection_root
from .source_records import SourceRecord, decode_record

LOGGER = logging.getLogger(__name__)


@dataclass
class ResumResult:
    """Totals of a report recomputed from the records it lists."""

    path: str
    stored_amount: int
    stored_count: int
    recalculated_amount: int
    recalculated_count: int
    missing_members: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return (
            self.recalculated_amount != self.stored_amount
            or self.recalculated_count != self.stored_count
        )


@dataclass
class PruneResult:
    path: str
    report_type: ReportType
    removed_member_ids: list[str]


@dataclass
class InactiveCleanupResult:
    deleted_records: list[str] = field(default_factory=list)
    pruned_reports: list[PruneResult] = field(default_factory=list)


def _member_ids(report: DocumentSnapshot) -> list[str]:
    return [str(member) for member in report.data.get("member_ids") or []]


def resum_from_members(
    store: DocumentStore, report: DocumentSnapshot, tz=None
) -> ResumResult:
    """Sum the active member records of ``report`` without writing anything."""

    amount = 0
    count = 0
    missing: list[str] = []
    for member in _member_ids(report):
        data = store.get(member)
        if data is None:
            missing.append(member)
            continue
        try:
            record = decode_record(member, data, tz)
        except ValueError:
            LOGGER.warning("Member %s of %s is not a card usage record", member, report.path)
            continue
        if record is None or not record.is_active:
            continue
        amount += record.amount
        count += 1

    return ResumResult(
        path=report.path,
        stored_amount=int(report.data.get("total_amount", 0)),
        stored_count=int(report.data.get("total_count", 0)),
        recalculated_amount=amount,
        recalculated_count=count,
        missing_members=missing,
    )


def prune_dangling_members(store: DocumentStore, report: DocumentSnapshot) -> list[str]:
    """Return the member ids of ``report`` whose records still exist."""

    return [member for member in _member_ids(report) if store.exists(member)]


class ReportConsistencyService:
    """Find reports and apply resum or pruning corrections to them."""

    def __init__(self, store: DocumentStore, *, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    @property
    def tz(self):
        return self.settings.report_timezone

    def find_all_reports(self) -> list[DocumentSnapshot]:
        reports: list[DocumentSnapshot] = []
        for report_type in ALL_REPORT_TYPES:
            root = collection_root(report_type)
            found = [
                report
                for group in self.store.list_children(root)
                for report in self.store.list_documents(f"{root}/{group}")
            ]
            LOGGER.info("Found %s %s reports", len(found), report_type.value)
            reports.extend(found)
        return reports

    def check_reports(self) -> list[ResumResult]:
        """Resum every report and return the ones whose totals drifted."""

        drifted = []
        for report in self.find_all_reports():
            result = resum_from_members(self.store, report, self.tz)
            if result.changed:
                LOGGER.warning(
                    "%s stores %s/%s but its members sum to %s/%s",
                    report.path,
                    result.stored_amount,
                    result.stored_count,
                    result.recalculated_amount,
                    result.recalculated_count,
                )
                drifted.append(result)
        return drifted

    def apply_resum(self, path: str) -> Optional[ResumResult]:
        """Overwrite the totals of ``path`` with the sum of its members."""

        outcome: dict[str, ResumResult] = {}

        def correct(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
            if snapshot is None:
                return None
            result = resum_from_members(self.store, snapshot, self.tz)
            outcome["result"] = result
            if not result.changed:
                return None
            return {
                **snapshot.data,
                "total_amount": result.recalculated_amount,
                "total_count": result.recalculated_count,
                "last_updated_by": ACTOR_RESUM_SCRIPT,
                "last_updated_at": SERVER_TIMESTAMP,
            }

        with error_context("consistency.resum", report=path):
            _, written = self.store.modify(path, correct)
            if written is not None:
                self.store.commit()
                LOGGER.info("Corrected totals of %s", path)
        return outcome.get("result")

    def prune_report(self, path: str) -> list[str]:
        """Drop members of ``path`` whose records are gone; return the removed ids."""

        removed: list[str] = []

        def prune(snapshot: Optional[DocumentSnapshot]) -> Optional[dict[str, Any]]:
            removed.clear()
            if snapshot is None:
                return None
            kept = prune_dangling_members(self.store, snapshot)
            removed.extend(member for member in _member_ids(snapshot) if member not in kept)
            if not removed:
                return None
            return {
                **snapshot.data,
                "member_ids": kept,
                "last_updated_by": ACTOR_CLEANUP_SCRIPT,
                "last_updated_at": SERVER_TIMESTAMP,
            }

        with error_context("consistency.prune", report=path):
            _, written = self.store.modify(path, prune)
            if written is not None:
                self.store.commit()
                LOGGER.info("Removed %s dangling members from %s", len(removed), path)
        return list(removed)

    def prune_all(self, *, dry_run: bool = False) -> list[PruneResult]:
        results: list[PruneResult] = []
        for report in self.find_all_reports():
            if dry_run:
                kept = set(prune_dangling_members(self.store, report))
                removed = [member for member in _member_ids(report) if member not in kept]
            else:
                try:
                    removed = self.prune_report(report.path)
                except ReportServiceError as exc:
                    LOGGER.error("Unable to prune %s: %s", report.path, exc)
                    continue
            if removed:
                results.append(PruneResult(report.path, report_type_of_path(report.path), removed))
        return results

    def find_inactive_records(self) -> list[SourceRecord]:
        years = []
        for token in self.store.list_children(DETAILS_ROOT):
            try:
                years.append(int(token))
            except ValueError:
                LOGGER.warning("Skipping unexpected year branch %s/%s", DETAILS_ROOT, token)
        if not years:
            return []
        explorer = SourceRecordExplorer(self.store, tz=self.tz)
        records = explorer.explore(date(min(years), 1, 1), date(max(years), 12, 31))
        return [record for record in records if not record.is_active]

    def delete_inactive_records(self) -> InactiveCleanupResult:
        """Hard delete soft-deleted records, then prune them from their reports."""

        result = InactiveCleanupResult()
        for record in self.find_inactive_records():
            with error_context("consistency.delete_inactive", record=record.path):
                if self.store.delete(record.path):
                    self.store.commit()
                    result.deleted_records.append(record.path)
                    LOGGER.info("Deleted inactive record %s", record.path)

        if not result.deleted_records:
            return result

        deleted = set(result.deleted_records)
        for report in self.find_all_reports():
            if deleted.isdisjoint(_member_ids(report)):
                continue
            removed = self.prune_report(report.path)
            if removed:
                result.pruned_reports.append(
                    PruneResult(report.path, report_type_of_path(report.path), removed)
                )
        return result
