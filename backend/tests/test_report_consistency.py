from __future__ import annotations

from datetime import date

import pytest

from backend.card_reports.services.document_store import DocumentStore
from backend.card_reports.services.report_consistency import (
    ReportConsistencyService,
    prune_dangling_members,
    resum_from_members,
)
from backend.card_reports.services.report_paths import ReportType


@pytest.fixture
def service(store: DocumentStore, settings) -> ReportConsistencyService:
    return ReportConsistencyService(store, settings=settings)


def _report(store: DocumentStore, path: str, members, amount: int, count: int) -> None:
    store.create(
        path,
        {"total_amount": amount, "total_count": count, "member_ids": list(members)},
    )


def test_resum_counts_only_active_existing_members(store, seed_record) -> None:
    active = seed_record(date(2024, 1, 5), 1000)
    inactive = seed_record(date(2024, 1, 5), 400, is_active=False)
    missing = "details/2024/01/term1/5/missing"
    _report(store, "reports/daily/2024-01/05", [active, inactive, missing], 1400, 2)

    result = resum_from_members(store, store.read("reports/daily/2024-01/05"))

    assert (result.recalculated_amount, result.recalculated_count) == (1000, 1)
    assert result.missing_members == [missing]
    assert result.changed is True


def test_prune_dangling_members_is_read_only(store, seed_record) -> None:
    existing = seed_record(date(2024, 1, 8), 100)
    _report(store, "reports/daily/2024-01/08", [existing, "details/2024/01/term2/8/gone"], 100, 1)

    kept = prune_dangling_members(store, store.read("reports/daily/2024-01/08"))

    assert kept == [existing]
    assert len(store.get("reports/daily/2024-01/08")["member_ids"]) == 2


def test_check_reports_lists_only_drifted_reports(store, seed_record, service) -> None:
    record = seed_record(date(2024, 1, 15), 500)
    _report(store, "reports/daily/2024-01/15", [record], 500, 1)
    _report(store, "reports/monthly/2024/01", [record], 800, 2)

    drifted = service.check_reports()

    assert [result.path for result in drifted] == ["reports/monthly/2024/01"]


def test_apply_resum_overwrites_totals(store, seed_record, service) -> None:
    record = seed_record(date(2024, 1, 16), 500)
    _report(store, "reports/weekly/2024-01/term3", [record], 9000, 4)

    result = service.apply_resum("reports/weekly/2024-01/term3")

    assert result.changed is True
    weekly = store.get("reports/weekly/2024-01/term3")
    assert (weekly["total_amount"], weekly["total_count"]) == (500, 1)
    assert weekly["last_updated_by"] == "report-resum-script"


def test_apply_resum_leaves_consistent_reports_alone(store, seed_record, service) -> None:
    record = seed_record(date(2024, 1, 17), 500)
    _report(store, "reports/daily/2024-01/17", [record], 500, 1)

    result = service.apply_resum("reports/daily/2024-01/17")

    assert result.changed is False
    assert store.read("reports/daily/2024-01/17").version == 1


def test_prune_all_dry_run_then_apply(store, seed_record, service) -> None:
    record = seed_record(date(2024, 2, 1), 500)
    gone = "details/2024/02/term1/1/gone"
    _report(store, "reports/daily/2024-02/01", [record, gone], 500, 1)
    _report(store, "reports/monthly/2024/02", [record], 500, 1)

    preview = service.prune_all(dry_run=True)

    assert [(item.path, item.removed_member_ids) for item in preview] == [
        ("reports/daily/2024-02/01", [gone])
    ]
    assert gone in store.get("reports/daily/2024-02/01")["member_ids"]

    applied = service.prune_all()

    assert applied[0].report_type is ReportType.DAILY
    daily = store.get("reports/daily/2024-02/01")
    assert daily["member_ids"] == [record]
    assert daily["last_updated_by"] == "report-cleanup-script"


def test_delete_inactive_records_prunes_their_reports(store, seed_record, service) -> None:
    active = seed_record(date(2024, 3, 1), 300)
    inactive = seed_record(date(2024, 3, 1), 200, is_active=False)
    other_year = seed_record(date(2023, 12, 31), 50, is_active=False)
    _report(store, "reports/daily/2024-03/01", [active, inactive], 300, 1)

    assert sorted(record.path for record in service.find_inactive_records()) == sorted(
        [inactive, other_year]
    )

    result = service.delete_inactive_records()

    assert sorted(result.deleted_records) == sorted([inactive, other_year])
    assert store.exists(inactive) is False
    assert store.exists(active) is True
    assert [report.path for report in result.pruned_reports] == ["reports/daily/2024-03/01"]
    assert store.get("reports/daily/2024-03/01")["member_ids"] == [active]


def test_delete_inactive_records_without_candidates(service, seed_record) -> None:
    seed_record(date(2024, 3, 2), 300)

    result = service.delete_inactive_records()

    assert result.deleted_records == []
    assert result.pruned_reports == []
