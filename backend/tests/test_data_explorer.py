from __future__ import annotations

from datetime import date

import pytest

from backend.card_reports.errors import StoreAccessError
from backend.card_reports.services.data_explorer import SourceRecordExplorer, iter_year_months
from backend.card_reports.services.document_store import DocumentStore


def test_iter_year_months_crosses_year_boundaries() -> None:
    assert list(iter_year_months(date(2023, 11, 15), date(2024, 2, 1))) == [
        (2023, 11),
        (2023, 12),
        (2024, 1),
        (2024, 2),
    ]


def test_explore_returns_records_within_the_range(
    store: DocumentStore, settings, seed_record
) -> None:
    inside_first = seed_record(date(2024, 1, 31), 1000)
    inside_second = seed_record(date(2024, 2, 1), 2000, is_active=False)
    seed_record(date(2024, 2, 2), 3000)
    seed_record(date(2024, 1, 30), 4000)

    explorer = SourceRecordExplorer(store, tz=settings.report_timezone)
    records = explorer.explore(date(2024, 1, 31), date(2024, 2, 1))

    assert sorted(record.path for record in records) == sorted([inside_first, inside_second])
    inactive = next(record for record in records if record.path == inside_second)
    assert inactive.is_active is False


def test_explore_skips_documents_without_numeric_amount(
    store: DocumentStore, settings, seed_record
) -> None:
    seed_record(date(2024, 3, 4), "1000")
    seed_record(date(2024, 3, 4), True)
    kept = seed_record(date(2024, 3, 4), 1500.0)

    records = SourceRecordExplorer(store, tz=settings.report_timezone).explore(
        date(2024, 3, 4), date(2024, 3, 4)
    )

    assert [record.path for record in records] == [kept]
    assert records[0].amount == 1500


def test_explore_ignores_unexpected_day_branches(store: DocumentStore, settings) -> None:
    store.create("details/2024/04/term1/notaday/1", {"amount": 100})

    records = SourceRecordExplorer(store, tz=settings.report_timezone).explore(
        date(2024, 4, 1), date(2024, 4, 30)
    )

    assert records == []


def test_explore_continues_past_unreadable_days(
    store: DocumentStore, settings, seed_record, monkeypatch: pytest.MonkeyPatch
) -> None:
    seed_record(date(2024, 5, 1), 100)
    readable = seed_record(date(2024, 5, 2), 200)
    original = store.list_documents

    def flaky_list_documents(path: str):
        if path.endswith("/1"):
            raise StoreAccessError("boom", operation="store.list_documents")
        return original(path)

    monkeypatch.setattr(store, "list_documents", flaky_list_documents)

    records = SourceRecordExplorer(store, tz=settings.report_timezone).explore(
        date(2024, 5, 1), date(2024, 5, 2)
    )

    assert [record.path for record in records] == [readable]


def test_explore_empty_month_returns_nothing(store: DocumentStore, settings) -> None:
    explorer = SourceRecordExplorer(store, tz=settings.report_timezone)

    assert explorer.explore(date(2019, 1, 1), date(2019, 1, 31)) == []
