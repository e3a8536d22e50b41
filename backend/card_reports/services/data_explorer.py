"""Discovery of source records below ``details/`` for a date range."""

from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import Iterator, Optional, Union

from ..errors import StoreAccessError
from .calendar import to_report_datetime
from .document_store import DocumentStore
from .report_paths import details_prefix
from .source_records import SourceRecord, decode_record

LOGGER = logging.getLogger(__name__)


def iter_year_months(start: date, end: date) -> Iterator[tuple[int, int]]:
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        month += 1
        if month > 12:
            year, month = year + 1, 1


def as_report_date(value: Union[date, datetime], tz: Optional[tzinfo] = None) -> date:
    if isinstance(value, datetime):
        return to_report_datetime(value, tz).date()
    return value


class SourceRecordExplorer:
    """Walk ``details/{year}/{MM}/{term}/{day}`` and collect decodable records.

    Missing branches yield nothing. A failure at any level is logged and the
    walk continues with the next branch, so the result holds everything that
    could be read.
    """

    def __init__(self, store: DocumentStore, *, tz: Optional[tzinfo] = None) -> None:
        self.store = store
        self.tz = tz

    def explore(
        self, start_date: Union[date, datetime], end_date: Union[date, datetime]
    ) -> list[SourceRecord]:
        start = as_report_date(start_date, self.tz)
        end = as_report_date(end_date, self.tz)
        LOGGER.info("Exploring card usage records from %s to %s", start, end)

        records: list[SourceRecord] = []
        for year, month in iter_year_months(start, end):
            month_records = self._explore_month(year, month, start, end)
            LOGGER.debug("%s-%02d produced %s records", year, month, len(month_records))
            records.extend(month_records)

        LOGGER.info("Found %s card usage records between %s and %s", len(records), start, end)
        return records

    def _list_branches(self, path: str) -> list[str]:
        try:
            return self.store.list_children(path)
        except StoreAccessError as exc:
            LOGGER.warning("Unable to list %s: %s", path, exc)
            return []

    def _explore_month(self, year: int, month: int, start: date, end: date) -> list[SourceRecord]:
        month_path = details_prefix(year, month)
        terms = self._list_branches(month_path)
        if not terms:
            LOGGER.debug("No term branches under %s", month_path)
            return []

        records: list[SourceRecord] = []
        for term in terms:
            records.extend(self._explore_term(f"{month_path}/{term}", year, month, start, end))
        return records

    def _explore_term(
        self, term_path: str, year: int, month: int, start: date, end: date
    ) -> list[SourceRecord]:
        records: list[SourceRecord] = []
        for day_token in self._list_branches(term_path):
            try:
                current = date(year, month, int(day_token))
            except ValueError:
                LOGGER.warning("Skipping unexpected day branch %s/%s", term_path, day_token)
                continue
            if current < start or current > end:
                continue
            records.extend(self._explore_day(f"{term_path}/{day_token}"))
        return records

    def _explore_day(self, day_path: str) -> list[SourceRecord]:
        try:
            documents = self.store.list_documents(day_path)
        except StoreAccessError as exc:
            LOGGER.warning("Unable to read records under %s: %s", day_path, exc)
            return []

        records: list[SourceRecord] = []
        for document in documents:
            try:
                record = decode_record(document.path, document.data, self.tz)
            except ValueError as exc:
                LOGGER.warning("Skipping undecodable record %s: %s", document.path, exc)
                continue
            if record is None:
                LOGGER.debug("Skipping %s without a numeric amount", document.path)
                continue
            records.append(record)
        return records
