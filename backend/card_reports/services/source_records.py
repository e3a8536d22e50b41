"""Decoding and persistence of card usage source records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from typing import Any, Mapping, Optional

from .calendar import get_calendar_info, to_report_datetime
from .document_store import DocumentStore, normalize_path
from .report_paths import RecordKey

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRecord:
    """One card usage event stored under ``details/``."""

    path: str
    key: RecordKey
    amount: int
    datetime_of_use: datetime
    is_active: bool = True
    card_name: Optional[str] = None
    where_to_use: Optional[str] = None
    memo: Optional[str] = None


def is_numeric_amount(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_datetime(raw: Any, key: RecordKey, tz: Optional[tzinfo]) -> datetime:
    if isinstance(raw, datetime):
        return to_report_datetime(raw, tz)
    if isinstance(raw, str) and raw.strip():
        try:
            return to_report_datetime(datetime.fromisoformat(raw.strip()), tz)
        except ValueError:
            LOGGER.warning("Invalid datetime_of_use %r for %s; using the path date", raw, key.path)
    return to_report_datetime(datetime(key.year, key.month, key.day), tz)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def decode_record(
    path: str, data: Optional[Mapping[str, Any]], tz: Optional[tzinfo] = None
) -> Optional[SourceRecord]:
    """Decode a stored record, returning ``None`` unless it has a numeric amount."""

    if not data or not is_numeric_amount(data.get("amount")):
        return None
    normalized = normalize_path(path)
    key = RecordKey.from_path(normalized)
    return SourceRecord(
        path=normalized,
        key=key,
        amount=int(data["amount"]),
        datetime_of_use=_parse_datetime(data.get("datetime_of_use"), key, tz),
        is_active=data.get("is_active", True) is not False,
        card_name=_optional_text(data.get("card_name")),
        where_to_use=_optional_text(data.get("where_to_use")),
        memo=_optional_text(data.get("memo")),
    )


def encode_record(record: SourceRecord) -> dict[str, Any]:
    return {
        "amount": record.amount,
        "datetime_of_use": record.datetime_of_use.isoformat(),
        "is_active": record.is_active,
        "card_name": record.card_name,
        "where_to_use": record.where_to_use,
        "memo": record.memo,
        "created_at": DocumentStore.server_timestamp(),
    }


class SourceRecordRepository:
    """Read and write source records through the document store."""

    def __init__(self, store: DocumentStore, *, tz: Optional[tzinfo] = None) -> None:
        self.store = store
        self.tz = tz

    def add(
        self,
        *,
        amount: int,
        datetime_of_use: datetime,
        card_name: Optional[str] = None,
        where_to_use: Optional[str] = None,
        memo: Optional[str] = None,
        is_active: bool = True,
    ) -> SourceRecord:
        """Store a new record keyed by its usage time in epoch milliseconds."""

        local = to_report_datetime(datetime_of_use, self.tz)
        info = get_calendar_info(local, self.tz)
        sequence = info.timestamp
        while True:
            key = RecordKey.from_calendar(info, sequence)
            record = SourceRecord(
                path=key.path,
                key=key,
                amount=int(amount),
                datetime_of_use=local,
                is_active=is_active,
                card_name=_optional_text(card_name),
                where_to_use=_optional_text(where_to_use),
                memo=_optional_text(memo),
            )
            if self.store.create(record.path, encode_record(record)):
                LOGGER.info("Stored card usage %s (%s)", record.path, record.amount)
                return record
            sequence += 1

    def get(self, path: str) -> Optional[SourceRecord]:
        return decode_record(path, self.store.get(path), self.tz)

    def update_amount(self, record: SourceRecord, amount: int) -> SourceRecord:
        self.store.update(
            record.path,
            {"amount": int(amount), "updated_at": DocumentStore.server_timestamp()},
        )
        return replace(record, amount=int(amount))

    def set_active(self, record: SourceRecord, active: bool) -> SourceRecord:
        self.store.update(
            record.path,
            {"is_active": active, "updated_at": DocumentStore.server_timestamp()},
        )
        return replace(record, is_active=active)

    def delete(self, path: str) -> bool:
        return self.store.delete(path)
