"""Router exposing card usage record mutations and their report updates."""

from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, status

from .. import schemas
from ..config import Settings
from ..dependencies import get_notifier, get_report_settings, get_store
from ..errors import ConfigurationError, ReportServiceError
from ..services.document_store import DocumentStore
from ..services.notifications import ReportNotifier, usage_notification
from ..services.report_aggregation import AggregationOutcome, ReportAggregationService
from ..services.report_paths import ReportType
from ..services.source_records import SourceRecord, SourceRecordRepository

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _record_read(record: SourceRecord) -> schemas.RecordRead:
    return schemas.RecordRead(
        path=record.path,
        amount=record.amount,
        datetime_of_use=record.datetime_of_use,
        is_active=record.is_active,
        card_name=record.card_name,
        where_to_use=record.where_to_use,
        memo=record.memo,
    )


def _response(
    record: SourceRecord, outcomes: dict[ReportType, AggregationOutcome]
) -> schemas.RecordMutationResponse:
    return schemas.RecordMutationResponse(
        record=_record_read(record),
        outcomes={report_type.value: outcome.value for report_type, outcome in outcomes.items()},
    )


def _load_record(repository: SourceRecordRepository, record_path: str) -> SourceRecord:
    try:
        record = repository.get(record_path)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


def _service_failure(exc: Union[ConfigurationError, ReportServiceError]) -> HTTPException:
    LOGGER.error("Record mutation failed: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "",
    response_model=schemas.RecordMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_record(
    payload: schemas.RecordCreate,
    store: DocumentStore = Depends(get_store),
    notifier: Optional[ReportNotifier] = Depends(get_notifier),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordMutationResponse:
    repository = SourceRecordRepository(store, tz=settings.report_timezone)
    service = ReportAggregationService(store, notifier=notifier, settings=settings)
    try:
        service.resolve_thresholds()
        record = repository.add(**payload.model_dump())
        store.commit()
        outcomes = service.apply(record)
    except (ConfigurationError, ReportServiceError) as exc:
        raise _service_failure(exc) from exc
    if notifier is not None:
        notifier.notify_usage(usage_notification(record))
    return _response(record, outcomes)


@router.get("/{record_path:path}", response_model=schemas.RecordRead)
def get_record(
    record_path: str,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordRead:
    repository = SourceRecordRepository(store, tz=settings.report_timezone)
    return _record_read(_load_record(repository, record_path))


@router.patch("/{record_path:path}", response_model=schemas.RecordMutationResponse)
def update_record_amount(
    record_path: str,
    payload: schemas.RecordAmountUpdate,
    store: DocumentStore = Depends(get_store),
    notifier: Optional[ReportNotifier] = Depends(get_notifier),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordMutationResponse:
    """Change a record's amount and shift its reports by the difference."""

    repository = SourceRecordRepository(store, tz=settings.report_timezone)
    record = _load_record(repository, record_path)
    service = ReportAggregationService(store, notifier=notifier, settings=settings)
    try:
        service.resolve_thresholds()
        updated = repository.update_amount(record, payload.amount)
        store.commit()
        outcomes = service.apply_amount_change(updated, payload.amount - record.amount)
    except (ConfigurationError, ReportServiceError) as exc:
        raise _service_failure(exc) from exc
    return _response(updated, outcomes)


@router.delete("/{record_path:path}", response_model=schemas.RecordMutationResponse)
def deactivate_record(
    record_path: str,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordMutationResponse:
    """Soft delete a record and remove its amount from its reports."""

    repository = SourceRecordRepository(store, tz=settings.report_timezone)
    record = _load_record(repository, record_path)
    if not record.is_active:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Record is already inactive")
    service = ReportAggregationService(store, settings=settings)
    try:
        updated = repository.set_active(record, False)
        store.commit()
        outcomes = service.apply_deactivation(updated)
    except (ConfigurationError, ReportServiceError) as exc:
        raise _service_failure(exc) from exc
    return _response(updated, outcomes)


@router.post("/{record_path:path}/reactivate", response_model=schemas.RecordMutationResponse)
def reactivate_record(
    record_path: str,
    store: DocumentStore = Depends(get_store),
    notifier: Optional[ReportNotifier] = Depends(get_notifier),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordMutationResponse:
    repository = SourceRecordRepository(store, tz=settings.report_timezone)
    record = _load_record(repository, record_path)
    if record.is_active:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Record is already active")
    service = ReportAggregationService(store, notifier=notifier, settings=settings)
    try:
        service.resolve_thresholds()
        updated = repository.set_active(record, True)
        store.commit()
        outcomes = service.apply_reactivation(updated)
    except (ConfigurationError, ReportServiceError) as exc:
        raise _service_failure(exc) from exc
    return _response(updated, outcomes)
