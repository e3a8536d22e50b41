"""Router exposing report reads and the recalculation and processing triggers."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from .. import schemas
from ..config import Settings
from ..dependencies import get_notifier, get_report_settings, get_store
from ..errors import (
    ConfigurationError,
    InvalidRecordError,
    RecalculationValidationError,
    ReportServiceError,
)
from ..services.document_store import DocumentStore
from ..services.notifications import ReportNotifier
from ..services.report_aggregation import handle_record_created
from ..services.report_delivery import ReportDeliveryService
from ..services.report_paths import ReportType, collection_root
from ..services.report_recalculation import (
    ReportRecalculationService,
    validate_recalculation_range,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post("/recalculate", response_model=schemas.RecalculationResponse)
def recalculate_reports(
    payload: schemas.RecalculationRequest,
    response: Response,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecalculationResponse:
    """Rebuild reports for a date range; a dry run only previews the writes."""

    try:
        validate_recalculation_range(
            payload.start_date, payload.end_date, settings.max_recalculation_days
        )
        service = ReportRecalculationService(store, settings=settings)
        result = service.recalculate(
            payload.start_date,
            payload.end_date,
            payload.report_types,
            executed_by=payload.executed_by,
            dry_run=payload.dry_run,
        )
    except RecalculationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if not result.success:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return schemas.RecalculationResponse(**result.to_dict())


@router.post("/records/process", response_model=schemas.RecordProcessResponse)
def process_record(
    payload: schemas.RecordProcessRequest,
    store: DocumentStore = Depends(get_store),
    notifier: Optional[ReportNotifier] = Depends(get_notifier),
    settings: Settings = Depends(get_report_settings),
) -> schemas.RecordProcessResponse:
    """Aggregate a source record that ingestion has already stored."""

    try:
        outcomes = handle_record_created(
            store,
            payload.path,
            payload.data,
            notifier=notifier,
            settings=settings,
            report_types=payload.report_types,
        )
    except (InvalidRecordError, RecalculationValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (ConfigurationError, ReportServiceError) as exc:
        LOGGER.error("Failed to process %s: %s", payload.path, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc

    return schemas.RecordProcessResponse(
        processed=bool(outcomes),
        path=payload.path,
        outcomes={report_type.value: outcome.value for report_type, outcome in outcomes.items()},
    )


@router.post("/deliver", response_model=schemas.DeliveryResponse)
def deliver_reports(
    today: Optional[date] = Query(
        default=None, description="Reference day; reports of the previous day are sent"
    ),
    store: DocumentStore = Depends(get_store),
    notifier: Optional[ReportNotifier] = Depends(get_notifier),
    settings: Settings = Depends(get_report_settings),
) -> schemas.DeliveryResponse:
    if notifier is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notifications are not configured",
        )
    summary = ReportDeliveryService(store, notifier, settings=settings).execute_scheduled_reports(
        today
    )
    return schemas.DeliveryResponse(**summary.to_dict())


@router.get("/{report_type}/{group}", response_model=schemas.ReportListResponse)
def list_reports(
    report_type: ReportType,
    group: str,
    store: DocumentStore = Depends(get_store),
) -> schemas.ReportListResponse:
    """List the reports of one month (daily, weekly) or one year (monthly)."""

    documents = store.list_documents(f"{collection_root(report_type)}/{group}")
    items = [
        schemas.ReportRead(path=document.path, version=document.version, data=document.data)
        for document in documents
    ]
    return schemas.ReportListResponse(items=items, total=len(items))


@router.get("/{report_type}/{group}/{name}", response_model=schemas.ReportRead)
def get_report(
    report_type: ReportType,
    group: str,
    name: str,
    store: DocumentStore = Depends(get_store),
) -> schemas.ReportRead:
    """Return a single report, e.g. ``/reports/weekly/2024-01/term2``."""

    snapshot = store.read(f"{collection_root(report_type)}/{group}/{name}")
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return schemas.ReportRead(path=snapshot.path, version=snapshot.version, data=snapshot.data)
