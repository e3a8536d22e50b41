"""Router exposing background job health."""

from __future__ import annotations

from fastapi import APIRouter

from .. import schemas
from ..services.scheduler_monitor import SchedulerMonitor

router = APIRouter()


@router.get("/scheduler", response_model=schemas.SchedulerHealthResponse)
def get_scheduler_health() -> schemas.SchedulerHealthResponse:
    """Return the enabled flag, last tick and recent errors of each job."""

    return schemas.SchedulerHealthResponse(
        jobs={
            name: schemas.SchedulerJobHealth(**status)
            for name, status in SchedulerMonitor.snapshot().items()
        }
    )
