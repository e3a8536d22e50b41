"""Expose the card usage reports FastAPI app and its background jobs."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, NamedTuple

from fastapi import FastAPI

from .migrations import run_database_migrations
from .routers import metrics_router, records_router, reports_router
from .services.scheduled_jobs import (
    start_report_delivery_scheduler,
    start_report_recalculation_scheduler,
    stop_report_delivery_scheduler,
    stop_report_recalculation_scheduler,
)
from .services.scheduler_monitor import (
    JOB_REPORT_DELIVERY,
    JOB_REPORT_RECALCULATION,
    SchedulerMonitor,
)

LOGGER = logging.getLogger(__name__)


class BackgroundJob(NamedTuple):
    name: str
    env_flag: str
    start: Callable[[], None]
    stop: Callable[[], None]


# Lambdas look the schedulers up at call time so tests can patch them.
BACKGROUND_JOBS = (
    BackgroundJob(
        JOB_REPORT_DELIVERY,
        "ENABLE_REPORT_DELIVERY",
        lambda: start_report_delivery_scheduler(),
        lambda: stop_report_delivery_scheduler(),
    ),
    BackgroundJob(
        JOB_REPORT_RECALCULATION,
        "ENABLE_REPORT_RECALCULATION",
        lambda: start_report_recalculation_scheduler(),
        lambda: stop_report_recalculation_scheduler(),
    ),
)


def _job_enabled(env_flag: str) -> bool:
    raw = os.getenv(env_flag)
    if raw is None:
        return True
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def ensure_database_is_ready() -> None:
    LOGGER.info("Applying report store migrations before serving requests")
    run_database_migrations()


def start_background_jobs() -> None:
    """Start the delivery and recalculation workers unless their flag turns them off."""

    for job in BACKGROUND_JOBS:
        enabled = _job_enabled(job.env_flag)
        SchedulerMonitor.set_job_enabled(job.name, enabled)
        if not enabled:
            LOGGER.info("%s disabled via %s", job.name, job.env_flag)
            continue
        job.start()


def stop_background_jobs() -> None:
    for job in BACKGROUND_JOBS:
        job.stop()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    start_background_jobs()
    try:
        yield
    finally:
        stop_background_jobs()


app = FastAPI(title="Card Usage Reports API", lifespan=lifespan)

app.include_router(reports_router, prefix="/reports", tags=["reports"])
app.include_router(records_router, prefix="/records", tags=["records"])
app.include_router(metrics_router, prefix="/metrics", tags=["metrics"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    return {"status": "ok", "service": "card-usage-reports"}
