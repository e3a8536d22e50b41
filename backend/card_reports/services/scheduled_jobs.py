"""Background workers for the daily report delivery and recalculation runs."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Optional

from ..config import CHANNEL_LOGGING, Settings, get_settings
from ..database import session_scope
from ..errors import ConfigurationError
from .calendar import now_in_report_timezone
from .document_store import open_store
from .notifications import ReportNotifier, build_notification_client, log_notification
from .report_delivery import ReportDeliveryService
from .report_documents import ACTOR_SCHEDULED_RECALCULATION
from .report_recalculation import ReportRecalculationService, validate_recalculation_range
from .scheduler_monitor import JOB_REPORT_DELIVERY, JOB_REPORT_RECALCULATION, SchedulerMonitor

LOGGER = logging.getLogger(__name__)

_delivery_thread: Optional[threading.Thread] = None
_delivery_stop = threading.Event()
_recalculation_thread: Optional[threading.Thread] = None
_recalculation_stop = threading.Event()


def _seconds_until_next_run(now: datetime, run_hour: int, run_minute: int) -> float:
    scheduled_time = time(hour=run_hour, minute=run_minute, tzinfo=now.tzinfo)
    next_run = datetime.combine(now.date(), scheduled_time)
    if next_run <= now:
        next_run += timedelta(days=1)
    delay = (next_run - now).total_seconds()
    return max(delay, 60.0)


def _build_notifier(settings: Settings) -> Optional[ReportNotifier]:
    try:
        return ReportNotifier(build_notification_client(settings))
    except ConfigurationError as exc:
        LOGGER.error("Unable to configure notifications: %s", exc)
        return None


def _report_failure(notifier: Optional[ReportNotifier], job_name: str, message: str) -> None:
    if notifier is None:
        return
    notifier.notify(CHANNEL_LOGGING, log_notification(f"{job_name} failed", message))


def run_delivery_cycle(today: Optional[date] = None, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    notifier = _build_notifier(settings)
    if notifier is None:
        SchedulerMonitor.record_error(JOB_REPORT_DELIVERY, "notifications are not configured")
        SchedulerMonitor.record_tick(JOB_REPORT_DELIVERY)
        return

    try:
        with session_scope() as session:
            service = ReportDeliveryService(open_store(session, settings), notifier, settings=settings)
            summary = service.execute_scheduled_reports(today)
            LOGGER.info("Report delivery finished: %s", summary.to_dict())
            if summary.failed:
                message = f"Failed deliveries: {', '.join(summary.failed)}"
                SchedulerMonitor.record_error(JOB_REPORT_DELIVERY, message)
                _report_failure(notifier, JOB_REPORT_DELIVERY, message)
            else:
                SchedulerMonitor.record_success(JOB_REPORT_DELIVERY)
    except Exception as exc:
        LOGGER.exception("Report delivery cycle failed: %s", exc)
        SchedulerMonitor.record_error(JOB_REPORT_DELIVERY, str(exc))
        _report_failure(notifier, JOB_REPORT_DELIVERY, str(exc))
    finally:
        SchedulerMonitor.record_tick(JOB_REPORT_DELIVERY)


def run_recalculation_cycle(
    today: Optional[date] = None, settings: Optional[Settings] = None
) -> None:
    """Rebuild every report of the previous report-timezone day."""

    settings = settings or get_settings()
    current = today or now_in_report_timezone(settings.report_timezone).date()
    target = current - timedelta(days=1)
    notifier = _build_notifier(settings)

    try:
        validate_recalculation_range(target, target, settings.max_recalculation_days)
        with session_scope() as session:
            service = ReportRecalculationService(open_store(session, settings), settings=settings)
            result = service.recalculate(
                target, target, executed_by=ACTOR_SCHEDULED_RECALCULATION
            )
        if not result.success:
            message = f"Recalculation of {target} finished with {len(result.errors)} errors"
            SchedulerMonitor.record_error(JOB_REPORT_RECALCULATION, message)
            _report_failure(notifier, JOB_REPORT_RECALCULATION, message)
        else:
            SchedulerMonitor.record_success(JOB_REPORT_RECALCULATION)
    except Exception as exc:
        LOGGER.exception("Report recalculation cycle failed: %s", exc)
        SchedulerMonitor.record_error(JOB_REPORT_RECALCULATION, str(exc))
        _report_failure(notifier, JOB_REPORT_RECALCULATION, str(exc))
    finally:
        SchedulerMonitor.record_tick(JOB_REPORT_RECALCULATION)


def _worker(
    stop: threading.Event, cycle: Callable[[], None], run_hour: int, run_minute: int, tz: tzinfo
) -> None:
    if get_settings().run_jobs_on_start:
        cycle()

    while not stop.is_set():
        now = datetime.now(tz)
        wait_seconds = _seconds_until_next_run(now, run_hour, run_minute)
        if stop.wait(wait_seconds):
            break
        cycle()


def start_report_delivery_scheduler() -> None:
    """Start the background worker that sends the daily summaries."""

    global _delivery_thread
    if _delivery_thread and _delivery_thread.is_alive():
        return

    settings = get_settings()
    _delivery_stop.clear()
    _delivery_thread = threading.Thread(
        target=_worker,
        args=(
            _delivery_stop,
            run_delivery_cycle,
            settings.delivery_run_hour,
            settings.delivery_run_minute,
            settings.report_timezone,
        ),
        daemon=True,
    )
    _delivery_thread.start()
    LOGGER.info(
        "Report delivery scheduler started (%02d:%02d report time)",
        settings.delivery_run_hour,
        settings.delivery_run_minute,
    )


def stop_report_delivery_scheduler() -> None:
    _delivery_stop.set()
    if _delivery_thread and _delivery_thread.is_alive():
        _delivery_thread.join(timeout=5)
        LOGGER.info("Report delivery scheduler stopped.")


def start_report_recalculation_scheduler() -> None:
    """Start the background worker that rebuilds the previous day's reports."""

    global _recalculation_thread
    if _recalculation_thread and _recalculation_thread.is_alive():
        return

    settings = get_settings()
    _recalculation_stop.clear()
    _recalculation_thread = threading.Thread(
        target=_worker,
        args=(
            _recalculation_stop,
            run_recalculation_cycle,
            settings.recalculation_run_hour,
            settings.recalculation_run_minute,
            settings.report_timezone,
        ),
        daemon=True,
    )
    _recalculation_thread.start()
    LOGGER.info(
        "Report recalculation scheduler started (%02d:%02d report time)",
        settings.recalculation_run_hour,
        settings.recalculation_run_minute,
    )


def stop_report_recalculation_scheduler() -> None:
    _recalculation_stop.set()
    if _recalculation_thread and _recalculation_thread.is_alive():
        _recalculation_thread.join(timeout=5)
        LOGGER.info("Report recalculation scheduler stopped.")
