from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone

import pytest

from backend.card_reports.config import Settings
from backend.card_reports.main import start_background_jobs, stop_background_jobs
from backend.card_reports.services import scheduled_jobs
from backend.card_reports.services.scheduler_monitor import (
    JOB_REPORT_DELIVERY,
    JOB_REPORT_RECALCULATION,
    SchedulerMonitor,
)

JST = timezone(timedelta(hours=9))


def test_background_jobs_respect_enable_flags(monkeypatch):
    started = []

    def _stub(job_name: str):
        def _start() -> None:
            started.append(job_name)

        return _start

    SchedulerMonitor.reset()
    monkeypatch.setenv("ENABLE_REPORT_DELIVERY", "0")
    monkeypatch.setenv("ENABLE_REPORT_RECALCULATION", "1")

    monkeypatch.setattr(
        "backend.card_reports.main.start_report_delivery_scheduler", _stub(JOB_REPORT_DELIVERY)
    )
    monkeypatch.setattr(
        "backend.card_reports.main.start_report_recalculation_scheduler",
        _stub(JOB_REPORT_RECALCULATION),
    )

    start_background_jobs()

    assert started == [JOB_REPORT_RECALCULATION]
    snapshot = SchedulerMonitor.snapshot()
    assert snapshot[JOB_REPORT_DELIVERY]["enabled"] is False
    assert snapshot[JOB_REPORT_RECALCULATION]["enabled"] is True
    assert snapshot[JOB_REPORT_DELIVERY]["last_tick"] is None


def test_background_jobs_stop_all(monkeypatch):
    stopped: list[str] = []

    def _stub(job_name: str):
        def _stop() -> None:
            stopped.append(job_name)

        return _stop

    monkeypatch.setattr(
        "backend.card_reports.main.stop_report_delivery_scheduler", _stub(JOB_REPORT_DELIVERY)
    )
    monkeypatch.setattr(
        "backend.card_reports.main.stop_report_recalculation_scheduler",
        _stub(JOB_REPORT_RECALCULATION),
    )

    stop_background_jobs()

    assert stopped == [JOB_REPORT_DELIVERY, JOB_REPORT_RECALCULATION]


def test_scheduler_health_endpoint_reports_status(client):
    SchedulerMonitor.reset()
    SchedulerMonitor.set_job_enabled(JOB_REPORT_DELIVERY, True)
    SchedulerMonitor.record_tick(JOB_REPORT_DELIVERY)
    SchedulerMonitor.record_error(JOB_REPORT_DELIVERY, "failing task")

    response = client.get("/metrics/scheduler")

    assert response.status_code == 200
    payload = response.json()
    delivery_status = payload["jobs"][JOB_REPORT_DELIVERY]
    assert delivery_status["enabled"] is True
    assert isinstance(delivery_status["last_tick"], str)
    assert any("failing task" in entry for entry in delivery_status["recent_errors"])


def test_next_run_is_later_today_or_tomorrow():
    morning = datetime(2024, 1, 1, 0, 0, tzinfo=JST)
    after_run = datetime(2024, 1, 1, 0, 10, tzinfo=JST)

    assert scheduled_jobs._seconds_until_next_run(morning, 0, 5) == 300
    assert scheduled_jobs._seconds_until_next_run(after_run, 0, 5) == 24 * 3600 - 300


def test_next_run_waits_at_least_a_minute():
    just_before = datetime(2024, 1, 1, 0, 4, 50, tzinfo=JST)

    assert scheduled_jobs._seconds_until_next_run(just_before, 0, 5) == 60.0


@pytest.fixture
def job_session(db_session, monkeypatch: pytest.MonkeyPatch):
    @contextmanager
    def _scope():
        yield db_session

    monkeypatch.setattr(scheduled_jobs, "session_scope", _scope)
    SchedulerMonitor.reset()
    return db_session


def test_delivery_cycle_records_a_tick(job_session, store):
    store.create("reports/daily/2024-01/02", {"total_amount": 10, "total_count": 1})

    scheduled_jobs.run_delivery_cycle(date(2024, 1, 3), Settings())

    assert store.get("reports/daily/2024-01/02")["notified_for_delivery"] is True
    status = SchedulerMonitor.snapshot()[JOB_REPORT_DELIVERY]
    assert status["last_tick"] is not None
    assert status["recent_errors"] == []
    assert status["last_success"] is not None


def test_recalculation_cycle_rebuilds_the_previous_day(job_session, store, seed_record):
    seed_record(date(2024, 1, 2), 900)

    scheduled_jobs.run_recalculation_cycle(date(2024, 1, 3), Settings())

    daily = store.get("reports/daily/2024-01/02")
    assert daily["total_amount"] == 900
    assert daily["last_updated_by"] == "scheduled-recalculation"
    assert SchedulerMonitor.snapshot()[JOB_REPORT_RECALCULATION]["last_tick"] is not None


def test_recalculation_cycle_failure_is_recorded(job_session, monkeypatch: pytest.MonkeyPatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(scheduled_jobs.ReportRecalculationService, "recalculate", _boom)

    scheduled_jobs.run_recalculation_cycle(date(2024, 1, 3), Settings())

    status = SchedulerMonitor.snapshot()[JOB_REPORT_RECALCULATION]
    assert any("store offline" in entry for entry in status["recent_errors"])
    assert status["consecutive_failures"] == 1
    assert status["last_success"] is None
