from __future__ import annotations

from datetime import date

from backend.card_reports.config import (
    CHANNEL_REPORT_DAILY,
    CHANNEL_REPORT_MONTHLY,
    CHANNEL_REPORT_WEEKLY,
)
from backend.card_reports.services.notifications import (
    NotificationClient,
    NotificationResult,
    ReportNotifier,
)
from backend.card_reports.services.report_delivery import ReportDeliveryService


class RejectingClient(NotificationClient):
    transport = "rejecting"

    def send(self, channel, notification):
        return NotificationResult(success=False, status_code=500, error="down")


def test_mid_week_day_only_sends_the_daily_report(
    store, notifier, settings, console_client
) -> None:
    store.create("reports/daily/2024-01/02", {"total_amount": 800, "total_count": 2})
    store.create("reports/weekly/2024-01/term1", {"total_amount": 800, "total_count": 2})

    summary = ReportDeliveryService(store, notifier, settings=settings).execute_scheduled_reports(
        date(2024, 1, 3)
    )

    assert summary.target_date == date(2024, 1, 2)
    assert summary.sent == ["reports/daily/2024-01/02"]
    assert [channel for channel, _ in console_client.records] == [CHANNEL_REPORT_DAILY]
    daily = store.get("reports/daily/2024-01/02")
    assert daily["notified_for_delivery"] is True
    assert daily["last_updated_by"] == "daily-report-schedule"
    assert store.get("reports/weekly/2024-01/term1").get("report_delivered") is None


def test_end_of_term_sends_the_weekly_report(store, notifier, settings, console_client) -> None:
    store.create("reports/daily/2024-01/06", {"total_amount": 100, "total_count": 1})
    store.create("reports/weekly/2024-01/term1", {"total_amount": 900, "total_count": 3})

    summary = ReportDeliveryService(store, notifier, settings=settings).execute_scheduled_reports(
        date(2024, 1, 7)
    )

    assert summary.sent == ["reports/daily/2024-01/06", "reports/weekly/2024-01/term1"]
    weekly = store.get("reports/weekly/2024-01/term1")
    assert weekly["report_delivered"] is True
    assert weekly["last_updated_by"] == "weekly-report-schedule"
    _, notification = console_client.records[1]
    assert notification.headline == "900 yen"
    assert notification.fields[0].value == "2024/01/01 ~ 2024/01/06"


def test_end_of_month_sends_all_three(store, notifier, settings, console_client) -> None:
    store.create("reports/daily/2024-01/31", {"total_amount": 1, "total_count": 1})
    store.create("reports/weekly/2024-01/term5", {"total_amount": 2, "total_count": 1})
    store.create("reports/monthly/2024/01", {"total_amount": 3, "total_count": 1})

    summary = ReportDeliveryService(store, notifier, settings=settings).execute_scheduled_reports(
        date(2024, 2, 1)
    )

    assert len(summary.sent) == 3
    assert [channel for channel, _ in console_client.records] == [
        CHANNEL_REPORT_DAILY,
        CHANNEL_REPORT_WEEKLY,
        CHANNEL_REPORT_MONTHLY,
    ]
    assert store.get("reports/monthly/2024/01")["report_delivered"] is True


def test_missing_or_delivered_reports_are_skipped(
    store, notifier, settings, console_client
) -> None:
    store.create(
        "reports/daily/2024-01/06",
        {"total_amount": 100, "total_count": 1, "notified_for_delivery": True},
    )

    summary = ReportDeliveryService(store, notifier, settings=settings).execute_scheduled_reports(
        date(2024, 1, 7)
    )

    assert summary.sent == []
    assert summary.skipped == ["reports/daily/2024-01/06", "reports/weekly/2024-01/term1"]
    assert console_client.records == []


def test_rejected_notification_leaves_the_flag_unset(store, settings) -> None:
    store.create("reports/daily/2024-01/02", {"total_amount": 800, "total_count": 2})

    summary = ReportDeliveryService(
        store, ReportNotifier(RejectingClient()), settings=settings
    ).execute_scheduled_reports(date(2024, 1, 3))

    assert summary.failed == ["reports/daily/2024-01/02"]
    assert "notified_for_delivery" not in store.get("reports/daily/2024-01/02")
    assert summary.to_dict()["target_date"] == date(2024, 1, 2)
