"""Daily sweep that sends the finished daily, weekly and monthly summaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from ..config import Settings, get_settings
from ..errors import ReportServiceError, error_context
from .calendar import get_calendar_info, now_in_report_timezone
from .document_store import SERVER_TIMESTAMP, DocumentStore
from .notifications import ReportNotifier, report_channel, summary_notification
from .report_documents import (
    ACTOR_DAILY_SCHEDULE,
    ACTOR_MONTHLY_SCHEDULE,
    ACTOR_WEEKLY_SCHEDULE,
    DELIVERY_FLAGS,
)
from .report_paths import BucketKey, ReportType

LOGGER = logging.getLogger(__name__)


@dataclass
class DeliverySummary:
    target_date: date
    sent: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "target_date": self.target_date,
            "sent": list(self.sent),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


class ReportDeliveryService:
    """Send yesterday's completed reports once each."""

    def __init__(
        self,
        store: DocumentStore,
        notifier: ReportNotifier,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings or get_settings()

    def execute_scheduled_reports(self, today: Optional[date] = None) -> DeliverySummary:
        """Deliver the reports that closed on the day before ``today``.

        The daily report always closes; the weekly one closes on the last day
        of its term and the monthly one on the last day of the month.
        """

        tz = self.settings.report_timezone
        current = today or now_in_report_timezone(tz).date()
        target = current - timedelta(days=1)
        info = get_calendar_info(target, tz)
        summary = DeliverySummary(target_date=target)
        LOGGER.info("Delivering reports for %s", target)

        self._deliver(BucketKey.for_calendar(ReportType.DAILY, info), ACTOR_DAILY_SCHEDULE, summary)
        if info.is_last_day_of_term or info.is_last_day_of_month:
            self._deliver(
                BucketKey.for_calendar(ReportType.WEEKLY, info), ACTOR_WEEKLY_SCHEDULE, summary
            )
        if info.is_last_day_of_month:
            self._deliver(
                BucketKey.for_calendar(ReportType.MONTHLY, info), ACTOR_MONTHLY_SCHEDULE, summary
            )
        return summary

    def _deliver(self, bucket: BucketKey, actor: str, summary: DeliverySummary) -> None:
        flag = DELIVERY_FLAGS[bucket.report_type]
        try:
            with error_context("deliver", report_type=bucket.report_type.value, bucket=bucket.path):
                snapshot = self.store.read(bucket.path)
                if snapshot is None:
                    LOGGER.info("No report at %s; nothing to send", bucket.path)
                    summary.skipped.append(bucket.path)
                    return
                if snapshot.data.get(flag):
                    LOGGER.info("%s was already delivered", bucket.path)
                    summary.skipped.append(bucket.path)
                    return

                sent = self.notifier.notify(
                    report_channel(bucket.report_type),
                    summary_notification(bucket, snapshot.data),
                )
                if not sent:
                    summary.failed.append(bucket.path)
                    return

                self.store.update(
                    bucket.path,
                    {flag: True, "last_updated_by": actor, "last_updated_at": SERVER_TIMESTAMP},
                )
                self.store.commit()
        except ReportServiceError as exc:
            LOGGER.error("Unable to deliver %s: %s", bucket.path, exc)
            summary.failed.append(bucket.path)
            return
        LOGGER.info("Delivered %s", bucket.path)
        summary.sent.append(bucket.path)
