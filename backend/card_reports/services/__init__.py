"""Service layer holding the report engine used by routers, jobs and scripts."""

from .calendar import CalendarInfo, get_calendar_info
from .data_explorer import SourceRecordExplorer
from .document_store import DocumentSnapshot, DocumentStore, open_store
from .notifications import (
    ConsoleNotificationClient,
    DiscordWebhookClient,
    NotificationClient,
    ReportNotifier,
    build_notification_client,
)
from .report_aggregation import (
    AggregationOutcome,
    ReportAggregationService,
    handle_record_created,
)
from .report_consistency import (
    ReportConsistencyService,
    ResumResult,
    prune_dangling_members,
    resum_from_members,
)
from .report_delivery import ReportDeliveryService
from .report_paths import BucketKey, RecordKey, ReportType
from .report_recalculation import (
    RecalculationResult,
    ReportRecalculationService,
    validate_recalculation_range,
)
from .source_records import SourceRecord, SourceRecordRepository
from .thresholds import ReportThresholds, ThresholdLevels, evaluate_threshold

__all__ = [
    "AggregationOutcome",
    "BucketKey",
    "CalendarInfo",
    "ConsoleNotificationClient",
    "DiscordWebhookClient",
    "DocumentSnapshot",
    "DocumentStore",
    "NotificationClient",
    "RecalculationResult",
    "RecordKey",
    "ReportAggregationService",
    "ReportConsistencyService",
    "ReportDeliveryService",
    "ReportNotifier",
    "ReportRecalculationService",
    "ReportThresholds",
    "ReportType",
    "ResumResult",
    "SourceRecord",
    "SourceRecordExplorer",
    "SourceRecordRepository",
    "ThresholdLevels",
    "build_notification_client",
    "evaluate_threshold",
    "get_calendar_info",
    "handle_record_created",
    "open_store",
    "prune_dangling_members",
    "resum_from_members",
    "validate_recalculation_range",
]
