"""Expose Pydantic schemas for convenient imports."""

from .metrics import SchedulerHealthResponse, SchedulerJobHealth
from .recalculation import (
    DateStat,
    DeliveryResponse,
    RecalculationErrorRead,
    RecalculationRequest,
    RecalculationResponse,
    RecordProcessRequest,
    RecordProcessResponse,
)
from .records import (
    RecordAmountUpdate,
    RecordCreate,
    RecordMutationResponse,
    RecordRead,
)
from .reports import (
    DailyReport,
    MonthlyReport,
    ReportDocument,
    ReportListResponse,
    ReportRead,
    ThresholdReport,
    WeeklyReport,
)

__all__ = [
    "DailyReport",
    "DateStat",
    "DeliveryResponse",
    "MonthlyReport",
    "RecalculationErrorRead",
    "RecalculationRequest",
    "RecalculationResponse",
    "RecordAmountUpdate",
    "RecordCreate",
    "RecordMutationResponse",
    "RecordProcessRequest",
    "RecordProcessResponse",
    "RecordRead",
    "ReportDocument",
    "ReportListResponse",
    "ReportRead",
    "SchedulerHealthResponse",
    "SchedulerJobHealth",
    "ThresholdReport",
    "WeeklyReport",
]
