from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportDocument(BaseModel):
    """Fields shared by every stored report."""

    model_config = ConfigDict(extra="allow")

    total_amount: int = 0
    total_count: int = Field(default=0, ge=0)
    member_ids: List[str] = Field(default_factory=list)
    last_updated_by: Optional[str] = None
    last_updated_at: Optional[datetime] = None


class DailyReport(ReportDocument):
    date: datetime
    notified_for_delivery: bool = False


class ThresholdReport(ReportDocument):
    notified_level1: bool = False
    notified_level2: bool = False
    notified_level3: bool = False
    report_delivered: bool = False


class WeeklyReport(ThresholdReport):
    week_start: datetime
    week_end: datetime


class MonthlyReport(ThresholdReport):
    month_start: datetime
    month_end: datetime


class ReportRead(BaseModel):
    path: str
    version: int
    data: Dict[str, Any]


class ReportListResponse(BaseModel):
    items: List[ReportRead] = Field(default_factory=list)
    total: int = 0
