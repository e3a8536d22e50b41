from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class RecalculationRequest(BaseModel):
    start_date: date
    end_date: date
    report_types: Optional[Union[str, List[str]]] = Field(
        default=None,
        description="Report types to rebuild, as a list or comma separated string; all when omitted",
    )
    executed_by: str = "http-api"
    dry_run: bool = False


class RecalculationErrorRead(BaseModel):
    report_type: str
    bucket: str
    message: str


class DateStat(BaseModel):
    date: str
    count: int
    total_amount: int


class RecalculationResponse(BaseModel):
    success: bool
    dry_run: bool = False
    executed_by: str
    start_date: date
    end_date: date
    report_types: List[str] = Field(default_factory=list)
    total_processed: int = 0
    created: Dict[str, int] = Field(default_factory=dict)
    updated: Dict[str, int] = Field(default_factory=dict)
    errors: List[RecalculationErrorRead] = Field(default_factory=list)
    expected_processing: Optional[Dict[str, int]] = None
    date_stats: Optional[List[DateStat]] = None


class RecordProcessRequest(BaseModel):
    """Payload of a source record that was written by ingestion."""

    path: str = Field(..., description="Stored path, details/{year}/{MM}/term{n}/{d}/{id}")
    data: Dict[str, Any] = Field(default_factory=dict)
    report_types: Optional[Union[str, List[str]]] = None


class RecordProcessResponse(BaseModel):
    processed: bool
    path: str
    outcomes: Dict[str, str] = Field(default_factory=dict)


class DeliveryResponse(BaseModel):
    target_date: date
    sent: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
