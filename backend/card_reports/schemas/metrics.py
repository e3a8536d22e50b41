from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field


class SchedulerJobHealth(BaseModel):
    enabled: bool
    last_tick: datetime | None = None
    last_success: datetime | None = None
    consecutive_failures: int = 0
    recent_errors: List[str] = Field(default_factory=list)


class SchedulerHealthResponse(BaseModel):
    jobs: Dict[str, SchedulerJobHealth] = Field(default_factory=dict)
