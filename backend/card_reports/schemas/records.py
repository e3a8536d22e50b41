from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordCreate(BaseModel):
    amount: int
    datetime_of_use: datetime
    card_name: Optional[str] = None
    where_to_use: Optional[str] = None
    memo: Optional[str] = None


class RecordAmountUpdate(BaseModel):
    amount: int


class RecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    path: str
    amount: int
    datetime_of_use: datetime
    is_active: bool = True
    card_name: Optional[str] = None
    where_to_use: Optional[str] = None
    memo: Optional[str] = None


class RecordMutationResponse(BaseModel):
    record: RecordRead
    outcomes: Dict[str, str] = Field(default_factory=dict)
