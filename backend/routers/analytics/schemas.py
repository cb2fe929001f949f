from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class DashboardPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class AnalyticsEventCreate(BaseModel):
    event: str = Field(min_length=1, max_length=100)
    data: Dict[str, Any] = {}


class AnalyticsEventResponse(BaseModel):
    message: str
    recorded: bool


class DashboardResponse(BaseModel):
    user_id: Optional[str] = None
    role: str
    period: str
    since: datetime
    generated_at: datetime
    metrics: Dict[str, Any]
