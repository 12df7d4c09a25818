# app/schemas/reports.py
import re
from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.models.report import ReportFrequency

SEND_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")

class ReportSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    frequency: Optional[str] = None
    send_time: Optional[str] = None
    timezone: Optional[str] = None
    include_department_summary: Optional[bool] = None
    include_user_activity: Optional[bool] = None
    include_smart_insights: Optional[bool] = None

    @field_validator("frequency")
    @classmethod
    def valid_frequency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        values = [f.value for f in ReportFrequency]
        if v not in values:
            raise ValueError(f"Frequency must be one of: {', '.join(values)}")
        return v

    @field_validator("send_time")
    @classmethod
    def valid_send_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not SEND_TIME_PATTERN.match(v):
            raise ValueError("send_time must be HH:MM or HH:MM:SS")
        # Stored with seconds
        return v if len(v) == 8 else f"{v}:00"

class ReportSettingsOut(BaseModel):
    project_id: int
    enabled: bool
    frequency: str
    send_time: str
    timezone: str
    include_department_summary: bool
    include_user_activity: bool
    include_smart_insights: bool
    last_sent_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class RecipientCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None

class RecipientUpdate(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = None

class RecipientOut(BaseModel):
    id: int
    project_id: int
    email: str
    name: Optional[str] = None
    is_active: bool
    added_by: Optional[int] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }

class ReportPreview(BaseModel):
    project: Dict[str, Any]
    report_date: str
    summary: Dict[str, Any]
    departments: List[Dict[str, Any]]
    user_activity: List[Dict[str, Any]]
    insights: Dict[str, Any]
