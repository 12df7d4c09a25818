# app/schemas/presence.py
from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

from app.models.presence import PresenceStatus, ViewType

STATUS_VALUES = [s.value for s in PresenceStatus]
VIEW_VALUES = [v.value for v in ViewType]

class PresenceUpdate(BaseModel):
    status: str
    custom_status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STATUS_VALUES:
            raise ValueError(f"Status must be one of: {', '.join(STATUS_VALUES)}")
        return v

class PresenceOut(BaseModel):
    user_id: int
    status: str
    custom_status: Optional[str] = None
    last_seen_at: datetime

    model_config = {
        "from_attributes": True
    }

class ViewPreferenceUpdate(BaseModel):
    project_id: Optional[int] = None
    department_id: Optional[int] = None
    view_type: str

    @field_validator("view_type")
    @classmethod
    def valid_view(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VIEW_VALUES:
            raise ValueError(f"View type must be one of: {', '.join(VIEW_VALUES)}")
        return v

class ViewPreferenceOut(BaseModel):
    project_id: Optional[int] = None
    department_id: Optional[int] = None
    view_type: str
