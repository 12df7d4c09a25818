# app/schemas/password_reset.py
from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
from datetime import datetime

from app.models.password_reset import ResetRequestStatus

class PasswordResetRequestCreate(BaseModel):
    email: EmailStr

class PasswordResetStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        values = [s.value for s in ResetRequestStatus]
        if v not in values:
            raise ValueError(f"Status must be one of: {', '.join(values)}")
        return v

class PasswordResetRequestOut(BaseModel):
    id: int
    user_id: int
    user_email: str
    user_full_name: Optional[str] = None
    status: str
    requested_at: datetime
    completed_at: Optional[datetime] = None
    completed_by_admin_id: Optional[int] = None

    model_config = {
        "from_attributes": True
    }
