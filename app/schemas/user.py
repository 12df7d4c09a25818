from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
from datetime import datetime

from app.models.user import AppRole

ROLE_VALUES = [role.value for role in AppRole]

def _check_role(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if value not in ROLE_VALUES:
        raise ValueError(f"Role must be one of: {', '.join(ROLE_VALUES)}")
    return value

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class ChangePasswordRequest(BaseModel):
    # Length is checked by the router so a short password is a 400 with no write
    new_password: str

class UserBrief(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = {
        "from_attributes": True
    }

class UserOut(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: str
    department: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool
    is_external: bool
    must_change_password: bool
    temporary_password_expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class MeOut(UserOut):
    is_admin: bool

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("role")
    @classmethod
    def valid_role(cls, v: Optional[str]) -> Optional[str]:
        return _check_role(v)
