# app/schemas/external_user.py
from pydantic import BaseModel
from typing import Optional, List, Any, Dict
from datetime import datetime

class ExternalDepartmentOut(BaseModel):
    department_id: int
    department_name: Optional[str] = None
    access_level: str
    is_primary: bool = False

class ExternalUserOut(BaseModel):
    id: int
    user_id: int
    email: str
    full_name: Optional[str] = None
    department_id: int
    project_id: int
    invited_by: Optional[int] = None
    access_level: str
    access_expires_at: Optional[datetime] = None
    is_active: bool
    is_expired: bool
    must_change_password: bool
    last_activity_at: Optional[datetime] = None
    created_at: datetime
    departments: List[ExternalDepartmentOut] = []

    model_config = {
        "from_attributes": True
    }

class ExternalActivityOut(BaseModel):
    id: int
    external_user_id: int
    action: str
    document_id: Optional[int] = None
    folder_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }
