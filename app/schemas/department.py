from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime, date

def _require_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Department name is required")
    return v

class DepartmentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    project_id: int

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_name(v)

class DepartmentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _require_name(v)

class DepartmentOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    project_id: Optional[int] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }

class DepartmentLeadCreate(BaseModel):
    user_id: int

class DepartmentLeadOut(BaseModel):
    id: int
    department_id: int
    user_id: int
    assigned_by: Optional[int] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime

class DepartmentAnalytics(BaseModel):
    department_id: int
    total_tasks: int
    todo: int
    in_progress: int
    completed: int
    completion_percentage: int
    earliest_start: Optional[date] = None
    latest_due: Optional[date] = None
