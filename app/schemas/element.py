from pydantic import BaseModel, field_validator, model_validator
from typing import Optional
from datetime import date, datetime

from app.schemas.task import _priority

def _require_title(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("Element title is required")
    return v

class ElementCreate(BaseModel):
    project_id: int
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: str = "medium"
    start_date: Optional[date] = None
    due_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        return _require_title(v)

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: str) -> str:
        return _priority(v)

    @model_validator(mode="after")
    def due_after_start(self):
        if self.start_date and self.due_date and self.due_date < self.start_date:
            raise ValueError("Due date cannot be before start date")
        return self

class ElementUpdate(BaseModel):
    department_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None

    @field_validator("title", "priority", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be null")
        return v

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        return _require_title(v)

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: str) -> str:
        return _priority(v)

class ElementOut(BaseModel):
    id: int
    project_id: int
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    priority: str
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    task_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
