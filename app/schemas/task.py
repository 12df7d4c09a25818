# app/schemas/task.py
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional, List

from app.models.task import TaskPriority
from app.utils.task_status import normalize_task_status, UNKNOWN

PRIORITY_VALUES = [p.value for p in TaskPriority]

def _status(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    normalized = normalize_task_status(v)
    if normalized == UNKNOWN:
        raise ValueError("Status must be one of: todo, in_progress, done")
    return normalized

def _priority(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    if v not in PRIORITY_VALUES:
        raise ValueError(f"Priority must be one of: {', '.join(PRIORITY_VALUES)}")
    return v

class TaskBase(BaseModel):
    title: str
    description: Optional[str] = None
    status: str = "todo"
    priority: str = "medium"
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    progress_percentage: int = Field(0, ge=0, le=100)
    estimate_hours: Optional[float] = Field(None, ge=0)
    logged_hours: float = Field(0, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: float = Field(0, ge=0)
    labels: Optional[List[str]] = None
    assignee_user_id: Optional[int] = None
    assignee_department_id: Optional[int] = None
    element_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Task title is required")
        return v

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        return _status(v)

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: str) -> str:
        return _priority(v)

    @model_validator(mode="after")
    def due_after_start(self):
        if self.start_date and self.due_date and self.due_date < self.start_date:
            raise ValueError("Due date cannot be before start date")
        return self

class TaskCreate(TaskBase):
    project_id: int

class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    progress_percentage: Optional[int] = Field(None, ge=0, le=100)
    estimate_hours: Optional[float] = Field(None, ge=0)
    logged_hours: Optional[float] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)
    labels: Optional[List[str]] = None
    assignee_user_id: Optional[int] = None
    assignee_department_id: Optional[int] = None
    element_id: Optional[int] = None

    # May be omitted but never cleared; the columns are NOT NULL
    @field_validator("status", "priority", "progress_percentage", "logged_hours", "actual_cost", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be null")
        return v

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> Optional[str]:
        return _status(v)

    @field_validator("priority")
    @classmethod
    def valid_priority(cls, v: Optional[str]) -> Optional[str]:
        return _priority(v)

    @model_validator(mode="after")
    def due_after_start(self):
        if self.start_date and self.due_date and self.due_date < self.start_date:
            raise ValueError("Due date cannot be before start date")
        return self

class TaskOut(BaseModel):
    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    progress_percentage: int
    estimate_hours: Optional[float] = None
    logged_hours: float
    estimated_cost: Optional[float] = None
    actual_cost: float
    labels: Optional[List[str]] = None
    assignee_user_id: Optional[int] = None
    assignee_department_id: Optional[int] = None
    element_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class TaskImportResult(BaseModel):
    imported: int
    elements_created: int
    message: str
