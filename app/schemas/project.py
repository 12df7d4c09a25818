from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, Dict, Any
from datetime import date, datetime

from app.models.project import ProjectRole

PROJECT_ROLE_VALUES = [role.value for role in ProjectRole]

class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    status: Optional[str] = "active"
    start_date: date
    end_date: Optional[date] = None
    department_id: Optional[int] = None
    logo_url: Optional[str] = None
    theme_colors: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    department_id: Optional[int] = None
    theme_colors: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v

class ProjectLogoUpdate(BaseModel):
    logo_url: Optional[str] = None

class ProjectOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: str
    start_date: date
    end_date: Optional[date] = None
    owner_id: Optional[int] = None
    department_id: Optional[int] = None
    logo_url: Optional[str] = None
    theme_colors: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class ProjectMemberCreate(BaseModel):
    user_id: int
    role: str = ProjectRole.MEMBER.value

    @field_validator("role")
    @classmethod
    def valid_role(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PROJECT_ROLE_VALUES:
            raise ValueError(f"Role must be one of: {', '.join(PROJECT_ROLE_VALUES)}")
        return v

class ProjectMemberUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def valid_role(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PROJECT_ROLE_VALUES:
            raise ValueError(f"Role must be one of: {', '.join(PROJECT_ROLE_VALUES)}")
        return v

class ProjectMemberOut(BaseModel):
    id: int
    project_id: int
    user_id: int
    role: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }
