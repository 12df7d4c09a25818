# app/schemas/functions.py
# Request bodies of the /functions/v1 endpoints; keys are camelCase on the wire
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Any, Dict
from datetime import datetime

from app.models.external_user import ExternalAccessLevel
from app.models.user import AppRole

ACCESS_LEVEL_VALUES = [a.value for a in ExternalAccessLevel]

def _access_level(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in ACCESS_LEVEL_VALUES:
        raise ValueError(f"Access level must be one of: {', '.join(ACCESS_LEVEL_VALUES)}")
    return v

class FunctionModel(BaseModel):
    model_config = {
        "populate_by_name": True
    }

class CreateUserRequest(FunctionModel):
    email: EmailStr
    full_name: str = Field(..., alias="fullName")
    role: str = AppRole.MEMBER.value
    department: Optional[str] = None

    @field_validator("role")
    @classmethod
    def valid_role(cls, v: str) -> str:
        values = [r.value for r in AppRole]
        if v not in values:
            raise ValueError(f"Role must be one of: {', '.join(values)}")
        return v

class DeleteUserRequest(FunctionModel):
    user_id: int = Field(..., alias="userId")

class AdminPasswordResetNotice(FunctionModel):
    user_email: EmailStr = Field(..., alias="userEmail")
    user_full_name: Optional[str] = Field(None, alias="userFullName")

class SendTemporaryPasswordRequest(FunctionModel):
    user_id: int = Field(..., alias="userId")
    reset_request_id: Optional[int] = Field(None, alias="resetRequestId")

class ResetExternalPasswordRequest(FunctionModel):
    external_user_id: int = Field(..., alias="externalUserId")

class InviteExternalUserRequest(FunctionModel):
    email: EmailStr
    full_name: Optional[str] = Field(None, alias="fullName")
    department_id: int = Field(..., alias="departmentId")
    project_id: int = Field(..., alias="projectId")
    access_level: str = Field(ExternalAccessLevel.VIEW_ONLY.value, alias="accessLevel")
    access_expires_at: Optional[datetime] = Field(None, alias="accessExpiresAt")

    @field_validator("access_level")
    @classmethod
    def valid_access(cls, v: str) -> str:
        return _access_level(v)

class UpdateExternalAccessRequest(FunctionModel):
    external_user_id: int = Field(..., alias="externalUserId")
    access_level: Optional[str] = Field(None, alias="accessLevel")
    access_expires_at: Optional[datetime] = Field(None, alias="accessExpiresAt")
    is_active: Optional[bool] = Field(None, alias="isActive")
    notification_type: str = Field("updated", alias="notificationType")

    @field_validator("access_level")
    @classmethod
    def valid_access(cls, v: Optional[str]) -> Optional[str]:
        return _access_level(v)

    @field_validator("notification_type")
    @classmethod
    def valid_notification(cls, v: str) -> str:
        if v not in ("updated", "revoked"):
            raise ValueError("notificationType must be 'updated' or 'revoked'")
        return v

class AddExternalDepartmentRequest(FunctionModel):
    external_user_id: int = Field(..., alias="externalUserId")
    department_id: int = Field(..., alias="departmentId")
    access_level: str = Field(ExternalAccessLevel.VIEW_ONLY.value, alias="accessLevel")

    @field_validator("access_level")
    @classmethod
    def valid_access(cls, v: str) -> str:
        return _access_level(v)

class SendProjectReportRequest(FunctionModel):
    project_id: int = Field(..., alias="projectId")
    is_test: bool = Field(False, alias="isTest")

class DuplicateProjectRequest(FunctionModel):
    project_id: int = Field(..., alias="projectId")
    new_project_name: str = Field(..., alias="newProjectName")

    @field_validator("new_project_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name is required")
        return v

class EmailNotificationRequest(FunctionModel):
    type: str
    data: Dict[str, Any]

    @field_validator("type")
    @classmethod
    def valid_type(cls, v: str) -> str:
        values = ("chat_message", "task_overdue", "task_completed", "document_access_granted", "external_user_activity")
        if v not in values:
            raise ValueError(f"type must be one of: {', '.join(values)}")
        return v
