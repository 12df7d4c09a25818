# app/schemas/document.py
from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from app.models.document import DocumentPermission

PERMISSION_VALUES = [p.value for p in DocumentPermission]

def _require(v: str, label: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError(f"{label} is required")
    return v

def _check_url(v: str) -> str:
    v = (v or "").strip()
    if not (v.startswith("http://") or v.startswith("https://")):
        raise ValueError("URL must start with http:// or https://")
    return v

class FolderCreate(BaseModel):
    project_id: int
    name: str
    parent_folder_id: Optional[int] = None
    department_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _require(v, "Folder name")

class FolderRename(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _require(v, "Folder name")

class FolderMove(BaseModel):
    parent_folder_id: Optional[int] = None

class FolderOut(BaseModel):
    id: int
    project_id: int
    department_id: Optional[int] = None
    parent_folder_id: Optional[int] = None
    name: str
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class DocumentRename(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _require(v, "Document name")

class MoveToFolder(BaseModel):
    folder_id: Optional[int] = None

class MoveToDepartment(BaseModel):
    department_id: Optional[int] = None

class BulkMoveToDepartment(BaseModel):
    document_ids: List[int] = []
    link_ids: List[int] = []
    department_id: Optional[int] = None

class DuplicateItem(BaseModel):
    name: Optional[str] = None
    folder_id: Optional[int] = None

class DocumentOut(BaseModel):
    id: int
    project_id: int
    department_id: Optional[int] = None
    folder_id: Optional[int] = None
    name: str
    file_url: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_by: Optional[int] = None
    uploader_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class LinkCreate(BaseModel):
    project_id: int
    title: str
    url: str
    description: Optional[str] = None
    folder_id: Optional[int] = None
    department_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v: str) -> str:
        return _require(v, "Link title")

    @field_validator("url")
    @classmethod
    def valid_url(cls, v: str) -> str:
        return _check_url(v)

class LinkUpdate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _require(v, "Link title")

    @field_validator("url")
    @classmethod
    def valid_url(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_url(v)

class LinkOut(BaseModel):
    id: int
    project_id: int
    department_id: Optional[int] = None
    folder_id: Optional[int] = None
    title: str
    url: str
    description: Optional[str] = None
    created_by: Optional[int] = None
    creator_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class FolderContents(BaseModel):
    folders: List[FolderOut]
    documents: List[DocumentOut]
    links: List[LinkOut]

class Breadcrumb(BaseModel):
    id: Optional[int] = None
    name: str

class AccessGrant(BaseModel):
    user_id: int
    permission: str = DocumentPermission.VIEW_ONLY.value
    document_id: Optional[int] = None
    folder_id: Optional[int] = None
    link_id: Optional[int] = None

    @field_validator("permission")
    @classmethod
    def valid_permission(cls, v: str) -> str:
        if v not in PERMISSION_VALUES:
            raise ValueError(f"Permission must be one of: {', '.join(PERMISSION_VALUES)}")
        return v

    @model_validator(mode="after")
    def exactly_one_target(self):
        targets = [t for t in (self.document_id, self.folder_id, self.link_id) if t is not None]
        if len(targets) != 1:
            raise ValueError("Exactly one of document_id, folder_id or link_id is required")
        return self

class AccessUpdate(BaseModel):
    permission: str

    @field_validator("permission")
    @classmethod
    def valid_permission(cls, v: str) -> str:
        if v not in PERMISSION_VALUES:
            raise ValueError(f"Permission must be one of: {', '.join(PERMISSION_VALUES)}")
        return v

class AccessOut(BaseModel):
    id: int
    document_id: Optional[int] = None
    folder_id: Optional[int] = None
    link_id: Optional[int] = None
    user_id: int
    permission: str
    granted_by: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }
