# app/schemas/chat.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime

class ChatRoomCreate(BaseModel):
    """Open (or reuse) the private room between the caller and another user"""
    project_id: int
    participant_id: int

class ChatRoomOut(BaseModel):
    id: int
    project_id: int
    name: Optional[str] = None
    room_type: str
    created_by: Optional[int] = None
    created_at: datetime
    participant_ids: List[int] = []

    model_config = {
        "from_attributes": True
    }

class ChatAttachment(BaseModel):
    url: str
    name: str
    type: Optional[str] = None
    size: int = Field(0, ge=0)

class ChatMessageCreate(BaseModel):
    content: str = ""
    attachment: Optional[ChatAttachment] = None
    parent_message_id: Optional[int] = None

class ChatMessageUpdate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content cannot be empty")
        return v

class ChatMessageOut(BaseModel):
    id: int
    room_id: int
    user_id: int
    content: str
    attachment_url: Optional[str] = None
    attachment_name: Optional[str] = None
    attachment_type: Optional[str] = None
    attachment_size: Optional[int] = None
    link_url: Optional[str] = None
    link_title: Optional[str] = None
    link_description: Optional[str] = None
    link_image: Optional[str] = None
    parent_message_id: Optional[int] = None
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    sender_name: Optional[str] = None
    sender_avatar_url: Optional[str] = None

    model_config = {
        "from_attributes": True
    }

class ChatSettingsUpdate(BaseModel):
    public_chat_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None
    message_retention_days: Optional[int] = Field(None, ge=1)
    max_file_size_mb: Optional[int] = Field(None, ge=1)
    allowed_file_types: Optional[List[str]] = None

class ChatSettingsOut(BaseModel):
    project_id: int
    public_chat_enabled: bool
    notifications_enabled: bool
    message_retention_days: int
    max_file_size_mb: int
    allowed_file_types: List[str] = []

    model_config = {
        "from_attributes": True
    }

class UnreadCounts(BaseModel):
    total: int
    by_room: Dict[int, int]

class GlobalUnreadCounts(BaseModel):
    total: int
    by_project: Dict[int, int]
