# app/schemas/notification.py
from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class NotificationOut(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    notification_type: str
    is_read: bool
    related_task_id: Optional[int] = None
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

class NotificationCount(BaseModel):
    total: int
    unread: int
