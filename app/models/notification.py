# app/models/notification.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import enum

class NotificationType(str, enum.Enum):
    CHAT_MESSAGE = "chat_message"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    DOCUMENT_ACCESS = "document_access"
    EXTERNAL_USER_ACTIVITY = "external_user_activity"
    PASSWORD_RESET = "password_reset"
    SYSTEM = "system"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String(50), nullable=False, default=NotificationType.SYSTEM.value)
    is_read = Column(Boolean, default=False, nullable=False)

    # Related task (optional)
    related_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, title='{self.title}', type='{self.notification_type}')>"
