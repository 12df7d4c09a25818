# app/models/presence.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base


class PresenceStatus(str, enum.Enum):
    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    OFFLINE = "offline"


class ViewType(str, enum.Enum):
    LIST = "list"
    KANBAN = "kanban"
    TABLE = "table"
    CALENDAR = "calendar"


class UserPresence(Base):
    __tablename__ = "user_presence"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    status = Column(String(20), nullable=False, default=PresenceStatus.OFFLINE.value)
    custom_status = Column(String(255), nullable=True)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="presence")


class UserViewPreference(Base):
    __tablename__ = "user_view_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", "department_id", name="uq_user_view_preference"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=True)
    view_type = Column(String(20), nullable=False, default=ViewType.LIST.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
