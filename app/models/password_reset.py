# app/models/password_reset.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime
import enum

from app.database import Base


class ResetRequestStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class PasswordResetRequest(Base):
    __tablename__ = "password_reset_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)
    user_full_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=ResetRequestStatus.PENDING.value, index=True)
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    completed_by_admin_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
