# app/models/report.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
import enum

from app.database import Base


class ReportFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ProjectReportSettings(Base):
    __tablename__ = "project_report_settings"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
    enabled = Column(Boolean, default=False, nullable=False)
    frequency = Column(String(20), nullable=False, default=ReportFrequency.DAILY.value)
    send_time = Column(String(8), nullable=False, default="18:00:00")
    timezone = Column(String(64), nullable=False, default="Africa/Nairobi")

    # Content flags
    include_department_summary = Column(Boolean, default=True, nullable=False)
    include_user_activity = Column(Boolean, default=True, nullable=False)
    include_smart_insights = Column(Boolean, default=True, nullable=False)

    last_sent_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProjectReportRecipient(Base):
    __tablename__ = "project_report_recipients"
    __table_args__ = (UniqueConstraint("project_id", "email", name="uq_report_recipient"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    added_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
