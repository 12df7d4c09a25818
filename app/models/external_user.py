# app/models/external_user.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base


class ExternalAccessLevel(str, enum.Enum):
    VIEW_ONLY = "view_only"
    UPLOAD_EDIT = "upload_edit"
    EDIT_DOWNLOAD = "edit_download"


UPLOAD_ACCESS_LEVELS = {ExternalAccessLevel.UPLOAD_EDIT.value, ExternalAccessLevel.EDIT_DOWNLOAD.value}


class ExternalUser(Base):
    __tablename__ = "external_users"
    __table_args__ = (UniqueConstraint("user_id", "department_id", name="uq_external_user_department"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    access_level = Column(String(20), nullable=False, default=ExternalAccessLevel.VIEW_ONLY.value)
    access_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    must_change_password = Column(Boolean, default=True, nullable=False)
    temporary_password_expires_at = Column(DateTime, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    department = relationship("Department")
    extra_departments = relationship("ExternalUserDepartment", back_populates="external_user", cascade="all, delete-orphan")
    activity = relationship("ExternalUserActivityLog", back_populates="external_user", cascade="all, delete-orphan")

    @property
    def is_expired(self) -> bool:
        return self.access_expires_at is not None and self.access_expires_at < datetime.utcnow()

    @property
    def has_access(self) -> bool:
        return bool(self.is_active) and not self.is_expired


class ExternalUserDepartment(Base):
    __tablename__ = "external_user_departments"

    id = Column(Integer, primary_key=True, index=True)
    external_user_id = Column(Integer, ForeignKey("external_users.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    access_level = Column(String(20), nullable=False, default=ExternalAccessLevel.VIEW_ONLY.value)
    added_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    external_user = relationship("ExternalUser", back_populates="extra_departments")
    department = relationship("Department")


class ExternalUserActivityLog(Base):
    __tablename__ = "external_user_activity_log"

    id = Column(Integer, primary_key=True, index=True)
    external_user_id = Column(Integer, ForeignKey("external_users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(100), nullable=False)
    document_id = Column(Integer, nullable=True)
    folder_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    external_user = relationship("ExternalUser", back_populates="activity")
