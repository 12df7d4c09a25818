# app/models/project.py
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base


class ProjectRole(str, enum.Enum):
    OWNER = "owner"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="active")  # active, on_hold, completed, cancelled
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    department_id = Column(Integer, nullable=True)
    logo_url = Column(String(500), nullable=True)
    theme_colors = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    departments = relationship("Department", back_populates="project", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    elements = relationship("Element", back_populates="project", cascade="all, delete-orphan")
    chat_rooms = relationship("ChatRoom", back_populates="project", cascade="all, delete-orphan")
    chat_settings = relationship("ChatSettings", uselist=False, cascade="all, delete-orphan")
    folders = relationship("DocumentFolder", cascade="all, delete-orphan")
    documents = relationship("Document", cascade="all, delete-orphan")
    links = relationship("DocumentLink", cascade="all, delete-orphan")
    report_settings = relationship("ProjectReportSettings", uselist=False, cascade="all, delete-orphan")
    report_recipients = relationship("ProjectReportRecipient", cascade="all, delete-orphan")
    external_users = relationship("ExternalUser", cascade="all, delete-orphan")


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), nullable=False, default=ProjectRole.MEMBER.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="memberships")
