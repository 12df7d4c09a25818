# app/models/task.py
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Float, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base

class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Task properties
    status = Column(String(50), nullable=False, default=TaskStatus.TODO.value)
    priority = Column(String(50), nullable=False, default=TaskPriority.MEDIUM.value)
    progress_percentage = Column(Integer, nullable=False, default=0)
    labels = Column(JSON, nullable=True)

    # Effort and cost tracking
    estimate_hours = Column(Float, nullable=True)
    logged_hours = Column(Float, nullable=False, default=0)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=False, default=0)

    # Assignment
    assignee_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assignee_department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    element_id = Column(Integer, ForeignKey("elements.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Dates (date only, no time component)
    start_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    # System dates
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    department = relationship("Department", back_populates="tasks")
    element = relationship("Element", back_populates="tasks")
    assignee = relationship("User", foreign_keys=[assignee_user_id])
    creator = relationship("User", foreign_keys=[created_by])
