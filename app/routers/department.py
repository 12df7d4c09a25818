# app/routers/department.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User
from app.models.project import Project, ProjectMember
from app.models.department import Department, DepartmentLead
from app.models.element import Element
from app.models.task import Task
from app.schemas.department import (
    DepartmentCreate,
    DepartmentUpdate,
    DepartmentOut,
    DepartmentLeadCreate,
    DepartmentLeadOut,
    DepartmentAnalytics,
)
from app.services.project_service import department_analytics
from app.utils.auth import get_current_user
from app.utils.permissions import (
    get_department_or_404,
    require_project_access,
    require_project_manager,
    require_department_manager,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_department_access(db: Session, user: User, department_id: int) -> Department:
    department = get_department_or_404(db, department_id)
    if department.project_id is not None:
        require_project_access(db, user, department.project_id)
    return department


def _lead_out(lead: DepartmentLead) -> DepartmentLeadOut:
    return DepartmentLeadOut(
        id=lead.id,
        department_id=lead.department_id,
        user_id=lead.user_id,
        assigned_by=lead.assigned_by,
        full_name=lead.user.full_name if lead.user else None,
        email=lead.user.email if lead.user else None,
        created_at=lead.created_at,
    )


@router.get("/", response_model=List[DepartmentOut])
def get_departments(
    project_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if project_id is not None:
        require_project_access(db, current_user, project_id)
        return db.query(Department).filter(Department.project_id == project_id).order_by(Department.name).all()

    query = db.query(Department)
    if not current_user.is_admin:
        member_projects = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == current_user.id)
        owned_projects = db.query(Project.id).filter(Project.owner_id == current_user.id)
        query = query.filter(Department.project_id.in_(member_projects) | Department.project_id.in_(owned_projects))
    return query.order_by(Department.name).all()


@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(department_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _require_department_access(db, current_user, department_id)


@router.post("/", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
def create_department(
    department_data: DepartmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Admins and the project's owner/managers can add departments"""
    require_project_manager(db, current_user, department_data.project_id)

    department = Department(**department_data.model_dump())
    db.add(department)
    db.commit()
    db.refresh(department)
    logger.info(f"Department {department.name} created in project {department.project_id}")
    return department


@router.put("/{department_id}", response_model=DepartmentOut)
def update_department(
    department_id: int,
    department_update: DepartmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    department = require_department_manager(db, current_user, department_id)
    for field, value in department_update.model_dump(exclude_unset=True).items():
        setattr(department, field, value)
    db.commit()
    db.refresh(department)
    return department


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_department(department_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Delete a department; its tasks and elements stay in the project without a department"""
    department = get_department_or_404(db, department_id)
    if department.project_id is not None:
        require_project_manager(db, current_user, department.project_id)
    elif not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")

    db.query(Task).filter(Task.assignee_department_id == department_id).update(
        {Task.assignee_department_id: None}, synchronize_session=False
    )
    db.query(Element).filter(Element.department_id == department_id).update(
        {Element.department_id: None}, synchronize_session=False
    )
    db.delete(department)
    db.commit()
    logger.info(f"Department {department_id} deleted by {current_user.id}")


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

@router.get("/{department_id}/leads", response_model=List[DepartmentLeadOut])
def get_department_leads(department_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _require_department_access(db, current_user, department_id)
    leads = db.query(DepartmentLead).filter(DepartmentLead.department_id == department_id).all()
    return [_lead_out(lead) for lead in leads]


@router.post("/{department_id}/leads", response_model=DepartmentLeadOut, status_code=status.HTTP_201_CREATED)
def add_department_lead(
    department_id: int,
    lead_data: DepartmentLeadCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    department = get_department_or_404(db, department_id)
    if department.project_id is not None:
        require_project_manager(db, current_user, department.project_id)
    elif not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")

    if not db.query(User).filter(User.id == lead_data.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    existing = db.query(DepartmentLead).filter(
        DepartmentLead.department_id == department_id,
        DepartmentLead.user_id == lead_data.user_id
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="User is already a lead of this department")

    lead = DepartmentLead(department_id=department_id, user_id=lead_data.user_id, assigned_by=current_user.id)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return _lead_out(lead)


@router.delete("/{department_id}/leads/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_department_lead(
    department_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    department = get_department_or_404(db, department_id)
    if department.project_id is not None:
        require_project_manager(db, current_user, department.project_id)
    elif not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")

    lead = db.query(DepartmentLead).filter(
        DepartmentLead.department_id == department_id,
        DepartmentLead.user_id == user_id
    ).first()
    if not lead:
        raise HTTPException(status_code=404, detail="Department lead not found")
    db.delete(lead)
    db.commit()


@router.get("/{department_id}/analytics", response_model=DepartmentAnalytics)
def get_department_analytics(department_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    department = _require_department_access(db, current_user, department_id)
    return department_analytics(db, department)
