# app/routers/project.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import logging

from app.database import get_db
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.user import User, AppRole
from app.schemas.project import (
    ProjectCreate,
    ProjectUpdate,
    ProjectLogoUpdate,
    ProjectOut,
    ProjectMemberCreate,
    ProjectMemberUpdate,
    ProjectMemberOut,
)
from app.services.file_storage import file_storage
from app.services.project_service import project_analytics
from app.utils.auth import get_current_user
from app.utils.permissions import (
    get_project_or_404,
    get_membership,
    require_project_access,
    require_project_manager,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _member_out(member: ProjectMember) -> ProjectMemberOut:
    return ProjectMemberOut(
        id=member.id,
        project_id=member.project_id,
        user_id=member.user_id,
        role=member.role,
        full_name=member.user.full_name if member.user else None,
        email=member.user.email if member.user else None,
        avatar_url=member.user.avatar_url if member.user else None,
        created_at=member.created_at,
    )


@router.get("/", response_model=List[ProjectOut])
def get_all_projects(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Admins see every project; everyone else sees projects they own or belong to"""
    query = db.query(Project)
    if not current_user.is_admin:
        member_projects = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == current_user.id)
        query = query.filter((Project.owner_id == current_user.id) | Project.id.in_(member_projects))
    return query.order_by(Project.created_at.desc()).all()


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Get a specific project by ID"""
    return require_project_access(db, current_user, project_id)


@router.post("/", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(project_data: ProjectCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Create a new project - Only admins and project managers can create projects"""
    if current_user.role not in (AppRole.ADMIN.value, AppRole.PROJECT_MANAGER.value):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins and project managers can create projects"
        )

    project = Project(**project_data.model_dump(), owner_id=current_user.id)
    db.add(project)
    db.flush()
    db.add(ProjectMember(project_id=project.id, user_id=current_user.id, role=ProjectRole.OWNER.value))
    db.commit()
    db.refresh(project)
    logger.info(f"Project {project.id} created by {current_user.email}")
    return project


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    project_update: ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = require_project_manager(db, current_user, project_id)
    update_data = project_update.model_dump(exclude_unset=True)

    start = update_data.get("start_date", project.start_date)
    end = update_data.get("end_date", project.end_date)
    if start and end and end < start:
        raise HTTPException(status_code=400, detail="End date cannot be before start date")

    for field, value in update_data.items():
        setattr(project, field, value)
    db.commit()
    db.refresh(project)
    return project


@router.put("/{project_id}/logo", response_model=ProjectOut)
def update_project_logo(
    project_id: int,
    logo: ProjectLogoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = require_project_manager(db, current_user, project_id)
    previous = project.logo_url
    project.logo_url = logo.logo_url
    db.commit()
    db.refresh(project)
    if previous and previous != logo.logo_url:
        file_storage.delete_file(previous)
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Delete a project with its departments, tasks, chat, documents and report settings"""
    project = get_project_or_404(db, project_id)
    if not current_user.is_admin and project.owner_id != current_user.id:
        raise HTTPException(status_code=403, detail="Only admins or the project owner can delete a project")

    db.delete(project)
    db.commit()
    logger.info(f"Project {project_id} deleted by {current_user.email}")


@router.get("/{project_id}/analytics")
def get_project_analytics(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    project = require_project_access(db, current_user, project_id)
    return project_analytics(db, project)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{project_id}/members", response_model=List[ProjectMemberOut])
def get_project_members(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    require_project_access(db, current_user, project_id)
    members = db.query(ProjectMember).filter(ProjectMember.project_id == project_id).all()
    return [_member_out(member) for member in members]


@router.post("/{project_id}/members", response_model=ProjectMemberOut, status_code=status.HTTP_201_CREATED)
def add_project_member(
    project_id: int,
    member_data: ProjectMemberCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_manager(db, current_user, project_id)
    if not db.query(User).filter(User.id == member_data.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    if get_membership(db, project_id, member_data.user_id):
        raise HTTPException(status_code=400, detail="User is already a member of this project")

    member = ProjectMember(project_id=project_id, user_id=member_data.user_id, role=member_data.role)
    db.add(member)
    db.commit()
    db.refresh(member)
    return _member_out(member)


@router.put("/{project_id}/members/{user_id}", response_model=ProjectMemberOut)
def update_project_member(
    project_id: int,
    user_id: int,
    member_update: ProjectMemberUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_manager(db, current_user, project_id)
    member = get_membership(db, project_id, user_id)
    if not member:
        raise HTTPException(status_code=404, detail="Project member not found")
    member.role = member_update.role
    db.commit()
    db.refresh(member)
    return _member_out(member)


@router.delete("/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_project_member(
    project_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = require_project_manager(db, current_user, project_id)
    if project.owner_id == user_id:
        raise HTTPException(status_code=400, detail="The project owner cannot be removed")
    member = get_membership(db, project_id, user_id)
    if not member:
        raise HTTPException(status_code=404, detail="Project member not found")
    db.delete(member)
    db.commit()
