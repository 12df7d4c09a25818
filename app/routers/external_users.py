# app/routers/external_users.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.database import get_db
from app.models.user import User
from app.models.external_user import ExternalUser, ExternalUserActivityLog
from app.schemas.external_user import ExternalUserOut, ExternalDepartmentOut, ExternalActivityOut
from app.utils.auth import get_current_user
from app.utils.permissions import (
    get_project_or_404,
    is_project_manager,
    can_manage_department,
    get_department_or_404,
)

router = APIRouter()


def _external_out(external: ExternalUser) -> ExternalUserOut:
    out = ExternalUserOut.model_validate(external)
    departments = [
        ExternalDepartmentOut(
            department_id=external.department_id,
            department_name=external.department.name if external.department else None,
            access_level=external.access_level,
            is_primary=True,
        )
    ]
    for extra in external.extra_departments:
        departments.append(ExternalDepartmentOut(
            department_id=extra.department_id,
            department_name=extra.department.name if extra.department else None,
            access_level=extra.access_level,
        ))
    out.departments = departments
    return out


def _can_manage_external(db: Session, user: User, external: ExternalUser) -> bool:
    if user.is_admin:
        return True
    if can_manage_department(db, user, external.department):
        return True
    return any(can_manage_department(db, user, extra.department) for extra in external.extra_departments)


@router.get("/", response_model=List[ExternalUserOut])
def get_external_users(
    project_id: Optional[int] = None,
    department_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """External users of a project or department; managers and department leads only"""
    if department_id is not None:
        department = get_department_or_404(db, department_id)
        if not can_manage_department(db, current_user, department):
            raise HTTPException(status_code=403, detail="Only department managers can view external users")
    elif project_id is not None:
        project = get_project_or_404(db, project_id)
        if not is_project_manager(db, current_user, project):
            raise HTTPException(status_code=403, detail="Only project managers can view external users")
    elif not current_user.is_admin:
        raise HTTPException(status_code=400, detail="project_id or department_id is required")

    query = db.query(ExternalUser)
    if project_id is not None:
        query = query.filter(ExternalUser.project_id == project_id)
    externals = query.order_by(ExternalUser.created_at.desc()).all()
    if department_id is not None:
        externals = [
            e for e in externals
            if e.department_id == department_id or any(x.department_id == department_id for x in e.extra_departments)
        ]
    return [_external_out(e) for e in externals]


@router.get("/me", response_model=List[ExternalUserOut])
def get_my_external_access(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """The caller's external memberships with departments and expiry state"""
    rows = db.query(ExternalUser).filter(ExternalUser.user_id == current_user.id).order_by(ExternalUser.created_at).all()
    return [_external_out(e) for e in rows]


@router.get("/{external_user_id}/activity", response_model=List[ExternalActivityOut])
def get_external_activity(
    external_user_id: int,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    external = db.query(ExternalUser).filter(ExternalUser.id == external_user_id).first()
    if not external:
        raise HTTPException(status_code=404, detail="External user not found")
    if external.user_id != current_user.id and not _can_manage_external(db, current_user, external):
        raise HTTPException(status_code=403, detail="You cannot view this user's activity")

    return db.query(ExternalUserActivityLog).filter(
        ExternalUserActivityLog.external_user_id == external.id
    ).order_by(ExternalUserActivityLog.created_at.desc(), ExternalUserActivityLog.id.desc()).limit(limit).all()
