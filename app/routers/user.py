# app/routers/user.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User, AppRole
from app.schemas.user import UserOut, UserUpdate
from app.utils.auth import get_current_user, require_admin

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[UserOut])
def get_all_users(
    active_only: bool = False,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """All profiles, external accounts excluded unless the caller is an admin"""
    query = db.query(User)
    if not current_user.is_admin:
        query = query.filter(User.is_external == False)
    if active_only:
        query = query.filter(User.is_active == True)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            func.lower(User.email).like(pattern) | func.lower(func.coalesce(User.full_name, "")).like(pattern)
        )
    return query.order_by(User.full_name, User.email).all()


@router.get("/roles/")
def get_roles(current_user: User = Depends(get_current_user)):
    return [{"value": role.value, "label": role.value.replace("_", " ").title()} for role in AppRole]


@router.get("/stats/")
def get_user_stats(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    """Counts of users by role plus active/external totals"""
    by_role = {role.value: 0 for role in AppRole}
    for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = count
    return {
        "total_users": db.query(User).count(),
        "active_users": db.query(User).filter(User.is_active == True).count(),
        "external_users": db.query(User).filter(User.is_external == True).count(),
        "by_role": by_role,
    }


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Get a specific user by ID"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    user_update: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Admins edit any profile; users may edit their own name and avatar"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    update_data = user_update.model_dump(exclude_unset=True)
    if not current_user.is_admin:
        if current_user.id != user_id or set(update_data) - {"full_name", "avatar_url"}:
            raise HTTPException(status_code=403, detail="Admin access required")
    if current_user.id == user_id and update_data.get("is_active") is False:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    for field, value in update_data.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user_id} updated by {current_user.id}: {sorted(update_data)}")
    return user
