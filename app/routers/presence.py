# app/routers/presence.py
from fastapi import APIRouter, Depends, BackgroundTasks
from sqlalchemy.orm import Session
from typing import List, Optional

from app.database import get_db
from app.models.user import User
from app.models.presence import UserPresence, PresenceStatus
from app.schemas.presence import PresenceUpdate, PresenceOut, ViewPreferenceUpdate, ViewPreferenceOut
from app.services import presence_service
from app.utils.auth import get_current_user

router = APIRouter(prefix="/presence", tags=["Presence"])
preferences_router = APIRouter(prefix="/preferences", tags=["Preferences"])


@router.get("/", response_model=List[PresenceOut])
def get_presence(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(UserPresence).all()


@router.post("/heartbeat", response_model=PresenceOut)
def heartbeat(background_tasks: BackgroundTasks, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Keep the caller online; a busy or away status is kept as is"""
    existing = db.query(UserPresence).filter(UserPresence.user_id == current_user.id).first()
    status = PresenceStatus.ONLINE.value
    if existing and existing.status in (PresenceStatus.AWAY.value, PresenceStatus.BUSY.value):
        status = existing.status

    presence, old, event = presence_service.set_presence(db, current_user.id, status)
    if old is None or old["status"] != presence.status:
        background_tasks.add_task(presence_service.publish_presence, event, presence_service.serialize_presence(presence), old)
    return presence


@router.put("/status", response_model=PresenceOut)
def update_status(
    status_update: PresenceUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    presence, old, event = presence_service.set_presence(
        db, current_user.id, status_update.status, status_update.custom_status, keep_custom_status=False
    )
    background_tasks.add_task(presence_service.publish_presence, event, presence_service.serialize_presence(presence), old)
    return presence


@preferences_router.get("/view", response_model=ViewPreferenceOut)
def get_view_preference(
    project_id: Optional[int] = None,
    department_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    view_type = presence_service.get_view_preference(db, current_user.id, project_id, department_id)
    return ViewPreferenceOut(project_id=project_id, department_id=department_id, view_type=view_type)


@preferences_router.put("/view", response_model=ViewPreferenceOut)
def save_view_preference(
    preference: ViewPreferenceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    saved = presence_service.save_view_preference(
        db, current_user.id, preference.project_id, preference.department_id, preference.view_type
    )
    return ViewPreferenceOut(project_id=saved.project_id, department_id=saved.department_id, view_type=saved.view_type)
