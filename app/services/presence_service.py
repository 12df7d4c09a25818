import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.models.presence import UserPresence, UserViewPreference, PresenceStatus, ViewType
from app.schemas.presence import PresenceOut
from app.services.websocket_manager import websocket_manager, PRESENCE_CHANNEL, change_event

logger = logging.getLogger(__name__)

PRESENCE_TABLE = "user_presence"


def serialize_presence(presence: UserPresence) -> dict:
    return PresenceOut.model_validate(presence).model_dump(mode="json")


def set_presence(
    db: Session,
    user_id: int,
    status: str,
    custom_status: Optional[str] = None,
    keep_custom_status: bool = True,
) -> Tuple[UserPresence, Optional[dict], str]:
    """
    Upsert the user's presence row and stamp last_seen_at.

    Returns the row, its previous serialized state (None when new) and the
    change event name.
    """
    presence = db.query(UserPresence).filter(UserPresence.user_id == user_id).first()
    old = serialize_presence(presence) if presence else None
    if presence is None:
        presence = UserPresence(user_id=user_id)
        db.add(presence)
    presence.status = status
    if custom_status is not None or not keep_custom_status:
        presence.custom_status = custom_status
    presence.last_seen_at = datetime.utcnow()
    db.commit()
    db.refresh(presence)
    return presence, old, "UPDATE" if old else "INSERT"


async def publish_presence(event: str, new: dict, old: Optional[dict] = None) -> None:
    await websocket_manager.publish(PRESENCE_CHANNEL, change_event(event, PRESENCE_TABLE, new, old))


def sweep_stale_presence(db: Session, now: Optional[datetime] = None) -> List[Tuple[dict, dict]]:
    """Mark users whose last heartbeat is older than the presence timeout as offline"""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=settings.PRESENCE_TIMEOUT_MINUTES)
    stale = db.query(UserPresence).filter(
        UserPresence.status != PresenceStatus.OFFLINE.value,
        UserPresence.last_seen_at < cutoff
    ).all()

    changes = []
    for presence in stale:
        old = serialize_presence(presence)
        presence.status = PresenceStatus.OFFLINE.value
        changes.append((presence, old))
    if changes:
        db.commit()
        logger.info(f"Marked {len(changes)} users offline")
    return [(serialize_presence(presence), old) for presence, old in changes]


def get_view_preference(db: Session, user_id: int, project_id: Optional[int], department_id: Optional[int]) -> str:
    preference = db.query(UserViewPreference).filter(
        UserViewPreference.user_id == user_id,
        UserViewPreference.project_id == project_id,
        UserViewPreference.department_id == department_id
    ).first()
    return preference.view_type if preference else ViewType.LIST.value


def save_view_preference(db: Session, user_id: int, project_id: Optional[int], department_id: Optional[int], view_type: str) -> UserViewPreference:
    preference = db.query(UserViewPreference).filter(
        UserViewPreference.user_id == user_id,
        UserViewPreference.project_id == project_id,
        UserViewPreference.department_id == department_id
    ).first()
    if preference is None:
        preference = UserViewPreference(user_id=user_id, project_id=project_id, department_id=department_id)
        db.add(preference)
    preference.view_type = view_type
    db.commit()
    db.refresh(preference)
    return preference
