# app/routers/notification.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import List
from datetime import datetime

from app.database import get_db
from app.models import Notification, User
from app.schemas import NotificationOut, NotificationCount
from app.utils.auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_own_notification(db: Session, user: User, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user.id
    ).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("/", response_model=List[NotificationOut])
def get_user_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get notifications for the current user, newest first"""
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read == False)
    return query.order_by(desc(Notification.created_at), desc(Notification.id)).offset(skip).limit(limit).all()


@router.get("/count", response_model=NotificationCount)
def get_notification_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    base_query = db.query(Notification).filter(Notification.user_id == current_user.id)
    return NotificationCount(
        total=base_query.count(),
        unread=base_query.filter(Notification.is_read == False).count(),
    )


@router.put("/read-all", response_model=dict)
def mark_all_notifications_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Mark all notifications as read for the current user"""
    updated_count = db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.is_read == False
    ).update({
        Notification.is_read: True,
        Notification.read_at: datetime.utcnow()
    }, synchronize_session=False)
    db.commit()
    return {"message": f"Marked {updated_count} notifications as read", "updated_count": updated_count}


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = _get_own_notification(db, current_user, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = _get_own_notification(db, current_user, notification_id)
    db.delete(notification)
    db.commit()
    return {"message": "Notification deleted successfully"}
