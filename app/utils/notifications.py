# app/utils/notifications.py
"""
Utility functions for creating and managing in-app notifications
"""

from datetime import datetime, date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationType
from app.schemas.notification import NotificationOut


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: str = NotificationType.SYSTEM.value,
    related_task_id: Optional[int] = None,
    commit: bool = True,
) -> Notification:
    """
    Create a new notification for a user

    Args:
        db: Database session
        user_id: ID of the user to notify
        title: Notification title
        message: Notification message
        notification_type: One of NotificationType values
        related_task_id: Task the notification refers to, if any
        commit: Commit immediately; pass False to batch several inserts

    Returns:
        Created notification object
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        related_task_id=related_task_id,
        is_read=False,
    )
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    return notification


def create_notifications(
    db: Session,
    user_ids: Iterable[int],
    title: str,
    message: str,
    notification_type: str,
    related_task_id: Optional[int] = None,
) -> List[Notification]:
    """Same notification for several users, committed once"""
    notifications = [
        create_notification(db, user_id, title, message, notification_type, related_task_id, commit=False)
        for user_id in sorted(set(user_ids))
    ]
    if notifications:
        db.commit()
        for notification in notifications:
            db.refresh(notification)
    return notifications


def already_notified_today(db: Session, user_id: int, task_id: int, notification_type: str, today: date) -> bool:
    start = datetime.combine(today, datetime.min.time())
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.related_task_id == task_id,
        Notification.notification_type == notification_type,
        Notification.created_at >= start,
    ).first() is not None


def serialize_notification(notification: Notification) -> dict:
    return NotificationOut.model_validate(notification).model_dump(mode="json")
