import logging
from datetime import datetime, date
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.models.user import User
from app.models.project import Project
from app.models.department import Department, DepartmentLead
from app.models.task import Task
from app.models.chat import ChatRoom, ChatParticipant, ChatMessage, ChatSettings, ChatRoomType
from app.models.document import Document, DocumentFolder, DocumentLink, DocumentAccess
from app.models.external_user import ExternalUser
from app.models.notification import Notification, NotificationType
from app.services import email_service, email_templates
from app.services.websocket_manager import websocket_manager
from app.utils.notifications import create_notifications, already_notified_today, serialize_notification
from app.utils.permissions import project_manager_ids, project_member_ids
from app.utils.task_status import DONE, normalize_task_status

logger = logging.getLogger(__name__)

HIGH_RISK_ACTIONS = {"document_upload", "document_edit", "link_created"}

ACTION_LABELS = {
    "document_upload": "uploaded",
    "document_download": "downloaded",
    "document_view": "viewed",
    "document_edit": "edited",
    "link_access": "accessed link",
    "link_created": "created link",
}


def _users(db: Session, user_ids: Iterable[int]) -> List[User]:
    ids = list(set(user_ids))
    if not ids:
        return []
    return db.query(User).filter(User.id.in_(ids)).all()


def _department_name(db: Session, department_id: Optional[int]) -> str:
    if department_id is None:
        return "No department"
    department = db.query(Department).filter(Department.id == department_id).first()
    return department.name if department else "Unknown department"


class NotificationService:
    """
    In-app notifications plus matching emails for project activity.

    The notify_* coroutines open their own session so they can run as
    FastAPI background tasks after the triggering request has finished.
    """

    @staticmethod
    async def push(payloads: List[dict]) -> None:
        """Send serialized notifications to the connected sockets of their users"""
        for payload in payloads:
            try:
                await websocket_manager.send_notification_to_user(payload["user_id"], payload)
            except Exception as e:
                logger.error(f"Error pushing notification {payload.get('id')}: {e}")

    @staticmethod
    def _email_each(users: List[User], subject: str, html_for) -> int:
        sent = 0
        for user in users:
            if not user.email:
                continue
            if email_service.send_email_safely(user.email, subject, html_for(user)):
                sent += 1
        return sent

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    @staticmethod
    def chat_message_notices(db: Session, message: ChatMessage) -> Tuple[List[Notification], int]:
        room = db.query(ChatRoom).filter(ChatRoom.id == message.room_id).first()
        if not room:
            return [], 0
        project = db.query(Project).filter(Project.id == room.project_id).first()
        settings_row = db.query(ChatSettings).filter(ChatSettings.project_id == room.project_id).first()
        if not project or (settings_row and not settings_row.notifications_enabled):
            return [], 0

        participants = db.query(ChatParticipant).filter(ChatParticipant.room_id == room.id).all()
        muted = {p.user_id for p in participants if p.muted}
        if room.room_type == ChatRoomType.PUBLIC.value:
            recipient_ids = project_member_ids(db, project)
        else:
            recipient_ids = {p.user_id for p in participants}
        recipient_ids = recipient_ids - muted - {message.user_id}
        if not recipient_ids:
            logger.info("No recipients found for chat notification")
            return [], 0

        sender = db.query(User).filter(User.id == message.user_id).first()
        sender_name = sender.display_name if sender else "Someone"
        is_public = room.room_type == ChatRoomType.PUBLIC.value
        preview = message.content or message.attachment_name or ""

        notifications = create_notifications(
            db,
            recipient_ids,
            title=f"New message in {project.name}" if is_public else f"Private message from {sender_name}",
            message=f"{sender_name}: {email_templates.truncate_message(preview, 1)}",
            notification_type=NotificationType.CHAT_MESSAGE.value,
        )

        subject = (
            f"New message from {sender_name} in {project.name} Project Planner Chat"
            if is_public else f"Private message from {sender_name} on {project.name} Project Planner"
        )
        html = email_templates.chat_message_template(
            room.room_type, sender_name, preview, project.name, email_service.project_url(project.id)
        )
        sent = NotificationService._email_each(_users(db, recipient_ids), subject, lambda _user: html)
        return notifications, sent

    @staticmethod
    async def notify_chat_message(message_id: int) -> None:
        db = SessionLocal()
        try:
            message = db.query(ChatMessage).filter(ChatMessage.id == message_id).first()
            if not message:
                return
            notifications, sent = NotificationService.chat_message_notices(db, message)
            payloads = [serialize_notification(n) for n in notifications]
            logger.info(f"Chat message {message_id}: {len(payloads)} notifications, {sent} emails")
        except Exception as e:
            logger.error(f"Error notifying chat message {message_id}: {e}")
            db.rollback()
            return
        finally:
            db.close()
        await NotificationService.push(payloads)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @staticmethod
    def task_completed_notices(db: Session, task: Task, completed_by: User) -> Tuple[List[Notification], int]:
        project = db.query(Project).filter(Project.id == task.project_id).first()
        if not project:
            return [], 0

        recipient_ids = set(project_manager_ids(db, project))
        if task.created_by:
            recipient_ids.add(task.created_by)
        recipient_ids.discard(completed_by.id)
        if not recipient_ids:
            return [], 0

        department_name = _department_name(db, task.assignee_department_id)
        notifications = create_notifications(
            db,
            recipient_ids,
            title="Task Completed",
            message=f'"{task.title}" was completed by {completed_by.display_name}',
            notification_type=NotificationType.TASK_COMPLETED.value,
            related_task_id=task.id,
        )
        html = email_templates.task_completed_template(
            task.title, department_name, project.name, completed_by.display_name, email_service.project_url(project.id)
        )
        subject = f"Task Completed: {task.title} {department_name} for {project.name}"
        sent = NotificationService._email_each(_users(db, recipient_ids), subject, lambda _user: html)
        return notifications, sent

    @staticmethod
    async def notify_task_completed(task_id: int, completed_by_id: int) -> None:
        db = SessionLocal()
        try:
            task = db.query(Task).filter(Task.id == task_id).first()
            completed_by = db.query(User).filter(User.id == completed_by_id).first()
            if not task or not completed_by:
                return
            notifications, _ = NotificationService.task_completed_notices(db, task, completed_by)
            payloads = [serialize_notification(n) for n in notifications]
        except Exception as e:
            logger.error(f"Error notifying completion of task {task_id}: {e}")
            db.rollback()
            return
        finally:
            db.close()
        await NotificationService.push(payloads)

    @staticmethod
    def task_overdue_notices(db: Session, task: Task, today: date) -> Tuple[List[Notification], int]:
        """One in-app notice per user per task per day, plus the overdue email"""
        project = db.query(Project).filter(Project.id == task.project_id).first()
        if not project:
            return [], 0

        recipient_ids = set(project_manager_ids(db, project))
        if task.assignee_user_id:
            recipient_ids.add(task.assignee_user_id)
        recipient_ids = {
            uid for uid in recipient_ids
            if not already_notified_today(db, uid, task.id, NotificationType.TASK_OVERDUE.value, today)
        }
        if not recipient_ids:
            return [], 0

        department_name = _department_name(db, task.assignee_department_id)
        notifications = create_notifications(
            db,
            recipient_ids,
            title="Task Overdue",
            message=f'"{task.title}" in {department_name} is overdue',
            notification_type=NotificationType.TASK_OVERDUE.value,
            related_task_id=task.id,
        )
        subject = f"Task Overdue: {task.title} on {department_name} for {project.name}"
        url = email_service.project_url(project.id)
        sent = NotificationService._email_each(
            _users(db, recipient_ids),
            subject,
            lambda user: email_templates.task_overdue_template(
                task.title, department_name, project.name, user.id == task.assignee_user_id, url
            ),
        )
        return notifications, sent

    @staticmethod
    def send_overdue_task_notices(db: Session, today: Optional[date] = None) -> Tuple[int, List[dict]]:
        """
        Notify about every assigned, unfinished task whose due date has passed.

        Returns the number of tasks notified and the serialized notifications
        so the caller can push them over WebSocket.
        """
        today = today or datetime.utcnow().date()
        tasks = db.query(Task).filter(
            Task.due_date.isnot(None),
            Task.due_date < today,
            Task.assignee_user_id.isnot(None),
        ).all()

        sent = 0
        payloads: List[dict] = []
        for task in tasks:
            if normalize_task_status(task.status) == DONE:
                continue
            try:
                notifications, _ = NotificationService.task_overdue_notices(db, task, today)
                if notifications:
                    sent += 1
                    payloads.extend(serialize_notification(n) for n in notifications)
            except Exception as e:
                logger.error(f"Error sending overdue notice for task {task.id}: {e}")
                db.rollback()
        logger.info(f"Overdue check: {sent} tasks notified")
        return sent, payloads

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @staticmethod
    def _access_item(db: Session, access: DocumentAccess):
        if access.document_id:
            item = db.query(Document).filter(Document.id == access.document_id).first()
            return "document", item.name if item else "document", item.project_id if item else None
        if access.folder_id:
            item = db.query(DocumentFolder).filter(DocumentFolder.id == access.folder_id).first()
            return "folder", item.name if item else "folder", item.project_id if item else None
        item = db.query(DocumentLink).filter(DocumentLink.id == access.link_id).first()
        return "link", item.title if item else "link", item.project_id if item else None

    @staticmethod
    def document_access_notices(db: Session, access: DocumentAccess, granted_by: User) -> Tuple[List[Notification], int]:
        item_type, item_name, project_id = NotificationService._access_item(db, access)
        project = db.query(Project).filter(Project.id == project_id).first() if project_id else None
        project_name = project.name if project else "Project"
        item_label = {"document": "File", "folder": "Folder", "link": "Link"}[item_type]
        permission_label = email_templates.ACCESS_LEVEL_LABELS.get(access.permission, access.permission)

        notifications = create_notifications(
            db,
            [access.user_id],
            title=f"{item_label} Access Granted",
            message=f'{granted_by.display_name} granted you {permission_label} access to "{item_name}"',
            notification_type=NotificationType.DOCUMENT_ACCESS.value,
        )
        html = email_templates.document_access_granted_template(
            item_type, item_name, access.permission, project_name, granted_by.display_name,
            email_service.project_url(project_id) if project_id else email_service.login_url(),
        )
        sent = NotificationService._email_each(
            _users(db, [access.user_id]), f"You've been granted access to {item_name}", lambda _user: html
        )
        return notifications, sent

    @staticmethod
    async def notify_document_access_granted(access_id: int, granted_by_id: int) -> None:
        db = SessionLocal()
        try:
            access = db.query(DocumentAccess).filter(DocumentAccess.id == access_id).first()
            granted_by = db.query(User).filter(User.id == granted_by_id).first()
            if not access or not granted_by:
                return
            notifications, _ = NotificationService.document_access_notices(db, access, granted_by)
            payloads = [serialize_notification(n) for n in notifications]
        except Exception as e:
            logger.error(f"Error notifying document access {access_id}: {e}")
            db.rollback()
            return
        finally:
            db.close()
        await NotificationService.push(payloads)

    @staticmethod
    def external_activity_notices(
        db: Session,
        external_user: ExternalUser,
        action: str,
        item_type: str,
        item_name: str,
        department_id: int,
    ) -> Tuple[List[Notification], int]:
        """Tell the department leads what an external user did"""
        lead_ids = [
            lead.user_id for lead in db.query(DepartmentLead).filter(DepartmentLead.department_id == department_id).all()
        ]
        if not lead_ids:
            logger.info("No department leads found for external activity notification")
            return [], 0

        project = db.query(Project).filter(Project.id == external_user.project_id).first()
        project_name = project.name if project else "Project"
        department_name = _department_name(db, department_id)
        action_label = ACTION_LABELS.get(action, action)
        user_name = external_user.full_name or external_user.email

        notifications = create_notifications(
            db,
            lead_ids,
            title="External User Activity",
            message=f'{user_name} {action_label} {item_type} "{item_name}"',
            notification_type=NotificationType.EXTERNAL_USER_ACTIVITY.value,
        )
        high_risk = action in HIGH_RISK_ACTIONS
        subject = f"{'[Action needed] ' if high_risk else ''}External User Activity: {user_name} - {department_name}"
        html = email_templates.external_user_activity_template(
            user_name, external_user.email, action_label, item_type, item_name, department_name,
            project_name, high_risk, email_service.project_url(external_user.project_id),
        )
        sent = NotificationService._email_each(_users(db, lead_ids), subject, lambda _user: html)
        return notifications, sent

    @staticmethod
    async def notify_external_activity(
        external_user_id: int, action: str, item_type: str, item_name: str, department_id: int
    ) -> None:
        db = SessionLocal()
        try:
            external_user = db.query(ExternalUser).filter(ExternalUser.id == external_user_id).first()
            if not external_user:
                return
            notifications, _ = NotificationService.external_activity_notices(
                db, external_user, action, item_type, item_name, department_id
            )
            payloads = [serialize_notification(n) for n in notifications]
        except Exception as e:
            logger.error(f"Error notifying external activity of {external_user_id}: {e}")
            db.rollback()
            return
        finally:
            db.close()
        await NotificationService.push(payloads)
