# app/routers/functions.py
"""
Server-side functions called by the client as POST /functions/v1/<name>.

Every function answers with a JSON body; failures are reported as
{"error": message} with a 4xx/5xx status instead of FastAPI's "detail".
"""
from fastapi import APIRouter, Depends, BackgroundTasks
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.models.user import User
from app.models.department import Department
from app.schemas.functions import (
    CreateUserRequest,
    DeleteUserRequest,
    AdminPasswordResetNotice,
    SendTemporaryPasswordRequest,
    ResetExternalPasswordRequest,
    InviteExternalUserRequest,
    UpdateExternalAccessRequest,
    AddExternalDepartmentRequest,
    SendProjectReportRequest,
    DuplicateProjectRequest,
    EmailNotificationRequest,
)
from app.schemas.user import UserOut
from app.services import email_service, email_templates, external_user_service, report_service, user_admin
from app.services.chat_service import cleanup_old_messages
from app.services.notification_service import NotificationService, ACTION_LABELS, HIGH_RISK_ACTIONS
from app.services.project_service import duplicate_project
from app.utils.auth import get_current_user
from app.utils.permissions import (
    get_project_or_404,
    has_project_access,
    is_project_manager,
    can_manage_department,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _forbidden(message: str = "Admin access required") -> JSONResponse:
    return _error(message, 403)


def _manages_department(db: Session, user: User, department_id: int) -> bool:
    department = db.query(Department).filter(Department.id == department_id).first()
    return department is not None and can_manage_department(db, user, department)


def _manages_external(db: Session, user: User, external) -> bool:
    if _manages_department(db, user, external.department_id):
        return True
    return any(_manages_department(db, user, extra.department_id) for extra in external.extra_departments)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@router.post("/create-user")
def create_user(request: CreateUserRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        user, email_sent = user_admin.create_user(db, request.email, request.full_name, request.role, request.department)
    except user_admin.AccountError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error creating user {request.email}: {e}")
        return _error(str(e))

    message = "User created successfully" if email_sent else "User created, but the welcome email could not be sent"
    return {"success": True, "user": UserOut.model_validate(user).model_dump(mode="json"), "message": message}


@router.post("/delete-user")
def delete_user(request: DeleteUserRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        user = user_admin.delete_user(db, request.user_id, current_user)
    except user_admin.AccountError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error deleting user {request.user_id}: {e}")
        db.rollback()
        return _error(str(e))
    return {"success": True, "message": f"User {user.email} deleted successfully"}


@router.post("/notify-admin-password-reset")
def notify_admin_password_reset(request: AdminPasswordResetNotice, db: Session = Depends(get_db)):
    """Public: the requester is not signed in"""
    try:
        result = user_admin.notify_admins_of_reset(db, request.user_email, request.user_full_name)
    except Exception as e:
        logger.error(f"Error notifying admins about reset for {request.user_email}: {e}")
        return _error(str(e))
    return {"success": True, "message": f"Notified {result['sent']} of {result['total']} admins", **result}


@router.post("/send-temporary-password")
def send_temporary_password(request: SendTemporaryPasswordRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        user = user_admin.send_temporary_password(db, request.user_id, current_user, request.reset_request_id)
    except user_admin.AccountError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error sending temporary password to user {request.user_id}: {e}")
        return _error(str(e))
    return {"success": True, "message": f"Temporary password sent to {user.email}"}


# ---------------------------------------------------------------------------
# External users
# ---------------------------------------------------------------------------

@router.post("/reset-external-user-password")
def reset_external_user_password(request: ResetExternalPasswordRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        external = external_user_service.get_external_user(db, request.external_user_id)
        if not (current_user.is_admin or _manages_external(db, current_user, external)):
            return _forbidden("Only admins or department managers can reset external passwords")
        external_user_service.reset_external_password(db, external)
    except external_user_service.ExternalUserConflict as e:
        return _error(str(e), 400)
    except external_user_service.ExternalUserError as e:
        return _error(str(e))
    except Exception as e:
        logger.error(f"Error resetting password of external user {request.external_user_id}: {e}")
        return _error(str(e))
    return {"success": True, "message": "Password reset email sent"}


@router.post("/invite-external-user")
def invite_external_user(request: InviteExternalUserRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not (current_user.is_admin or _manages_department(db, current_user, request.department_id)):
        return _forbidden("Only admins or department leads can invite external users")
    try:
        external = external_user_service.invite_external_user(
            db,
            current_user,
            email=request.email,
            department_id=request.department_id,
            project_id=request.project_id,
            access_level=request.access_level,
            full_name=request.full_name,
            access_expires_at=request.access_expires_at,
        )
    except external_user_service.ExternalUserConflict as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error inviting external user {request.email}: {e}")
        db.rollback()
        return _error(str(e))
    return {"success": True, "externalUserId": external.id, "message": f"Invitation sent to {external.email}"}


@router.post("/update-external-user-access")
def update_external_user_access(request: UpdateExternalAccessRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        external = external_user_service.get_external_user(db, request.external_user_id)
        if not (current_user.is_admin or _manages_external(db, current_user, external)):
            return _forbidden("Only admins or department managers can change external access")
        changes = request.model_dump(include={"access_level", "access_expires_at", "is_active"}, exclude_unset=True)
        external_user_service.update_external_access(db, external, current_user, changes, request.notification_type)
    except external_user_service.ExternalUserError as e:
        return _error(str(e))
    except Exception as e:
        logger.error(f"Error updating external user {request.external_user_id}: {e}")
        return _error(str(e))
    return {"success": True, "message": "External user access updated"}


@router.post("/add-external-user-to-department")
def add_external_user_to_department(request: AddExternalDepartmentRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not (current_user.is_admin or _manages_department(db, current_user, request.department_id)):
        return _forbidden("Only admins or department leads can add external users to a department")
    try:
        external = external_user_service.get_external_user(db, request.external_user_id)
        external_user_service.add_to_department(db, external, request.department_id, request.access_level, current_user)
    except external_user_service.ExternalUserConflict as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error adding external user {request.external_user_id} to department {request.department_id}: {e}")
        db.rollback()
        return _error(str(e))
    return {"success": True, "message": "External user added to department"}


# ---------------------------------------------------------------------------
# Reports and scheduled jobs
# ---------------------------------------------------------------------------

@router.post("/send-project-report")
def send_project_report(request: SendProjectReportRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        project = get_project_or_404(db, request.project_id)
    except Exception:
        return _error("Project not found", 404)
    if not is_project_manager(db, current_user, project):
        return _forbidden("Only admins or project managers can send reports")
    try:
        return report_service.send_project_report(db, project.id, request.is_test)
    except Exception as e:
        logger.error(f"Error sending report for project {request.project_id}: {e}")
        return _error(str(e))


@router.post("/process-scheduled-reports")
def process_scheduled_reports(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        return report_service.process_scheduled_reports(db)
    except Exception as e:
        logger.error(f"Error processing scheduled reports: {e}")
        return _error(str(e))


@router.post("/check-overdue-tasks")
def check_overdue_tasks(background_tasks: BackgroundTasks, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        sent, payloads = NotificationService.send_overdue_task_notices(db)
    except Exception as e:
        logger.error(f"Error checking overdue tasks: {e}")
        db.rollback()
        return _error(str(e))
    background_tasks.add_task(NotificationService.push, payloads)
    return {"success": True, "sent": sent}


@router.post("/cleanup-old-messages")
def cleanup_messages(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    if not current_user.is_admin:
        return _forbidden()
    try:
        return cleanup_old_messages(db)
    except Exception as e:
        logger.error(f"Error cleaning up chat messages: {e}")
        db.rollback()
        return _error(str(e))


@router.post("/duplicate-project")
def duplicate_project_function(request: DuplicateProjectRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        project = get_project_or_404(db, request.project_id)
    except Exception:
        return _error("Project not found", 404)
    if not has_project_access(db, current_user, project):
        return _forbidden("You do not have access to this project")
    try:
        copy = duplicate_project(db, project, request.new_project_name, current_user)
    except Exception as e:
        logger.error(f"Error duplicating project {request.project_id}: {e}")
        db.rollback()
        return _error(str(e))
    return {"success": True, "newProjectId": copy.id, "message": f"Project duplicated as {copy.name}"}


# ---------------------------------------------------------------------------
# Ad-hoc notification email
# ---------------------------------------------------------------------------

def _render_notification(kind: str, data: dict):
    """(subject, html) for a notification email built from caller-supplied fields"""
    url = email_service.project_url(data["project_id"]) if data.get("project_id") else email_service.login_url()
    project_name = data.get("project_name", "Project")
    if kind == "chat_message":
        html = email_templates.chat_message_template(
            data.get("room_type", "public"), data["sender_name"], data["message_preview"], project_name, url
        )
        return f"New message from {data['sender_name']}", html
    if kind == "task_overdue":
        html = email_templates.task_overdue_template(
            data["task_name"], data.get("department_name", "No department"), project_name,
            bool(data.get("is_assignee", True)), url
        )
        return f"Task Overdue: {data['task_name']}", html
    if kind == "task_completed":
        html = email_templates.task_completed_template(
            data["task_name"], data.get("department_name", "No department"), project_name,
            data["completed_by_name"], url
        )
        return f"Task Completed: {data['task_name']}", html
    if kind == "document_access_granted":
        html = email_templates.document_access_granted_template(
            data.get("item_type", "document"), data["item_name"], data.get("permission", "view_only"),
            project_name, data["granted_by_name"], url
        )
        return f"You've been granted access to {data['item_name']}", html

    action = data["action"]
    user_name = data["external_user_name"]
    department_name = data.get("department_name", "No department")
    html = email_templates.external_user_activity_template(
        user_name, data.get("external_user_email", ""), ACTION_LABELS.get(action, action),
        data.get("item_type", "document"), data["item_name"], department_name, project_name,
        action in HIGH_RISK_ACTIONS, url
    )
    return f"External User Activity: {user_name} - {department_name}", html


@router.post("/send-email-notification")
def send_email_notification(request: EmailNotificationRequest, current_user: User = Depends(get_current_user)):
    recipients = request.data.get("to")
    if not recipients:
        return _error("Recipient email is required", 400)
    try:
        subject, html = _render_notification(request.type, request.data)
    except KeyError as e:
        return _error(f"Missing field for {request.type} email: {e.args[0]}", 400)
    try:
        response = email_service.send_email(recipients, subject, html)
    except Exception as e:
        logger.error(f"Error sending {request.type} email: {e}")
        return _error(str(e))
    return {"success": True, "id": response.get("id") if isinstance(response, dict) else None}
