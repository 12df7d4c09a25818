"""
External (guest) user lifecycle: invitation, access changes, extra
departments, password resets and the activity log.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.user import User, AppRole
from app.models.project import Project
from app.models.department import Department
from app.models.external_user import ExternalUser, ExternalUserDepartment, ExternalUserActivityLog
from app.services import email_service
from app.utils.security import (
    hash_password,
    generate_temporary_password,
    generate_external_password,
    temporary_password_expiry,
)

logger = logging.getLogger(__name__)


class ExternalUserError(Exception):
    pass


class ExternalUserConflict(ExternalUserError):
    """The requested access already exists"""


def _format_expiry(value: Optional[datetime]) -> Optional[str]:
    return value.strftime("%B %d, %Y") if value else None


def get_external_user(db: Session, external_user_id: int) -> ExternalUser:
    external = db.query(ExternalUser).filter(ExternalUser.id == external_user_id).first()
    if not external:
        raise ExternalUserError("External user not found")
    return external


def log_activity(
    db: Session,
    external_user: ExternalUser,
    action: str,
    document_id: Optional[int] = None,
    folder_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    commit: bool = True,
) -> ExternalUserActivityLog:
    entry = ExternalUserActivityLog(
        external_user_id=external_user.id,
        action=action,
        document_id=document_id,
        folder_id=folder_id,
        details=details or {},
        ip_address=ip_address,
    )
    db.add(entry)
    external_user.last_activity_at = datetime.utcnow()
    if commit:
        db.commit()
    return entry


def invite_external_user(
    db: Session,
    inviter: User,
    email: str,
    department_id: int,
    project_id: int,
    access_level: str,
    full_name: Optional[str] = None,
    access_expires_at: Optional[datetime] = None,
) -> ExternalUser:
    """
    Give an email address document access to one department.

    A new account gets a temporary password that is mailed with the
    invitation. An existing external account keeps its password; internal
    accounts cannot be invited.
    """
    email = email.strip().lower()
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department or department.project_id != project_id:
        raise ExternalUserError("Department not found in this project")
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise ExternalUserError("Project not found")

    user = db.query(User).filter(User.email == email).first()
    temporary_password = None
    password_expires_at = None
    if user:
        if not user.is_external:
            raise ExternalUserConflict("This email belongs to an internal account")
        existing = db.query(ExternalUser).filter(
            ExternalUser.user_id == user.id,
            ExternalUser.department_id == department_id
        ).first()
        if existing:
            raise ExternalUserConflict("User already has external access to this department")
    else:
        temporary_password = generate_temporary_password()
        password_expires_at = temporary_password_expiry()
        user = User(
            email=email,
            full_name=full_name or email.split("@")[0],
            role=AppRole.VIEWER.value,
            hashed_password=hash_password(temporary_password),
            is_external=True,
            must_change_password=True,
            temporary_password_expires_at=password_expires_at,
        )
        db.add(user)
        db.flush()

    external = ExternalUser(
        user_id=user.id,
        email=email,
        full_name=full_name,
        department_id=department_id,
        project_id=project_id,
        invited_by=inviter.id,
        access_level=access_level,
        access_expires_at=access_expires_at,
        is_active=True,
        must_change_password=temporary_password is not None,
        temporary_password_expires_at=password_expires_at,
    )
    db.add(external)
    db.flush()
    log_activity(db, external, "invited", details={
        "invited_by": inviter.id,
        "access_level": access_level,
        "access_expires_at": access_expires_at.isoformat() if access_expires_at else None,
    }, commit=False)
    db.commit()
    db.refresh(external)
    logger.info(f"Invited external user {email} to department {department_id}")

    email_service.send_external_invitation(
        email, full_name, temporary_password, project.name, department.name,
        access_level, _format_expiry(access_expires_at),
    )
    return external


def update_external_access(
    db: Session,
    external: ExternalUser,
    updated_by: User,
    changes: Dict[str, Any],
    notification_type: str = "updated",
) -> ExternalUser:
    """Apply only the supplied fields, log the change and email the user"""
    for field in ("access_level", "access_expires_at", "is_active"):
        if field in changes:
            setattr(external, field, changes[field])

    revoked = notification_type == "revoked"
    log_activity(db, external, "access_revoked" if revoked else "access_updated", details={
        "updated_by": updated_by.id,
        "changes": {key: value.isoformat() if isinstance(value, datetime) else value for key, value in changes.items()},
    }, commit=False)
    db.commit()
    db.refresh(external)

    project = db.query(Project).filter(Project.id == external.project_id).first()
    project_name = project.name if project else "Project"
    if revoked:
        email_service.send_external_access_revoked(external.email, external.full_name, project_name)
    else:
        email_service.send_external_access_updated(
            external.email, external.full_name, project_name,
            external.access_level, _format_expiry(external.access_expires_at),
        )
    logger.info(f"External user {external.id} access {'revoked' if revoked else 'updated'} by {updated_by.id}")
    return external


def add_to_department(db: Session, external: ExternalUser, department_id: int, access_level: str, added_by: User) -> ExternalUserDepartment:
    if external.department_id == department_id:
        raise ExternalUserConflict("User already belongs to this department")
    existing = db.query(ExternalUserDepartment).filter(
        ExternalUserDepartment.external_user_id == external.id,
        ExternalUserDepartment.department_id == department_id
    ).first()
    if existing:
        raise ExternalUserConflict("User is already associated with this department")
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise ExternalUserError("Department not found")

    membership = ExternalUserDepartment(
        external_user_id=external.id,
        department_id=department_id,
        access_level=access_level,
        added_by=added_by.id,
    )
    db.add(membership)
    log_activity(db, external, "added_to_department", details={
        "department_id": department_id,
        "department_name": department.name,
        "access_level": access_level,
        "added_by": added_by.id,
    }, commit=False)
    db.commit()
    db.refresh(membership)

    project = db.query(Project).filter(Project.id == department.project_id).first()
    email_service.send_external_added_to_department(
        external.email, external.full_name, department.name,
        project.name if project else "Project", access_level,
    )
    logger.info(f"Added external user {external.email} to department {department.name}")
    return membership


def reset_external_password(db: Session, external: ExternalUser) -> None:
    """New 16-character password; must be changed on login but never expires"""
    user = db.query(User).filter(User.id == external.user_id).first()
    if not user:
        raise ExternalUserError("External user account not found")
    if not user.is_external:
        raise ExternalUserConflict("Only external accounts can be reset here")

    new_password = generate_external_password()
    user.hashed_password = hash_password(new_password)
    user.must_change_password = True
    user.temporary_password_expires_at = None
    external.must_change_password = True
    external.temporary_password_expires_at = None
    log_activity(db, external, "password_reset_by_admin", details={
        "reset_at": datetime.utcnow().isoformat(),
    }, commit=False)
    db.commit()

    email_service.send_external_password_reset(external.email, external.full_name, new_password)
    logger.info(f"Password reset email sent to external user: {external.email}")
