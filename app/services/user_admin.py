"""
Account administration shared by the function endpoints
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.user import User, AppRole
from app.models.project import ProjectMember
from app.models.department import DepartmentLead
from app.models.chat import ChatParticipant
from app.models.presence import UserPresence, UserViewPreference
from app.models.password_reset import PasswordResetRequest, ResetRequestStatus
from app.services import email_service
from app.utils.security import hash_password, generate_temporary_password, temporary_password_expiry

logger = logging.getLogger(__name__)


class AccountError(Exception):
    """Raised for requests that cannot be honoured; the message is returned to the caller"""


def create_user(db: Session, email: str, full_name: str, role: str, department: Optional[str] = None) -> Tuple[User, bool]:
    """
    Create an account with a temporary password and send the welcome email.

    Returns the user and whether the email went out. The account is kept
    even if the email fails so the admin can resend a temporary password.
    """
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise AccountError("A user with this email already exists")

    temporary_password = generate_temporary_password()
    user = User(
        email=email,
        full_name=full_name.strip(),
        role=role,
        department=department,
        hashed_password=hash_password(temporary_password),
        must_change_password=True,
        temporary_password_expires_at=temporary_password_expiry(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User created: {user.email} ({user.role})")

    try:
        email_service.send_welcome_email(user.email, user.full_name, temporary_password, user.role)
        return user, True
    except Exception as e:
        logger.error(f"Welcome email to {user.email} failed: {e}")
        return user, False


def delete_user(db: Session, user_id: int, acting_admin: User) -> User:
    if user_id == acting_admin.id:
        raise AccountError("You cannot delete your own account")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise AccountError("User not found")

    side_tables = (
        ("project memberships", ProjectMember, ProjectMember.user_id),
        ("department leads", DepartmentLead, DepartmentLead.user_id),
        ("chat participation", ChatParticipant, ChatParticipant.user_id),
        ("presence", UserPresence, UserPresence.user_id),
        ("view preferences", UserViewPreference, UserViewPreference.user_id),
    )
    for label, model, column in side_tables:
        try:
            db.query(model).filter(column == user_id).delete(synchronize_session=False)
            db.commit()
        except Exception as e:
            logger.error(f"Error removing {label} of user {user_id}: {e}")
            db.rollback()

    db.delete(user)
    db.commit()
    logger.info(f"User {user_id} deleted by admin {acting_admin.id}")
    return user


def send_temporary_password(db: Session, user_id: int, admin: User, reset_request_id: Optional[int] = None) -> User:
    """Replace the user's password with a fresh temporary one and email it"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise AccountError("User not found")

    temporary_password = generate_temporary_password()
    user.hashed_password = hash_password(temporary_password)
    user.must_change_password = True
    user.temporary_password_expires_at = temporary_password_expiry()

    if reset_request_id is not None:
        reset_request = db.query(PasswordResetRequest).filter(PasswordResetRequest.id == reset_request_id).first()
        if reset_request:
            reset_request.status = ResetRequestStatus.COMPLETED.value
            reset_request.completed_at = datetime.utcnow()
            reset_request.completed_by_admin_id = admin.id
    db.commit()
    db.refresh(user)

    email_service.send_temporary_password_email(user.email, user.full_name or user.email, temporary_password)
    logger.info(f"Temporary password sent to {user.email}")
    return user


def notify_admins_of_reset(db: Session, user_email: str, user_full_name: Optional[str]) -> Dict[str, int]:
    """Email every active admin about a password reset request"""
    admins = db.query(User).filter(
        User.role == AppRole.ADMIN.value,
        User.is_active == True
    ).all()
    admins = [admin for admin in admins if admin.email]
    if not admins:
        raise AccountError("No admin users found")

    sent = 0
    for admin in admins:
        try:
            email_service.send_admin_password_reset_notice(admin.email, user_email, user_full_name)
            sent += 1
        except Exception as e:
            logger.error(f"Reset notice to admin {admin.email} failed: {e}")
    logger.info(f"Password reset notice for {user_email} sent to {sent}/{len(admins)} admins")
    return {"sent": sent, "total": len(admins)}
