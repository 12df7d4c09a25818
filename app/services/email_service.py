"""
Email service using Resend
"""

import logging
from typing import List, Optional, Union

import resend

from app.config.settings import settings
from app.services import email_templates

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(Exception):
    pass


def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an HTML email through Resend

    Raises EmailNotConfiguredError when RESEND_API_KEY is missing and re-raises
    any delivery error so callers decide whether the failure is fatal.
    """
    recipients = [to] if isinstance(to, str) else list(to)

    if not settings.RESEND_API_KEY:
        logger.error("No email service configured - RESEND_API_KEY missing")
        raise EmailNotConfiguredError("Email service not configured")

    resend.api_key = settings.RESEND_API_KEY
    try:
        logger.info(f"Sending email via Resend to: {recipients}")
        response = resend.Emails.send({
            "from": from_address or settings.EMAIL_FROM_ADDRESS,
            "to": recipients,
            "subject": subject,
            "html": html,
        })
        logger.info(f"Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"Email send error to {recipients}: {e}")
        raise


def send_email_safely(to: Union[str, List[str]], subject: str, html: str, from_address: Optional[str] = None) -> bool:
    """Best-effort variant used for notifications; failures are logged and reported as False"""
    try:
        send_email(to, subject, html, from_address)
        return True
    except Exception as e:
        logger.warning(f"Notification email to {to} not sent: {e}")
        return False


def login_url() -> str:
    return f"{settings.APP_BASE_URL}/auth"


def project_url(project_id: int) -> str:
    return f"{settings.APP_BASE_URL}/projects/{project_id}"


# ---------------------------------------------------------------------------
# Account emails
# ---------------------------------------------------------------------------

def send_welcome_email(to: str, full_name: str, temporary_password: str, role: str) -> dict:
    html = email_templates.welcome_template(
        full_name, to, temporary_password, role, login_url(), settings.TEMPORARY_PASSWORD_MINUTES
    )
    return send_email(to, "Welcome to Project Planner - Your Account Details", html)


def send_temporary_password_email(to: str, full_name: str, temporary_password: str) -> dict:
    html = email_templates.temporary_password_template(
        full_name, to, temporary_password, login_url(), settings.TEMPORARY_PASSWORD_MINUTES
    )
    return send_email(to, "Here's your temporary password - please set a new one", html)


def send_admin_password_reset_notice(to: str, user_email: str, user_full_name: Optional[str]) -> dict:
    html = email_templates.admin_password_reset_request_template(
        user_email, user_full_name, f"{settings.APP_BASE_URL}/admin"
    )
    return send_email(to, f"Password reset requested for {user_email}", html)


# ---------------------------------------------------------------------------
# External user emails
# ---------------------------------------------------------------------------

def send_external_invitation(
    to: str,
    full_name: Optional[str],
    temporary_password: Optional[str],
    project_name: str,
    department_name: str,
    access_level: str,
    access_expires_at: Optional[str],
) -> dict:
    html = email_templates.external_invitation_template(
        full_name, to, temporary_password, project_name, department_name,
        access_level, access_expires_at, settings.EXTERNAL_PORTAL_URL,
    )
    return send_email(to, f"You've been invited to access documents - {project_name}", html)


def send_external_access_updated(to: str, full_name: Optional[str], project_name: str, access_level: str, access_expires_at: Optional[str]) -> dict:
    html = email_templates.external_access_updated_template(
        full_name, project_name, access_level, access_expires_at, settings.EXTERNAL_PORTAL_URL
    )
    return send_email(to, f"Your document access has been updated - {project_name}", html)


def send_external_access_revoked(to: str, full_name: Optional[str], project_name: str) -> dict:
    html = email_templates.external_access_revoked_template(full_name, project_name)
    return send_email(to, f"Your document access has been revoked - {project_name}", html)


def send_external_added_to_department(to: str, full_name: Optional[str], department_name: str, project_name: str, access_level: str) -> dict:
    html = email_templates.external_added_to_department_template(
        full_name, department_name, project_name, access_level, settings.EXTERNAL_PORTAL_URL
    )
    return send_email(to, f"You've been added to {department_name}", html)


def send_external_password_reset(to: str, full_name: Optional[str], new_password: str) -> dict:
    html = email_templates.external_password_reset_template(
        full_name, to, new_password, settings.EXTERNAL_PORTAL_URL
    )
    return send_email(to, "Your password has been reset - Document Portal", html)
