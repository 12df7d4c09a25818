"""
HTML email templates
Every outgoing email is wrapped by base_template so all messages share one layout.
"""

from html import escape
from typing import Optional

# Project Planner theme colors
THEME = {
    "primary": "#2563eb",
    "primary_dark": "#1d4ed8",
    "background": "#f4f4f5",
    "card_bg": "#ffffff",
    "quote_bg": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}

APP_NAME = "Project Planner"

ACCESS_LEVEL_LABELS = {
    "view_only": "View Only",
    "upload_edit": "Upload & Edit",
    "edit_download": "Edit & Download",
    "download": "Download",
}


def truncate_message(message: str, max_lines: int = 2, max_length: int = 100) -> str:
    """Collapse the first lines of a chat message into a short preview"""
    preview = " ".join((message or "").split("\n")[:max_lines]).strip()
    if len(preview) > max_length:
        preview = preview[:max_length] + "..."
    return preview


def base_template(
    heading: str,
    body: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    footer_text: Optional[str] = None,
) -> str:
    """Base HTML wrapper for all emails"""
    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
      <div style="text-align: center; margin: 24px 0;">
        <a href="{cta_url}" style="display: inline-block; background: {THEME['primary']}; color: #ffffff; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 500; font-size: 14px;">{cta_label}</a>
      </div>"""

    footer = footer_text or f"This email was sent by {APP_NAME}."

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{heading}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; background-color: {THEME['background']}; margin: 0; padding: 20px;">
  <div style="max-width: 560px; margin: 0 auto; background: {THEME['card_bg']}; border-radius: 8px; overflow: hidden;">
    <div style="background: {THEME['primary']}; padding: 24px; text-align: center;">
      <h1 style="color: #ffffff; margin: 0; font-size: 20px; font-weight: 600;">{heading}</h1>
    </div>
    <div style="padding: 24px; color: {THEME['text_secondary']}; font-size: 14px; line-height: 1.5;">
      {body}{cta_section}
    </div>
    <div style="padding: 16px 24px; text-align: center; color: {THEME['text_muted']}; font-size: 12px; border-top: 1px solid {THEME['border']};">
      {footer}
    </div>
  </div>
</body>
</html>"""


def _quote(inner: str) -> str:
    return (
        f'<div style="background: {THEME["quote_bg"]}; border-left: 4px solid {THEME["primary"]}; '
        f'padding: 12px 16px; margin: 16px 0;">{inner}</div>'
    )


def _credentials(email: str, password: str) -> str:
    return _quote(
        f"<p style=\"margin: 0;\"><strong>Email:</strong> {escape(email)}</p>"
        f"<p style=\"margin: 8px 0 0 0;\"><strong>Temporary password:</strong> "
        f"<code style=\"font-size: 15px;\">{escape(password)}</code></p>"
    )


# ---------------------------------------------------------------------------
# Account emails
# ---------------------------------------------------------------------------

def welcome_template(full_name: str, email: str, temporary_password: str, role: str, login_url: str, expires_minutes: int) -> str:
    body = f"""
      <p>Hi {escape(full_name or email)},</p>
      <p>An account has been created for you on {APP_NAME} with the role <strong>{escape(role)}</strong>.</p>
      {_credentials(email, temporary_password)}
      <p>This temporary password expires in {expires_minutes} minutes. You will be asked to choose a new password when you sign in.</p>
    """
    return base_template(f"Welcome to {APP_NAME}!", body, login_url, "Sign in")


def temporary_password_template(full_name: str, email: str, temporary_password: str, login_url: str, expires_minutes: int) -> str:
    body = f"""
      <p>Hi {escape(full_name or email)},</p>
      <p>An administrator has reset your password. Use the temporary password below to sign in.</p>
      {_credentials(email, temporary_password)}
      <p>It expires in {expires_minutes} minutes and must be changed right after you sign in.</p>
    """
    return base_template("Your Temporary Password", body, login_url, "Sign in")


def admin_password_reset_request_template(user_email: str, user_full_name: Optional[str], admin_url: str) -> str:
    account = _quote(
        f"<p style='margin: 0;'><strong>Name:</strong> {escape(user_full_name or 'Unknown')}</p>"
        f"<p style='margin: 8px 0 0 0;'><strong>Email:</strong> {escape(user_email)}</p>"
    )
    body = f"""
      <p>A password reset was requested for the following account:</p>
      {account}
      <p>Open the admin panel to send the user a temporary password.</p>
    """
    return base_template("Password Reset Request", body, admin_url, "Open admin panel")


# ---------------------------------------------------------------------------
# External user emails
# ---------------------------------------------------------------------------

def external_invitation_template(
    full_name: Optional[str],
    email: str,
    temporary_password: Optional[str],
    project_name: str,
    department_name: str,
    access_level: str,
    access_expires_at: Optional[str],
    portal_url: str,
) -> str:
    credentials = _credentials(email, temporary_password) if temporary_password else (
        "<p>Sign in with your existing account credentials.</p>"
    )
    expiry = f"<p>Your access expires on <strong>{escape(access_expires_at)}</strong>.</p>" if access_expires_at else ""
    body = f"""
      <p>Hi {escape(full_name or email)},</p>
      <p>You have been invited to access documents for <strong>{escape(department_name)}</strong>
      in <strong>{escape(project_name)}</strong> with <strong>{ACCESS_LEVEL_LABELS.get(access_level, access_level)}</strong> access.</p>
      {credentials}
      {expiry}
    """
    return base_template("Document Access Invitation", body, portal_url, "Open document portal")


def external_access_updated_template(full_name: Optional[str], project_name: str, access_level: str, access_expires_at: Optional[str], portal_url: str) -> str:
    expiry = f"<p>Access expires on <strong>{escape(access_expires_at)}</strong>.</p>" if access_expires_at else ""
    body = f"""
      <p>Hi {escape(full_name or 'there')},</p>
      <p>Your document access for <strong>{escape(project_name)}</strong> has been updated.
      Current access level: <strong>{ACCESS_LEVEL_LABELS.get(access_level, access_level)}</strong>.</p>
      {expiry}
    """
    return base_template("Access Updated", body, portal_url, "Open document portal")


def external_access_revoked_template(full_name: Optional[str], project_name: str) -> str:
    body = f"""
      <p>Hi {escape(full_name or 'there')},</p>
      <p>Your document access for <strong>{escape(project_name)}</strong> has been revoked.
      Contact the project team if you believe this is a mistake.</p>
    """
    return base_template("Access Revoked", body)


def external_added_to_department_template(full_name: Optional[str], department_name: str, project_name: str, access_level: str, portal_url: str) -> str:
    body = f"""
      <p>Hi {escape(full_name or 'there')},</p>
      <p>You now have <strong>{ACCESS_LEVEL_LABELS.get(access_level, access_level)}</strong> access to
      documents of <strong>{escape(department_name)}</strong> in <strong>{escape(project_name)}</strong>.</p>
    """
    return base_template("New Department Access", body, portal_url, "Open document portal")


def external_password_reset_template(full_name: Optional[str], email: str, new_password: str, portal_url: str) -> str:
    body = f"""
      <p>Hi {escape(full_name or email)},</p>
      <p>Your document portal password has been reset by an administrator.</p>
      {_credentials(email, new_password)}
      <p>You will be asked to set a new password when you sign in.</p>
    """
    return base_template("Password Reset", body, portal_url, "Open document portal")


# ---------------------------------------------------------------------------
# Activity notification emails
# ---------------------------------------------------------------------------

def _project_footer(project_name: str) -> str:
    return f"This notification is from {escape(project_name)} on {APP_NAME}"


def chat_message_template(room_type: str, sender_name: str, message_preview: str, project_name: str, project_url: str) -> str:
    heading = f"New Message in {project_name}" if room_type == "public" else f"Private Message from {sender_name}"
    preview = _quote(f"<p style='margin: 0;'>{escape(truncate_message(message_preview))}</p>")
    body = f"""
      <p><strong>{escape(sender_name)}</strong> sent a message:</p>
      {preview}
    """
    return base_template(escape(heading), body, project_url, f"View in {APP_NAME}", _project_footer(project_name))


def _task_block(task_name: str, department_name: str, project_name: str) -> str:
    return _quote(
        f"<p style='margin: 0;'><strong>Task:</strong> {escape(task_name)}</p>"
        f"<p style='margin: 4px 0 0 0;'><strong>Department:</strong> {escape(department_name)}</p>"
        f"<p style='margin: 4px 0 0 0;'><strong>Project:</strong> {escape(project_name)}</p>"
    )


def task_overdue_template(task_name: str, department_name: str, project_name: str, is_assignee: bool, project_url: str) -> str:
    role_text = "You are assigned to" if is_assignee else "A task in your project is"
    body = f"""
      <p>{role_text} overdue:</p>
      {_task_block(task_name, department_name, project_name)}
      <p>Please review and update the task status.</p>
    """
    return base_template("Task Overdue", body, project_url, f"View in {APP_NAME}", _project_footer(project_name))


def task_completed_template(task_name: str, department_name: str, project_name: str, completed_by_name: str, project_url: str) -> str:
    body = f"""
      <p>A task has been completed by <strong>{escape(completed_by_name)}</strong>:</p>
      {_task_block(task_name, department_name, project_name)}
    """
    return base_template("Task Completed", body, project_url, f"View in {APP_NAME}", _project_footer(project_name))


def document_access_granted_template(item_type: str, item_name: str, permission: str, project_name: str, granted_by_name: str, project_url: str) -> str:
    item_label = {"document": "file", "folder": "folder", "link": "link"}.get(item_type, item_type)
    body = f"""
      <p><strong>{escape(granted_by_name)}</strong> granted you <strong>{ACCESS_LEVEL_LABELS.get(permission, permission)}</strong>
      access to the {item_label} <strong>{escape(item_name)}</strong>.</p>
    """
    return base_template("Document Access Granted", body, project_url, "Open documents", _project_footer(project_name))


def external_user_activity_template(
    external_user_name: str,
    external_user_email: str,
    action_label: str,
    item_type: str,
    item_name: str,
    department_name: str,
    project_name: str,
    high_risk: bool,
    activity_url: str,
) -> str:
    warning = ""
    if high_risk:
        warning = (
            f"<p style='color: {THEME['danger']};'><strong>High-Risk Action:</strong> "
            "This action may require your attention. Please review the activity log.</p>"
        )
    details = _quote(
        f"<p style='margin: 0;'><strong>User:</strong> {escape(external_user_name)} ({escape(external_user_email)})</p>"
        f"<p style='margin: 4px 0 0 0;'><strong>Action:</strong> {escape(action_label)} {escape(item_type)} &quot;{escape(item_name)}&quot;</p>"
        f"<p style='margin: 4px 0 0 0;'><strong>Department:</strong> {escape(department_name)}</p>"
    )
    body = f"""
      <p>An external user has performed an action on documents in your department:</p>
      {details}
      {warning}
      <p>All external user activities are logged for audit purposes.</p>
    """
    return base_template("External User Activity Alert", body, activity_url, "View Activity Log", _project_footer(project_name))
