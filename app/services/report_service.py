"""
Project report aggregation, rendering and scheduling
"""

import logging
from collections import defaultdict
from datetime import datetime, date, timedelta, timezone
from html import escape
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.models.user import User
from app.models.project import Project
from app.models.department import Department
from app.models.task import Task
from app.models.report import ProjectReportSettings, ProjectReportRecipient, ReportFrequency
from app.services import email_service
from app.services.email_templates import THEME, base_template
from app.utils.task_status import DONE, IN_PROGRESS, TODO, normalize_task_status

logger = logging.getLogger(__name__)

HEALTH_LABELS = {
    "on_track": ("On Track", THEME["success"]),
    "needs_attention": ("Needs Attention", THEME["warning"]),
    "at_risk": ("At Risk", THEME["danger"]),
}


class ReportError(Exception):
    pass


def report_zone(name: Optional[str] = None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.REPORT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {settings.REPORT_TIMEZONE}")
        return ZoneInfo(settings.REPORT_TIMEZONE)


def _as_utc(value: datetime) -> datetime:
    # Stored timestamps are naive UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _local_date(value: Optional[datetime], zone: ZoneInfo) -> Optional[date]:
    if value is None:
        return None
    return _as_utc(value).astimezone(zone).date()


def health_status(total: int, overdue: int) -> str:
    """at_risk above 30% overdue or more than 10 overdue; needs_attention above 10% or more than 5"""
    overdue_rate = overdue / total if total > 0 else 0
    if overdue_rate > 0.3 or overdue > 10:
        return "at_risk"
    if overdue_rate > 0.1 or overdue > 5:
        return "needs_attention"
    return "on_track"


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0


def default_settings(project_id: int) -> ProjectReportSettings:
    return ProjectReportSettings(
        project_id=project_id,
        enabled=False,
        frequency=ReportFrequency.DAILY.value,
        send_time="18:00:00",
        timezone=settings.REPORT_TIMEZONE,
        include_department_summary=True,
        include_user_activity=True,
        include_smart_insights=True,
    )


def get_settings(db: Session, project_id: int) -> ProjectReportSettings:
    row = db.query(ProjectReportSettings).filter(ProjectReportSettings.project_id == project_id).first()
    return row or default_settings(project_id)


def build_report_data(db: Session, project: Project, now: Optional[datetime] = None, tz_name: Optional[str] = None) -> Dict[str, Any]:
    """Aggregate the project's tasks into the report payload"""
    zone = report_zone(tz_name)
    now_utc = _as_utc(now) if now else datetime.now(timezone.utc)
    local_now = now_utc.astimezone(zone)
    today = local_now.date()
    week_ago = now_utc - timedelta(days=7)
    next_week = today + timedelta(days=7)

    tasks = db.query(Task).filter(Task.project_id == project.id).all()
    departments = db.query(Department).filter(Department.project_id == project.id).order_by(Department.name).all()

    def status_of(task):
        return normalize_task_status(task.status)

    def is_overdue(task):
        return status_of(task) != DONE and task.due_date is not None and task.due_date < today

    total = len(tasks)
    completed = sum(1 for t in tasks if status_of(t) == DONE)
    in_progress = sum(1 for t in tasks if status_of(t) == IN_PROGRESS)
    todo = sum(1 for t in tasks if status_of(t) == TODO)
    overdue = sum(1 for t in tasks if is_overdue(t))
    completed_today = sum(1 for t in tasks if _local_date(t.completed_at, zone) == today)
    created_today = sum(1 for t in tasks if _local_date(t.created_at, zone) == today)
    updated_today = sum(1 for t in tasks if _local_date(t.updated_at, zone) == today)

    department_summaries = []
    for dept in departments:
        dept_tasks = [t for t in tasks if t.assignee_department_id == dept.id]
        dept_completed = sum(1 for t in dept_tasks if status_of(t) == DONE)
        department_summaries.append({
            "id": dept.id,
            "name": dept.name,
            "total_tasks": len(dept_tasks),
            "completed": dept_completed,
            "completed_today": sum(1 for t in dept_tasks if _local_date(t.completed_at, zone) == today),
            "in_progress": sum(1 for t in dept_tasks if status_of(t) == IN_PROGRESS),
            "overdue": sum(1 for t in dept_tasks if is_overdue(t)),
            "completion_percentage": _percent(dept_completed, len(dept_tasks)),
        })

    # Activity of assignees whose tasks changed today
    activity = defaultdict(lambda: {"updated": 0, "completed": 0})
    for task in tasks:
        if task.assignee_user_id and _local_date(task.updated_at, zone) == today:
            activity[task.assignee_user_id]["updated"] += 1
            if _local_date(task.completed_at, zone) == today:
                activity[task.assignee_user_id]["completed"] += 1
    users = {}
    if activity:
        users = {u.id: u for u in db.query(User).filter(User.id.in_(list(activity))).all()}
    user_activity = sorted(
        (
            {
                "user_id": user_id,
                "user_name": users[user_id].display_name if user_id in users else "Unknown",
                "tasks_updated": counts["updated"],
                "tasks_completed": counts["completed"],
            }
            for user_id, counts in activity.items()
        ),
        key=lambda item: item["tasks_updated"],
        reverse=True,
    )[:10]

    ranked = sorted(department_summaries, key=lambda d: d["completion_percentage"], reverse=True)
    recently_completed = sum(1 for t in tasks if t.completed_at and _as_utc(t.completed_at) > week_ago)
    if recently_completed >= 5:
        trend = "improving"
    elif overdue > 5 and recently_completed < 2:
        trend = "slowing"
    else:
        trend = "stable"

    insights = {
        "top_department": ranked[0]["name"] if ranked else None,
        "falling_behind_departments": [
            d["name"] for d in ranked if d["completion_percentage"] < 30 and d["overdue"] > 0
        ],
        "most_active_users": [u["user_name"] for u in user_activity[:3]],
        "stale_tasks": sum(
            1 for t in tasks
            if status_of(t) != DONE and t.updated_at is not None and _as_utc(t.updated_at) < week_ago
        ),
        "upcoming_deadlines": sum(
            1 for t in tasks
            if status_of(t) != DONE and t.due_date is not None and today < t.due_date <= next_week
        ),
        "completion_trend": trend,
    }

    return {
        "project": {"id": project.id, "name": project.name},
        "report_date": local_now.strftime("%B %d, %Y"),
        "summary": {
            "total_tasks": total,
            "completed_tasks": completed,
            "in_progress_tasks": in_progress,
            "todo_tasks": todo,
            "overdue_tasks": overdue,
            "tasks_completed_today": completed_today,
            "tasks_created_today": created_today,
            "tasks_updated_today": updated_today,
            "overall_completion": _percent(completed, total),
            "health_status": health_status(total, overdue),
        },
        "departments": department_summaries,
        "user_activity": user_activity,
        "insights": insights,
    }


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _stat_cell(label: str, value: Any, color: str) -> str:
    return (
        f'<td style="padding: 12px; text-align: center; background: {THEME["quote_bg"]}; border-radius: 6px;">'
        f'<div style="font-size: 22px; font-weight: 700; color: {color};">{value}</div>'
        f'<div style="font-size: 12px; color: {THEME["text_muted"]};">{label}</div></td>'
    )


def render_report_html(data: Dict[str, Any], report_settings: ProjectReportSettings, is_test: bool = False) -> str:
    """HTML email body; optional sections follow the include_* flags"""
    summary = data["summary"]
    health_label, health_color = HEALTH_LABELS[summary["health_status"]]
    project_name = escape(data["project"]["name"])

    sections = [f"""
      <p style="margin: 0 0 4px 0; color: {THEME['text_muted']};">{escape(data['report_date'])}</p>
      <p style="margin: 0 0 16px 0;">Project health:
        <strong style="color: {health_color};">{health_label}</strong>
        &middot; {summary['overall_completion']}% complete</p>
      <table width="100%" cellpadding="0" cellspacing="8"><tr>
        {_stat_cell('Total', summary['total_tasks'], THEME['text_primary'])}
        {_stat_cell('Completed', summary['completed_tasks'], THEME['success'])}
        {_stat_cell('In Progress', summary['in_progress_tasks'], THEME['primary'])}
        {_stat_cell('Overdue', summary['overdue_tasks'], THEME['danger'])}
      </tr></table>
      <p>Today: {summary['tasks_completed_today']} completed, {summary['tasks_created_today']} created,
      {summary['tasks_updated_today']} updated.</p>"""]

    if report_settings.include_department_summary and data["departments"]:
        rows = "".join(
            f"<tr><td style='padding: 6px 0;'>{escape(d['name'])}</td>"
            f"<td style='text-align: right;'>{d['completed']}/{d['total_tasks']}</td>"
            f"<td style='text-align: right;'>{d['completion_percentage']}%</td>"
            f"<td style='text-align: right; color: {THEME['danger'] if d['overdue'] else THEME['text_muted']};'>{d['overdue']} overdue</td></tr>"
            for d in data["departments"]
        )
        sections.append(f"""
      <h3 style="color: {THEME['text_primary']};">Departments</h3>
      <table width="100%" cellpadding="0" cellspacing="0" style="font-size: 13px;">{rows}</table>""")

    if report_settings.include_user_activity and data["user_activity"]:
        rows = "".join(
            f"<li>{escape(u['user_name'])}: {u['tasks_updated']} updated, {u['tasks_completed']} completed</li>"
            for u in data["user_activity"]
        )
        sections.append(f"""
      <h3 style="color: {THEME['text_primary']};">Team Activity Today</h3>
      <ul style="padding-left: 18px;">{rows}</ul>""")

    if report_settings.include_smart_insights:
        insights = data["insights"]
        items = []
        if insights["top_department"]:
            items.append(f"Top department: <strong>{escape(insights['top_department'])}</strong>")
        if insights["falling_behind_departments"]:
            names = ", ".join(escape(n) for n in insights["falling_behind_departments"])
            items.append(f"Falling behind: {names}")
        items.append(f"{insights['stale_tasks']} tasks not updated in 7 days")
        items.append(f"{insights['upcoming_deadlines']} deadlines in the next 7 days")
        items.append(f"Completion trend: {insights['completion_trend']}")
        sections.append(f"""
      <h3 style="color: {THEME['text_primary']};">Insights</h3>
      <ul style="padding-left: 18px;">{''.join(f'<li>{i}</li>' for i in items)}</ul>""")

    heading = f"{'[TEST] ' if is_test else ''}{project_name} - Project Report"
    return base_template(
        heading,
        "".join(sections),
        email_service.project_url(data["project"]["id"]),
        "Open project",
        f"You receive this report as a recipient of {project_name}.",
    )


# ---------------------------------------------------------------------------
# Sending and scheduling
# ---------------------------------------------------------------------------

def send_project_report(db: Session, project_id: int, is_test: bool = False) -> Dict[str, Any]:
    """Send the report to every active recipient; one failed recipient does not stop the rest"""
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise ReportError("Project not found")

    recipients = db.query(ProjectReportRecipient).filter(
        ProjectReportRecipient.project_id == project_id,
        ProjectReportRecipient.is_active == True
    ).all()
    if not recipients:
        raise ReportError("No active recipients")

    report_settings = get_settings(db, project_id)
    data = build_report_data(db, project, tz_name=report_settings.timezone)
    html = render_report_html(data, report_settings, is_test)
    frequency = (report_settings.frequency or "daily").capitalize()
    subject = f"{'[TEST] ' if is_test else ''}{project.name} - {frequency} Report"

    sent = 0
    for recipient in recipients:
        try:
            email_service.send_email(recipient.email, subject, html, from_address=settings.REPORT_FROM_ADDRESS)
            sent += 1
        except Exception as e:
            logger.error(f"Report for project {project_id} not sent to {recipient.email}: {e}")

    row = db.query(ProjectReportSettings).filter(ProjectReportSettings.project_id == project_id).first()
    if row is not None:
        row.last_sent_at = datetime.utcnow()
        db.commit()

    logger.info(f"Report for project {project_id}: sent {sent}/{len(recipients)}")
    return {"success": True, "sentTo": sent, "total": len(recipients)}


def is_report_due(report_settings: ProjectReportSettings, now: Optional[datetime] = None) -> bool:
    """
    True when the current hour in the report's timezone is the send hour and
    the frequency matches today (daily, Mondays for weekly, the 1st for monthly).
    """
    if not report_settings.enabled:
        return False
    now_utc = _as_utc(now) if now else datetime.now(timezone.utc)
    local_now = now_utc.astimezone(report_zone(report_settings.timezone))

    try:
        send_hour = int((report_settings.send_time or "").split(":")[0])
    except ValueError:
        logger.warning(f"Invalid send_time {report_settings.send_time!r} for project {report_settings.project_id}")
        return False
    if send_hour != local_now.hour:
        return False

    frequency = report_settings.frequency or ReportFrequency.DAILY.value
    if frequency == ReportFrequency.WEEKLY.value and local_now.weekday() != 0:
        return False
    if frequency == ReportFrequency.MONTHLY.value and local_now.day != 1:
        return False

    if report_settings.last_sent_at and now_utc - _as_utc(report_settings.last_sent_at) < timedelta(hours=1):
        return False
    return True


def process_scheduled_reports(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    candidates = db.query(ProjectReportSettings).filter(ProjectReportSettings.enabled == True).all()
    due = [s for s in candidates if is_report_due(s, now)]
    if not due:
        logger.info("No reports scheduled for this hour")
        return {"message": "No reports scheduled for this hour", "sent": 0, "results": []}

    results: List[Dict[str, Any]] = []
    for report_settings in due:
        try:
            result = send_project_report(db, report_settings.project_id)
            results.append({"projectId": report_settings.project_id, "success": True, "result": result})
        except Exception as e:
            logger.error(f"Scheduled report for project {report_settings.project_id} failed: {e}")
            db.rollback()
            results.append({"projectId": report_settings.project_id, "success": False, "error": str(e)})

    sent = sum(1 for r in results if r["success"])
    logger.info(f"Sent {sent}/{len(results)} reports successfully")
    return {"message": f"Processed {len(results)} scheduled reports", "sent": sent, "results": results}
