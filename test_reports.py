from datetime import date, datetime, timedelta

from app.models.report import ProjectReportSettings, ProjectReportRecipient
from app.models.task import Task
from app.services import report_service
from conftest import auth_headers


def add_recipient(client, user, project, email, **fields):
    return client.post(
        f"/reports/projects/{project.id}/recipients",
        json={"email": email, **fields},
        headers=auth_headers(user),
    )


def test_settings_default_until_saved(client, member, manager, project):
    defaults = client.get(f"/reports/projects/{project.id}/settings", headers=auth_headers(member)).json()
    assert defaults["enabled"] is False
    assert defaults["frequency"] == "daily"
    assert defaults["send_time"] == "18:00:00"
    assert defaults["timezone"] == "Africa/Nairobi"

    assert client.put(f"/reports/projects/{project.id}/settings", json={"enabled": True}, headers=auth_headers(member)).status_code == 403

    saved = client.put(
        f"/reports/projects/{project.id}/settings",
        json={"enabled": True, "send_time": "07:30", "frequency": "weekly"},
        headers=auth_headers(manager),
    ).json()
    assert saved["enabled"] is True
    assert saved["send_time"] == "07:30:00"
    assert saved["frequency"] == "weekly"


def test_invalid_settings_are_rejected(client, manager, project):
    url = f"/reports/projects/{project.id}/settings"
    assert client.put(url, json={"timezone": "Mars/Olympus"}, headers=auth_headers(manager)).status_code == 400
    assert client.put(url, json={"send_time": "25:00"}, headers=auth_headers(manager)).status_code == 422
    assert client.put(url, json={"frequency": "hourly"}, headers=auth_headers(manager)).status_code == 422


def test_recipients(client, db, manager, member, project):
    created = add_recipient(client, manager, project, "Board@Example.com", name="Board")
    assert created.status_code == 201
    assert created.json()["email"] == "board@example.com"

    duplicate = add_recipient(client, manager, project, "board@example.com")
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "This email is already a report recipient"
    assert add_recipient(client, member, project, "someone@example.com").status_code == 403

    recipient_id = created.json()["id"]
    paused = client.put(f"/reports/recipients/{recipient_id}", json={"is_active": False}, headers=auth_headers(manager))
    assert paused.json()["is_active"] is False

    listed = client.get(f"/reports/projects/{project.id}/recipients", headers=auth_headers(member)).json()
    assert [r["email"] for r in listed] == ["board@example.com"]

    assert client.delete(f"/reports/recipients/{recipient_id}", headers=auth_headers(manager)).status_code == 204
    assert db.query(ProjectReportRecipient).count() == 0


def test_report_data(db, member, project, department):
    db.add_all([
        Task(project_id=project.id, title="Done", status="done", assignee_department_id=department.id,
             assignee_user_id=member.id, completed_at=datetime.utcnow()),
        Task(project_id=project.id, title="Late", status="todo", due_date=date.today() - timedelta(days=3)),
        Task(project_id=project.id, title="Going", status="in_progress"),
    ])
    db.commit()

    data = report_service.build_report_data(db, project)
    summary = data["summary"]
    assert summary["total_tasks"] == 3
    assert summary["completed_tasks"] == 1
    assert summary["in_progress_tasks"] == 1
    assert summary["overdue_tasks"] == 1
    assert summary["overall_completion"] == 33
    assert summary["health_status"] == "at_risk"

    assert data["departments"][0]["name"] == "Engineering"
    assert data["departments"][0]["completion_percentage"] == 100
    assert data["insights"]["top_department"] == "Engineering"
    assert data["user_activity"][0]["user_name"] == "Team Member"


def test_preview(client, member, outsider, project):
    preview = client.get(f"/reports/projects/{project.id}/preview", headers=auth_headers(member))
    assert preview.status_code == 200
    assert preview.json()["project"]["name"] == "Apollo"
    assert preview.json()["summary"]["total_tasks"] == 0
    assert client.get(f"/reports/projects/{project.id}/preview", headers=auth_headers(outsider)).status_code == 403


def test_send_test_report(client, db, manager, member, project, sent_emails):
    response = client.post("/functions/v1/send-project-report", json={"projectId": project.id, "isTest": True}, headers=auth_headers(manager))
    assert response.status_code == 500
    assert response.json() == {"error": "No active recipients"}

    add_recipient(client, manager, project, "board@example.com")
    add_recipient(client, manager, project, "cfo@example.com")
    response = client.post("/functions/v1/send-project-report", json={"projectId": project.id, "isTest": True}, headers=auth_headers(manager))
    assert response.json() == {"success": True, "sentTo": 2, "total": 2}
    assert {email["subject"] for email in sent_emails} == {"[TEST] Apollo - Daily Report"}

    denied = client.post("/functions/v1/send-project-report", json={"projectId": project.id}, headers=auth_headers(member))
    assert denied.status_code == 403


def scheduled(**fields):
    values = {"project_id": 1, "enabled": True, "frequency": "daily", "send_time": "18:00:00", "timezone": "Africa/Nairobi"}
    values.update(fields)
    return ProjectReportSettings(**values)


# Monday 4 March 2024, 18:00 in Nairobi (UTC+3)
SEND_HOUR = datetime(2024, 3, 4, 15, 0)


def test_process_scheduled_reports(db, manager, project, sent_emails):
    db.add(scheduled(project_id=project.id, created_by=manager.id))
    db.add(ProjectReportRecipient(project_id=project.id, email="board@example.com"))
    db.commit()

    idle = report_service.process_scheduled_reports(db, SEND_HOUR + timedelta(hours=2))
    assert idle["sent"] == 0
    assert sent_emails == []

    result = report_service.process_scheduled_reports(db, SEND_HOUR)
    assert result["sent"] == 1
    assert result["results"][0]["projectId"] == project.id
    assert [email["to"] for email in sent_emails] == [["board@example.com"]]
    assert sent_emails[0]["subject"] == "Apollo - Daily Report"


def test_upcoming_deadlines_include_the_seventh_day(db, project):
    db.add_all([
        Task(project_id=project.id, title="Due today", status="todo", due_date=date(2024, 6, 3)),
        Task(project_id=project.id, title="Due in a week", status="todo", due_date=date(2024, 6, 10)),
        Task(project_id=project.id, title="Due in eight days", status="todo", due_date=date(2024, 6, 11)),
        Task(project_id=project.id, title="Finished early", status="done", due_date=date(2024, 6, 5)),
    ])
    db.commit()

    # 12:00 on Monday 3 June in Nairobi
    data = report_service.build_report_data(db, project, now=datetime(2024, 6, 3, 9, 0), tz_name="Africa/Nairobi")
    assert data["insights"]["upcoming_deadlines"] == 1
