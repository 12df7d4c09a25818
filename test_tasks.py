from datetime import date, timedelta

from app.models.notification import Notification
from app.models.task import Task
from conftest import auth_headers


def create_task(client, user, project, **fields):
    payload = {"project_id": project.id, "title": "Write docs", **fields}
    return client.post("/tasks/", json=payload, headers=auth_headers(user))


def test_create_task_normalizes_status(client, member, project):
    response = create_task(client, member, project, status="In Progress", priority="HIGH")
    assert response.status_code == 201
    task = response.json()
    assert task["status"] == "in_progress"
    assert task["priority"] == "high"
    assert task["completed_at"] is None


def test_unknown_task_status_is_rejected(client, member, project):
    assert create_task(client, member, project, status="blocked").status_code == 422


def test_task_due_date_before_start_is_rejected(client, member, project):
    response = create_task(client, member, project, start_date="2024-03-10", due_date="2024-03-01")
    assert response.status_code == 422


def test_task_department_must_belong_to_project(client, db, member, manager, project):
    other = client.post("/projects/", json={"name": "Other", "start_date": "2024-01-01"}, headers=auth_headers(manager)).json()
    foreign = client.post("/departments/", json={"name": "Elsewhere", "project_id": other["id"]}, headers=auth_headers(manager)).json()

    response = create_task(client, member, project, assignee_department_id=foreign["id"])
    assert response.status_code == 400


def test_outsider_cannot_create_tasks(client, outsider, project):
    assert create_task(client, outsider, project).status_code == 403


def test_completing_task_stamps_and_notifies_managers(client, db, member, manager, project, sent_emails):
    task = create_task(client, member, project).json()

    response = client.put(f"/tasks/{task['id']}", json={"status": "Completed"}, headers=auth_headers(member))
    assert response.status_code == 200
    done = response.json()
    assert done["status"] == "done"
    assert done["progress_percentage"] == 100
    assert done["completed_at"] is not None

    notices = db.query(Notification).all()
    assert [(n.user_id, n.notification_type) for n in notices] == [(manager.id, "task_completed")]
    assert [email["to"] for email in sent_emails] == [[manager.email]]
    assert sent_emails[0]["subject"].startswith("Task Completed: Write docs")


def test_completer_is_not_notified(client, db, manager, project, sent_emails):
    task = create_task(client, manager, project).json()
    client.put(f"/tasks/{task['id']}", json={"status": "done"}, headers=auth_headers(manager))
    assert db.query(Notification).count() == 0
    assert sent_emails == []


def test_reopening_task_clears_completion(client, member, project):
    task = create_task(client, member, project, status="done").json()
    assert task["completed_at"] is not None

    reopened = client.put(f"/tasks/{task['id']}", json={"status": "todo"}, headers=auth_headers(member)).json()
    assert reopened["completed_at"] is None


def test_task_filters(client, db, member, project, department):
    db.add_all([
        Task(project_id=project.id, title="One", status="Done", assignee_department_id=department.id),
        Task(project_id=project.id, title="Two", status="todo", assignee_user_id=member.id,
             due_date=date.today() + timedelta(days=1)),
        Task(project_id=project.id, title="Three", status="in progress"),
    ])
    db.commit()
    headers = auth_headers(member)

    done = client.get(f"/tasks/?project_id={project.id}&status=completed", headers=headers).json()
    assert [t["title"] for t in done] == ["One"]

    by_department = client.get(f"/tasks/?department_id={department.id}", headers=headers).json()
    assert [t["title"] for t in by_department] == ["One"]

    mine = client.get("/tasks/mine", headers=headers).json()
    assert [t["title"] for t in mine] == ["Two"]

    assert client.get("/tasks/?status=blocked", headers=headers).status_code == 400


def test_blank_title_update_is_rejected(client, member, project):
    task = create_task(client, member, project).json()
    response = client.put(f"/tasks/{task['id']}", json={"title": "  "}, headers=auth_headers(member))
    assert response.status_code == 400


def test_required_task_fields_cannot_be_cleared(client, member, project):
    task = create_task(client, member, project, priority="high", due_date="2024-05-01").json()
    url = f"/tasks/{task['id']}"
    for field in ("priority", "progress_percentage", "logged_hours", "actual_cost", "status"):
        assert client.put(url, json={field: None}, headers=auth_headers(member)).status_code == 422

    cleared = client.put(url, json={"due_date": None}, headers=auth_headers(member))
    assert cleared.status_code == 200
    assert cleared.json()["due_date"] is None
    assert cleared.json()["priority"] == "high"


def test_delete_task(client, db, member, project):
    task = create_task(client, member, project).json()
    assert client.delete(f"/tasks/{task['id']}", headers=auth_headers(member)).status_code == 204
    assert client.get(f"/tasks/{task['id']}", headers=auth_headers(member)).status_code == 404
