from datetime import date

from app.models.task import Task
from app.models.department import DepartmentLead
from conftest import auth_headers


def test_project_manager_creates_project_and_becomes_owner(client, manager):
    response = client.post(
        "/projects/",
        json={"name": "  Gemini  ", "start_date": "2024-02-01", "end_date": "2024-06-30"},
        headers=auth_headers(manager),
    )
    assert response.status_code == 201
    project = response.json()
    assert project["name"] == "Gemini"
    assert project["owner_id"] == manager.id

    members = client.get(f"/projects/{project['id']}/members", headers=auth_headers(manager)).json()
    assert [(m["user_id"], m["role"]) for m in members] == [(manager.id, "owner")]


def test_member_cannot_create_project(client, member):
    response = client.post("/projects/", json={"name": "Nope", "start_date": "2024-01-01"}, headers=auth_headers(member))
    assert response.status_code == 403


def test_project_end_date_before_start_is_rejected(client, manager):
    response = client.post(
        "/projects/",
        json={"name": "Backwards", "start_date": "2024-06-01", "end_date": "2024-01-01"},
        headers=auth_headers(manager),
    )
    assert response.status_code == 422


def test_project_listing_is_scoped_to_membership(client, admin, member, outsider, project):
    assert [p["id"] for p in client.get("/projects/", headers=auth_headers(member)).json()] == [project.id]
    assert client.get("/projects/", headers=auth_headers(outsider)).json() == []
    assert len(client.get("/projects/", headers=auth_headers(admin)).json()) == 1
    assert client.get(f"/projects/{project.id}", headers=auth_headers(outsider)).status_code == 403


def test_only_managers_update_projects(client, manager, member, project):
    denied = client.put(f"/projects/{project.id}", json={"name": "Hacked"}, headers=auth_headers(member))
    assert denied.status_code == 403

    response = client.put(f"/projects/{project.id}", json={"end_date": "2023-12-01"}, headers=auth_headers(manager))
    assert response.status_code == 400

    response = client.put(f"/projects/{project.id}", json={"status": "on_hold"}, headers=auth_headers(manager))
    assert response.status_code == 200
    assert response.json()["status"] == "on_hold"


def test_member_management(client, manager, outsider, project):
    headers = auth_headers(manager)
    added = client.post(f"/projects/{project.id}/members", json={"user_id": outsider.id, "role": "Manager"}, headers=headers)
    assert added.status_code == 201
    assert added.json()["role"] == "manager"

    duplicate = client.post(f"/projects/{project.id}/members", json={"user_id": outsider.id}, headers=headers)
    assert duplicate.status_code == 400

    changed = client.put(f"/projects/{project.id}/members/{outsider.id}", json={"role": "viewer"}, headers=headers)
    assert changed.json()["role"] == "viewer"

    owner_removal = client.delete(f"/projects/{project.id}/members/{manager.id}", headers=headers)
    assert owner_removal.status_code == 400

    assert client.delete(f"/projects/{project.id}/members/{outsider.id}", headers=headers).status_code == 204
    assert client.get(f"/projects/{project.id}", headers=auth_headers(outsider)).status_code == 403


def test_project_analytics(client, db, member, project, department):
    db.add_all([
        Task(project_id=project.id, title="A", status="done", assignee_department_id=department.id,
             estimated_cost=100, actual_cost=150, estimate_hours=4, logged_hours=5),
        Task(project_id=project.id, title="B", status="In Progress", assignee_department_id=department.id),
        Task(project_id=project.id, title="C", status="blocked"),
        Task(project_id=project.id, title="D", status="todo", estimated_cost=100),
    ])
    db.commit()

    analytics = client.get(f"/projects/{project.id}/analytics", headers=auth_headers(member)).json()
    assert analytics["total_tasks"] == 4
    assert analytics["completed"] == 1
    assert analytics["in_progress"] == 1
    assert analytics["todo"] == 2
    assert analytics["completion_percentage"] == 25
    assert analytics["department_count"] == 1
    assert analytics["departments"][0]["total_tasks"] == 2
    assert analytics["cost"]["status"] == "under"
    assert analytics["logged_hours"] == 5


def test_departments_are_created_by_project_managers(client, manager, member, project):
    denied = client.post("/departments/", json={"name": "QA", "project_id": project.id}, headers=auth_headers(member))
    assert denied.status_code == 403

    response = client.post("/departments/", json={"name": "QA", "project_id": project.id}, headers=auth_headers(manager))
    assert response.status_code == 201

    listed = client.get(f"/departments/?project_id={project.id}", headers=auth_headers(member)).json()
    assert [d["name"] for d in listed] == ["QA"]


def test_blank_department_name_is_rejected(client, manager, project):
    response = client.post("/departments/", json={"name": "   ", "project_id": project.id}, headers=auth_headers(manager))
    assert response.status_code == 422


def test_department_leads(client, db, manager, member, department):
    headers = auth_headers(manager)
    added = client.post(f"/departments/{department.id}/leads", json={"user_id": member.id}, headers=headers)
    assert added.status_code == 201
    assert added.json()["email"] == member.email

    again = client.post(f"/departments/{department.id}/leads", json={"user_id": member.id}, headers=headers)
    assert again.status_code == 400

    renamed = client.put(f"/departments/{department.id}", json={"name": "Platform"}, headers=auth_headers(member))
    assert renamed.status_code == 200

    assert client.delete(f"/departments/{department.id}/leads/{member.id}", headers=headers).status_code == 204
    assert db.query(DepartmentLead).count() == 0


def test_deleting_department_keeps_its_tasks(client, db, manager, project, department):
    db.add(Task(project_id=project.id, title="Keep me", assignee_department_id=department.id))
    db.commit()

    assert client.delete(f"/departments/{department.id}", headers=auth_headers(manager)).status_code == 204
    db.expire_all()
    task = db.query(Task).filter(Task.title == "Keep me").first()
    assert task is not None
    assert task.assignee_department_id is None


def test_department_analytics_dates(client, db, member, project, department):
    db.add_all([
        Task(project_id=project.id, title="A", status="done", assignee_department_id=department.id,
             start_date=date(2024, 1, 3), due_date=date(2024, 1, 10)),
        Task(project_id=project.id, title="B", assignee_department_id=department.id,
             start_date=date(2024, 1, 5), due_date=date(2024, 2, 1)),
    ])
    db.commit()

    analytics = client.get(f"/departments/{department.id}/analytics", headers=auth_headers(member)).json()
    assert analytics["total_tasks"] == 2
    assert analytics["completion_percentage"] == 50
    assert analytics["earliest_start"] == "2024-01-03"
    assert analytics["latest_due"] == "2024-02-01"
