from app.models.notification import Notification
from conftest import auth_headers


def test_heartbeat_keeps_busy_status(client, member):
    headers = auth_headers(member)
    assert client.post("/presence/heartbeat", headers=headers).json()["status"] == "online"

    busy = client.put("/presence/status", json={"status": "Busy", "custom_status": "In a meeting"}, headers=headers).json()
    assert busy["status"] == "busy"
    assert busy["custom_status"] == "In a meeting"

    after = client.post("/presence/heartbeat", headers=headers).json()
    assert after["status"] == "busy"
    assert after["custom_status"] == "In a meeting"

    assert client.put("/presence/status", json={"status": "asleep"}, headers=headers).status_code == 422


def test_view_preferences(client, member, project):
    headers = auth_headers(member)
    url = f"/preferences/view?project_id={project.id}"
    assert client.get(url, headers=headers).json()["view_type"] == "list"

    saved = client.put("/preferences/view", json={"project_id": project.id, "view_type": "Kanban"}, headers=headers)
    assert saved.json() == {"project_id": project.id, "department_id": None, "view_type": "kanban"}
    assert client.get(url, headers=headers).json()["view_type"] == "kanban"
    assert client.get("/preferences/view", headers=headers).json()["view_type"] == "list"


def test_notifications(client, db, member, manager):
    db.add_all([
        Notification(user_id=member.id, title="One", message="first", notification_type="task_completed"),
        Notification(user_id=member.id, title="Two", message="second", notification_type="chat_message"),
        Notification(user_id=manager.id, title="Theirs", message="not yours", notification_type="chat_message"),
    ])
    db.commit()
    headers = auth_headers(member)

    listed = client.get("/notifications/", headers=headers).json()
    assert [n["title"] for n in listed] == ["Two", "One"]
    assert client.get("/notifications/count", headers=headers).json() == {"total": 2, "unread": 2}

    read = client.put(f"/notifications/{listed[0]['id']}/read", headers=headers).json()
    assert read["is_read"] is True
    assert [n["title"] for n in client.get("/notifications/?unread_only=true", headers=headers).json()] == ["One"]

    assert client.put("/notifications/read-all", headers=headers).json()["updated_count"] == 1

    theirs = db.query(Notification).filter(Notification.user_id == manager.id).first()
    assert client.delete(f"/notifications/{theirs.id}", headers=headers).status_code == 404
    assert client.delete(f"/notifications/{listed[1]['id']}", headers=headers).status_code == 200
