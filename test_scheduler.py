"""
Scheduled jobs run directly, the way APScheduler would invoke them
"""

import asyncio
from datetime import date, datetime, timedelta

from app.models.chat import ChatMessage, ChatRoom, ChatSettings
from app.models.notification import Notification
from app.models.presence import UserPresence
from app.models.task import Task
from app.services.scheduler import TaskScheduler
from conftest import auth_headers


def test_status_lists_jobs_while_running():
    scheduler = TaskScheduler()

    async def run():
        stopped = await scheduler.get_scheduler_status()
        scheduler.start()
        try:
            running = await scheduler.get_scheduler_status()
        finally:
            scheduler.stop()
        return stopped, running

    stopped, running = asyncio.run(run())
    assert stopped["status"] == "stopped"
    assert stopped["jobs"] == []
    assert running["status"] == "running"
    assert {job["id"] for job in running["jobs"]} == {
        "process_scheduled_reports",
        "check_overdue_tasks",
        "cleanup_old_messages",
        "sweep_presence",
    }
    assert scheduler.is_running is False


def test_status_endpoint(client):
    assert client.get("/scheduler/status").json()["status"] == "stopped"


def test_overdue_job(db, member, manager, project):
    db.add(Task(project_id=project.id, title="Late", status="in progress", assignee_user_id=member.id,
                due_date=date.today() - timedelta(days=1)))
    db.commit()

    result = asyncio.run(TaskScheduler().check_overdue_tasks())
    assert result == {"success": True, "sent": 1}
    assert db.query(Notification).count() == 2


def test_overdue_trigger_route(client, db, admin, member, project):
    db.add(Task(project_id=project.id, title="Late", status="todo", assignee_user_id=member.id,
                due_date=date.today() - timedelta(days=5)))
    db.commit()
    assert client.post("/scheduler/trigger/overdue", headers=auth_headers(admin)).json()["sent"] == 1


def test_trigger_routes_require_an_admin(client, member):
    for job in ("reports", "overdue", "cleanup", "presence"):
        assert client.post(f"/scheduler/trigger/{job}").status_code == 401
        assert client.post(f"/scheduler/trigger/{job}", headers=auth_headers(member)).status_code == 403


def test_cleanup_job(db, member, project):
    db.add(ChatSettings(project_id=project.id, message_retention_days=7))
    room = ChatRoom(project_id=project.id, name="Apollo General")
    db.add(room)
    db.flush()
    db.add(ChatMessage(room_id=room.id, user_id=member.id, content="old", created_at=datetime.utcnow() - timedelta(days=8)))
    db.commit()

    assert asyncio.run(TaskScheduler().cleanup_chat_messages()) == {"success": True, "totalDeleted": 1}


def test_reports_job_with_nothing_due(client, admin):
    result = client.post("/scheduler/trigger/reports", headers=auth_headers(admin)).json()
    assert result["sent"] == 0
    assert result["results"] == []


def test_presence_sweep(db, member, manager):
    db.add_all([
        UserPresence(user_id=member.id, status="online", last_seen_at=datetime.utcnow() - timedelta(hours=1)),
        UserPresence(user_id=manager.id, status="busy", last_seen_at=datetime.utcnow()),
    ])
    db.commit()

    assert asyncio.run(TaskScheduler().sweep_presence()) == {"offline": 1}

    db.expire_all()
    statuses = {p.user_id: p.status for p in db.query(UserPresence).all()}
    assert statuses == {member.id: "offline", manager.id: "busy"}
