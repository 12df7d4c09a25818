from datetime import date, datetime, timedelta

from app.models.chat import ChatMessage, ChatRoom, ChatSettings
from app.models.element import Element
from app.models.notification import Notification
from app.models.password_reset import PasswordResetRequest
from app.models.project import Project, ProjectMember
from app.models.task import Task
from app.models.user import User
from app.utils.security import verify_password
from conftest import auth_headers, PASSWORD


def call(client, name, user=None, **payload):
    headers = auth_headers(user) if user else {}
    return client.post(f"/functions/v1/{name}", json=payload, headers=headers)


def test_create_user_sends_welcome_email(client, db, admin, sent_emails):
    response = call(client, "create-user", admin, email="New.Hire@Example.com", fullName="New Hire", role="member")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == "new.hire@example.com"

    account = db.query(User).filter(User.email == "new.hire@example.com").first()
    assert account.must_change_password is True
    assert account.temporary_password_expires_at is not None
    assert [email["subject"] for email in sent_emails] == ["Welcome to Project Planner - Your Account Details"]

    duplicate = call(client, "create-user", admin, email="new.hire@example.com", fullName="Again")
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "A user with this email already exists"}


def test_account_functions_require_admin(client, member, outsider):
    response = call(client, "create-user", member, email="x@example.com", fullName="X")
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}
    assert call(client, "delete-user", member, userId=outsider.id).status_code == 403


def test_delete_user(client, db, admin, member, project):
    assert call(client, "delete-user", admin, userId=admin.id).status_code == 400

    member_id = member.id
    response = call(client, "delete-user", admin, userId=member_id)
    assert response.json()["success"] is True
    assert db.query(User).filter(User.email == "member@example.com").count() == 0
    assert db.query(ProjectMember).filter(ProjectMember.user_id == member_id).count() == 0


def test_send_temporary_password_completes_request(client, db, admin, member, sent_emails):
    reset_request = PasswordResetRequest(user_id=member.id, user_email=member.email, user_full_name=member.full_name)
    db.add(reset_request)
    db.commit()

    response = call(client, "send-temporary-password", admin, userId=member.id, resetRequestId=reset_request.id)
    assert response.json()["success"] is True
    assert sent_emails[-1]["to"] == [member.email]
    assert sent_emails[-1]["subject"] == "Here's your temporary password - please set a new one"

    db.expire_all()
    account = db.query(User).filter(User.id == member.id).first()
    assert account.must_change_password is True
    assert not verify_password(PASSWORD, account.hashed_password)
    completed = db.query(PasswordResetRequest).filter(PasswordResetRequest.id == reset_request.id).first()
    assert completed.status == "completed"
    assert completed.completed_by_admin_id == admin.id


def test_notify_admins_of_password_reset(client, make_user, admin, sent_emails):
    make_user("second.admin@example.com", role="admin")
    make_user("retired.admin@example.com", role="admin", is_active=False)

    response = call(client, "notify-admin-password-reset", userEmail="member@example.com", userFullName="Team Member")
    body = response.json()
    assert body["sent"] == 2
    assert body["total"] == 2
    assert {email["to"][0] for email in sent_emails} == {"admin@example.com", "second.admin@example.com"}
    assert sent_emails[0]["subject"] == "Password reset requested for member@example.com"


def test_notify_admins_without_admins_fails(client):
    response = call(client, "notify-admin-password-reset", userEmail="member@example.com")
    assert response.status_code == 500
    assert response.json() == {"error": "No admin users found"}


def test_duplicate_project(client, db, member, project, department):
    element = Element(project_id=project.id, department_id=department.id, title="Launch pad", priority="high")
    db.add(element)
    db.flush()
    db.add(Task(
        project_id=project.id,
        element_id=element.id,
        title="Ship it",
        status="done",
        assignee_user_id=member.id,
        assignee_department_id=department.id,
        actual_cost=500,
        progress_percentage=100,
    ))
    db.commit()

    response = call(client, "duplicate-project", member, projectId=project.id, newProjectName="  Apollo II ")
    assert response.json()["success"] is True
    copy = db.query(Project).filter(Project.id == response.json()["newProjectId"]).first()
    assert copy.name == "Apollo II"
    assert copy.owner_id == member.id
    assert [d.name for d in copy.departments] == ["Engineering"]

    task = db.query(Task).filter(Task.project_id == copy.id).one()
    assert task.status == "todo"
    assert task.assignee_user_id is None
    assert task.progress_percentage == 0

    copied = db.query(Element).filter(Element.project_id == copy.id).one()
    assert copied.id != element.id
    assert copied.title == "Launch pad"
    assert copied.priority == "high"
    assert copied.department_id == copy.departments[0].id
    assert task.element_id == copied.id


def test_duplicate_project_requires_access(client, outsider, project):
    assert call(client, "duplicate-project", outsider, projectId=project.id, newProjectName="Mine").status_code == 403
    assert call(client, "duplicate-project", outsider, projectId=9999, newProjectName="Mine").status_code == 404


def test_send_email_notification(client, member, sent_emails):
    response = call(
        client,
        "send-email-notification",
        member,
        type="task_completed",
        data={
            "to": ["lead@example.com"],
            "task_name": "Write docs",
            "completed_by_name": "Team Member",
            "project_name": "Apollo",
        },
    )
    assert response.json() == {"success": True, "id": "email-1"}
    assert sent_emails[0]["subject"] == "Task Completed: Write docs"


def test_send_email_notification_validates_payload(client, member, sent_emails):
    no_recipient = call(client, "send-email-notification", member, type="task_completed", data={"task_name": "x"})
    assert no_recipient.status_code == 400

    missing_field = call(client, "send-email-notification", member, type="task_overdue", data={"to": "a@example.com"})
    assert missing_field.status_code == 400
    assert "task_name" in missing_field.json()["error"]

    assert call(client, "send-email-notification", member, type="fax", data={"to": "a@example.com"}).status_code == 422
    assert sent_emails == []


def test_check_overdue_tasks_notifies_once_per_day(client, db, admin, manager, member, project, sent_emails):
    db.add_all([
        Task(project_id=project.id, title="Late", status="todo", assignee_user_id=member.id,
             due_date=date.today() - timedelta(days=2)),
        Task(project_id=project.id, title="Finished", status="done", assignee_user_id=member.id,
             due_date=date.today() - timedelta(days=2)),
        Task(project_id=project.id, title="Unassigned", status="todo", due_date=date.today() - timedelta(days=2)),
    ])
    db.commit()

    assert call(client, "check-overdue-tasks", member).status_code == 403

    response = call(client, "check-overdue-tasks", admin)
    assert response.json() == {"success": True, "sent": 1}
    notices = db.query(Notification).filter(Notification.notification_type == "task_overdue").all()
    assert {n.user_id for n in notices} == {manager.id, member.id}
    assert all(email["subject"].startswith("Task Overdue: Late") for email in sent_emails)

    assert call(client, "check-overdue-tasks", admin).json()["sent"] == 0


def test_cleanup_old_messages(client, db, admin, member, project):
    db.add(ChatSettings(project_id=project.id, message_retention_days=30))
    room = ChatRoom(project_id=project.id, name="Apollo General", room_type="public")
    db.add(room)
    db.flush()
    old = ChatMessage(room_id=room.id, user_id=member.id, content="ancient", created_at=datetime.utcnow() - timedelta(days=45))
    db.add(old)
    db.flush()
    db.add_all([
        ChatMessage(room_id=room.id, user_id=member.id, content="reply", parent_message_id=old.id),
        ChatMessage(room_id=room.id, user_id=member.id, content="recent"),
    ])
    db.commit()

    response = call(client, "cleanup-old-messages", admin)
    assert response.json() == {"success": True, "totalDeleted": 1}

    db.expire_all()
    remaining = db.query(ChatMessage).order_by(ChatMessage.id).all()
    assert [m.content for m in remaining] == ["reply", "recent"]
    assert remaining[0].parent_message_id is None
