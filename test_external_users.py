from datetime import datetime, timedelta

from app.models.department import Department
from app.models.external_user import ExternalUser, ExternalUserActivityLog
from app.models.user import User
from app.utils.security import verify_password
from conftest import auth_headers, PASSWORD


def invite(client, user, project, department, email="vendor@example.com", **fields):
    payload = {
        "email": email,
        "fullName": "Vendor Person",
        "departmentId": department.id,
        "projectId": project.id,
        "accessLevel": "upload_edit",
        **fields,
    }
    return client.post("/functions/v1/invite-external-user", json=payload, headers=auth_headers(user))


def test_invite_creates_external_account(client, db, manager, project, department, sent_emails):
    response = invite(client, manager, project, department, email="Vendor@Example.com")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True

    external = db.query(ExternalUser).filter(ExternalUser.id == body["externalUserId"]).first()
    assert external.email == "vendor@example.com"
    assert external.access_level == "upload_edit"
    assert external.must_change_password is True
    assert external.user.is_external is True
    assert external.user.temporary_password_expires_at is not None

    assert [email["to"] for email in sent_emails] == [["vendor@example.com"]]
    assert sent_emails[0]["subject"] == "You've been invited to access documents - Apollo"
    actions = [row.action for row in db.query(ExternalUserActivityLog).all()]
    assert actions == ["invited"]


def test_inviting_twice_is_a_conflict(client, manager, project, department):
    invite(client, manager, project, department)
    response = invite(client, manager, project, department)
    assert response.status_code == 400
    assert response.json() == {"error": "User already has external access to this department"}


def test_existing_external_account_keeps_its_password(client, db, make_external, manager, project, department, sent_emails):
    legal = Department(name="Legal", project_id=project.id)
    db.add(legal)
    db.commit()
    guest, _ = make_external("counsel@example.com", legal)

    response = invite(client, manager, project, department, email=guest.email)
    assert response.status_code == 200
    assert "Temporary password" not in sent_emails[-1]["html"]

    db.expire_all()
    account = db.query(User).filter(User.id == guest.id).first()
    assert verify_password(PASSWORD, account.hashed_password)
    external = db.query(ExternalUser).filter(ExternalUser.id == response.json()["externalUserId"]).first()
    assert external.must_change_password is False


def test_internal_accounts_cannot_be_invited(client, db, admin, department_lead, project, department, sent_emails):
    response = invite(client, department_lead, project, department, email="Admin@Example.com")
    assert response.status_code == 400
    assert response.json() == {"error": "This email belongs to an internal account"}
    assert db.query(ExternalUser).count() == 0
    assert sent_emails == []

    db.expire_all()
    account = db.query(User).filter(User.id == admin.id).first()
    assert verify_password(PASSWORD, account.hashed_password)
    assert account.is_external is False


def test_only_department_managers_invite(client, member, project, department):
    response = invite(client, member, project, department)
    assert response.status_code == 403
    assert "error" in response.json()


def test_department_lead_may_invite(client, department_lead, project, department):
    assert invite(client, department_lead, project, department).status_code == 200


def test_listing_external_users(client, db, manager, member, project, department):
    external_id = invite(client, manager, project, department).json()["externalUserId"]
    legal = Department(name="Legal", project_id=project.id)
    db.add(legal)
    db.commit()

    added = client.post(
        "/functions/v1/add-external-user-to-department",
        json={"externalUserId": external_id, "departmentId": legal.id, "accessLevel": "view_only"},
        headers=auth_headers(manager),
    )
    assert added.json()["success"] is True

    listed = client.get(f"/external-users/?project_id={project.id}", headers=auth_headers(manager)).json()
    assert len(listed) == 1
    departments = listed[0]["departments"]
    assert [(d["department_name"], d["is_primary"]) for d in departments] == [("Engineering", True), ("Legal", False)]

    by_department = client.get(f"/external-users/?department_id={legal.id}", headers=auth_headers(manager)).json()
    assert [e["id"] for e in by_department] == [external_id]

    assert client.get(f"/external-users/?project_id={project.id}", headers=auth_headers(member)).status_code == 403
    assert client.get("/external-users/", headers=auth_headers(member)).status_code == 400


def test_adding_primary_department_again_conflicts(client, manager, project, department):
    external_id = invite(client, manager, project, department).json()["externalUserId"]
    response = client.post(
        "/functions/v1/add-external-user-to-department",
        json={"externalUserId": external_id, "departmentId": department.id},
        headers=auth_headers(manager),
    )
    assert response.status_code == 400


def test_revoking_access_blocks_login(client, db, make_external, manager, department, sent_emails):
    guest, external = make_external("guest@example.com", department)
    assert client.post("/auth/login", json={"email": guest.email, "password": PASSWORD}).status_code == 200

    response = client.post(
        "/functions/v1/update-external-user-access",
        json={"externalUserId": external.id, "isActive": False, "notificationType": "revoked"},
        headers=auth_headers(manager),
    )
    assert response.json()["success"] is True
    assert sent_emails[-1]["subject"] == "Your document access has been revoked - Apollo"

    db.expire_all()
    refreshed = db.query(ExternalUser).filter(ExternalUser.id == external.id).first()
    assert refreshed.is_active is False
    assert refreshed.access_level == "view_only"
    assert client.post("/auth/login", json={"email": guest.email, "password": PASSWORD}).status_code == 403


def test_expired_access_shows_in_my_access(client, make_external, department):
    guest, _ = make_external("late@example.com", department, access_expires_at=datetime.utcnow() - timedelta(days=1))
    mine = client.get("/external-users/me", headers=auth_headers(guest)).json()
    assert len(mine) == 1
    assert mine[0]["is_expired"] is True


def test_activity_log_visibility(client, make_external, manager, outsider, department):
    guest, external = make_external("reader@example.com", department)
    client.post(
        "/functions/v1/update-external-user-access",
        json={"externalUserId": external.id, "accessLevel": "edit_download"},
        headers=auth_headers(manager),
    )

    own = client.get(f"/external-users/{external.id}/activity", headers=auth_headers(guest))
    assert [entry["action"] for entry in own.json()] == ["access_updated"]
    assert client.get(f"/external-users/{external.id}/activity", headers=auth_headers(manager)).status_code == 200
    assert client.get(f"/external-users/{external.id}/activity", headers=auth_headers(outsider)).status_code == 403


def test_reset_external_password(client, db, make_external, manager, member, department, sent_emails):
    guest, external = make_external("forgetful@example.com", department)

    denied = client.post("/functions/v1/reset-external-user-password", json={"externalUserId": external.id}, headers=auth_headers(member))
    assert denied.status_code == 403

    response = client.post("/functions/v1/reset-external-user-password", json={"externalUserId": external.id}, headers=auth_headers(manager))
    assert response.json()["success"] is True
    assert sent_emails[-1]["to"] == ["forgetful@example.com"]

    db.expire_all()
    account = db.query(User).filter(User.id == guest.id).first()
    assert account.must_change_password is True
    assert account.temporary_password_expires_at is None
    assert not verify_password(PASSWORD, account.hashed_password)



def test_reset_refuses_internal_accounts(client, db, admin, department_lead, project, department, sent_emails):
    # access row pointing at an internal account, as left by older data
    external = ExternalUser(
        user_id=admin.id,
        email=admin.email,
        department_id=department.id,
        project_id=project.id,
        access_level="view_only",
    )
    db.add(external)
    db.commit()

    response = client.post("/functions/v1/reset-external-user-password", json={"externalUserId": external.id}, headers=auth_headers(department_lead))
    assert response.status_code == 400
    assert response.json() == {"error": "Only external accounts can be reset here"}
    assert sent_emails == []

    db.expire_all()
    account = db.query(User).filter(User.id == admin.id).first()
    assert verify_password(PASSWORD, account.hashed_password)
    assert account.must_change_password is False
