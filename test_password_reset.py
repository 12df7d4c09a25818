from app.models.password_reset import PasswordResetRequest
from app.routers.password_reset import REQUEST_RECEIVED
from conftest import auth_headers


def request_reset(client, email):
    return client.post("/password-reset-requests/", json={"email": email})


def test_request_is_recorded_once_and_admins_told(client, db, admin, member, sent_emails):
    first = request_reset(client, "Member@Example.com")
    assert first.json() == {"success": True, "message": REQUEST_RECEIVED}
    request_reset(client, "member@example.com")

    pending = db.query(PasswordResetRequest).all()
    assert len(pending) == 1
    assert pending[0].user_id == member.id
    assert pending[0].status == "pending"
    assert [email["to"] for email in sent_emails] == [[admin.email], [admin.email]]


def test_unknown_email_gets_the_same_answer(client, db, admin, sent_emails):
    response = request_reset(client, "nobody@example.com")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": REQUEST_RECEIVED}
    assert db.query(PasswordResetRequest).count() == 0
    assert sent_emails == []


def test_request_without_admins_still_succeeds(client, db, member):
    assert request_reset(client, member.email).json()["success"] is True
    assert db.query(PasswordResetRequest).count() == 1


def test_admin_reviews_requests(client, admin, member):
    request_reset(client, member.email)

    assert client.get("/password-reset-requests/", headers=auth_headers(member)).status_code == 403

    listed = client.get("/password-reset-requests/?status=pending", headers=auth_headers(admin)).json()
    assert [r["user_email"] for r in listed] == [member.email]

    updated = client.put(f"/password-reset-requests/{listed[0]['id']}", json={"status": "expired"}, headers=auth_headers(admin))
    assert updated.json()["status"] == "expired"
    assert updated.json()["completed_by_admin_id"] == admin.id

    assert client.get("/password-reset-requests/?status=pending", headers=auth_headers(admin)).json() == []
    bad = client.put(f"/password-reset-requests/{listed[0]['id']}", json={"status": "lost"}, headers=auth_headers(admin))
    assert bad.status_code == 422
