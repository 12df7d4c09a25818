from datetime import datetime, timedelta

from app.models.user import User, AppRole
from app.models.external_user import ExternalUser
from conftest import auth_headers, PASSWORD


def login(client, email, password=PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_login_returns_token_and_user(client, member):
    response = login(client, "member@example.com")
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "member@example.com"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == member.id


def test_login_email_is_case_insensitive(client, member):
    assert login(client, "Member@Example.com").status_code == 200


def test_login_rejects_bad_password(client, member):
    response = login(client, "member@example.com", "nope")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid credentials"


def test_login_rejects_inactive_user(client, make_user):
    make_user("gone@example.com", is_active=False)
    assert login(client, "gone@example.com").status_code == 401


def test_expired_temporary_password_cannot_log_in(client, make_user):
    make_user(
        "temp@example.com",
        must_change_password=True,
        temporary_password_expires_at=datetime.utcnow() - timedelta(minutes=1),
    )
    response = login(client, "temp@example.com")
    assert response.status_code == 401
    assert "expired" in response.json()["detail"]


def test_external_user_without_active_access_is_refused(client, db, make_user, project, department):
    guest = make_user("guest@example.com", role=AppRole.VIEWER.value, is_external=True)
    db.add(ExternalUser(
        user_id=guest.id,
        email=guest.email,
        department_id=department.id,
        project_id=project.id,
        is_active=False,
    ))
    db.commit()
    assert login(client, "guest@example.com").status_code == 403


def test_requests_without_token_are_rejected(client):
    assert client.get("/auth/me").status_code == 401


def test_change_password_clears_temporary_state(client, db, make_user):
    user = make_user(
        "fresh@example.com",
        must_change_password=True,
        temporary_password_expires_at=datetime.utcnow() + timedelta(minutes=30),
    )
    response = client.post("/auth/change-password", json={"new_password": "a-much-better-one"}, headers=auth_headers(user))
    assert response.status_code == 200

    db.expire_all()
    refreshed = db.query(User).filter(User.id == user.id).first()
    assert refreshed.must_change_password is False
    assert refreshed.temporary_password_expires_at is None
    assert login(client, "fresh@example.com", "a-much-better-one").status_code == 200


def test_change_password_enforces_minimum_length(client, member):
    response = client.post("/auth/change-password", json={"new_password": "short"}, headers=auth_headers(member))
    assert response.status_code == 400


def test_non_admin_can_only_edit_own_profile(client, member, outsider):
    own = client.put(f"/users/{member.id}", json={"full_name": "Renamed"}, headers=auth_headers(member))
    assert own.status_code == 200
    assert own.json()["full_name"] == "Renamed"

    other = client.put(f"/users/{outsider.id}", json={"full_name": "Hijacked"}, headers=auth_headers(member))
    assert other.status_code == 403


def test_admin_cannot_deactivate_self(client, admin):
    response = client.put(f"/users/{admin.id}", json={"is_active": False}, headers=auth_headers(admin))
    assert response.status_code == 400
