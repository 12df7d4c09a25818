"""
Shared fixtures: an in-memory SQLite database rebuilt for every test, a
TestClient on the FastAPI app and captured outbound email.
"""

import os
import tempfile

# Configure the app before anything imports it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RESEND_API_KEY"] = "test-key"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LINK_PREVIEW_ENABLED"] = "false"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="planner-uploads-"))

from datetime import date

import pytest
import resend
from fastapi.testclient import TestClient

from app.database import Base, engine, SessionLocal
import app.models  # noqa: F401
from app.models.user import User, AppRole
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.department import Department, DepartmentLead
from app.models.external_user import ExternalUser, ExternalAccessLevel
from app.services.websocket_manager import websocket_manager
from app.utils.security import hash_password, create_access_token
from main import app

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Every email handed to Resend, in order"""
    outbox = []

    def fake_send(params):
        outbox.append(params)
        return {"id": f"email-{len(outbox)}"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return outbox


@pytest.fixture(autouse=True)
def reset_websockets():
    yield
    websocket_manager.active_connections.clear()
    websocket_manager.channels.clear()
    websocket_manager.socket_users.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make_user(email, role=AppRole.MEMBER.value, full_name=None, **fields):
        user = User(
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            hashed_password=hash_password(fields.pop("password", PASSWORD)),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role=AppRole.ADMIN.value, full_name="Admin User")


@pytest.fixture
def manager(make_user):
    return make_user("manager@example.com", role=AppRole.PROJECT_MANAGER.value, full_name="Project Manager")


@pytest.fixture
def member(make_user):
    return make_user("member@example.com", full_name="Team Member")


@pytest.fixture
def outsider(make_user):
    return make_user("outsider@example.com", full_name="Not A Member")


@pytest.fixture
def project(db, manager, member):
    """A project owned by the manager with the member on board"""
    project = Project(name="Apollo", description="Launch project", start_date=date(2024, 1, 1), owner_id=manager.id)
    db.add(project)
    db.flush()
    db.add(ProjectMember(project_id=project.id, user_id=manager.id, role=ProjectRole.OWNER.value))
    db.add(ProjectMember(project_id=project.id, user_id=member.id, role=ProjectRole.MEMBER.value))
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def department(db, project):
    department = Department(name="Engineering", project_id=project.id)
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@pytest.fixture
def make_external(db, make_user, project, manager):
    """An external account with access to one department of the project"""
    def _make_external(email, department, access_level=ExternalAccessLevel.VIEW_ONLY.value, **fields):
        user = make_user(email, role=AppRole.VIEWER.value, is_external=True)
        external = ExternalUser(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            department_id=department.id,
            project_id=project.id,
            invited_by=manager.id,
            access_level=access_level,
            must_change_password=False,
            **fields,
        )
        db.add(external)
        db.commit()
        db.refresh(external)
        return user, external
    return _make_external


@pytest.fixture
def department_lead(db, make_user, department, project):
    lead = make_user("lead@example.com", full_name="Dept Lead")
    db.add(ProjectMember(project_id=project.id, user_id=lead.id, role=ProjectRole.MEMBER.value))
    db.add(DepartmentLead(department_id=department.id, user_id=lead.id))
    db.commit()
    return lead
