"""
Master Database Seeding Script
Creates database tables and populates them with a demo project
"""

from datetime import date, timedelta

from dotenv import load_dotenv

load_dotenv()

from app.database import SessionLocal
from app.models.user import User, AppRole
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.department import Department, DepartmentLead
from app.models.task import Task, TaskStatus, TaskPriority
from app.models.report import ProjectReportRecipient
from app.services.report_service import default_settings
from app.utils.security import hash_password
from create_tables import create_tables

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    {"full_name": "Priya Sharma", "email": "priya.sharma@company.com", "role": AppRole.PROJECT_MANAGER.value, "department": "Management"},
    {"full_name": "Rajesh Kumar", "email": "rajesh.kumar@company.com", "role": AppRole.MEMBER.value, "department": "Engineering"},
    {"full_name": "Anita Desai", "email": "anita.desai@company.com", "role": AppRole.MEMBER.value, "department": "Design"},
    {"full_name": "Vikram Singh", "email": "vikram.singh@company.com", "role": AppRole.MEMBER.value, "department": "Engineering"},
    {"full_name": "Meera Iyer", "email": "meera.iyer@company.com", "role": AppRole.VIEWER.value, "department": "Finance"},
]

DEMO_DEPARTMENTS = [
    {"name": "Engineering", "description": "Backend, frontend and infrastructure work", "lead": "rajesh.kumar@company.com"},
    {"name": "Design", "description": "UX research and visual design", "lead": "anita.desai@company.com"},
    {"name": "Finance", "description": "Budget tracking and vendor payments", "lead": None},
]

# (title, department, assignee email, status, priority, start offset, due offset)
DEMO_TASKS = [
    ("Set up CI pipeline", "Engineering", "vikram.singh@company.com", TaskStatus.DONE, TaskPriority.HIGH, -20, -10),
    ("Design onboarding flow", "Design", "anita.desai@company.com", TaskStatus.IN_PROGRESS, TaskPriority.MEDIUM, -7, 3),
    ("Implement document upload", "Engineering", "rajesh.kumar@company.com", TaskStatus.IN_PROGRESS, TaskPriority.HIGH, -5, 5),
    ("Migrate legacy reports", "Engineering", "vikram.singh@company.com", TaskStatus.TODO, TaskPriority.LOW, -14, -2),
    ("Quarterly budget review", "Finance", "meera.iyer@company.com", TaskStatus.TODO, TaskPriority.MEDIUM, 0, 14),
    ("Brand colour refresh", "Design", None, TaskStatus.TODO, TaskPriority.LOW, 2, 21),
]


def seed_demo_users(session):
    print(f"\n{'='*60}")
    print("🚀 Creating Demo Users")
    print(f"{'='*60}")

    users = {}
    for user_data in DEMO_USERS:
        existing = session.query(User).filter(User.email == user_data["email"]).first()
        if existing:
            print(f"[SKIP] User {user_data['email']} already exists, skipping...")
            users[existing.email] = existing
            continue

        user = User(**user_data, hashed_password=hash_password(DEMO_PASSWORD))
        session.add(user)
        session.flush()
        users[user.email] = user
        print(f"[SUCCESS] Created user: {user.full_name} ({user.role})")
    return users


def seed_demo_project(session, users):
    print(f"\n{'='*60}")
    print("🚀 Creating Demo Project")
    print(f"{'='*60}")

    manager = users["priya.sharma@company.com"]
    if session.query(Project).filter(Project.name == "Customer Portal Relaunch").first():
        print("[SKIP] Demo project already exists, skipping...")
        return None

    today = date.today()
    project = Project(
        name="Customer Portal Relaunch",
        description="Rebuild of the customer portal with document sharing and chat",
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=60),
        owner_id=manager.id,
    )
    session.add(project)
    session.flush()

    session.add(ProjectMember(project_id=project.id, user_id=manager.id, role=ProjectRole.OWNER.value))
    for email, user in users.items():
        if user.id != manager.id:
            session.add(ProjectMember(project_id=project.id, user_id=user.id, role=ProjectRole.MEMBER.value))

    departments = {}
    for department_data in DEMO_DEPARTMENTS:
        department = Department(name=department_data["name"], description=department_data["description"], project_id=project.id)
        session.add(department)
        session.flush()
        departments[department.name] = department
        if department_data["lead"]:
            session.add(DepartmentLead(department_id=department.id, user_id=users[department_data["lead"]].id))
        print(f"[SUCCESS] Created department: {department.name}")

    for title, department_name, assignee, status, priority, start_offset, due_offset in DEMO_TASKS:
        session.add(Task(
            project_id=project.id,
            title=title,
            status=status.value,
            priority=priority.value,
            progress_percentage=100 if status == TaskStatus.DONE else 0,
            assignee_user_id=users[assignee].id if assignee else None,
            assignee_department_id=departments[department_name].id,
            created_by=manager.id,
            start_date=today + timedelta(days=start_offset),
            due_date=today + timedelta(days=due_offset),
        ))
    print(f"[SUCCESS] Created {len(DEMO_TASKS)} tasks")

    report_settings = default_settings(project.id)
    report_settings.created_by = manager.id
    session.add(report_settings)
    session.add(ProjectReportRecipient(project_id=project.id, email=manager.email, name=manager.full_name, added_by=manager.id))
    return project


def main():
    print("🌱 Seeding Project Planner database")
    create_tables()

    session = SessionLocal()
    try:
        users = seed_demo_users(session)
        seed_demo_project(session, users)
        session.commit()
        print(f"\n[SUCCESS] Demo data ready. All demo users use the password '{DEMO_PASSWORD}'")
    except Exception as e:
        print(f"[ERROR] Error seeding demo data: {e}")
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
