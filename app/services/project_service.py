import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.project import Project, ProjectMember, ProjectRole
from app.models.department import Department
from app.models.element import Element
from app.models.task import Task, TaskStatus
from app.utils.task_status import DONE, IN_PROGRESS, normalize_task_status
from app.utils.working_days import count_working_days, cost_variance

logger = logging.getLogger(__name__)


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def status_counts(tasks: List[Task]) -> Dict[str, int]:
    """Counts by normalized status; unrecognised statuses count as todo"""
    counts = {"total_tasks": len(tasks), "todo": 0, "in_progress": 0, "completed": 0}
    for task in tasks:
        status = normalize_task_status(task.status)
        if status == DONE:
            counts["completed"] += 1
        elif status == IN_PROGRESS:
            counts["in_progress"] += 1
        else:
            counts["todo"] += 1
    counts["completion_percentage"] = _percent(counts["completed"], counts["total_tasks"])
    return counts


def department_analytics(db: Session, department: Department) -> Dict:
    tasks = db.query(Task).filter(Task.assignee_department_id == department.id).all()
    starts = [t.start_date for t in tasks if t.start_date]
    dues = [t.due_date for t in tasks if t.due_date]
    return {
        "department_id": department.id,
        **status_counts(tasks),
        "earliest_start": min(starts) if starts else None,
        "latest_due": max(dues) if dues else None,
    }


def project_analytics(db: Session, project: Project) -> Dict:
    tasks = db.query(Task).filter(Task.project_id == project.id).all()
    departments = db.query(Department).filter(Department.project_id == project.id).order_by(Department.name).all()

    breakdown = []
    for department in departments:
        dept_tasks = [t for t in tasks if t.assignee_department_id == department.id]
        breakdown.append({"department_id": department.id, "name": department.name, **status_counts(dept_tasks)})

    estimated = sum(t.estimated_cost or 0 for t in tasks)
    actual = sum(t.actual_cost or 0 for t in tasks)
    return {
        "project_id": project.id,
        **status_counts(tasks),
        "department_count": len(departments),
        "departments": breakdown,
        "working_days": count_working_days(project.start_date, project.end_date),
        "estimate_hours": sum(t.estimate_hours or 0 for t in tasks),
        "logged_hours": sum(t.logged_hours or 0 for t in tasks),
        "cost": cost_variance(estimated, actual),
    }


def duplicate_project(db: Session, project: Project, new_name: str, owner: User) -> Project:
    """
    Copy a project with its departments, elements and tasks.

    Elements keep their department (mapped to its copy) and tasks keep
    their element. Tasks restart as unassigned todo items with hours,
    actual cost and progress reset; the caller owns the copy.
    """
    copy = Project(
        name=new_name,
        description=project.description,
        status=project.status,
        start_date=project.start_date,
        end_date=project.end_date,
        owner_id=owner.id,
        theme_colors=project.theme_colors,
    )
    db.add(copy)
    db.flush()
    db.add(ProjectMember(project_id=copy.id, user_id=owner.id, role=ProjectRole.OWNER.value))

    department_ids = {}
    departments = db.query(Department).filter(Department.project_id == project.id).all()
    for department in departments:
        new_department = Department(name=department.name, description=department.description, project_id=copy.id)
        db.add(new_department)
        db.flush()
        department_ids[department.id] = new_department.id
        logger.info(f"Duplicated department: {department.name}")

    element_ids = {}
    elements = db.query(Element).filter(Element.project_id == project.id).all()
    for element in elements:
        new_element = Element(
            project_id=copy.id,
            department_id=department_ids.get(element.department_id),
            title=element.title,
            description=element.description,
            priority=element.priority,
            start_date=element.start_date,
            due_date=element.due_date,
        )
        db.add(new_element)
        db.flush()
        element_ids[element.id] = new_element.id

    tasks = db.query(Task).filter(Task.project_id == project.id).all()
    for task in tasks:
        db.add(Task(
            project_id=copy.id,
            element_id=element_ids.get(task.element_id),
            title=task.title,
            description=task.description,
            status=TaskStatus.TODO.value,
            priority=task.priority,
            labels=task.labels,
            start_date=task.start_date,
            due_date=task.due_date,
            estimated_cost=task.estimated_cost,
            estimate_hours=task.estimate_hours,
            actual_cost=0,
            logged_hours=0,
            progress_percentage=0,
            created_by=owner.id,
        ))

    db.commit()
    db.refresh(copy)
    logger.info(f"Duplicated project {project.id} as {copy.id} with {len(departments)} departments, {len(elements)} elements and {len(tasks)} tasks")
    return copy
