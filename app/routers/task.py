# app/routers/task.py
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks, File, Form, Response, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User
from app.models.project import Project, ProjectMember
from app.models.department import Department
from app.models.element import Element
from app.models.task import Task
from app.schemas.task import TaskCreate, TaskUpdate, TaskOut, TaskImportResult
from app.services import task_import
from app.services.file_storage import file_storage
from app.services.notification_service import NotificationService
from app.utils.auth import get_current_user
from app.utils.permissions import get_department_or_404, require_project_access
from app.utils.task_status import DONE, normalize_task_status, UNKNOWN

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_task_with_access(db: Session, user: User, task_id: int) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    require_project_access(db, user, task.project_id)
    return task


def _check_department(db: Session, project_id: int, department_id: Optional[int]):
    if department_id is None:
        return
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department or department.project_id != project_id:
        raise HTTPException(status_code=400, detail="Department does not belong to this project")


def _check_element(db: Session, project_id: int, element_id: Optional[int]):
    if element_id is None:
        return
    element = db.query(Element).filter(Element.id == element_id).first()
    if not element or element.project_id != project_id:
        raise HTTPException(status_code=400, detail="Element does not belong to this project")


def _apply_status(task: Task, new_status: str) -> bool:
    """Set the status and keep completed_at/progress consistent; True when the task just became done"""
    was_done = normalize_task_status(task.status) == DONE
    task.status = new_status
    if new_status == DONE:
        if not was_done:
            task.completed_at = datetime.utcnow()
        task.progress_percentage = 100
        return not was_done
    task.completed_at = None
    return False


@router.get("/", response_model=List[TaskOut])
def get_tasks(
    project_id: Optional[int] = None,
    department_id: Optional[int] = None,
    assignee_user_id: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(Task)
    if project_id is not None:
        require_project_access(db, current_user, project_id)
        query = query.filter(Task.project_id == project_id)
    elif not current_user.is_admin:
        member_projects = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == current_user.id)
        owned_projects = db.query(Project.id).filter(Project.owner_id == current_user.id)
        query = query.filter(Task.project_id.in_(member_projects) | Task.project_id.in_(owned_projects))

    if department_id is not None:
        query = query.filter(Task.assignee_department_id == department_id)
    if assignee_user_id is not None:
        query = query.filter(Task.assignee_user_id == assignee_user_id)

    tasks = query.order_by(Task.due_date.is_(None), Task.due_date, Task.id).all()
    if status:
        wanted = normalize_task_status(status)
        if wanted == UNKNOWN:
            raise HTTPException(status_code=400, detail="Status must be one of: todo, in_progress, done")
        tasks = [t for t in tasks if normalize_task_status(t.status) == wanted]
    return tasks


@router.get("/mine", response_model=List[TaskOut])
def get_my_tasks(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(Task).filter(Task.assignee_user_id == current_user.id).order_by(Task.due_date.is_(None), Task.due_date).all()


@router.get("/import/template")
def download_import_template(department_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Example workbook for a department, listing its elements on a reference sheet"""
    department = get_department_or_404(db, department_id)
    if department.project_id is None:
        raise HTTPException(status_code=400, detail="Department does not belong to a project")
    require_project_access(db, current_user, department.project_id)

    names = [e.title for e in db.query(Element).filter(Element.department_id == department.id).order_by(Element.title).all()]
    content = task_import.build_template(department.name, names)
    filename = task_import.template_filename(department.name)
    return Response(
        content=content,
        media_type=task_import.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=TaskImportResult, status_code=status.HTTP_201_CREATED)
def import_tasks(
    project_id: int = Form(...),
    department_id: int = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create tasks for one department from an .xlsx workbook"""
    project = require_project_access(db, current_user, project_id)
    department = get_department_or_404(db, department_id)
    if department.project_id != project.id:
        raise HTTPException(status_code=400, detail="Department does not belong to this project")

    is_valid, error = file_storage.validate_file(file)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error)
    if not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Please upload an Excel file (.xlsx)")

    try:
        imported, elements_created = task_import.import_tasks(db, project, department, file.file.read(), current_user)
    except task_import.TaskImportError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"{current_user.email} imported {imported} tasks into project {project.id}")
    return TaskImportResult(
        imported=imported,
        elements_created=elements_created,
        message=f"Successfully imported {imported} tasks",
    )


@router.get("/{task_id}", response_model=TaskOut)
def get_task(task_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_task_with_access(db, current_user, task_id)


@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = require_project_access(db, current_user, task_data.project_id)
    _check_department(db, project.id, task_data.assignee_department_id)
    _check_element(db, project.id, task_data.element_id)

    data = task_data.model_dump(exclude={"status"})
    task = Task(**data, created_by=current_user.id)
    just_completed = _apply_status(task, task_data.status)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info(f"Task {task.id} created in project {project.id}")

    if just_completed:
        background_tasks.add_task(NotificationService.notify_task_completed, task.id, current_user.id)
    return task


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    task_update: TaskUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _get_task_with_access(db, current_user, task_id)
    update_data = task_update.model_dump(exclude_unset=True)
    if "title" in update_data and not (update_data["title"] or "").strip():
        raise HTTPException(status_code=400, detail="Task title is required")
    if "assignee_department_id" in update_data:
        _check_department(db, task.project_id, update_data["assignee_department_id"])
    if "element_id" in update_data:
        _check_element(db, task.project_id, update_data["element_id"])

    start = update_data.get("start_date", task.start_date)
    due = update_data.get("due_date", task.due_date)
    if start and due and due < start:
        raise HTTPException(status_code=400, detail="Due date cannot be before start date")

    new_status = update_data.pop("status", None)
    for field, value in update_data.items():
        setattr(task, field, value)
    just_completed = _apply_status(task, new_status) if new_status else False
    db.commit()
    db.refresh(task)

    if just_completed:
        logger.info(f"Task {task.id} completed by {current_user.email}")
        background_tasks.add_task(NotificationService.notify_task_completed, task.id, current_user.id)
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    task = _get_task_with_access(db, current_user, task_id)
    db.delete(task)
    db.commit()
