# app/routers/element.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User
from app.models.department import Department
from app.models.element import Element
from app.models.task import Task
from app.schemas.element import ElementCreate, ElementUpdate, ElementOut
from app.utils.auth import get_current_user
from app.utils.permissions import require_project_access, require_project_manager

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_element(db: Session, element_id: int) -> Element:
    element = db.query(Element).filter(Element.id == element_id).first()
    if not element:
        raise HTTPException(status_code=404, detail="Element not found")
    return element


def check_element_department(db: Session, project_id: int, department_id: Optional[int]):
    if department_id is None:
        return
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department or department.project_id != project_id:
        raise HTTPException(status_code=400, detail="Department does not belong to this project")


@router.get("/", response_model=List[ElementOut])
def get_elements(
    project_id: int,
    department_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_access(db, current_user, project_id)
    query = db.query(Element).filter(Element.project_id == project_id)
    if department_id is not None:
        query = query.filter(Element.department_id == department_id)
    return query.order_by(Element.due_date.is_(None), Element.due_date, Element.id).all()


@router.get("/{element_id}", response_model=ElementOut)
def get_element(element_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    element = _get_element(db, element_id)
    require_project_access(db, current_user, element.project_id)
    return element


@router.post("/", response_model=ElementOut, status_code=status.HTTP_201_CREATED)
def create_element(
    element_data: ElementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Any project member can add an element"""
    require_project_access(db, current_user, element_data.project_id)
    check_element_department(db, element_data.project_id, element_data.department_id)

    element = Element(**element_data.model_dump())
    db.add(element)
    db.commit()
    db.refresh(element)
    logger.info(f"Element {element.title} created in project {element.project_id}")
    return element


@router.put("/{element_id}", response_model=ElementOut)
def update_element(
    element_id: int,
    element_update: ElementUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    element = _get_element(db, element_id)
    require_project_manager(db, current_user, element.project_id)

    update_data = element_update.model_dump(exclude_unset=True)
    if "department_id" in update_data:
        check_element_department(db, element.project_id, update_data["department_id"])
    start = update_data.get("start_date", element.start_date)
    due = update_data.get("due_date", element.due_date)
    if start and due and due < start:
        raise HTTPException(status_code=400, detail="Due date cannot be before start date")

    for field, value in update_data.items():
        setattr(element, field, value)
    db.commit()
    db.refresh(element)
    return element


@router.delete("/{element_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_element(element_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Delete an element; its tasks stay in the project without an element"""
    element = _get_element(db, element_id)
    require_project_manager(db, current_user, element.project_id)

    db.query(Task).filter(Task.element_id == element_id).update(
        {Task.element_id: None}, synchronize_session=False
    )
    db.delete(element)
    db.commit()
    logger.info(f"Element {element_id} deleted by {current_user.id}")
