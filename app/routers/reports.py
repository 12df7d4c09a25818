# app/routers/reports.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from app.database import get_db
from app.models import User
from app.models.report import ProjectReportSettings, ProjectReportRecipient
from app.schemas.reports import (
    ReportSettingsUpdate,
    ReportSettingsOut,
    RecipientCreate,
    RecipientUpdate,
    RecipientOut,
    ReportPreview,
)
from app.services import report_service
from app.utils.auth import get_current_user
from app.utils.permissions import require_project_access, require_project_manager

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)


def _get_recipient(db: Session, recipient_id: int) -> ProjectReportRecipient:
    recipient = db.query(ProjectReportRecipient).filter(ProjectReportRecipient.id == recipient_id).first()
    if not recipient:
        raise HTTPException(status_code=404, detail="Recipient not found")
    return recipient


@router.get("/projects/{project_id}/settings", response_model=ReportSettingsOut)
def get_report_settings(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Saved settings, or the defaults when the project has none yet"""
    require_project_access(db, current_user, project_id)
    return report_service.get_settings(db, project_id)


@router.put("/projects/{project_id}/settings", response_model=ReportSettingsOut)
def update_report_settings(
    project_id: int,
    settings_update: ReportSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_manager(db, current_user, project_id)
    update_data = settings_update.model_dump(exclude_unset=True, exclude_none=True)
    if "timezone" in update_data:
        try:
            ZoneInfo(update_data["timezone"])
        except (ZoneInfoNotFoundError, ValueError):
            raise HTTPException(status_code=400, detail=f"Unknown timezone: {update_data['timezone']}")

    report_settings = db.query(ProjectReportSettings).filter(ProjectReportSettings.project_id == project_id).first()
    if report_settings is None:
        report_settings = report_service.default_settings(project_id)
        report_settings.created_by = current_user.id
        db.add(report_settings)

    for field, value in update_data.items():
        setattr(report_settings, field, value)
    db.commit()
    db.refresh(report_settings)
    logger.info(f"Report settings of project {project_id} updated by {current_user.email}")
    return report_settings


@router.get("/projects/{project_id}/recipients", response_model=List[RecipientOut])
def get_recipients(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    require_project_access(db, current_user, project_id)
    return db.query(ProjectReportRecipient).filter(
        ProjectReportRecipient.project_id == project_id
    ).order_by(ProjectReportRecipient.created_at).all()


@router.post("/projects/{project_id}/recipients", response_model=RecipientOut, status_code=status.HTTP_201_CREATED)
def add_recipient(
    project_id: int,
    recipient_data: RecipientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    require_project_manager(db, current_user, project_id)
    email = recipient_data.email.lower()
    if db.query(ProjectReportRecipient).filter(
        ProjectReportRecipient.project_id == project_id,
        ProjectReportRecipient.email == email
    ).first():
        raise HTTPException(status_code=400, detail="This email is already a report recipient")

    recipient = ProjectReportRecipient(
        project_id=project_id,
        email=email,
        name=recipient_data.name,
        added_by=current_user.id,
    )
    db.add(recipient)
    db.commit()
    db.refresh(recipient)
    return recipient


@router.put("/recipients/{recipient_id}", response_model=RecipientOut)
def update_recipient(
    recipient_id: int,
    recipient_update: RecipientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    recipient = _get_recipient(db, recipient_id)
    require_project_manager(db, current_user, recipient.project_id)
    for field, value in recipient_update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(recipient, field, value)
    db.commit()
    db.refresh(recipient)
    return recipient


@router.delete("/recipients/{recipient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recipient(recipient_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    recipient = _get_recipient(db, recipient_id)
    require_project_manager(db, current_user, recipient.project_id)
    db.delete(recipient)
    db.commit()


@router.get("/projects/{project_id}/preview", response_model=ReportPreview)
def preview_report(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """The data the next report email would contain"""
    project = require_project_access(db, current_user, project_id)
    report_settings = report_service.get_settings(db, project_id)
    return report_service.build_report_data(db, project, tz_name=report_settings.timezone)
