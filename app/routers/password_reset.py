# app/routers/password_reset.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.database import get_db
from app.models.user import User
from app.models.password_reset import PasswordResetRequest, ResetRequestStatus
from app.schemas.password_reset import PasswordResetRequestCreate, PasswordResetStatusUpdate, PasswordResetRequestOut
from app.services.user_admin import notify_admins_of_reset, AccountError
from app.utils.auth import require_admin

router = APIRouter()
logger = logging.getLogger(__name__)

REQUEST_RECEIVED = "If an account exists for this email, an administrator has been notified"


@router.post("/")
def request_password_reset(reset_data: PasswordResetRequestCreate, db: Session = Depends(get_db)):
    """Public: record a reset request and tell the admins"""
    email = reset_data.email.lower()
    user = db.query(User).filter(User.email == email).first()
    if not user:
        logger.info(f"Password reset requested for unknown email {email}")
        return {"success": True, "message": REQUEST_RECEIVED}

    reset_request = db.query(PasswordResetRequest).filter(
        PasswordResetRequest.user_id == user.id,
        PasswordResetRequest.status == ResetRequestStatus.PENDING.value
    ).first()
    if reset_request is None:
        reset_request = PasswordResetRequest(
            user_id=user.id,
            user_email=user.email,
            user_full_name=user.full_name,
        )
        db.add(reset_request)
        db.commit()

    try:
        notify_admins_of_reset(db, user.email, user.full_name)
    except AccountError as e:
        logger.warning(f"Password reset request for {email} not announced: {e}")
    except Exception as e:
        logger.error(f"Failed to notify admins about reset for {email}: {e}")

    return {"success": True, "message": REQUEST_RECEIVED}


@router.get("/", response_model=List[PasswordResetRequestOut])
def get_reset_requests(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    query = db.query(PasswordResetRequest)
    if status:
        query = query.filter(PasswordResetRequest.status == status)
    return query.order_by(PasswordResetRequest.requested_at.desc()).all()


@router.put("/{request_id}", response_model=PasswordResetRequestOut)
def update_reset_request(
    request_id: int,
    status_update: PasswordResetStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    reset_request = db.query(PasswordResetRequest).filter(PasswordResetRequest.id == request_id).first()
    if not reset_request:
        raise HTTPException(status_code=404, detail="Password reset request not found")

    reset_request.status = status_update.status
    if status_update.status != ResetRequestStatus.PENDING.value:
        reset_request.completed_by_admin_id = current_user.id
    db.commit()
    db.refresh(reset_request)
    return reset_request
