# app/routers/auth.py
from datetime import datetime
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session
import logging

from app.config.settings import settings
from app.database import get_db
from app.models.user import User
from app.models.external_user import ExternalUser
from app.schemas.user import UserLogin, ChangePasswordRequest, MeOut
from app.schemas.tokens import Token
from app.utils.auth import get_current_user
from app.utils.security import hash_password, verify_password, create_access_token

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login", response_model=Token)
def login(user: UserLogin, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.email == user.email.lower()).first()
    if not db_user or not verify_password(user.password, db_user.hashed_password):
        raise HTTPException(status_code=400, detail="Invalid credentials")

    if not db_user.is_active:
        raise HTTPException(status_code=401, detail="Account has been deactivated. Please contact administrator.")

    if (
        db_user.must_change_password
        and db_user.temporary_password_expires_at
        and db_user.temporary_password_expires_at < datetime.utcnow()
    ):
        raise HTTPException(status_code=401, detail="Temporary password has expired. Please request a new one.")

    if db_user.is_external:
        rows = db.query(ExternalUser).filter(ExternalUser.user_id == db_user.id).all()
        if not any(row.has_access for row in rows):
            raise HTTPException(status_code=403, detail="Your external access has expired or been revoked")

    token = create_access_token(data={"sub": db_user.email})
    logger.info(f"User {db_user.email} logged in")
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": db_user,
    }


@router.post("/change-password")
def change_password(
    request: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set a new password and clear any temporary-password state"""
    if len(request.new_password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
        )

    current_user.hashed_password = hash_password(request.new_password)
    current_user.must_change_password = False
    current_user.temporary_password_expires_at = None
    for external in db.query(ExternalUser).filter(ExternalUser.user_id == current_user.id).all():
        external.must_change_password = False
        external.temporary_password_expires_at = None
    db.commit()

    logger.info(f"User {current_user.email} changed password")
    return {"message": "Password updated successfully"}


@router.get("/me", response_model=MeOut)
def me(current_user: User = Depends(get_current_user)):
    return MeOut.model_validate(current_user)
