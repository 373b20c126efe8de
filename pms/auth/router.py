import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import INVALID_COMBINATION, INVALID_TOKEN
from ..models.models import User
from ..schemas.auth import LoginRequest, RefreshRequest, TokenResponse
from ..services.user_service import roles_by_id, serialize_user
from .security import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)


router = APIRouter(prefix="/users", tags=["auth"])
log = structlog.get_logger(__name__)


def _issue(db: Session, user: User) -> TokenResponse:
    return TokenResponse(
        atk=create_access_token(user.id, user.role_id or []),
        rtk=create_refresh_token(user.id),
        user=serialize_user(user, roles_by_id(db, user.role_id or [])),
    )


def _token_rejected() -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INVALID_TOKEN)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    email = (req.email or "").strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(req.password, user.password_hash):
        log.info("login_failed", email=email)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INVALID_COMBINATION)
    log.info("login_succeeded", user_id=user.id)
    return _issue(db, user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new token pair."""
    try:
        user_id = decode_token(req.rtk, REFRESH)
    except HTTPException:
        raise _token_rejected()
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    if user is None:
        raise _token_rejected()
    return _issue(db, user)
