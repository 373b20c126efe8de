import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import UNAUTHORIZED, INVALID_TOKEN, unauthorized
from ..models.models import User
from ..schemas.enums import RolePermission, ProjectRolePermission
from ..services import permissions
from ..utils import ensure_id, is_object_id


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


ACCESS = "access"
REFRESH = "refresh"


def _encode(user_id: str, kind: str, ttl_seconds: int, **claims) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims.update(
        sub=user_id,
        kind=kind,
        iat=issued,
        exp=issued + timedelta(seconds=ttl_seconds),
        jti=uuid.uuid4().hex,
    )
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, role_ids: Optional[List[str]] = None) -> str:
    return _encode(user_id, ACCESS, settings.jwt_ttl_seconds, role_id=role_ids or [])


def create_refresh_token(user_id: str) -> str:
    return _encode(user_id, REFRESH, settings.refresh_ttl_seconds)


def decode_token(token: str, kind: str) -> Optional[str]:
    """User id carried by a valid token of ``kind``; None when the token is of the other kind.

    Expired or tampered tokens raise 401 INVALID_TOKEN.
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_TOKEN)
    user_id = claims.get("sub")
    if claims.get("kind") != kind or not is_object_id(user_id):
        return None
    return user_id


def _load_issuer(creds: Optional[HTTPAuthorizationCredentials], db: Session) -> Optional[User]:
    if creds is None:
        return None
    user_id = decode_token(creds.credentials, ACCESS)
    if user_id is None:
        raise unauthorized()
    return db.query(User).filter(User.id == user_id).first()


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> User:
    user = _load_issuer(creds, db)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED)
    return user


def get_optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Issuer when a bearer token is sent, otherwise None; used by the first-user bootstrap."""
    return _load_issuer(creds, db)


def require_permission(required: RolePermission):
    """Global role check; ``owner`` satisfies every permission."""
    def _dep(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if not user.role_id or not permissions.validate(db, user.role_id, required):
            raise unauthorized()
        return user

    return _dep


def require_project_permission(required: ProjectRolePermission):
    """Project role check against the caller's membership in ``{project_id}``."""
    def _dep(
        project_id: str,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        project_id = ensure_id(project_id)
        if not permissions.validate_project(db, project_id, user.id, required):
            raise unauthorized()
        return user

    return _dep
