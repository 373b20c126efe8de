"""
Users and global roles, including the first-user bootstrap.
"""
import re
from typing import List, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    INSERTING_FAILED,
    ROLE_MUST_HAVE_VALID_PERMISSION,
    ROLE_NOT_FOUND,
    UNAUTHORIZED,
    USER_ALREADY_EXIST,
    USER_BOOTSTRAP_CONFLICT,
    USER_MUST_HAVE_ROLES,
    USER_MUST_HAVE_VALID_EMAIL,
    USER_MUST_HAVE_VALID_PASSWORD,
    USER_NOT_FOUND,
    bad_request,
    conflict,
    not_found,
    unauthorized,
)
from ..models.models import Role, SystemLock, User
from ..schemas.enums import RolePermission
from ..schemas.users import RoleRequest, UserCreate, UserUpdate
from ..utils import ensure_id, object_id, to_millis
from . import permissions
from .store import write


log = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[a-z0-9_+]([a-z0-9_+.]*[a-z0-9_+])?@[a-z0-9]+([-.][a-z0-9]+)*\.[a-z]{2,6}$")
PASSWORD_MIN_LENGTH = 8
BOOTSTRAP_LOCK = "first_user"
OWNER_ROLE_NAME = "Owner"


def serialize_role(role: Role) -> dict:
    return {"_id": role.id, "name": role.name, "permission": role.permission or []}


def serialize_user(user: User, roles: Optional[dict] = None) -> dict:
    out = {
        "_id": user.id,
        "name": user.name,
        "email": user.email,
        "role_id": user.role_id or [],
        "image": user.image,
        "created_at": to_millis(user.created_at),
    }
    if roles is not None:
        out["role"] = [serialize_role(roles[rid]) for rid in user.role_id or [] if rid in roles]
    return out


def roles_by_id(db: Session, role_ids) -> dict:
    ids = list({rid for rid in role_ids if rid})
    if not ids:
        return {}
    return {r.id: r for r in db.query(Role).filter(Role.id.in_(ids)).all()}


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == ensure_id(user_id)).first()
    if user is None:
        raise not_found(USER_NOT_FOUND)
    return user


def _validate_credentials(email: str, password: Optional[str]) -> None:
    if not email or not EMAIL_RE.match(email):
        raise bad_request(USER_MUST_HAVE_VALID_EMAIL)
    if password is not None and len(password) < PASSWORD_MIN_LENGTH:
        raise bad_request(USER_MUST_HAVE_VALID_PASSWORD)


def _existing_role_ids(db: Session, role_ids: List[str]) -> List[str]:
    ids = [ensure_id(r) for r in dict.fromkeys(role_ids or [])]
    found = roles_by_id(db, ids)
    return [r for r in ids if r in found]


def _email_taken(db: Session, email: str, exclude_id: Optional[str] = None) -> bool:
    q = db.query(User).filter(User.email == email)
    if exclude_id:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def bootstrap_available(db: Session) -> bool:
    return db.query(User).count() == 0


def create_user(db: Session, issuer: Optional[User], payload: UserCreate, password_hash: str) -> str:
    """Create a user.

    On an empty user table the caller needs no credentials: every role is
    wiped and a single Owner role is created and given to the new user. The
    bootstrap is claimed by inserting the ``first_user`` lock row, so only one
    concurrent request can take that path.
    """
    _validate_credentials(payload.email, payload.password)

    if bootstrap_available(db):
        return _bootstrap(db, payload, password_hash)

    if issuer is None or not permissions.validate(db, issuer.role_id or [], RolePermission.CREATE_USER):
        raise unauthorized(UNAUTHORIZED)
    role_ids = _existing_role_ids(db, payload.role_id)
    if not role_ids:
        raise bad_request(USER_MUST_HAVE_ROLES)
    if _email_taken(db, payload.email):
        raise bad_request(USER_ALREADY_EXIST)

    user = User(name=payload.name, email=payload.email, password_hash=password_hash, role_id=role_ids)
    try:
        with write(db, INSERTING_FAILED, "user_insert_failed", email=payload.email):
            db.add(user)
    except HTTPException:
        if _email_taken(db, payload.email):
            raise bad_request(USER_ALREADY_EXIST)
        raise
    log.info("user_created", user_id=user.id, issuer_id=issuer.id)
    return user.id


def _bootstrap(db: Session, payload: UserCreate, password_hash: str) -> str:
    try:
        db.add(SystemLock(key=BOOTSTRAP_LOCK))
        db.flush()
    except IntegrityError:
        db.rollback()
        raise conflict(USER_BOOTSTRAP_CONFLICT)

    role = Role(id=object_id(), name=OWNER_ROLE_NAME, permission=[RolePermission.OWNER.value])
    user = User(name=payload.name, email=payload.email, password_hash=password_hash, role_id=[role.id])
    with write(db, INSERTING_FAILED, "user_bootstrap_failed", email=payload.email):
        db.query(Role).delete(synchronize_session=False)
        db.add(role)
        db.add(user)
    log.info("user_bootstrapped", user_id=user.id, role_id=role.id)
    return user.id


def update_user(db: Session, user: User, payload: UserUpdate, password_hash: Optional[str]) -> str:
    _validate_credentials(payload.email, payload.password)
    role_ids = _existing_role_ids(db, payload.role_id)
    if not role_ids:
        raise bad_request(USER_MUST_HAVE_ROLES)
    if _email_taken(db, payload.email, exclude_id=user.id):
        raise bad_request(USER_ALREADY_EXIST)
    with write(db, event="user_update_failed", user_id=user.id):
        user.name = payload.name
        user.email = payload.email
        user.role_id = role_ids
        if password_hash:
            user.password_hash = password_hash
    return user.id


def _release_bootstrap_if_empty(db: Session) -> None:
    if db.query(User).count() == 0:
        db.query(SystemLock).filter(SystemLock.key == BOOTSTRAP_LOCK).delete(synchronize_session=False)


def delete_user(db: Session, user: User) -> str:
    user_id = user.id
    with write(db, event="user_delete_failed", user_id=user_id):
        db.delete(user)
        db.flush()
        _release_bootstrap_if_empty(db)
    log.info("user_deleted", user_id=user_id)
    return user_id


def set_user_image(db: Session, user: User, image: dict) -> str:
    with write(db, event="user_image_update_failed", user_id=user.id):
        user.image = image
    return user.id


# Global roles

def get_role(db: Session, role_id: str) -> Role:
    role = db.query(Role).filter(Role.id == ensure_id(role_id)).first()
    if role is None:
        raise not_found(ROLE_NOT_FOUND)
    return role


def _assignable(permission: list) -> list:
    values = [p.value if hasattr(p, "value") else p for p in permission]
    if not values or RolePermission.OWNER.value in values:
        raise bad_request(ROLE_MUST_HAVE_VALID_PERMISSION)
    return list(dict.fromkeys(values))


def create_role(db: Session, payload: RoleRequest) -> str:
    role = Role(name=payload.name, permission=_assignable(payload.permission))
    with write(db, INSERTING_FAILED, "role_insert_failed"):
        db.add(role)
    return role.id


def update_role(db: Session, role: Role, payload: RoleRequest) -> str:
    permission = _assignable(payload.permission)
    with write(db, event="role_update_failed", role_id=role.id):
        role.name = payload.name
        role.permission = permission
    return role.id


def delete_role(db: Session, role: Role) -> str:
    """Delete a role, scrub it from every user and drop users left without roles."""
    role_id = role.id
    removed = 0
    with write(db, event="role_delete_failed", role_id=role_id):
        for user in db.query(User).all():
            if role_id not in (user.role_id or []):
                continue
            remaining = [r for r in user.role_id if r != role_id]
            if remaining:
                user.role_id = remaining
            else:
                db.delete(user)
                removed += 1
        db.delete(role)
        db.flush()
        _release_bootstrap_if_empty(db)
    log.info("role_deleted", role_id=role_id, users_removed=removed)
    return role_id
