from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, get_optional_user, get_password_hash, require_permission
from ..db import get_db
from ..errors import unauthorized
from ..models.models import User
from ..schemas.enums import FileKind, RolePermission
from ..schemas.users import UserCreate, UserUpdate
from ..services import permissions, user_service
from ..storage.provider import StorageProvider
from .files import get_storage, save_image


router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    text: Optional[str] = None,
    limit: int = 100,
    skip: int = 0,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.GET_USERS)),
):
    q = db.query(User)
    if text:
        like = f"%{text.strip()}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    users = q.order_by(User.id).offset(max(skip, 0)).limit(min(max(limit, 1), 500)).all()
    roles = user_service.roles_by_id(db, [rid for u in users for rid in (u.role_id or [])])
    return [user_service.serialize_user(u, roles) for u in users]


@router.get("/{user_id}")
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.GET_USER)),
):
    user = user_service.get_user(db, user_id)
    return user_service.serialize_user(user, user_service.roles_by_id(db, user.role_id or []))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    issuer: Optional[User] = Depends(get_optional_user),
):
    user_id = user_service.create_user(db, issuer, payload, get_password_hash(payload.password))
    return {"_id": user_id}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.UPDATE_USER)),
):
    user = user_service.get_user(db, user_id)
    password_hash = get_password_hash(payload.password) if payload.password else None
    return {"_id": user_service.update_user(db, user, payload, password_hash)}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.DELETE_USER)),
):
    user = user_service.get_user(db, user_id)
    return {"_id": user_service.delete_user(db, user)}


@router.put("/{user_id}/image")
def update_user_image(
    user_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    issuer: User = Depends(get_current_user),
):
    user = user_service.get_user(db, user_id)
    if issuer.id != user.id and not permissions.validate(db, issuer.role_id or [], RolePermission.UPDATE_USER):
        raise unauthorized()
    image = save_image(storage, FileKind.USER_IMAGE, user.id, file)
    user_service.set_user_image(db, user, image)
    return {"_id": user.id, "image": image}
