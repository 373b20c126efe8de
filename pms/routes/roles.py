from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import require_permission
from ..db import get_db
from ..models.models import Role
from ..schemas.enums import RolePermission
from ..schemas.users import RoleRequest
from ..services import user_service


router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("")
def list_roles(db: Session = Depends(get_db)):
    return [user_service.serialize_role(r) for r in db.query(Role).order_by(Role.id).all()]


@router.get("/{role_id}")
def get_role(role_id: str, db: Session = Depends(get_db)):
    return user_service.serialize_role(user_service.get_role(db, role_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_role(
    payload: RoleRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.CREATE_ROLE)),
):
    return {"_id": user_service.create_role(db, payload)}


@router.put("/{role_id}")
def update_role(
    role_id: str,
    payload: RoleRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.UPDATE_ROLE)),
):
    role = user_service.get_role(db, role_id)
    return {"_id": user_service.update_role(db, role, payload)}


@router.delete("/{role_id}")
def delete_role(
    role_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.DELETE_ROLE)),
):
    role = user_service.get_role(db, role_id)
    return {"_id": user_service.delete_role(db, role)}
