"""
Role validation for the global and per-project permission vocabularies.
"""
from typing import Iterable, Optional, Union

from sqlalchemy.orm import Session

from ..models.models import Role, Project, ProjectRole
from ..schemas.enums import RolePermission, ProjectRolePermission


def _grants(granted: Optional[list], required: str, owner: str) -> bool:
    granted = set(granted or [])
    return owner in granted or required in granted


def validate(db: Session, role_ids: Iterable[str], required: Union[RolePermission, str]) -> bool:
    """True if any of the roles carries ``owner`` or the required permission.

    Ids that do not resolve to a role are ignored.
    """
    ids = [r for r in (role_ids or []) if r]
    if not ids:
        return False
    required = RolePermission(required).value
    roles = db.query(Role).filter(Role.id.in_(ids)).all()
    return any(_grants(r.permission, required, RolePermission.OWNER.value) for r in roles)


def find_member(project: Project, user_id: str) -> Optional[dict]:
    for member in project.member or []:
        if member.get("_id") == user_id:
            return member
    return None


def validate_project(
    db: Session,
    project_id: str,
    user_id: str,
    required: Union[ProjectRolePermission, str],
) -> bool:
    """True if the user's member entry in the project holds ``owner`` or the required permission."""
    project = db.query(Project).filter(Project.id == project_id).first()
    if project is None:
        return False
    member = find_member(project, user_id)
    if member is None or not member.get("role_id"):
        return False
    required = ProjectRolePermission(required).value
    roles = (
        db.query(ProjectRole)
        .filter(ProjectRole.project_id == project_id, ProjectRole.id.in_(member["role_id"]))
        .all()
    )
    return any(_grants(r.permission, required, ProjectRolePermission.OWNER.value) for r in roles)


def owner_role_ids(db: Session, project_id: str) -> set[str]:
    roles = db.query(ProjectRole).filter(ProjectRole.project_id == project_id).all()
    return {r.id for r in roles if ProjectRolePermission.OWNER.value in (r.permission or [])}


def has_owner_member(members: list, owner_ids: set[str]) -> bool:
    return any(set(m.get("role_id") or []) & owner_ids for m in members or [])
