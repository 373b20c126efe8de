from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_permission, require_project_permission
from ..db import get_db
from ..models.models import User
from ..schemas.enums import ProjectRolePermission, ProjectStatusKind, RolePermission
from ..schemas.projects import (
    ProjectAreaRequest,
    ProjectCreate,
    ProjectMemberRequest,
    ProjectRoleRequest,
)
from ..services import progress, project_service
from ..services.task_service import area_summary, get_project
from ..storage.provider import StorageProvider
from .files import get_storage


router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("")
def list_projects(
    status: Optional[ProjectStatusKind] = None,
    sort: Optional[str] = None,
    text: Optional[str] = None,
    limit: Optional[int] = None,
    skip: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return project_service.list_projects(
        db,
        status=status.value if status else None,
        sort=sort,
        text=text,
        limit=limit,
        skip=skip,
    )


@router.post("")
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    issuer: User = Depends(require_permission(RolePermission.CREATE_PROJECT)),
):
    return {"_id": project_service.create_project(db, issuer, payload)}


@router.get("/{project_id}")
def get_project_detail(project_id: str, db: Session = Depends(get_db)):
    return project_service.project_detail(db, get_project(db, project_id))


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_project_permission(ProjectRolePermission.OWNER)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.delete_project(db, storage, project)}


@router.put("/{project_id}/status")
def update_project_status(
    project_id: str,
    status: ProjectStatusKind,
    message: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_INCIDENT)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.update_status(db, project, status.value, message)}


@router.get("/{project_id}/progress")
def get_project_progress(project_id: str, db: Session = Depends(get_db)):
    project = get_project(db, project_id)
    return progress.get_project_progress(db, project.id)


# Areas

@router.get("/{project_id}/areas")
def list_areas(project_id: str, db: Session = Depends(get_db)):
    return area_summary(db, get_project(db, project_id))


@router.patch("/{project_id}/areas")
def add_area(
    project_id: str,
    payload: ProjectAreaRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_TASK)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.add_areas(db, project, [payload.name])[0]}


@router.delete("/{project_id}/areas/{area_id}")
def delete_area(
    project_id: str,
    area_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.DELETE_TASK)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.delete_area(db, project, area_id)}


# Members

@router.get("/{project_id}/members")
def list_members(project_id: str, db: Session = Depends(get_db)):
    return project_service.project_detail(db, get_project(db, project_id))["member"]


@router.patch("/{project_id}/members")
def update_members(
    project_id: str,
    payload: List[ProjectMemberRequest],
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_ROLE)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.upsert_members(db, project, payload)}


@router.delete("/{project_id}/members/{user_id}")
def remove_member(
    project_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_ROLE)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.remove_member(db, project, user_id)}


# Project roles

@router.get("/{project_id}/roles")
def list_project_roles(project_id: str, db: Session = Depends(get_db)):
    return project_service.list_roles(db, get_project(db, project_id))


@router.post("/{project_id}/roles", status_code=201)
def create_project_role(
    project_id: str,
    payload: ProjectRoleRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_ROLE)),
):
    project = get_project(db, project_id)
    return {"_id": project_service.create_role(db, project, payload)}


@router.put("/{project_id}/roles/{role_id}")
def update_project_role(
    project_id: str,
    role_id: str,
    payload: ProjectRoleRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.UPDATE_ROLE)),
):
    project = get_project(db, project_id)
    role = project_service.get_role(db, project, role_id)
    return {"_id": project_service.update_role(db, project, role, payload)}


@router.delete("/{project_id}/roles/{role_id}")
def delete_project_role(
    project_id: str,
    role_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.DELETE_ROLE)),
):
    project = get_project(db, project_id)
    role = project_service.get_role(db, project, role_id)
    return {"_id": project_service.delete_role(db, project, role)}
