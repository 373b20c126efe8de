from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import require_project_permission
from ..db import get_db
from ..schemas.enums import ProjectRolePermission, ProjectTaskQueryKind
from ..schemas.projects import Period, ProjectTaskRequest, ProjectTaskStatusRequest
from ..services import task_service


router = APIRouter(prefix="/projects", tags=["tasks"])


@router.get("/{project_id}/tasks")
def list_tasks(
    project_id: str,
    area_id: Optional[str] = None,
    task_id: Optional[str] = None,
    kind: Optional[ProjectTaskQueryKind] = None,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.GET_TASK)),
):
    project = task_service.get_project(db, project_id)
    return task_service.list_tasks(db, project.id, area_id=area_id, task_id=task_id, kind=kind, limit=limit)


@router.get("/{project_id}/tasks/{task_id}")
def get_task(
    project_id: str,
    task_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.GET_TASK)),
):
    project = task_service.get_project(db, project_id)
    task = task_service.get_task(db, project.id, task_id)
    return task_service.task_detail(db, project, task)


@router.post("/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: str,
    payload: ProjectTaskRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_TASK)),
):
    project = task_service.get_project(db, project_id)
    return {"_id": task_service.create_base_task(db, project, payload)}


@router.post("/{project_id}/tasks/{task_id}", status_code=status.HTTP_201_CREATED)
def create_subtasks(
    project_id: str,
    task_id: str,
    payload: List[ProjectTaskRequest],
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_TASK)),
):
    project = task_service.get_project(db, project_id)
    return {"_id": task_service.create_subtasks(db, project, task_id, payload)}


@router.put("/{project_id}/tasks/{task_id}")
def update_task(
    project_id: str,
    task_id: str,
    payload: ProjectTaskRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.UPDATE_TASK)),
):
    project = task_service.get_project(db, project_id)
    task = task_service.get_task(db, project.id, task_id)
    return {"_id": task_service.update_task(db, project, task, payload)}


@router.patch("/{project_id}/tasks/{task_id}/status")
def update_task_status(
    project_id: str,
    task_id: str,
    payload: ProjectTaskStatusRequest,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.UPDATE_TASK)),
):
    project = task_service.get_project(db, project_id)
    task = task_service.get_task(db, project.id, task_id)
    return {"_id": task_service.update_task_status(db, project, task, payload.kind.value, payload.message)}


@router.patch("/{project_id}/tasks/{task_id}/period")
def update_task_period(
    project_id: str,
    task_id: str,
    payload: Period,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.UPDATE_TASK)),
):
    project = task_service.get_project(db, project_id)
    task = task_service.get_task(db, project.id, task_id)
    return {"_id": task_service.update_task_period(db, task, payload)}


@router.delete("/{project_id}/tasks/{task_id}")
def delete_task(
    project_id: str,
    task_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.DELETE_TASK)),
):
    project = task_service.get_project(db, project_id)
    task = task_service.get_task(db, project.id, task_id)
    return {"_id": task_service.delete_task(db, project, task)}


@router.get("/{project_id}/timeline")
def get_timeline(project_id: str, db: Session = Depends(get_db)):
    return task_service.timeline(db, task_service.get_project(db, project_id))
