"""
Task graph: base tasks grouped by project area and their weighted subtasks.
"""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import (
    INVALID_PERIOD,
    INSERTING_FAILED,
    PROJECT_AREA_NOT_FOUND,
    PROJECT_NOT_FOUND,
    PROJECT_TASK_MUST_BE_BASE,
    PROJECT_TASK_NOT_FOUND,
    PROJECT_TASK_VALUE_SUM_MUST_BE_100,
    bad_request,
    not_found,
)
from ..models.models import Project, ProjectTask, ProjectProgressReport
from ..schemas.enums import ProjectTaskQueryKind
from ..schemas.projects import Period, ProjectTaskRequest
from ..utils import ensure_id
from . import lifecycle
from .progress import task_progress
from .store import write


log = structlog.get_logger(__name__)


def get_project(db: Session, project_id: str) -> Project:
    project = db.query(Project).filter(Project.id == ensure_id(project_id)).first()
    if project is None:
        raise not_found(PROJECT_NOT_FOUND)
    return project


def get_task(db: Session, project_id: str, task_id: str) -> ProjectTask:
    task = (
        db.query(ProjectTask)
        .filter(ProjectTask.id == ensure_id(task_id), ProjectTask.project_id == project_id)
        .first()
    )
    if task is None:
        raise not_found(PROJECT_TASK_NOT_FOUND)
    return task


def serialize_task(task: ProjectTask) -> dict:
    return {
        "_id": task.id,
        "project_id": task.project_id,
        "area_id": task.area_id,
        "task_id": task.task_id,
        "user_id": task.user_id or [],
        "name": task.name,
        "description": task.description,
        "volume": task.volume,
        "value": task.value,
        "period": task.period,
        "status": task.status or [],
    }


def _area_ids(project: Project) -> set:
    return {a.get("_id") for a in project.area or []}


def _descendants(db: Session, project_id: str, task_id: str) -> List[ProjectTask]:
    tasks = db.query(ProjectTask).filter(ProjectTask.project_id == project_id).all()
    children = {}
    for t in tasks:
        children.setdefault(t.task_id, []).append(t)
    out, stack, seen = [], [task_id], {task_id}
    while stack:
        for child in children.get(stack.pop(), []):
            if child.id not in seen:
                seen.add(child.id)
                out.append(child)
                stack.append(child.id)
    return out


def _ensure_siblings_sum(db: Session, task: ProjectTask, value: Optional[float]) -> None:
    """Subtasks of one parent keep weighing 100 once ``task`` takes ``value``; None means removed."""
    siblings = (
        db.query(ProjectTask)
        .filter(
            ProjectTask.project_id == task.project_id,
            ProjectTask.task_id == task.task_id,
            ProjectTask.id != task.id,
        )
        .all()
    )
    values = [s.value for s in siblings] + ([value] if value is not None else [])
    if values and not lifecycle.sums_to_100(values):
        raise bad_request(PROJECT_TASK_VALUE_SUM_MUST_BE_100)


def _new_task(project: Project, area_id: str, parent_id: Optional[str], payload: ProjectTaskRequest) -> ProjectTask:
    return ProjectTask(
        project_id=project.id,
        area_id=area_id,
        task_id=parent_id,
        user_id=payload.user_id,
        name=payload.name,
        description=payload.description,
        volume=payload.volume.model_dump() if payload.volume else None,
        value=payload.value,
        period=None,
        status=[lifecycle.status_entry(lifecycle.PENDING)],
    )


def create_base_task(db: Session, project: Project, payload: ProjectTaskRequest) -> str:
    lifecycle.ensure_pending(project)
    area_id = ensure_id(payload.area_id)
    if area_id not in _area_ids(project):
        raise not_found(PROJECT_AREA_NOT_FOUND)
    task = _new_task(project, area_id, None, payload)
    with write(db, INSERTING_FAILED, "task_insert_failed", project_id=project.id):
        db.add(task)
    log.info("task_created", project_id=project.id, task_id=task.id)
    return task.id


def create_subtasks(db: Session, project: Project, parent_id: str, payload: List[ProjectTaskRequest]) -> List[str]:
    """Replace every subtask of a base task with ``payload``.

    The submitted values must add up to exactly 100. The whole batch is one
    transaction bumping the project version, so a concurrent batch on the
    same project fails instead of interleaving.
    """
    lifecycle.ensure_pending(project)
    parent = get_task(db, project.id, parent_id)
    if parent.task_id:
        raise bad_request(PROJECT_TASK_MUST_BE_BASE)
    if not payload or not lifecycle.sums_to_100(p.value for p in payload):
        raise bad_request(PROJECT_TASK_VALUE_SUM_MUST_BE_100)
    lifecycle.ensure_base_sum(db, project.id)

    ids = []
    with write(db, INSERTING_FAILED, "subtask_batch_rolled_back", project_id=project.id, task_id=parent.id):
        for prior in _descendants(db, project.id, parent.id):
            db.delete(prior)
        db.flush()
        for item in payload:
            task = _new_task(project, parent.area_id, parent.id, item)
            db.add(task)
            db.flush()
            ids.append(task.id)
        parent.volume = None
        parent.user_id = None
        project.updated_at = datetime.now(timezone.utc)
    log.info("subtasks_created", project_id=project.id, task_id=parent.id, count=len(ids))
    return ids


def update_task(db: Session, project: Project, task: ProjectTask, payload: ProjectTaskRequest) -> str:
    lifecycle.ensure_pending(project)
    if task.task_id and float(payload.value) != float(task.value):
        _ensure_siblings_sum(db, task, payload.value)
    with write(db, event="task_update_failed", task_id=task.id):
        task.name = payload.name
        task.description = payload.description
        task.value = payload.value
        if payload.user_id is not None:
            task.user_id = payload.user_id
        task.volume = payload.volume.model_dump() if payload.volume else None
        if payload.area_id and not task.task_id:
            area_id = ensure_id(payload.area_id)
            if area_id not in _area_ids(project):
                raise not_found(PROJECT_AREA_NOT_FOUND)
            task.area_id = area_id
    return task.id


def update_task_status(db: Session, project: Project, task: ProjectTask, kind: str, message: Optional[str] = None) -> str:
    with write(db, event="task_status_update_failed", task_id=task.id):
        lifecycle.change_task_status(task, kind, message)
        if kind == lifecycle.RUNNING:
            lifecycle.mark_running(db, project, task)
        elif kind == lifecycle.FINISHED:
            lifecycle.mark_finished(db, project, task)
            lifecycle.mark_idle(db, project)
        else:
            lifecycle.mark_idle(db, project)
    log.info("task_status_changed", project_id=project.id, task_id=task.id, status=kind)
    return task.id


def update_task_period(db: Session, task: ProjectTask, period: Period) -> str:
    if period.start >= period.end:
        raise bad_request(INVALID_PERIOD)
    with write(db, event="task_period_update_failed", task_id=task.id):
        task.period = {"start": period.start, "end": period.end}
    return task.id


def delete_task(db: Session, project: Project, task: ProjectTask) -> str:
    lifecycle.ensure_pending(project)
    if task.task_id:
        _ensure_siblings_sum(db, task, None)
    task_id = task.id
    with write(db, event="task_delete_failed", task_id=task_id):
        for child in _descendants(db, project.id, task_id):
            db.delete(child)
        db.delete(task)
    log.info("task_deleted", project_id=project.id, task_id=task_id)
    return task_id


def list_tasks(
    db: Session,
    project_id: str,
    area_id: Optional[str] = None,
    task_id: Optional[str] = None,
    kind: Optional[ProjectTaskQueryKind] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    q = db.query(ProjectTask).filter(ProjectTask.project_id == project_id)
    if area_id:
        q = q.filter(ProjectTask.area_id == ensure_id(area_id))
    if task_id:
        q = q.filter(ProjectTask.task_id == ensure_id(task_id))
    if kind == ProjectTaskQueryKind.BASE:
        q = q.filter(ProjectTask.task_id.is_(None))
    elif kind == ProjectTaskQueryKind.DEPENDENCY:
        q = q.filter(ProjectTask.task_id.is_not(None))
    q = q.order_by(ProjectTask.id)
    if limit:
        q = q.limit(limit)
    return [serialize_task(t) for t in q.all()]


def _reports(db: Session, project_id: str) -> list:
    return (
        db.query(ProjectProgressReport)
        .filter(ProjectProgressReport.project_id == project_id)
        .order_by(ProjectProgressReport.date, ProjectProgressReport.id)
        .all()
    )


def _rolled_up_progress(task: ProjectTask, children: dict, reports: list, seen: set) -> float:
    subtasks = children.get(task.id, [])
    if not subtasks:
        return task_progress(task.id, reports)
    total = 0.0
    for sub in subtasks:
        if sub.id in seen:
            continue
        seen.add(sub.id)
        total += float(sub.value or 0.0) * _rolled_up_progress(sub, children, reports, seen) / 100.0
    return min(total, 100.0)


def task_detail(db: Session, project: Project, task: ProjectTask) -> dict:
    tasks = db.query(ProjectTask).filter(ProjectTask.project_id == project.id).order_by(ProjectTask.id).all()
    children = {}
    for t in tasks:
        children.setdefault(t.task_id, []).append(t)
    reports = _reports(db, project.id)
    area = next((a for a in project.area or [] if a.get("_id") == task.area_id), None)
    out = serialize_task(task)
    out["area"] = area
    out["progress"] = _rolled_up_progress(task, children, reports, {task.id})
    out["subtask"] = []
    for sub in children.get(task.id, []):
        item = serialize_task(sub)
        item["progress"] = _rolled_up_progress(sub, children, reports, {task.id, sub.id})
        out["subtask"].append(item)
    return out


def area_summary(db: Session, project: Project) -> List[dict]:
    tasks = db.query(ProjectTask).filter(ProjectTask.project_id == project.id).order_by(ProjectTask.id).all()
    children = {}
    for t in tasks:
        children.setdefault(t.task_id, []).append(t)
    reports = _reports(db, project.id)
    out = []
    for area in project.area or []:
        out.append({
            "_id": area.get("_id"),
            "name": area.get("name"),
            "task": [
                {
                    "_id": t.id,
                    "name": t.name,
                    "value": t.value,
                    "period": t.period,
                    "status": lifecycle.head(t.status),
                    "progress": _rolled_up_progress(t, children, reports, {t.id}),
                }
                for t in children.get(None, [])
                if t.area_id == area.get("_id")
            ],
        })
    return out


def timeline(db: Session, project: Project) -> List[dict]:
    tasks = db.query(ProjectTask).filter(ProjectTask.project_id == project.id).order_by(ProjectTask.id).all()
    areas = {a.get("_id"): a.get("name") for a in project.area or []}

    def sort_key(t: ProjectTask):
        start = (t.period or {}).get("start")
        return (start is None, start or 0, t.id)

    return [
        {
            "_id": t.id,
            "task_id": t.task_id,
            "area": {"_id": t.area_id, "name": areas.get(t.area_id)},
            "name": t.name,
            "value": t.value,
            "period": t.period,
            "status": lifecycle.head(t.status),
        }
        for t in sorted(tasks, key=sort_key)
    ]
