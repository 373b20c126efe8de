"""
Status histories for projects and tasks.

Histories are stored newest first; element 0 is the current state. Entries
are ``{kind, time, message}`` with ``time`` in epoch milliseconds.
"""
import math
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import (
    INVALID_STATUS,
    PROJECT_STATUS_MUST_BE_PENDING,
    PROJECT_TASK_VALUE_SUM_MUST_BE_100,
    bad_request,
)
from ..models.models import Project, ProjectTask
from ..schemas.enums import ProjectStatusKind, ProjectTaskStatusKind
from ..utils import now_ms


log = structlog.get_logger(__name__)

PENDING = ProjectStatusKind.PENDING.value
RUNNING = ProjectStatusKind.RUNNING.value
PAUSED = ProjectStatusKind.PAUSED.value
FINISHED = ProjectStatusKind.FINISHED.value
BREAKDOWN = ProjectStatusKind.BREAKDOWN.value

# Allowed task transitions requested through the API
TASK_TRANSITIONS = {
    ProjectTaskStatusKind.PENDING.value: {RUNNING},
    ProjectTaskStatusKind.RUNNING.value: {PAUSED, FINISHED, BREAKDOWN},
    ProjectTaskStatusKind.PAUSED.value: {RUNNING},
    ProjectTaskStatusKind.BREAKDOWN.value: {RUNNING},
    ProjectTaskStatusKind.FINISHED.value: set(),
}


def status_entry(kind: str, message: Optional[str] = None) -> dict:
    return {"kind": kind, "time": now_ms(), "message": message}


def head(status: Optional[list]) -> Optional[str]:
    if not status:
        return None
    return status[0].get("kind")


def sums_to_100(values: Iterable[float]) -> bool:
    return math.fsum(float(v) for v in values) == 100.0


def push_project_status(project: Project, kind: str, message: Optional[str] = None) -> None:
    project.status = [status_entry(kind, message)] + list(project.status or [])
    project.current_status = kind
    project.updated_at = datetime.now(timezone.utc)
    log.info("project_status_changed", project_id=project.id, status=kind)


def push_task_status(task: ProjectTask, kind: str, message: Optional[str] = None) -> None:
    task.status = [status_entry(kind, message)] + list(task.status or [])


def ensure_pending(project: Project) -> None:
    if head(project.status) != PENDING:
        raise bad_request(PROJECT_STATUS_MUST_BE_PENDING)


def base_tasks(db: Session, project_id: str) -> list:
    return (
        db.query(ProjectTask)
        .filter(ProjectTask.project_id == project_id, ProjectTask.task_id.is_(None))
        .order_by(ProjectTask.id)
        .all()
    )


def ensure_base_sum(db: Session, project_id: str) -> None:
    db.flush()
    if not sums_to_100(t.value for t in base_tasks(db, project_id)):
        raise bad_request(PROJECT_TASK_VALUE_SUM_MUST_BE_100)


def ensure_subtask_sums(db: Session, project_id: str) -> None:
    """Every parent's direct subtasks must weigh exactly 100 together."""
    children = {}
    for t in _project_tasks(db, project_id):
        if t.task_id:
            children.setdefault(t.task_id, []).append(t.value)
    if any(not sums_to_100(values) for values in children.values()):
        raise bad_request(PROJECT_TASK_VALUE_SUM_MUST_BE_100)


def ensure_startable(db: Session, project_id: str) -> None:
    ensure_base_sum(db, project_id)
    ensure_subtask_sums(db, project_id)


def start_project(db: Session, project: Project, message: Optional[str] = None) -> bool:
    """Move a pending or paused project to running. Returns True when the head changed."""
    current = head(project.status)
    if current not in (PENDING, PAUSED):
        return False
    if current == PENDING:
        ensure_startable(db, project.id)
    push_project_status(project, RUNNING, message)
    return True


def update_project_status(db: Session, project: Project, kind: str, message: Optional[str] = None) -> None:
    """Explicit status command; only clears a breakdown or a pause.

    A project broken down before it ever ran has not passed the start checks
    yet, so they run here.
    """
    if kind != RUNNING or head(project.status) not in (BREAKDOWN, PAUSED):
        raise bad_request(INVALID_STATUS)
    if not any(entry.get("kind") == RUNNING for entry in project.status or []):
        ensure_startable(db, project.id)
    push_project_status(project, RUNNING, message)


def change_task_status(task: ProjectTask, kind: str, message: Optional[str] = None) -> None:
    current = head(task.status) or PENDING
    if kind not in TASK_TRANSITIONS.get(current, set()):
        raise bad_request(INVALID_STATUS)
    push_task_status(task, kind, message)


def _project_tasks(db: Session, project_id: str) -> list:
    db.flush()
    return db.query(ProjectTask).filter(ProjectTask.project_id == project_id).order_by(ProjectTask.id).all()


def mark_running(db: Session, project: Project, task: ProjectTask) -> None:
    """Task work started: wake its parents and the project."""
    tasks = {t.id: t for t in _project_tasks(db, project.id)}
    parent_id = task.task_id
    seen = {task.id}
    while parent_id and parent_id in tasks and parent_id not in seen:
        seen.add(parent_id)
        parent = tasks[parent_id]
        if head(parent.status) in (PENDING, PAUSED):
            push_task_status(parent, RUNNING)
        parent_id = parent.task_id
    start_project(db, project)


def mark_finished(db: Session, project: Project, task: ProjectTask) -> None:
    """Finish parents whose subtasks are all finished, then the project when every base task is."""
    tasks = {t.id: t for t in _project_tasks(db, project.id)}
    parent_id = task.task_id
    seen = {task.id}
    while parent_id and parent_id in tasks and parent_id not in seen:
        seen.add(parent_id)
        siblings = [t for t in tasks.values() if t.task_id == parent_id]
        if not all(head(t.status) == FINISHED for t in siblings):
            break
        parent = tasks[parent_id]
        if head(parent.status) != FINISHED:
            push_task_status(parent, FINISHED)
        parent_id = parent.task_id
    bases = [t for t in tasks.values() if not t.task_id]
    if bases and all(head(t.status) == FINISHED for t in bases) and head(project.status) != FINISHED:
        push_project_status(project, FINISHED)


def mark_idle(db: Session, project: Project) -> None:
    """A running project with no running task left is paused."""
    if head(project.status) != RUNNING:
        return
    if any(head(t.status) == RUNNING for t in _project_tasks(db, project.id)):
        return
    push_project_status(project, PAUSED)
