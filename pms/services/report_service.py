"""
Progress and incident reports.

A progress report is written together with the task and project status
changes it implies. Documentation files are uploaded afterwards; if any file
is rejected the whole report is removed again.
"""
from typing import List, Optional

import structlog
from fastapi import HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    DIRECTORY_CREATION_FAILED,
    INSERTING_FAILED,
    PROJECT_REPORT_DELETION_FAILED,
    PROJECT_REPORT_DOCUMENTATION_INVALID_LENGTH,
    PROJECT_REPORT_DOCUMENTATION_INVALID_NAME,
    PROJECT_REPORT_DOCUMENTATION_NOT_FOUND,
    PROJECT_REPORT_NOT_FOUND,
    PROJECT_REPORT_TIME_INVALID,
    PROJECT_TASK_MUST_BE_LEAF,
    PROJECT_TASK_NOT_FOUND,
    UPDATE_FAILED,
    bad_request,
    not_found,
    server_error,
)
from ..models.models import (
    Project,
    ProjectIncidentReport,
    ProjectProgressReport,
    ProjectTask,
    User,
)
from ..schemas.projects import IncidentReportRequest, ProgressReportRequest
from ..storage.provider import StorageProvider
from ..utils import ensure_id, file_extension, now_ms, object_id
from . import lifecycle, progress
from .store import write


log = structlog.get_logger(__name__)

# Remaining progress within this margin finishes the task
FINISH_EPSILON = 0.001


def documentation_dir(report_id: str) -> str:
    return f"reports/documentation/{report_id}"


def validate_time(time: Optional[List[List[int]]]) -> None:
    if time is None:
        return
    if len(time) != 2 or any(len(t) != 2 for t in time):
        raise bad_request(PROJECT_REPORT_TIME_INVALID)
    for hour, minute in time:
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise bad_request(PROJECT_REPORT_TIME_INVALID)
    if (time[0][0], time[0][1]) >= (time[1][0], time[1][1]):
        raise bad_request(PROJECT_REPORT_TIME_INVALID)


def get_report(db: Session, project_id: str, report_id: str) -> ProjectProgressReport:
    report = (
        db.query(ProjectProgressReport)
        .filter(ProjectProgressReport.id == ensure_id(report_id), ProjectProgressReport.project_id == project_id)
        .first()
    )
    if report is None:
        raise not_found(PROJECT_REPORT_NOT_FOUND)
    return report


def create_report(db: Session, project: Project, issuer: User, payload: ProgressReportRequest) -> str:
    """Persist a progress report and apply its effect on task and project status.

    A report carrying actuals starts a pending or paused project. Each
    reported task starts running; an actual that brings the task within
    ``FINISH_EPSILON`` of 100 is snapped to the remainder and finishes the task.
    """
    validate_time(payload.time)
    tasks, reports = progress.load_inputs(db, project.id)
    by_id = {t.id: t for t in tasks}
    parents = {t.task_id for t in tasks if t.task_id}

    for entry in payload.actual or []:
        task_id = ensure_id(entry.task_id)
        if task_id not in by_id:
            raise not_found(PROJECT_TASK_NOT_FOUND)
        if task_id in parents:
            raise bad_request(PROJECT_TASK_MUST_BE_LEAF)
    for entry in payload.plan or []:
        if ensure_id(entry.task_id) not in by_id:
            raise not_found(PROJECT_TASK_NOT_FOUND)

    report = ProjectProgressReport(
        id=object_id(),
        project_id=project.id,
        user_id=issuer.id,
        date=now_ms(),
        time=payload.time,
        member_id=payload.member_id,
        plan=[{"task_id": p.task_id.lower()} for p in payload.plan] if payload.plan is not None else None,
        weather=[{"time": w.time, "kind": w.kind.value} for w in payload.weather] if payload.weather is not None else None,
        documentation=[
            {"_id": object_id(), "description": d.description, "extension": d.extension}
            for d in payload.documentation
        ] if payload.documentation is not None else None,
    )

    with write(db, INSERTING_FAILED, "report_insert_failed", project_id=project.id):
        if payload.actual is not None:
            lifecycle.start_project(db, project)
        done = {t.id: progress.task_progress(t.id, reports) for t in tasks}
        actual = []
        finished_any = False
        for entry in payload.actual or []:
            task = by_id[entry.task_id.lower()]
            remaining = max(100.0 - done[task.id], 0.0)
            value = min(float(entry.value), remaining)
            finishing = remaining > 0 and remaining - value <= FINISH_EPSILON
            if finishing:
                value = remaining
            done[task.id] += value
            actual.append({"task_id": task.id, "value": value})
            current = lifecycle.head(task.status)
            if finishing:
                if current != lifecycle.FINISHED:
                    lifecycle.push_task_status(task, lifecycle.FINISHED)
                    lifecycle.mark_finished(db, project, task)
                    finished_any = True
            elif current not in (lifecycle.RUNNING, lifecycle.FINISHED):
                lifecycle.push_task_status(task, lifecycle.RUNNING)
                lifecycle.mark_running(db, project, task)
        report.actual = actual if payload.actual is not None else None
        db.add(report)
        if finished_any:
            lifecycle.mark_idle(db, project)
    log.info("report_created", project_id=project.id, report_id=report.id, actual=len(report.actual or []))
    return report.id


def _discard(db: Session, storage: StorageProvider, report_id: str) -> None:
    """Remove a report and its documentation directory; failures are logged, not raised."""
    db.rollback()
    try:
        db.query(ProjectProgressReport).filter(ProjectProgressReport.id == report_id).delete(
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(PROJECT_REPORT_DELETION_FAILED.lower(), report_id=report_id, error=str(e))
    try:
        storage.delete_dir(documentation_dir(report_id))
    except OSError as e:
        log.error(PROJECT_REPORT_DELETION_FAILED.lower(), report_id=report_id, error=str(e))


def upload_documentation(
    db: Session,
    storage: StorageProvider,
    report: ProjectProgressReport,
    files: List[UploadFile],
) -> str:
    """Attach uploaded files to the report's documentation entries, in order."""
    report_id = report.id
    docs = list(report.documentation or [])
    if not docs:
        raise not_found(PROJECT_REPORT_DOCUMENTATION_NOT_FOUND)

    try:
        if len(files) != len(docs):
            raise bad_request(PROJECT_REPORT_DOCUMENTATION_INVALID_LENGTH)
        updated = []
        for doc, upload in zip(docs, files):
            extension = file_extension(upload.filename)
            if extension is None:
                raise bad_request(PROJECT_REPORT_DOCUMENTATION_INVALID_NAME)
            try:
                storage.save(f"{documentation_dir(report_id)}/{doc['_id']}.{extension}", upload.file)
            except OSError as e:
                log.error("report_documentation_write_failed", report_id=report_id, error=str(e))
                raise server_error(DIRECTORY_CREATION_FAILED)
            updated.append({**doc, "extension": extension})
        with write(db, UPDATE_FAILED, "report_documentation_update_failed", report_id=report_id):
            report.documentation = updated
    except HTTPException as e:
        log.warning("report_documentation_rejected", report_id=report_id, error=e.detail)
        _discard(db, storage, report_id)
        raise
    log.info("report_documentation_uploaded", report_id=report_id, files=len(files))
    return report_id


def serialize_report(report: ProjectProgressReport, tasks: list, users: dict, areas: dict) -> dict:
    by_id = {t.id: t for t in tasks}
    author = users.get(report.user_id)
    return {
        "_id": report.id,
        "project_id": report.project_id,
        "user": {"_id": report.user_id, "name": author.name if author else None},
        "date": report.date,
        "time": report.time,
        "member": [
            {"_id": mid, "name": users[mid].name if mid in users else None}
            for mid in report.member_id or []
        ],
        "actual": [
            {
                "_id": a["task_id"],
                "name": by_id[a["task_id"]].name if a["task_id"] in by_id else None,
                "value": a["value"],
                "area": {
                    "_id": by_id[a["task_id"]].area_id if a["task_id"] in by_id else None,
                    "name": areas.get(by_id[a["task_id"]].area_id) if a["task_id"] in by_id else None,
                },
            }
            for a in report.actual or []
        ],
        "plan": [
            {"_id": p["task_id"], "name": by_id[p["task_id"]].name if p["task_id"] in by_id else None}
            for p in report.plan or []
        ],
        "weather": report.weather or [],
        "documentation": report.documentation or [],
        "progress": progress.report_progress(report, tasks),
    }


def _report_context(db: Session, project: Project, reports: list):
    tasks = db.query(ProjectTask).filter(ProjectTask.project_id == project.id).order_by(ProjectTask.id).all()
    user_ids = set()
    for r in reports:
        user_ids.add(r.user_id)
        user_ids.update(r.member_id or [])
    users = {u.id: u for u in db.query(User).filter(User.id.in_(list(user_ids))).all()} if user_ids else {}
    areas = {a.get("_id"): a.get("name") for a in project.area or []}
    return tasks, users, areas


def list_reports(db: Session, project: Project) -> List[dict]:
    reports = (
        db.query(ProjectProgressReport)
        .filter(ProjectProgressReport.project_id == project.id)
        .order_by(ProjectProgressReport.date.desc(), ProjectProgressReport.id.desc())
        .all()
    )
    tasks, users, areas = _report_context(db, project, reports)
    return [serialize_report(r, tasks, users, areas) for r in reports]


def report_detail(db: Session, project: Project, report: ProjectProgressReport) -> dict:
    tasks, users, areas = _report_context(db, project, [report])
    return serialize_report(report, tasks, users, areas)


# Incidents

def create_incident(
    db: Session,
    project: Project,
    issuer: User,
    payload: IncidentReportRequest,
    breakdown: bool = False,
) -> str:
    """Persist an incident; with ``breakdown`` the project head becomes breakdown.

    The incident is committed first and stays persisted even when the status
    change fails, in which case UPDATE_FAILED is returned.
    """
    incident = ProjectIncidentReport(
        project_id=project.id,
        user_id=issuer.id,
        member_id=payload.member_id,
        kind=payload.kind.value,
        message=payload.message,
        date=now_ms(),
    )
    with write(db, INSERTING_FAILED, "incident_insert_failed", project_id=project.id):
        db.add(incident)
    incident_id = incident.id
    log.info("incident_created", project_id=project.id, incident_id=incident_id, kind=incident.kind)

    if breakdown:
        with write(db, UPDATE_FAILED, "incident_breakdown_failed", project_id=project.id, incident_id=incident_id):
            lifecycle.push_project_status(project, lifecycle.BREAKDOWN, payload.message)
    return incident_id


def list_incidents(db: Session, project: Project) -> List[dict]:
    incidents = (
        db.query(ProjectIncidentReport)
        .filter(ProjectIncidentReport.project_id == project.id)
        .order_by(ProjectIncidentReport.date.desc(), ProjectIncidentReport.id.desc())
        .all()
    )
    return [
        {
            "_id": i.id,
            "project_id": i.project_id,
            "user_id": i.user_id,
            "member_id": i.member_id or [],
            "kind": i.kind,
            "message": i.message,
            "date": i.date,
        }
        for i in incidents
    ]
