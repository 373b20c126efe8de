"""
Projects: creation, listing, areas, members, project roles and cascading delete.
"""
from typing import List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..errors import (
    CUSTOMER_NOT_FOUND,
    INSERTING_FAILED,
    INVALID_PERIOD,
    PROJECT_AREA_NOT_FOUND,
    PROJECT_MEMBER_NOT_FOUND,
    PROJECT_MUST_HAVE_OWNER,
    PROJECT_NOT_FOUND,
    PROJECT_ROLE_NOT_FOUND,
    PROJECT_ROLE_OWNER_IS_PROTECTED,
    ROLE_MUST_HAVE_VALID_PERMISSION,
    USER_NOT_FOUND,
    bad_request,
    not_found,
)
from ..models.models import (
    Customer,
    Project,
    ProjectIncidentReport,
    ProjectProgressReport,
    ProjectRole,
    ProjectTask,
    User,
)
from ..schemas.enums import ProjectMemberKind, ProjectRolePermission
from ..schemas.projects import ProjectCreate, ProjectMemberRequest, ProjectRoleRequest
from ..storage.provider import StorageProvider
from ..utils import ensure_id, object_id, to_millis
from . import lifecycle, permissions, progress
from .report_service import documentation_dir
from .store import write


log = structlog.get_logger(__name__)

OWNER_ROLE_NAME = "Owner"
SORT_FIELDS = {"name": Project.name, "code": Project.code, "created_at": Project.created_at}


def _customer_snapshot(customer: Optional[Customer]) -> Optional[dict]:
    if customer is None:
        return None
    return {"_id": customer.id, "name": customer.name, "image": customer.image}


def serialize_project(project: Project, customer: Optional[Customer] = None) -> dict:
    return {
        "_id": project.id,
        "customer": _customer_snapshot(customer) if customer else {"_id": project.customer_id},
        "user_id": project.user_id,
        "name": project.name,
        "code": project.code,
        "period": project.period,
        "status": project.status or [],
        "member": project.member or [],
        "area": project.area or [],
        "leave": project.leave or [],
        "created_at": to_millis(project.created_at),
    }


def create_project(db: Session, issuer: User, payload: ProjectCreate) -> str:
    """Create a pending project with an Owner role held by the issuer.

    Project, role and membership are written in one transaction, so a failure
    at any step leaves none of them behind.
    """
    customer_id = ensure_id(payload.customer_id)
    if payload.period.start >= payload.period.end:
        raise bad_request(INVALID_PERIOD)
    if db.query(Customer).filter(Customer.id == customer_id).first() is None:
        raise not_found(CUSTOMER_NOT_FOUND)

    project = Project(
        id=object_id(),
        customer_id=customer_id,
        user_id=issuer.id,
        name=payload.name,
        code=payload.code,
        period={"start": payload.period.start, "end": payload.period.end},
        status=[lifecycle.status_entry(lifecycle.PENDING)],
        current_status=lifecycle.PENDING,
        member=[],
        area=[],
        leave=payload.leave,
    )
    with write(db, INSERTING_FAILED, "project_create_rolled_back", issuer_id=issuer.id):
        db.add(project)
        role = ProjectRole(project_id=project.id, name=OWNER_ROLE_NAME, permission=[ProjectRolePermission.OWNER.value])
        db.add(role)
        db.flush()
        project.member = [{
            "_id": issuer.id,
            "role_id": [role.id],
            "kind": ProjectMemberKind.INDIRECT.value,
            "name": issuer.name,
        }]
    log.info("project_created", project_id=project.id, issuer_id=issuer.id)
    return project.id


def list_projects(
    db: Session,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    text: Optional[str] = None,
    limit: Optional[int] = None,
    skip: Optional[int] = None,
) -> List[dict]:
    q = db.query(Project)
    if status:
        q = q.filter(Project.current_status == status)
    if text:
        like = f"%{text.strip()}%"
        q = q.filter(or_(Project.name.ilike(like), Project.code.ilike(like)))
    if sort:
        descending = sort.startswith("-")
        column = SORT_FIELDS.get(sort.lstrip("-"))
        if column is not None:
            q = q.order_by(column.desc() if descending else column.asc(), Project.id)
    else:
        q = q.order_by(Project.id)
    if skip:
        q = q.offset(skip)
    if limit:
        q = q.limit(limit)
    projects = q.all()
    if not projects:
        raise not_found(PROJECT_NOT_FOUND)

    customers = {
        c.id: c
        for c in db.query(Customer).filter(Customer.id.in_(list({p.customer_id for p in projects}))).all()
    }
    out = []
    for p in projects:
        item = serialize_project(p, customers.get(p.customer_id))
        item["progress"] = progress.project_progress(db, p.id)
        out.append(item)
    return out


def project_detail(db: Session, project: Project) -> dict:
    customer = db.query(Customer).filter(Customer.id == project.customer_id).first()
    out = serialize_project(project, customer)
    roles = {r.id: r for r in db.query(ProjectRole).filter(ProjectRole.project_id == project.id).all()}
    users = {
        u.id: u
        for u in db.query(User).filter(User.id.in_([m.get("_id") for m in project.member or []])).all()
    }
    out["member"] = [
        {
            "_id": m.get("_id"),
            "name": users[m["_id"]].name if m.get("_id") in users else m.get("name"),
            "kind": m.get("kind"),
            "image": users[m["_id"]].image if m.get("_id") in users else None,
            "role": [
                {"_id": rid, "name": roles[rid].name, "permission": roles[rid].permission}
                for rid in m.get("role_id") or []
                if rid in roles
            ],
        }
        for m in project.member or []
    ]
    out["progress"] = progress.project_progress(db, project.id)
    return out


def update_status(db: Session, project: Project, kind: str, message: Optional[str] = None) -> str:
    with write(db, event="project_status_update_failed", project_id=project.id):
        lifecycle.update_project_status(db, project, kind, message)
    return project.id


def delete_project(db: Session, storage: StorageProvider, project: Project) -> str:
    project_id = project.id
    report_ids = [
        r.id for r in db.query(ProjectProgressReport.id).filter(ProjectProgressReport.project_id == project_id).all()
    ]
    with write(db, event="project_delete_failed", project_id=project_id):
        for model in (ProjectTask, ProjectRole, ProjectProgressReport, ProjectIncidentReport):
            db.query(model).filter(model.project_id == project_id).delete(synchronize_session=False)
        db.delete(project)
    for report_id in report_ids:
        try:
            storage.delete_dir(documentation_dir(report_id))
        except OSError as e:
            log.error("report_documentation_cleanup_failed", report_id=report_id, error=str(e))
    log.info("project_deleted", project_id=project_id, reports=len(report_ids))
    return project_id


# Areas

def add_areas(db: Session, project: Project, names: List[str]) -> List[str]:
    new_areas = [{"_id": object_id(), "name": name} for name in names]
    with write(db, event="project_area_add_failed", project_id=project.id):
        project.area = list(project.area or []) + new_areas
    return [a["_id"] for a in new_areas]


def delete_area(db: Session, project: Project, area_id: str) -> str:
    """Remove an area and every task filed under it in one transaction."""
    lifecycle.ensure_pending(project)
    area_id = ensure_id(area_id)
    if area_id not in {a.get("_id") for a in project.area or []}:
        raise not_found(PROJECT_AREA_NOT_FOUND)
    with write(db, event="project_area_delete_failed", project_id=project.id, area_id=area_id):
        db.query(ProjectTask).filter(
            ProjectTask.project_id == project.id, ProjectTask.area_id == area_id
        ).delete(synchronize_session=False)
        project.area = [a for a in project.area or [] if a.get("_id") != area_id]
    log.info("project_area_deleted", project_id=project.id, area_id=area_id)
    return area_id


# Members

def _ensure_owner_remains(db: Session, project_id: str, members: list) -> None:
    if not permissions.has_owner_member(members, permissions.owner_role_ids(db, project_id)):
        raise bad_request(PROJECT_MUST_HAVE_OWNER)


def upsert_members(db: Session, project: Project, payload: List[ProjectMemberRequest]) -> str:
    role_ids = {r.id for r in db.query(ProjectRole).filter(ProjectRole.project_id == project.id).all()}
    members = {m.get("_id"): dict(m) for m in project.member or []}
    for item in payload:
        user_id = ensure_id(item.id)
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise not_found(USER_NOT_FOUND)
        for rid in item.role_id:
            if rid not in role_ids:
                raise not_found(PROJECT_ROLE_NOT_FOUND)
        members[user_id] = {
            "_id": user_id,
            "role_id": list(dict.fromkeys(item.role_id)),
            "kind": item.kind.value,
            "name": item.name or user.name,
        }
    updated = list(members.values())
    _ensure_owner_remains(db, project.id, updated)
    with write(db, event="project_member_update_failed", project_id=project.id):
        project.member = updated
    return project.id


def remove_member(db: Session, project: Project, user_id: str) -> str:
    user_id = ensure_id(user_id)
    if permissions.find_member(project, user_id) is None:
        raise not_found(PROJECT_MEMBER_NOT_FOUND)
    updated = [m for m in project.member or [] if m.get("_id") != user_id]
    _ensure_owner_remains(db, project.id, updated)
    with write(db, event="project_member_remove_failed", project_id=project.id):
        project.member = updated
    return user_id


# Project roles

def serialize_role(role: ProjectRole) -> dict:
    return {"_id": role.id, "project_id": role.project_id, "name": role.name, "permission": role.permission or []}


def _ensure_assignable(permission: list) -> list:
    values = [p.value if hasattr(p, "value") else p for p in permission]
    if not values or ProjectRolePermission.OWNER.value in values:
        raise bad_request(ROLE_MUST_HAVE_VALID_PERMISSION)
    return list(dict.fromkeys(values))


def get_role(db: Session, project: Project, role_id: str) -> ProjectRole:
    role = (
        db.query(ProjectRole)
        .filter(ProjectRole.id == ensure_id(role_id), ProjectRole.project_id == project.id)
        .first()
    )
    if role is None:
        raise not_found(PROJECT_ROLE_NOT_FOUND)
    return role


def list_roles(db: Session, project: Project) -> List[dict]:
    roles = db.query(ProjectRole).filter(ProjectRole.project_id == project.id).order_by(ProjectRole.id).all()
    return [serialize_role(r) for r in roles]


def create_role(db: Session, project: Project, payload: ProjectRoleRequest) -> str:
    role = ProjectRole(project_id=project.id, name=payload.name, permission=_ensure_assignable(payload.permission))
    with write(db, INSERTING_FAILED, "project_role_insert_failed", project_id=project.id):
        db.add(role)
    return role.id


def update_role(db: Session, project: Project, role: ProjectRole, payload: ProjectRoleRequest) -> str:
    if ProjectRolePermission.OWNER.value in (role.permission or []):
        raise bad_request(PROJECT_ROLE_OWNER_IS_PROTECTED)
    permission = _ensure_assignable(payload.permission)
    with write(db, event="project_role_update_failed", role_id=role.id):
        role.name = payload.name
        role.permission = permission
    return role.id


def delete_role(db: Session, project: Project, role: ProjectRole) -> str:
    if ProjectRolePermission.OWNER.value in (role.permission or []):
        raise bad_request(PROJECT_ROLE_OWNER_IS_PROTECTED)
    role_id = role.id
    with write(db, event="project_role_delete_failed", role_id=role_id):
        project.member = [
            {**m, "role_id": [rid for rid in m.get("role_id") or [] if rid != role_id]}
            for m in project.member or []
        ]
        db.delete(role)
    return role_id


# Overview

def overview(db: Session) -> dict:
    """Dashboard aggregate across every project."""
    projects = db.query(Project).order_by(Project.id).all()
    finished = [p for p in projects if lifecycle.head(p.status) == lifecycle.FINISHED]
    running = [p for p in projects if lifecycle.head(p.status) == lifecycle.RUNNING]
    customers = {
        c.id: c
        for c in db.query(Customer).filter(Customer.id.in_(list({p.customer_id for p in running}))).all()
    }

    listed = []
    running_total = 0.0
    for p in running:
        actual = progress.calculate_progress(db, p.id)
        running_total += actual
        listed.append({
            "_id": p.id,
            "name": p.name,
            "code": p.code,
            "period": p.period,
            "status": p.status or [],
            "customer": _customer_snapshot(customers.get(p.customer_id)),
            "progress": actual,
        })

    tasks = db.query(ProjectTask).order_by(ProjectTask.id).all()
    parents = {t.task_id for t in tasks if t.task_id}
    names = {p.id: p.name for p in projects}
    actionable = [
        {
            "_id": t.id,
            "name": t.name,
            "project": {"_id": t.project_id, "name": names.get(t.project_id)},
            "area_id": t.area_id,
            "task_id": t.task_id,
            "period": t.period,
            "status": t.status or [],
        }
        for t in tasks
        if lifecycle.head(t.status) == lifecycle.RUNNING and t.id not in parents
    ]

    count = len(projects)
    completion = (100.0 * len(finished) + running_total) / count if count else 0.0
    return {
        "project_count": count,
        "project_completed": len(finished),
        "project_completition": completion,
        "project": listed,
        "task": actionable,
    }
