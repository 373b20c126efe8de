from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from ..auth.security import require_project_permission
from ..db import get_db
from ..models.models import User
from ..schemas.enums import ProjectRolePermission
from ..schemas.projects import IncidentReportRequest, ProgressReportRequest
from ..services import report_service
from ..services.task_service import get_project
from ..storage.provider import StorageProvider
from .files import get_storage


router = APIRouter(prefix="/projects", tags=["reports"])


@router.get("/{project_id}/reports")
def list_reports(
    project_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.GET_REPORT)),
):
    return report_service.list_reports(db, get_project(db, project_id))


@router.get("/{project_id}/reports/{report_id}")
def get_report(
    project_id: str,
    report_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.GET_REPORT)),
):
    project = get_project(db, project_id)
    report = report_service.get_report(db, project.id, report_id)
    return report_service.report_detail(db, project, report)


@router.post("/{project_id}/reports", status_code=status.HTTP_201_CREATED)
def create_report(
    project_id: str,
    payload: ProgressReportRequest,
    db: Session = Depends(get_db),
    issuer: User = Depends(require_project_permission(ProjectRolePermission.CREATE_REPORT)),
):
    project = get_project(db, project_id)
    return {"_id": report_service.create_report(db, project, issuer, payload)}


@router.patch("/{project_id}/reports/{report_id}")
def upload_report_documentation(
    project_id: str,
    report_id: str,
    file: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_project_permission(ProjectRolePermission.CREATE_REPORT)),
):
    project = get_project(db, project_id)
    report = report_service.get_report(db, project.id, report_id)
    return {"_id": report_service.upload_documentation(db, storage, report, file)}


@router.get("/{project_id}/incidents")
def list_incidents(
    project_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_project_permission(ProjectRolePermission.GET_REPORT)),
):
    return report_service.list_incidents(db, get_project(db, project_id))


@router.post("/{project_id}/incidents", status_code=status.HTTP_201_CREATED)
def create_incident(
    project_id: str,
    payload: IncidentReportRequest,
    breakdown: bool = False,
    db: Session = Depends(get_db),
    issuer: User = Depends(require_project_permission(ProjectRolePermission.CREATE_INCIDENT)),
):
    project = get_project(db, project_id)
    return {"_id": report_service.create_incident(db, project, issuer, payload, breakdown=breakdown)}
