from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from ..auth.security import require_permission
from ..db import get_db
from ..errors import COMPANY_NOT_FOUND, INSERTING_FAILED, not_found
from ..models.models import Company
from ..schemas.customers import CompanyRequest
from ..schemas.enums import FileKind, RolePermission
from ..services.store import write
from ..storage.provider import StorageProvider
from ..utils import ensure_id
from .files import get_storage, save_image


router = APIRouter(prefix="/companies", tags=["companies"])


def serialize_company(c: Company) -> dict:
    return {"_id": c.id, "name": c.name, "field": c.field, "contact": c.contact, "image": c.image}


def _get_company(db: Session, company_id: str) -> Company:
    company = db.query(Company).filter(Company.id == ensure_id(company_id)).first()
    if company is None:
        raise not_found(COMPANY_NOT_FOUND)
    return company


@router.get("")
def get_company(db: Session = Depends(get_db)):
    """The current company profile: the earliest one stored."""
    company = db.query(Company).order_by(Company.created_at, Company.id).first()
    if company is None:
        raise not_found(COMPANY_NOT_FOUND)
    return serialize_company(company)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_company(
    payload: CompanyRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.OWNER)),
):
    company = Company(
        name=payload.name,
        field=payload.field,
        contact=payload.contact.model_dump() if payload.contact else None,
    )
    with write(db, INSERTING_FAILED, "company_insert_failed"):
        db.add(company)
    return {"_id": company.id}


@router.put("/{company_id}")
def update_company(
    company_id: str,
    payload: CompanyRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.OWNER)),
):
    company = _get_company(db, company_id)
    with write(db, event="company_update_failed", company_id=company.id):
        company.name = payload.name
        company.field = payload.field
        company.contact = payload.contact.model_dump() if payload.contact else None
    return {"_id": company.id}


@router.put("/{company_id}/image")
def update_company_image(
    company_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_permission(RolePermission.OWNER)),
):
    company = _get_company(db, company_id)
    image = save_image(storage, FileKind.COMPANY_IMAGE, company.id, file)
    with write(db, event="company_image_update_failed", company_id=company.id):
        company.image = image
    return {"_id": company.id, "image": image}
