from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from ..auth.security import require_permission
from ..db import get_db
from ..errors import CUSTOMER_NOT_FOUND, INSERTING_FAILED, not_found
from ..models.models import Customer
from ..schemas.customers import CustomerRequest
from ..schemas.enums import FileKind, RolePermission
from ..services.store import write
from ..storage.provider import StorageProvider
from ..utils import ensure_id, object_id, to_millis
from .files import FILE_DIRS, get_storage, save_image


router = APIRouter(prefix="/customers", tags=["customers"])
log = structlog.get_logger(__name__)


def serialize_customer(c: Customer) -> dict:
    return {
        "_id": c.id,
        "name": c.name,
        "field": c.field,
        "contact": c.contact,
        "person": c.person,
        "image": c.image,
        "created_at": to_millis(c.created_at),
    }


def _persons(payload: CustomerRequest) -> Optional[list]:
    # Persons are re-issued on every save
    if payload.person is None:
        return None
    return [{"_id": object_id(), **p.model_dump()} for p in payload.person]


def _get_customer(db: Session, customer_id: str) -> Customer:
    customer = db.query(Customer).filter(Customer.id == ensure_id(customer_id)).first()
    if customer is None:
        raise not_found(CUSTOMER_NOT_FOUND)
    return customer


@router.get("")
def list_customers(
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.GET_CUSTOMERS)),
):
    q = db.query(Customer).order_by(Customer.name, Customer.id)
    if limit:
        q = q.limit(limit)
    return [serialize_customer(c) for c in q.all()]


@router.get("/{customer_id}")
def get_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.GET_CUSTOMER)),
):
    return serialize_customer(_get_customer(db, customer_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.CREATE_CUSTOMER)),
):
    customer = Customer(
        name=payload.name,
        field=payload.field,
        contact=payload.contact.model_dump() if payload.contact else None,
        person=_persons(payload),
    )
    with write(db, INSERTING_FAILED, "customer_insert_failed"):
        db.add(customer)
    log.info("customer_created", customer_id=customer.id)
    return {"_id": customer.id}


@router.put("/{customer_id}")
def update_customer(
    customer_id: str,
    payload: CustomerRequest,
    db: Session = Depends(get_db),
    _=Depends(require_permission(RolePermission.UPDATE_CUSTOMER)),
):
    customer = _get_customer(db, customer_id)
    with write(db, event="customer_update_failed", customer_id=customer.id):
        customer.name = payload.name
        customer.field = payload.field
        customer.contact = payload.contact.model_dump() if payload.contact else None
        customer.person = _persons(payload)
    return {"_id": customer.id}


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_permission(RolePermission.DELETE_CUSTOMER)),
):
    customer = _get_customer(db, customer_id)
    cid = customer.id
    with write(db, event="customer_delete_failed", customer_id=cid):
        db.delete(customer)
    try:
        storage.delete_dir(f"{FILE_DIRS[FileKind.CUSTOMER_IMAGE]}/{cid}")
    except OSError as e:
        log.warning("customer_image_cleanup_failed", customer_id=cid, error=str(e))
    return {"_id": cid}


@router.put("/{customer_id}/image")
def update_customer_image(
    customer_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _=Depends(require_permission(RolePermission.UPDATE_CUSTOMER)),
):
    customer = _get_customer(db, customer_id)
    image = save_image(storage, FileKind.CUSTOMER_IMAGE, customer.id, file)
    with write(db, event="customer_image_update_failed", customer_id=customer.id):
        customer.image = image
    return {"_id": customer.id, "image": image}
