from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Integer,
    Float,
    BigInteger,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base
from ..utils import object_id


def oid_pk() -> Mapped[str]:
    return mapped_column(String(24), primary_key=True, default=object_id)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemLock(Base):
    """Single-row gates; a row's existence means the guarded step already ran."""

    __tablename__ = "system_locks"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = oid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    permission: Mapped[list] = mapped_column(JSON, default=list)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = oid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[list] = mapped_column(JSON, default=list)
    image: Mapped[Optional[dict]] = mapped_column(JSON)  # {_id, extension}
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = oid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    field: Mapped[Optional[list]] = mapped_column(JSON)
    contact: Mapped[Optional[dict]] = mapped_column(JSON)  # {address, email, phone}
    image: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = oid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    field: Mapped[Optional[list]] = mapped_column(JSON)
    contact: Mapped[Optional[dict]] = mapped_column(JSON)
    person: Mapped[Optional[list]] = mapped_column(JSON)  # [{_id, name, role, email, phone, address}]
    image: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = oid_pk()
    customer_id: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(24))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[dict] = mapped_column(JSON, nullable=False)  # {start, end} epoch ms
    # Newest first; element 0 is the current state
    status: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    member: Mapped[list] = mapped_column(JSON, default=list)  # [{_id, role_id[], kind, name}]
    area: Mapped[list] = mapped_column(JSON, default=list)  # [{_id, name}]
    leave: Mapped[Optional[list]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class ProjectRole(Base):
    __tablename__ = "project_roles"

    id: Mapped[str] = oid_pk()
    project_id: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    permission: Mapped[list] = mapped_column(JSON, default=list)


class ProjectTask(Base):
    __tablename__ = "project_tasks"

    id: Mapped[str] = oid_pk()
    project_id: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    area_id: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    # Parent task; null marks a base task
    task_id: Mapped[Optional[str]] = mapped_column(String(24), index=True)
    user_id: Mapped[Optional[list]] = mapped_column(JSON)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    volume: Mapped[Optional[dict]] = mapped_column(JSON)  # {value, unit}
    value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    period: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ProjectProgressReport(Base):
    __tablename__ = "project_reports"

    id: Mapped[str] = oid_pk()
    project_id: Mapped[str] = mapped_column(String(24), nullable=False)
    user_id: Mapped[str] = mapped_column(String(24), nullable=False)
    date: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
    time: Mapped[Optional[list]] = mapped_column(JSON)  # [[h, m], [h, m]]
    member_id: Mapped[Optional[list]] = mapped_column(JSON)
    actual: Mapped[Optional[list]] = mapped_column(JSON)  # [{task_id, value}]
    plan: Mapped[Optional[list]] = mapped_column(JSON)  # [{task_id}]
    weather: Mapped[Optional[list]] = mapped_column(JSON)  # [{time: [h, m], kind}]
    documentation: Mapped[Optional[list]] = mapped_column(JSON)  # [{_id, description, extension}]

    __table_args__ = (Index("ix_project_reports_project_date", "project_id", "date"),)


class ProjectIncidentReport(Base):
    __tablename__ = "project_incidents"

    id: Mapped[str] = oid_pk()
    project_id: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(24), nullable=False)
    member_id: Mapped[Optional[list]] = mapped_column(JSON)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[int] = mapped_column(BigInteger, nullable=False)
