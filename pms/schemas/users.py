from typing import Optional, List
from pydantic import BaseModel, field_validator

from .enums import RolePermission


class UserCreate(BaseModel):
    name: str
    email: str
    password: str
    role_id: List[str] = []

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        return str(v).strip().lower()


class UserUpdate(BaseModel):
    name: str
    email: str
    password: Optional[str] = None
    role_id: List[str] = []

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        return str(v).strip().lower()

    @field_validator("password", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        return v or None


class RoleRequest(BaseModel):
    name: str
    permission: List[RolePermission]
