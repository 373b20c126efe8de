from typing import Optional, List
from pydantic import BaseModel, field_validator


class Contact(BaseModel):
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("address", "email", "phone", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class CustomerPerson(BaseModel):
    name: str
    role: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CustomerRequest(BaseModel):
    name: str
    field: Optional[List[str]] = None
    contact: Optional[Contact] = None
    person: Optional[List[CustomerPerson]] = None


class CompanyRequest(BaseModel):
    name: str
    field: Optional[List[str]] = None
    contact: Optional[Contact] = None
