from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from .enums import (
    ProjectRolePermission,
    ProjectMemberKind,
    ProjectTaskStatusKind,
    ProjectIncidentKind,
    WeatherKind,
)


class Period(BaseModel):
    start: int
    end: int


class ProjectCreate(BaseModel):
    customer_id: str
    name: str
    code: str
    period: Period
    leave: Optional[List[int]] = None

    @field_validator("name", "code", mode="before")
    @classmethod
    def strip(cls, v):
        if v is None:
            return v
        return str(v).strip()


class ProjectAreaRequest(BaseModel):
    name: str


class ProjectMemberRequest(BaseModel):
    id: str = Field(alias="_id")
    role_id: List[str]
    kind: ProjectMemberKind
    name: Optional[str] = None


class ProjectRoleRequest(BaseModel):
    name: str
    permission: List[ProjectRolePermission]


class Volume(BaseModel):
    value: float
    unit: str


class ProjectTaskRequest(BaseModel):
    area_id: Optional[str] = None
    user_id: Optional[List[str]] = None
    name: str
    description: Optional[str] = None
    volume: Optional[Volume] = None
    value: float = Field(ge=0, le=100)


class ProjectTaskStatusRequest(BaseModel):
    kind: ProjectTaskStatusKind
    message: Optional[str] = None


class ReportActual(BaseModel):
    task_id: str
    value: float = Field(ge=0, le=100)


class ReportPlan(BaseModel):
    task_id: str


class ReportWeather(BaseModel):
    time: List[int] = Field(min_length=2, max_length=2)
    kind: WeatherKind


class ReportDocumentation(BaseModel):
    description: Optional[str] = None
    extension: Optional[str] = None


class ProgressReportRequest(BaseModel):
    member_id: Optional[List[str]] = None
    time: Optional[List[List[int]]] = None
    actual: Optional[List[ReportActual]] = None
    plan: Optional[List[ReportPlan]] = None
    weather: Optional[List[ReportWeather]] = None
    documentation: Optional[List[ReportDocumentation]] = None


class IncidentReportRequest(BaseModel):
    member_id: List[str] = []
    kind: ProjectIncidentKind
    message: Optional[str] = None
