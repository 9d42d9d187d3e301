from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from workforce.models import (
    AlertSeverity,
    AnomalyEntityType,
    AnomalyStatus,
    ExpenseStatus,
    TimeEntryType,
    VacationStatus,
    VacationType,
)


class ClockRequest(BaseModel):
    type: TimeEntryType
    timestamp: datetime | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    location: str | None = Field(default=None, max_length=255)
    device: str | None = Field(default=None, max_length=255)


class TimeEntryRead(BaseModel):
    id: int
    employee_id: int
    type: TimeEntryType
    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    location: str | None = None
    device: str | None = None

    model_config = ConfigDict(from_attributes=True)


class GeofenceRead(BaseModel):
    distance_m: float
    radius_m: int
    outside: bool


class ClockResponse(BaseModel):
    entry: TimeEntryRead
    geofence: GeofenceRead | None = None
    alert_created: bool = False


class ClockStatusResponse(BaseModel):
    status: Literal["OFF", "WORKING", "BREAK", "LUNCH"]
    last_entry: TimeEntryRead | None = None


class ExpenseCreate(BaseModel):
    employee_id: int | None = Field(default=None, ge=1)
    amount: float = Field(gt=0)
    expense_date: date | None = None
    category: str = Field(min_length=1, max_length=100)
    payment_method: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=1000)


class ExpenseRead(BaseModel):
    id: int
    employee_id: int
    amount: float
    expense_date: date
    category: str
    payment_method: str | None = None
    description: str | None = None
    status: ExpenseStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpenseDecisionRequest(BaseModel):
    status: ExpenseStatus


class VacationCreate(BaseModel):
    employee_id: int | None = Field(default=None, ge=1)
    start_date: date
    end_date: date
    type: VacationType = VacationType.VACATION
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_range(self) -> "VacationCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self


class VacationRead(BaseModel):
    id: int
    employee_id: int
    start_date: date
    end_date: date
    type: VacationType
    status: VacationStatus
    days: int
    reason: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VacationDecisionRequest(BaseModel):
    status: VacationStatus


class ReasonRead(BaseModel):
    code: str
    message: str
    score: int


class AnomalyRead(BaseModel):
    id: int
    entity_type: AnomalyEntityType
    entity_id: int
    employee_id: int | None = None
    employee_name: str | None = None
    score: int
    reasons: list[ReasonRead] = Field(default_factory=list)
    status: AnomalyStatus
    created_at: datetime
    updated_at: datetime


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AnomalyPage(BaseModel):
    data: list[AnomalyRead]
    meta: PageMeta


class AnomalyStatusUpdateRequest(BaseModel):
    status: AnomalyStatus


class AlertRead(BaseModel):
    id: int
    employee_id: int | None = None
    type: str
    severity: AlertSeverity
    title: str
    message: str
    action_url: str | None = None
    is_read: bool
    is_dismissed: bool
    created_at: datetime
    expires_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EmployeePiiUpdateRequest(BaseModel):
    ssn: str | None = Field(default=None, max_length=64)
    iban: str | None = Field(default=None, max_length=64)


class EmployeePiiRead(BaseModel):
    employee_id: int
    ssn: str | None = None
    iban: str | None = None
