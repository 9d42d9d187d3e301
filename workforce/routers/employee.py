from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from workforce.audit import audit_request
from workforce.db import get_db
from workforce.schemas import (
    ClockRequest,
    ClockResponse,
    ClockStatusResponse,
    ExpenseCreate,
    ExpenseRead,
    GeofenceRead,
    TimeEntryRead,
    VacationCreate,
    VacationRead,
)
from workforce.security import (
    claims_employee_id,
    ensure_self_or_reviewer,
    require_user,
    resolve_target_employee,
)
from workforce.services.expenses import create_expense, list_expenses
from workforce.services.time_entries import clock_time_entry, get_clock_status, list_time_entries
from workforce.services.vacations import create_vacation, delete_vacation, get_vacation, list_vacations

router = APIRouter(tags=["employee"])


@router.post("/api/clock", response_model=ClockResponse, status_code=status.HTTP_201_CREATED)
def clock_endpoint(
    payload: ClockRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> ClockResponse:
    employee_id = claims_employee_id(claims)
    result = clock_time_entry(db, employee_id=employee_id, payload=payload)

    request.state.employee_id = employee_id
    request.state.event_id = result.entry.id
    geofence = None
    if result.geofence is not None:
        geofence = GeofenceRead(
            distance_m=round(result.geofence.distance_m, 2),
            radius_m=result.geofence.radius_m,
            outside=result.geofence.outside,
        )
    return ClockResponse(
        entry=TimeEntryRead.model_validate(result.entry),
        geofence=geofence,
        alert_created=result.alert_created,
    )


@router.get("/api/clock/status", response_model=ClockStatusResponse)
def clock_status_endpoint(
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> ClockStatusResponse:
    state, last_entry = get_clock_status(db, employee_id=claims_employee_id(claims))
    return ClockStatusResponse(
        status=state,
        last_entry=TimeEntryRead.model_validate(last_entry) if last_entry is not None else None,
    )


@router.get("/api/clock/history", response_model=list[TimeEntryRead])
def clock_history_endpoint(
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    limit: int = Query(default=100, ge=1, le=500),
    employee_id: int | None = Query(default=None, ge=1),
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[TimeEntryRead]:
    target_employee_id = resolve_target_employee(claims, employee_id)
    return list_time_entries(
        db,
        employee_id=target_employee_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )


@router.post("/api/expenses", response_model=ExpenseRead, status_code=status.HTTP_201_CREATED)
def create_expense_endpoint(
    payload: ExpenseCreate,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> ExpenseRead:
    employee_id = resolve_target_employee(claims, payload.employee_id)
    expense = create_expense(db, employee_id=employee_id, payload=payload)
    audit_request(
        db,
        request,
        claims,
        action="EXPENSE_CREATED",
        entity_type="expense",
        entity_id=str(expense.id),
        details={"employee_id": employee_id, "amount": expense.amount, "category": expense.category},
    )
    return expense


@router.get("/api/expenses/me", response_model=list[ExpenseRead])
def my_expenses_endpoint(
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[ExpenseRead]:
    return list_expenses(db, employee_id=claims_employee_id(claims))


@router.post("/api/vacations", response_model=VacationRead, status_code=status.HTTP_201_CREATED)
def create_vacation_endpoint(
    payload: VacationCreate,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> VacationRead:
    employee_id = resolve_target_employee(claims, payload.employee_id)
    vacation = create_vacation(db, employee_id=employee_id, payload=payload)
    audit_request(
        db,
        request,
        claims,
        action="VACATION_CREATED",
        entity_type="vacation",
        entity_id=str(vacation.id),
        details={"employee_id": employee_id, "type": vacation.type.value, "days": vacation.days},
    )
    return vacation


@router.get("/api/vacations/me", response_model=list[VacationRead])
def my_vacations_endpoint(
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[VacationRead]:
    return list_vacations(db, employee_id=claims_employee_id(claims))


@router.delete("/api/vacations/{vacation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_vacation_endpoint(
    vacation_id: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> None:
    vacation = get_vacation(db, vacation_id)
    ensure_self_or_reviewer(claims, vacation.employee_id)
    delete_vacation(db, vacation_id)
    audit_request(
        db,
        request,
        claims,
        action="VACATION_DELETED",
        entity_type="vacation",
        entity_id=str(vacation_id),
    )
