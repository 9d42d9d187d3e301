from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from workforce.audit import audit_request
from workforce.db import get_db
from workforce.models import AnomalyEntityType, AnomalyStatus, ExpenseStatus, VacationStatus
from workforce.schemas import (
    AlertRead,
    AnomalyPage,
    AnomalyRead,
    AnomalyStatusUpdateRequest,
    EmployeePiiRead,
    EmployeePiiUpdateRequest,
    ExpenseDecisionRequest,
    ExpenseRead,
    VacationDecisionRequest,
    VacationRead,
)
from workforce.security import REVIEWER_ROLES, ensure_self_or_reviewer, require_roles, require_user
from workforce.services.alerts import dismiss_alert, list_alerts, mark_alert_read
from workforce.services.anomalies import list_anomalies, list_employee_anomalies, update_anomaly_status
from workforce.services.employee_pii import read_employee_pii, set_employee_pii
from workforce.services.expenses import decide_expense, list_expenses
from workforce.services.vacations import decide_vacation, list_vacations

router = APIRouter(tags=["admin"])
require_reviewer = require_roles(*REVIEWER_ROLES)
require_admin = require_roles("admin")


@router.get("/api/admin/anomalies", response_model=AnomalyPage)
def list_anomalies_endpoint(
    status: AnomalyStatus | None = Query(default=None),
    entity_type: AnomalyEntityType | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> AnomalyPage:
    return list_anomalies(db, status=status, entity_type=entity_type, page=page, limit=limit)


@router.get("/api/admin/anomalies/employee/{employee_id}", response_model=list[AnomalyRead])
def list_employee_anomalies_endpoint(
    employee_id: int,
    status: AnomalyStatus | None = Query(default=None),
    claims: dict[str, Any] = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[AnomalyRead]:
    ensure_self_or_reviewer(claims, employee_id)
    return list_employee_anomalies(db, employee_id=employee_id, status=status)


@router.put("/api/admin/anomalies/{anomaly_id}/status", response_model=AnomalyRead)
def update_anomaly_status_endpoint(
    anomaly_id: int,
    payload: AnomalyStatusUpdateRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> AnomalyRead:
    anomaly = update_anomaly_status(db, anomaly_id, payload.status)
    audit_request(
        db,
        request,
        claims,
        action="ANOMALY_STATUS_UPDATED",
        entity_type="anomaly_event",
        entity_id=str(anomaly_id),
        details={"status": payload.status.value},
    )
    return anomaly


@router.get("/api/admin/alerts", response_model=list[AlertRead])
def list_alerts_endpoint(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> list[AlertRead]:
    return list_alerts(db, unread_only=unread_only, limit=limit)


@router.post("/api/admin/alerts/{alert_id}/read", response_model=AlertRead)
def mark_alert_read_endpoint(
    alert_id: int,
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> AlertRead:
    return mark_alert_read(db, alert_id)


@router.post("/api/admin/alerts/{alert_id}/dismiss", response_model=AlertRead)
def dismiss_alert_endpoint(
    alert_id: int,
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> AlertRead:
    return dismiss_alert(db, alert_id)


@router.get("/api/admin/expenses", response_model=list[ExpenseRead])
def list_expenses_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    status: ExpenseStatus | None = Query(default=None),
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> list[ExpenseRead]:
    return list_expenses(db, employee_id=employee_id, status=status)


@router.patch("/api/admin/expenses/{expense_id}/status", response_model=ExpenseRead)
def decide_expense_endpoint(
    expense_id: int,
    payload: ExpenseDecisionRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> ExpenseRead:
    expense = decide_expense(db, expense_id, payload.status)
    audit_request(
        db,
        request,
        claims,
        action="EXPENSE_DECIDED",
        entity_type="expense",
        entity_id=str(expense_id),
        details={"status": payload.status.value},
    )
    return expense


@router.get("/api/admin/vacations", response_model=list[VacationRead])
def list_vacations_endpoint(
    employee_id: int | None = Query(default=None, ge=1),
    status: VacationStatus | None = Query(default=None),
    _claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> list[VacationRead]:
    return list_vacations(db, employee_id=employee_id, status=status)


@router.patch("/api/admin/vacations/{vacation_id}/status", response_model=VacationRead)
def decide_vacation_endpoint(
    vacation_id: int,
    payload: VacationDecisionRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_reviewer),
    db: Session = Depends(get_db),
) -> VacationRead:
    vacation = decide_vacation(db, vacation_id, payload.status)
    audit_request(
        db,
        request,
        claims,
        action="VACATION_DECIDED",
        entity_type="vacation",
        entity_id=str(vacation_id),
        details={"status": payload.status.value},
    )
    return vacation


@router.get("/api/admin/employees/{employee_id}/pii", response_model=EmployeePiiRead)
def read_employee_pii_endpoint(
    employee_id: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeePiiRead:
    pii = read_employee_pii(db, employee_id)
    audit_request(
        db,
        request,
        claims,
        action="EMPLOYEE_PII_READ",
        entity_type="employee",
        entity_id=str(employee_id),
    )
    return pii


@router.put("/api/admin/employees/{employee_id}/pii", response_model=EmployeePiiRead)
def update_employee_pii_endpoint(
    employee_id: int,
    payload: EmployeePiiUpdateRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeePiiRead:
    pii = set_employee_pii(db, employee_id, ssn=payload.ssn, iban=payload.iban)
    audit_request(
        db,
        request,
        claims,
        action="EMPLOYEE_PII_UPDATED",
        entity_type="employee",
        entity_id=str(employee_id),
        details={"ssn_set": pii.ssn is not None, "iban_set": pii.iban is not None},
    )
    return pii
