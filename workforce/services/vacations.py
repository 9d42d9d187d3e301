from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workforce.errors import conflict, not_found, unprocessable
from workforce.models import AnomalyEntityType, Employee, Vacation, VacationStatus, VacationType
from workforce.schemas import VacationCreate
from workforce.services.anomaly_dispatch import schedule_detection
from workforce.settings import get_public_holidays, get_settings

logger = logging.getLogger("workforce.vacations")


def business_days_between(start: date, end: date, *, holidays: Iterable[date] | None = None) -> int:
    """Count Mon-Fri days in ``[start, end]`` that are not public holidays."""
    if end < start:
        return 0
    holiday_set = frozenset(get_public_holidays() if holidays is None else holidays)
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5 and current not in holiday_set:
            count += 1
        current += timedelta(days=1)
    return count


def _used_vacation_days(db: Session, *, employee_id: int, year: int) -> int:
    used = db.scalar(
        select(func.coalesce(func.sum(Vacation.days), 0)).where(
            Vacation.employee_id == employee_id,
            Vacation.type == VacationType.VACATION,
            Vacation.status != VacationStatus.REJECTED,
            Vacation.start_date >= date(year, 1, 1),
            Vacation.start_date <= date(year, 12, 31),
        )
    )
    return int(used or 0)


def create_vacation(db: Session, *, employee_id: int, payload: VacationCreate) -> Vacation:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")

    overlapping_id = db.scalar(
        select(Vacation.id)
        .where(
            Vacation.employee_id == employee_id,
            Vacation.status != VacationStatus.REJECTED,
            Vacation.start_date <= payload.end_date,
            Vacation.end_date >= payload.start_date,
        )
        .limit(1)
    )
    if overlapping_id is not None:
        raise conflict(
            "VACATION_OVERLAP",
            "An absence request already overlaps these dates.",
        )

    days = business_days_between(payload.start_date, payload.end_date)

    if payload.type == VacationType.VACATION:
        quota = employee.vacation_days_total or get_settings().default_vacation_days_total
        used = _used_vacation_days(db, employee_id=employee_id, year=payload.start_date.year)
        if used + days > quota:
            raise unprocessable(
                "VACATION_QUOTA_EXCEEDED",
                f"Quota exceeded. Available: {max(0, quota - used)}, requested: {days}.",
            )

    vacation = Vacation(
        employee_id=employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        type=payload.type,
        status=VacationStatus.PENDING,
        days=days,
        reason=payload.reason,
    )
    db.add(vacation)
    db.commit()
    db.refresh(vacation)

    schedule_detection(AnomalyEntityType.VACATION, vacation.id)
    logger.info(
        "vacation_created",
        extra={"vacation_id": vacation.id, "employee_id": employee_id, "days": days, "type": vacation.type.value},
    )
    return vacation


def list_vacations(
    db: Session,
    *,
    employee_id: int | None = None,
    status: VacationStatus | None = None,
) -> list[Vacation]:
    stmt = select(Vacation).order_by(Vacation.start_date.desc(), Vacation.id.desc())
    if employee_id is not None:
        stmt = stmt.where(Vacation.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(Vacation.status == status)
    return list(db.scalars(stmt).all())


def get_vacation(db: Session, vacation_id: int) -> Vacation:
    vacation = db.get(Vacation, vacation_id)
    if vacation is None:
        raise not_found("VACATION_NOT_FOUND", "Vacation not found.")
    return vacation


def decide_vacation(db: Session, vacation_id: int, status: VacationStatus) -> Vacation:
    if status == VacationStatus.PENDING:
        raise unprocessable(
            "VALIDATION_ERROR",
            "Decision must be APPROVED or REJECTED.",
        )

    vacation = get_vacation(db, vacation_id)
    if vacation.status != VacationStatus.PENDING:
        raise conflict(
            "VACATION_NOT_PENDING",
            "Only pending requests can be approved or rejected.",
        )

    vacation.status = status
    db.commit()
    db.refresh(vacation)
    return vacation


def delete_vacation(db: Session, vacation_id: int) -> None:
    vacation = get_vacation(db, vacation_id)
    if vacation.status != VacationStatus.PENDING:
        raise conflict(
            "VACATION_NOT_PENDING",
            "Only pending requests can be deleted.",
        )

    db.delete(vacation)
    db.commit()
