from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.errors import conflict, not_found, unprocessable
from workforce.models import AnomalyEntityType, Employee, Expense, ExpenseStatus
from workforce.schemas import ExpenseCreate
from workforce.services.anomaly_dispatch import schedule_detection
from workforce.services.timeutils import local_today

logger = logging.getLogger("workforce.expenses")


def create_expense(db: Session, *, employee_id: int, payload: ExpenseCreate) -> Expense:
    if db.get(Employee, employee_id) is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")

    category = payload.category.strip()
    if not category:
        raise unprocessable("VALIDATION_ERROR", "Expense category is required.")

    expense = Expense(
        employee_id=employee_id,
        amount=round(payload.amount, 2),
        expense_date=payload.expense_date or local_today(),
        category=category,
        payment_method=payload.payment_method,
        description=payload.description,
        status=ExpenseStatus.PENDING,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)

    schedule_detection(AnomalyEntityType.EXPENSE, expense.id)
    logger.info(
        "expense_created",
        extra={"expense_id": expense.id, "employee_id": employee_id, "category": expense.category},
    )
    return expense


def list_expenses(
    db: Session,
    *,
    employee_id: int | None = None,
    status: ExpenseStatus | None = None,
) -> list[Expense]:
    stmt = select(Expense).order_by(Expense.expense_date.desc(), Expense.id.desc())
    if employee_id is not None:
        stmt = stmt.where(Expense.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(Expense.status == status)
    return list(db.scalars(stmt).all())


def decide_expense(db: Session, expense_id: int, status: ExpenseStatus) -> Expense:
    if status == ExpenseStatus.PENDING:
        raise unprocessable(
            "VALIDATION_ERROR",
            "Decision must be APPROVED or REJECTED.",
        )

    expense = db.get(Expense, expense_id)
    if expense is None:
        raise not_found("EXPENSE_NOT_FOUND", "Expense not found.")
    if expense.status != ExpenseStatus.PENDING:
        raise conflict(
            "EXPENSE_ALREADY_DECIDED",
            "Only pending expenses can be approved or rejected.",
        )

    expense.status = status
    db.commit()
    db.refresh(expense)
    return expense
