"""Rule-based anomaly detection for time entries, expenses and vacations.

Each detector inspects one freshly committed entity against the employee's
recent history, collects the heuristics that fire and hands them to the sink,
which keeps a single ``AnomalyEvent`` per ``(entity_type, entity_id)``.
Detectors swallow and log their own failures: a failed pass is treated as "no
anomaly found".
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workforce.models import (
    AnomalyEntityType,
    AnomalyEvent,
    AnomalyStatus,
    Employee,
    Expense,
    TimeEntry,
    TimeEntryType,
    Vacation,
    VacationStatus,
)
from workforce.services.geo import evaluate_geofence
from workforce.services.timeutils import local_today, minute_of_day, normalize_ts, to_local
from workforce.settings import get_settings

logger = logging.getLogger("workforce.anomaly")

MAX_SCORE = 100

OFF_HOURS_START = 5
OFF_HOURS_END = 22
DUPLICATE_ENTRY_WINDOW = timedelta(minutes=30)
PATTERN_LOOKBACK = timedelta(days=90)
PATTERN_HISTORY_LIMIT = 30
PATTERN_MIN_SAMPLES = 5
PATTERN_TOLERANCE_MINUTES = 120

EXPENSE_LOOKBACK_DAYS = 90
EXPENSE_MIN_HISTORY = 3
EXPENSE_FLOOR_THRESHOLD = 100.0
EXPENSE_FLAT_THRESHOLD = 500.0

VACATION_PATTERN_LOOKBACK_DAYS = 90
VACATION_PATTERN_MIN_OTHERS = 2
VACATION_FREQUENT_LOOKBACK_DAYS = 60
VACATION_FREQUENT_MIN_OTHERS = 3
VACATION_LONG_DAYS = 10


@dataclass(frozen=True, slots=True)
class Reason:
    code: str
    message: str
    score: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def aggregate_score(reasons: list[Reason]) -> int:
    total = sum(reason.score for reason in reasons)
    return max(0, min(MAX_SCORE, total))


def median_minutes(values: list[int]) -> int:
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    # Half-up to match the legacy JS Math.round behaviour.
    return int((ordered[mid - 1] + ordered[mid]) / 2 + 0.5)


def _insert_for(dialect_name: str):  # type: ignore[no-untyped-def]
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Anomaly upsert needs ON CONFLICT support; dialect {dialect_name!r} has none.")
    return insert


def upsert_anomaly(
    db: Session,
    entity_type: AnomalyEntityType,
    entity_id: int,
    employee_id: int | None,
    reasons: list[Reason],
    *,
    reset_status: bool | None = None,
) -> None:
    if not reasons:
        return

    if reset_status is None:
        reset_status = get_settings().anomaly_reset_status_on_redetect

    score = aggregate_score(reasons)
    now = normalize_ts(None)
    insert = _insert_for(db.get_bind().dialect.name)
    table = AnomalyEvent.__table__

    stmt = insert(table).values(
        entity_type=entity_type,
        entity_id=entity_id,
        employee_id=employee_id,
        score=score,
        reasons=[reason.to_dict() for reason in reasons],
        status=AnomalyStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    update_values: dict[str, Any] = {
        "employee_id": func.coalesce(stmt.excluded.employee_id, table.c.employee_id),
        "score": stmt.excluded.score,
        "reasons": stmt.excluded.reasons,
        "updated_at": stmt.excluded.updated_at,
    }
    if reset_status:
        update_values["status"] = stmt.excluded.status

    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.entity_type, table.c.entity_id],
        set_=update_values,
    )
    db.execute(stmt)
    db.commit()

    logger.info(
        "anomaly_upserted",
        extra={
            "entity_type": entity_type.value,
            "entity_id": entity_id,
            "employee_id": employee_id,
            "score": score,
            "codes": [reason.code for reason in reasons],
            "status_reset": reset_status,
        },
    )


def _time_entry_reasons(db: Session, entry: TimeEntry, *, now_utc: datetime) -> list[Reason]:
    reasons: list[Reason] = []
    entry_ts = normalize_ts(entry.timestamp)
    local_ts = to_local(entry_ts)

    if local_ts.hour < OFF_HOURS_START or local_ts.hour > OFF_HOURS_END:
        reasons.append(
            Reason(
                code="OFF_HOURS",
                message="Clock event outside usual hours (05:00-22:00).",
                score=20,
            )
        )

    last_entry = db.scalar(
        select(TimeEntry)
        .where(
            TimeEntry.employee_id == entry.employee_id,
            TimeEntry.id != entry.id,
        )
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
        .limit(1)
    )
    if last_entry is not None and last_entry.type == entry.type:
        gap = abs(entry_ts - normalize_ts(last_entry.timestamp))
        if gap < DUPLICATE_ENTRY_WINDOW:
            reasons.append(
                Reason(
                    code="DUPLICATE_ENTRY",
                    message="Repeated clock event of the same type within 30 minutes.",
                    score=15,
                )
            )

    if entry.type == TimeEntryType.IN:
        history = db.scalars(
            select(TimeEntry)
            .where(
                TimeEntry.employee_id == entry.employee_id,
                TimeEntry.type == TimeEntryType.IN,
                TimeEntry.timestamp >= now_utc - PATTERN_LOOKBACK,
            )
            .order_by(TimeEntry.timestamp.desc())
            .limit(PATTERN_HISTORY_LIMIT)
        ).all()
        same_weekday = [
            minute_of_day(item.timestamp)
            for item in history
            if to_local(item.timestamp).weekday() == local_ts.weekday()
        ]
        if len(same_weekday) >= PATTERN_MIN_SAMPLES:
            typical = median_minutes(same_weekday)
            if abs(minute_of_day(entry_ts) - typical) > PATTERN_TOLERANCE_MINUTES:
                reasons.append(
                    Reason(
                        code="OUT_OF_PATTERN",
                        message="Clock-in outside the usual pattern (+/- 2h).",
                        score=20,
                    )
                )

    employee = db.get(Employee, entry.employee_id)
    check = evaluate_geofence(
        employee.company if employee is not None else None,
        entry.latitude,
        entry.longitude,
    )
    if check is not None and check.outside:
        reasons.append(
            Reason(
                code="GEOFENCE",
                message=f"Clock event outside the allowed radius ({round(check.distance_m)}m > {check.radius_m}m).",
                score=25,
            )
        )

    return reasons


def _expense_reasons(db: Session, expense: Expense, *, now_utc: datetime) -> list[Reason]:
    reasons: list[Reason] = []

    if expense.expense_date.weekday() >= 5:
        reasons.append(
            Reason(
                code="WEEKEND_EXPENSE",
                message="Expense dated on a weekend.",
                score=10,
            )
        )

    duplicate_id = db.scalar(
        select(Expense.id)
        .where(
            Expense.employee_id == expense.employee_id,
            Expense.amount == expense.amount,
            Expense.expense_date == expense.expense_date,
            Expense.id != expense.id,
        )
        .limit(1)
    )
    if duplicate_id is not None:
        reasons.append(
            Reason(
                code="DUPLICATE_EXPENSE",
                message="Possible duplicate expense (same amount and day).",
                score=20,
            )
        )

    since = local_today(now_utc) - timedelta(days=EXPENSE_LOOKBACK_DAYS)
    avg_amount, history_count = db.execute(
        select(func.avg(Expense.amount), func.count(Expense.id)).where(
            Expense.employee_id == expense.employee_id,
            Expense.category == expense.category,
            Expense.expense_date >= since,
            Expense.id != expense.id,
        )
    ).one()
    mean = float(avg_amount or 0)
    count = int(history_count or 0)
    threshold = max(EXPENSE_FLOOR_THRESHOLD, mean * 2) if count >= EXPENSE_MIN_HISTORY else EXPENSE_FLAT_THRESHOLD

    if float(expense.amount) >= threshold:
        reasons.append(
            Reason(
                code="AMOUNT_OUTLIER",
                message=f"High amount for this category (>= {threshold:.2f}).",
                score=25,
            )
        )

    return reasons


def _vacation_reasons(db: Session, vacation: Vacation, *, now_utc: datetime) -> list[Reason]:
    reasons: list[Reason] = []
    today = local_today(now_utc)

    # Monday or Friday.
    if vacation.start_date.weekday() in (0, 4):
        pattern_count = db.scalar(
            select(func.count(Vacation.id)).where(
                Vacation.employee_id == vacation.employee_id,
                Vacation.start_date >= today - timedelta(days=VACATION_PATTERN_LOOKBACK_DAYS),
                Vacation.id != vacation.id,
            )
        )
        if (pattern_count or 0) >= VACATION_PATTERN_MIN_OTHERS:
            reasons.append(
                Reason(
                    code="PATTERN_MF",
                    message="Recurring absences on Mondays/Fridays.",
                    score=20,
                )
            )

    recent_count = db.scalar(
        select(func.count(Vacation.id)).where(
            Vacation.employee_id == vacation.employee_id,
            Vacation.start_date >= today - timedelta(days=VACATION_FREQUENT_LOOKBACK_DAYS),
            Vacation.status != VacationStatus.REJECTED,
            Vacation.id != vacation.id,
        )
    )
    if (recent_count or 0) >= VACATION_FREQUENT_MIN_OTHERS:
        reasons.append(
            Reason(
                code="FREQUENT_ABSENCE",
                message="Frequent absences in the last 60 days.",
                score=20,
            )
        )

    if (vacation.days or 0) > VACATION_LONG_DAYS:
        reasons.append(
            Reason(
                code="LONG_ABSENCE",
                message="Long absence (more than 10 working days).",
                score=15,
            )
        )

    return reasons


def _run_detector(
    db: Session,
    *,
    entity_type: AnomalyEntityType,
    entity: TimeEntry | Expense | Vacation,
    collect,  # type: ignore[no-untyped-def]
    now_utc: datetime | None,
) -> list[Reason]:
    entity_id = entity.id
    employee_id = entity.employee_id
    try:
        reasons = collect(db, entity, now_utc=normalize_ts(now_utc))
        upsert_anomaly(db, entity_type, entity_id, employee_id, reasons)
    except Exception:
        db.rollback()
        logger.exception(
            "anomaly_detection_failed",
            extra={
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "employee_id": employee_id,
            },
        )
        return []
    return reasons


def detect_time_entry(db: Session, entry: TimeEntry, *, now_utc: datetime | None = None) -> list[Reason]:
    return _run_detector(
        db,
        entity_type=AnomalyEntityType.TIME_ENTRY,
        entity=entry,
        collect=_time_entry_reasons,
        now_utc=now_utc,
    )


def detect_expense(db: Session, expense: Expense, *, now_utc: datetime | None = None) -> list[Reason]:
    return _run_detector(
        db,
        entity_type=AnomalyEntityType.EXPENSE,
        entity=expense,
        collect=_expense_reasons,
        now_utc=now_utc,
    )


def detect_vacation(db: Session, vacation: Vacation, *, now_utc: datetime | None = None) -> list[Reason]:
    return _run_detector(
        db,
        entity_type=AnomalyEntityType.VACATION,
        entity=vacation,
        collect=_vacation_reasons,
        now_utc=now_utc,
    )
