from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.errors import ApiError, not_found, unprocessable
from workforce.models import AlertSeverity, AnomalyEntityType, Employee, TimeEntry, TimeEntryType
from workforce.schemas import ClockRequest
from workforce.services.alerts import create_alert
from workforce.services.anomaly_dispatch import schedule_detection
from workforce.services.geo import GeofenceCheck, evaluate_geofence
from workforce.services.timeutils import normalize_ts
from workforce.settings import get_settings

logger = logging.getLogger("workforce.time_entries")

GEOFENCE_GUARDED_TYPES = frozenset({TimeEntryType.IN, TimeEntryType.OUT})
GEOFENCE_ALERT_TYPE = "GEOFENCE_VIOLATION"

_STATUS_BY_LAST_TYPE = {
    TimeEntryType.IN: "WORKING",
    TimeEntryType.BREAK_END: "WORKING",
    TimeEntryType.LUNCH_END: "WORKING",
    TimeEntryType.BREAK_START: "BREAK",
    TimeEntryType.LUNCH_START: "LUNCH",
    TimeEntryType.OUT: "OFF",
}


@dataclass(slots=True)
class ClockResult:
    entry: TimeEntry
    geofence: GeofenceCheck | None
    alert_created: bool


def _resolve_active_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Inactive employee cannot perform clock actions.",
        )
    return employee


def validate_clock_timestamp(ts: datetime | None, *, now_utc: datetime | None = None) -> datetime:
    settings = get_settings()
    now = normalize_ts(now_utc)
    if ts is None:
        return now

    value = normalize_ts(ts)
    if value < now - timedelta(hours=settings.clock_max_past_hours):
        raise unprocessable(
            "TIMESTAMP_TOO_OLD",
            f"Clock timestamp is more than {settings.clock_max_past_hours}h in the past.",
        )
    if value > now + timedelta(minutes=settings.clock_max_future_minutes):
        raise unprocessable(
            "TIMESTAMP_IN_FUTURE",
            f"Clock timestamp is more than {settings.clock_max_future_minutes} minutes in the future.",
        )
    return value


def _apply_geofence_guard(db: Session, employee: Employee, entry: TimeEntry) -> tuple[GeofenceCheck | None, bool]:
    if entry.type not in GEOFENCE_GUARDED_TYPES:
        return None, False

    check = evaluate_geofence(employee.company, entry.latitude, entry.longitude)
    if check is None or not check.outside:
        return check, False

    try:
        alert = create_alert(
            db,
            employee_id=employee.id,
            type=GEOFENCE_ALERT_TYPE,
            severity=AlertSeverity.WARNING,
            title="Clock event outside the office radius",
            message=(
                f"{employee.full_name} clocked {entry.type.value} "
                f"{round(check.distance_m)}m from the office (allowed {check.radius_m}m)."
            ),
            action_url=f"/employees/{employee.id}",
        )
    except Exception:
        db.rollback()
        logger.exception(
            "geofence_alert_failed",
            extra={"employee_id": employee.id, "time_entry_id": entry.id},
        )
        return check, False
    return check, alert is not None


def clock_time_entry(
    db: Session,
    *,
    employee_id: int,
    payload: ClockRequest,
    now_utc: datetime | None = None,
) -> ClockResult:
    employee = _resolve_active_employee(db, employee_id)
    timestamp = validate_clock_timestamp(payload.timestamp, now_utc=now_utc)

    entry = TimeEntry(
        employee_id=employee.id,
        type=payload.type,
        timestamp=timestamp,
        latitude=payload.latitude,
        longitude=payload.longitude,
        location=payload.location,
        device=payload.device,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)

    geofence, alert_created = _apply_geofence_guard(db, employee, entry)
    schedule_detection(AnomalyEntityType.TIME_ENTRY, entry.id)

    logger.info(
        "time_entry_created",
        extra={
            "time_entry_id": entry.id,
            "employee_id": employee.id,
            "type": entry.type.value,
            "geofence_outside": geofence.outside if geofence is not None else None,
        },
    )
    return ClockResult(entry=entry, geofence=geofence, alert_created=alert_created)


def get_clock_status(db: Session, *, employee_id: int) -> tuple[str, TimeEntry | None]:
    last_entry = db.scalar(
        select(TimeEntry)
        .where(TimeEntry.employee_id == employee_id)
        .order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc())
        .limit(1)
    )
    if last_entry is None:
        return "OFF", None
    return _STATUS_BY_LAST_TYPE.get(last_entry.type, "OFF"), last_entry


def list_time_entries(
    db: Session,
    *,
    employee_id: int,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
) -> list[TimeEntry]:
    stmt = select(TimeEntry).where(TimeEntry.employee_id == employee_id)
    if date_from is not None:
        stmt = stmt.where(TimeEntry.timestamp >= normalize_ts(date_from))
    if date_to is not None:
        stmt = stmt.where(TimeEntry.timestamp <= normalize_ts(date_to))
    stmt = stmt.order_by(TimeEntry.timestamp.desc(), TimeEntry.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())
