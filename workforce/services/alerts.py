from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.errors import not_found
from workforce.models import Alert, AlertSeverity
from workforce.services.timeutils import normalize_ts
from workforce.settings import get_settings

logger = logging.getLogger("workforce.alerts")


def create_alert(
    db: Session,
    *,
    employee_id: int | None,
    type: str,
    severity: AlertSeverity,
    title: str,
    message: str,
    action_url: str | None = None,
    now_utc: datetime | None = None,
) -> Alert | None:
    """Insert an alert unless an undismissed one of the same type is still recent."""
    settings = get_settings()
    now = normalize_ts(now_utc)

    existing_id = db.scalar(
        select(Alert.id)
        .where(
            Alert.employee_id == employee_id if employee_id is not None else Alert.employee_id.is_(None),
            Alert.type == type,
            Alert.created_at >= now - timedelta(hours=settings.alert_dedupe_hours),
            Alert.is_dismissed.is_(False),
        )
        .limit(1)
    )
    if existing_id is not None:
        logger.info(
            "alert_deduplicated",
            extra={"employee_id": employee_id, "alert_type": type, "existing_alert_id": existing_id},
        )
        return None

    alert = Alert(
        employee_id=employee_id,
        type=type,
        severity=severity,
        title=title,
        message=message,
        action_url=action_url,
        created_at=now,
        expires_at=now + timedelta(days=settings.alert_ttl_days),
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)
    logger.info(
        "alert_created",
        extra={"alert_id": alert.id, "employee_id": employee_id, "alert_type": type, "severity": severity.value},
    )
    return alert


def list_alerts(db: Session, *, unread_only: bool = False, limit: int = 100) -> list[Alert]:
    stmt = select(Alert).where(Alert.is_dismissed.is_(False))
    if unread_only:
        stmt = stmt.where(Alert.is_read.is_(False))
    stmt = stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def _get_alert(db: Session, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    if alert is None:
        raise not_found("ALERT_NOT_FOUND", "Alert not found.")
    return alert


def mark_alert_read(db: Session, alert_id: int) -> Alert:
    alert = _get_alert(db, alert_id)
    alert.is_read = True
    db.commit()
    db.refresh(alert)
    return alert


def dismiss_alert(db: Session, alert_id: int) -> Alert:
    alert = _get_alert(db, alert_id)
    alert.is_dismissed = True
    db.commit()
    db.refresh(alert)
    return alert
