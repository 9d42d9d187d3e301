from __future__ import annotations

from math import ceil
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from workforce.errors import not_found
from workforce.models import AnomalyEntityType, AnomalyEvent, AnomalyStatus
from workforce.schemas import AnomalyPage, AnomalyRead, PageMeta, ReasonRead


def _parse_reasons(raw: Any) -> list[ReasonRead]:
    if not isinstance(raw, list):
        return []
    parsed: list[ReasonRead] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(ReasonRead.model_validate(item))
        except ValueError:
            continue
    return parsed


def to_anomaly_read(event: AnomalyEvent) -> AnomalyRead:
    return AnomalyRead(
        id=event.id,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        employee_id=event.employee_id,
        employee_name=event.employee.full_name if event.employee is not None else None,
        score=event.score,
        reasons=_parse_reasons(event.reasons),
        status=event.status,
        created_at=event.created_at,
        updated_at=event.updated_at,
    )


def list_anomalies(
    db: Session,
    *,
    status: AnomalyStatus | None = None,
    entity_type: AnomalyEntityType | None = None,
    page: int = 1,
    limit: int = 50,
) -> AnomalyPage:
    page = max(1, page)
    limit = max(1, limit)

    filters = []
    if status is not None:
        filters.append(AnomalyEvent.status == status)
    if entity_type is not None:
        filters.append(AnomalyEvent.entity_type == entity_type)

    total = db.scalar(select(func.count(AnomalyEvent.id)).where(*filters)) or 0
    rows = db.scalars(
        select(AnomalyEvent)
        .options(selectinload(AnomalyEvent.employee))
        .where(*filters)
        .order_by(AnomalyEvent.created_at.desc(), AnomalyEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return AnomalyPage(
        data=[to_anomaly_read(row) for row in rows],
        meta=PageMeta(total=total, page=page, limit=limit, total_pages=ceil(total / limit)),
    )


def list_employee_anomalies(
    db: Session,
    *,
    employee_id: int,
    status: AnomalyStatus | None = None,
) -> list[AnomalyRead]:
    stmt = (
        select(AnomalyEvent)
        .options(selectinload(AnomalyEvent.employee))
        .where(AnomalyEvent.employee_id == employee_id)
        .order_by(AnomalyEvent.created_at.desc(), AnomalyEvent.id.desc())
    )
    if status is not None:
        stmt = stmt.where(AnomalyEvent.status == status)
    return [to_anomaly_read(row) for row in db.scalars(stmt).all()]


def update_anomaly_status(db: Session, anomaly_id: int, status: AnomalyStatus) -> AnomalyRead:
    event = db.get(AnomalyEvent, anomaly_id)
    if event is None:
        raise not_found("ANOMALY_NOT_FOUND", "Anomaly not found.")
    event.status = status
    db.commit()
    db.refresh(event)
    return to_anomaly_read(event)
