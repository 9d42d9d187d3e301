from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from workforce.models import AuditActorType, AuditLog

logger = logging.getLogger("workforce.audit")

_ACTOR_TYPE_BY_ROLE = {
    "admin": AuditActorType.ADMIN,
    "manager": AuditActorType.MANAGER,
    "employee": AuditActorType.EMPLOYEE,
}


def actor_from_claims(claims: dict[str, Any]) -> tuple[AuditActorType, str]:
    actor_type = _ACTOR_TYPE_BY_ROLE.get(str(claims.get("role") or ""), AuditActorType.SYSTEM)
    return actor_type, str(claims.get("sub") or "system")


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


def audit_request(
    db: Session,
    request: Request,
    claims: dict[str, Any],
    *,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Persist one audit row for a reviewer or employee action.

    The audited change is already committed; a failed audit write is rolled
    back and logged, never raised to the caller.
    """
    actor_type, actor_id = actor_from_claims(claims)
    request_id = getattr(request.state, "request_id", None)
    log_fields = {
        "request_id": request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }

    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            success=success,
            details=details or {},
        )
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("audit_log_write_failed", extra=log_fields)
        return

    logger.info("audit_event", extra={**log_fields, "details": details or {}})
