from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from workforce.errors import ApiError, forbidden, invalid_token
from workforce.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

ROLES: tuple[str, ...] = ("admin", "manager", "employee")
REVIEWER_ROLES: tuple[str, ...] = ("admin", "manager")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    *,
    sub: str,
    role: str,
    employee_id: int | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    settings = get_settings()
    now = _utcnow()
    exp = now + (expires_delta or timedelta(minutes=settings.access_token_minutes))
    claims = {
        "sub": sub,
        "role": role,
        "employee_id": employee_id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm="HS256")


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise invalid_token() from exc

    if payload.get("typ") != "access":
        raise invalid_token("Token type is invalid.")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise invalid_token("Token subject is invalid.")

    if payload.get("role") not in ROLES:
        raise forbidden()

    return payload


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise invalid_token("Missing bearer token.")

    payload = decode_token(credentials.credentials)

    request.state.actor = payload["role"]
    request.state.actor_id = str(payload["sub"])
    request.state.employee_id = payload.get("employee_id")
    return payload


def require_roles(*roles: str) -> Callable[..., dict[str, Any]]:
    unknown = [role for role in roles if role not in ROLES]
    if unknown:
        raise ValueError(f"Unknown roles: {', '.join(unknown)}")

    def _dependency(claims: dict[str, Any] = Depends(require_user)) -> dict[str, Any]:
        if claims.get("role") not in roles:
            raise forbidden()
        return claims

    return _dependency


def claims_employee_id(claims: dict[str, Any]) -> int:
    employee_id = claims.get("employee_id")
    if not isinstance(employee_id, int) or employee_id <= 0:
        raise ApiError(
            status_code=400,
            code="EMPLOYEE_REQUIRED",
            message="This action requires a user linked to an employee.",
        )
    return employee_id


def resolve_target_employee(claims: dict[str, Any], requested_employee_id: int | None) -> int:
    """Reviewers may act for any employee; everybody else only for themselves."""
    if requested_employee_id is not None and claims.get("role") in REVIEWER_ROLES:
        return requested_employee_id
    own_employee_id = claims_employee_id(claims)
    if requested_employee_id is not None and requested_employee_id != own_employee_id:
        raise forbidden()
    return own_employee_id


def ensure_self_or_reviewer(claims: dict[str, Any], employee_id: int) -> None:
    if claims.get("role") in REVIEWER_ROLES:
        return
    if claims.get("employee_id") != employee_id:
        raise forbidden()
