from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Domain failure rendered as ``{"error": {"code", "message", "request_id"}}``."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def invalid_token(message: str = "Token is invalid.") -> ApiError:
    return ApiError(status_code=401, code="INVALID_TOKEN", message=message)


def forbidden() -> ApiError:
    return ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")


def not_found(code: str, message: str) -> ApiError:
    return ApiError(status_code=404, code=code, message=message)


def conflict(code: str, message: str) -> ApiError:
    return ApiError(status_code=409, code=code, message=message)


def unprocessable(code: str, message: str) -> ApiError:
    return ApiError(status_code=422, code=code, message=message)


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or "unknown"
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "request_id": str(request_id)}},
    )
