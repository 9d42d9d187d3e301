import asyncio
from datetime import datetime, timezone
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workforce.db import engine
from workforce.errors import ApiError, error_response
from workforce.logging_utils import setup_json_logging
from workforce.routers import admin, employee
from workforce.services.anomaly_dispatch import get_anomaly_dispatcher
from workforce.services.crypto import EncryptionFailure, get_field_cipher, run_startup_self_test
from workforce.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from workforce.settings import get_cors_origins, get_settings

setup_json_logging()
logger = logging.getLogger("workforce.request")
startup_logger = logging.getLogger("workforce.startup")
settings = get_settings()

HTTP_ERROR_CODES = {
    401: "INVALID_TOKEN",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_context(request: Request) -> dict[str, Any]:
    return {
        "request_id": getattr(request.state, "request_id", "unknown"),
        "path": request.url.path,
        "method": request.method,
        "actor": getattr(request.state, "actor", "system"),
        "actor_id": getattr(request.state, "actor_id", "system"),
        "employee_id": getattr(request.state, "employee_id", None),
    }


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        logger.info(
            "request_complete",
            extra={
                **_request_context(request),
                "status_code": status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "event_id": getattr(request.state, "event_id", None),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


@app.exception_handler(EncryptionFailure)
async def handle_encryption_failure(request: Request, exc: EncryptionFailure) -> JSONResponse:
    # Never echo the cause: it may describe the key.
    logger.error("encryption_failure", extra=_request_context(request))
    return error_response(
        request,
        status_code=500,
        code="ENCRYPTION_FAILED",
        message="Sensitive data could not be stored.",
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail) if exc.detail else "Request failed.",
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message="; ".join(problems) or "Invalid request.",
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", extra=_request_context(request))
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Unexpected server error.",
    )


app.include_router(employee.router)
app.include_router(admin.router)


@app.on_event("startup")
async def verify_field_cipher() -> None:
    # A broken key must never reach the PII write path.
    run_startup_self_test()


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        startup_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    startup_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        raise RuntimeError(f"Runtime schema guard failed: {'; '.join(result.issues)}")


@app.on_event("shutdown")
async def stop_anomaly_dispatcher() -> None:
    await asyncio.to_thread(get_anomaly_dispatcher().shutdown, wait=True)
    startup_logger.info("anomaly_dispatcher_stopped")


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult | None = getattr(app.state, "schema_guard_result", None)
    if schema_guard_result is None:
        schema_guard_result = SchemaGuardResult(
            ok=False,
            checked_at_utc=datetime.now(timezone.utc),
            issues=["SCHEMA_GUARD_NOT_RUN"],
        )
    return {
        "status": "ok",
        "schema_guard": schema_guard_result.to_dict(),
        "field_cipher": {"key_is_valid": get_field_cipher().key_is_valid},
        "anomaly_detection": {"enabled": get_anomaly_dispatcher().enabled},
    }
