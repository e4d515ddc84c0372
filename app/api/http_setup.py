"""Middleware and exception handlers shared by the staffing API."""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.contracts import ApiErrorResponse
from app.api.errors import ApiErrorCode, api_error_for, to_error_payload
from app.core.config import AppConfig
from app.core.logging import set_correlation_id
from app.staffing.errors import StaffingError

RETRY_AFTER_SECONDS = "5"


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length") or 0)
    except ValueError:
        return 0


def _request_fields(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
    }


def _error_response(status_code: int, payload: dict[str, str]) -> JSONResponse:
    # Store outages are transient; tell clients when to come back.
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if status_code == 503 else None
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(**payload).model_dump(),
        headers=headers,
    )


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach body-size limit, correlation id and access logging."""
    max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        if _declared_length(request) > max_bytes:
            return _error_response(
                413,
                {
                    "error_code": str(ApiErrorCode.REQUEST_TOO_LARGE),
                    "message": f"Request body exceeds {max_bytes} bytes.",
                },
            )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Cache-Control"] = "no-store"
        logger.info(
            "request_completed",
            extra={
                **_request_fields(request, response.status_code),
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Render every failure as an ``ApiErrorResponse``."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning(
            "http_exception %s",
            payload["error_code"],
            extra=_request_fields(request, exc.status_code),
        )
        return _error_response(exc.status_code, payload)

    @app.exception_handler(StaffingError)
    async def handle_staffing_error(
        request: Request, exc: StaffingError
    ) -> JSONResponse:
        api_error = api_error_for(exc)
        logger.warning(
            "staffing_error %s: %s",
            type(exc).__name__,
            exc,
            extra=_request_fields(request, api_error.status_code),
        )
        return _error_response(
            api_error.status_code,
            to_error_payload(api_error.detail, api_error.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
            for error in exc.errors()
        ]
        logger.warning(
            "validation_exception %s", len(problems), extra=_request_fields(request, 422)
        )
        return _error_response(
            422,
            {
                "error_code": str(ApiErrorCode.VALIDATION_ERROR),
                "message": "; ".join(problems) or "Invalid request.",
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_request_fields(request, 500))
        return _error_response(
            500,
            {
                "error_code": str(ApiErrorCode.INTERNAL_SERVER_ERROR),
                "message": "Internal server error",
            },
        )
