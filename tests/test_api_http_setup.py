from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from app.api.http_setup import register_exception_handlers, register_http_middleware
from app.core.config import (
    AppConfig,
    LoggingConfig,
    ReconcilerConfig,
    ResolverConfig,
    SecurityConfig,
)
from app.staffing.errors import (
    ClientNotFoundError,
    PartialDualWriteError,
    StaffingError,
    StoreUnavailableError,
)
from tests.staffing_fixtures import store_config

LOGGER = logging.getLogger(__name__)


def _app(request_max_bytes: int = 8) -> FastAPI:
    config = AppConfig(
        store=store_config(),
        resolver=ResolverConfig(fast_path_timeout_ms=100, slow_path_timeout_ms=1000),
        reconciler=ReconcilerConfig(workers=1),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=request_max_bytes,
        ),
    )
    app = FastAPI()
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _request(
    path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None
) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _handle(app: FastAPI, key: type[Exception], request: Request, exc: Exception) -> Response:
    result: Response | Awaitable[Response] = app.exception_handlers[key](request, exc)
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def _body(response: Response) -> dict[str, Any]:
    return json.loads(bytes(response.body))


async def _ok(_request: Request) -> Response:
    return Response(content="ok", status_code=200)


def test_logging_middleware_echoes_request_id_and_sets_headers() -> None:
    dispatch = _dispatch(_app(), "request_logging_middleware")
    request = _request("/api/staff-for-client", headers=[(b"x-request-id", b"req-123")])

    response = asyncio.run(dispatch(request, _ok))

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_logging_middleware_generates_request_id_when_missing() -> None:
    dispatch = _dispatch(_app(), "request_logging_middleware")

    response = asyncio.run(dispatch(_request("/api/health"), _ok))

    assert len(response.headers["X-Request-ID"]) == 32


def test_size_limit_rejects_oversized_assignment_body() -> None:
    dispatch = _dispatch(_app(request_max_bytes=8), "request_size_limit_middleware")
    request = _request(
        "/api/staff/assign-client", method="POST", headers=[(b"content-length", b"20")]
    )

    response = asyncio.run(dispatch(request, _ok))

    assert response.status_code == 413
    assert _body(response)["error_code"] == "REQUEST_TOO_LARGE"


def test_size_limit_ignores_malformed_content_length() -> None:
    dispatch = _dispatch(_app(), "request_size_limit_middleware")
    request = _request(
        "/api/staff/assign-client", method="POST", headers=[(b"content-length", b"abc")]
    )

    response = asyncio.run(dispatch(request, _ok))

    assert response.status_code == 200


def test_http_exception_keeps_structured_detail() -> None:
    response = _handle(
        _app(),
        HTTPException,
        _request("/api/staff-for-client"),
        HTTPException(
            status_code=400,
            detail={"error_code": "VALIDATION_ERROR", "message": "clientId is required."},
        ),
    )

    assert response.status_code == 400
    assert _body(response) == {
        "error_code": "VALIDATION_ERROR",
        "message": "clientId is required.",
    }


def test_staffing_errors_render_contract_and_retry_hint() -> None:
    app = _app()
    request = _request("/api/staff-for-client")

    not_found = _handle(app, StaffingError, request, ClientNotFoundError("X"))
    unavailable = _handle(app, StaffingError, request, StoreUnavailableError("down"))
    partial = _handle(
        app,
        StaffingError,
        _request("/api/staff/assign-client", method="POST"),
        PartialDualWriteError(staff_id="A", client_id="X", operation="assignment"),
    )

    assert not_found.status_code == 404
    assert _body(not_found)["error_code"] == "CLIENT_NOT_FOUND"
    assert "Retry-After" not in not_found.headers
    assert unavailable.status_code == 503
    assert unavailable.headers["Retry-After"] == "5"
    assert partial.status_code == 500
    assert _body(partial)["error_code"] == "ASSIGNMENT_PARTIAL_WRITE"


def test_unexpected_exception_hides_details() -> None:
    response = _handle(
        _app(), Exception, _request("/api/admin/staff-client-sync"), RuntimeError("secret")
    )

    assert response.status_code == 500
    assert _body(response) == {
        "error_code": "INTERNAL_SERVER_ERROR",
        "message": "Internal server error",
    }


def test_validation_message_names_the_field() -> None:
    error = RequestValidationError(
        [{"loc": ("query", "clientId"), "msg": "Field required", "type": "missing"}]
    )

    response = _handle(
        _app(), RequestValidationError, _request("/api/staff-for-client"), error
    )

    assert response.status_code == 422
    assert _body(response)["message"] == "query.clientId: Field required"
