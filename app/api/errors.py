"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException

from app.staffing.errors import (
    ClientNotFoundError,
    PartialDualWriteError,
    StaffingError,
    StaffNotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    STAFF_NOT_FOUND = "STAFF_NOT_FOUND"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_TIMEOUT = "STORE_TIMEOUT"
    STORE_ERROR = "STORE_ERROR"
    ASSIGNMENT_PARTIAL_WRITE = "ASSIGNMENT_PARTIAL_WRITE"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }


def api_error_for(exc: StaffingError) -> ApiError:
    """Map a staffing domain error to its HTTP error contract."""
    if isinstance(exc, ClientNotFoundError):
        return ApiError(
            status_code=404, error_code=ApiErrorCode.CLIENT_NOT_FOUND, message=str(exc)
        )
    if isinstance(exc, StaffNotFoundError):
        return ApiError(
            status_code=404, error_code=ApiErrorCode.STAFF_NOT_FOUND, message=str(exc)
        )
    if isinstance(exc, StoreUnavailableError):
        return ApiError(
            status_code=503,
            error_code=ApiErrorCode.STORE_UNAVAILABLE,
            message="Staffing store is unavailable; retry later.",
        )
    if isinstance(exc, StoreTimeoutError):
        return ApiError(
            status_code=503,
            error_code=ApiErrorCode.STORE_TIMEOUT,
            message="Staffing store did not answer in time; retry later.",
        )
    if isinstance(exc, StoreError):
        return ApiError(
            status_code=503, error_code=ApiErrorCode.STORE_ERROR, message=str(exc)
        )
    if isinstance(exc, PartialDualWriteError):
        return ApiError(
            status_code=500,
            error_code=ApiErrorCode.ASSIGNMENT_PARTIAL_WRITE,
            message=str(exc),
        )
    return ApiError(
        status_code=500,
        error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
        message=str(exc) or "Internal server error",
    )
