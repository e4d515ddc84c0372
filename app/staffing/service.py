"""Business logic for staff-client relationship endpoints."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Protocol

from bson import ObjectId

from app.api.errors import ApiError, ApiErrorCode, api_error_for
from app.staffing.assignment import StaffAssignmentService
from app.staffing.errors import StaffingError
from app.staffing.reconciler import StaffClientReconciler
from app.staffing.resolver import StaffForClientResolver

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_HIDDEN_STAFF_FIELDS = {"_id", "password"}


class StatsRepositoryProtocol(Protocol):
    """Repository methods used directly by the staffing service."""

    @property
    def backend(self) -> str:
        """Active backend name."""

    def collection_stats(self) -> dict[str, int]:
        """Coverage counters for both collections."""


def _json_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    return value


def public_staff(row: dict[str, Any]) -> dict[str, Any]:
    """Strip secrets and stringify BSON values for the JSON response."""
    return {
        key: _json_value(value)
        for key, value in row.items()
        if key not in _HIDDEN_STAFF_FIELDS
    }


class StaffingService:
    """Application service for staff lookup, assignment and sync endpoints."""

    def __init__(
        self,
        *,
        repo: StatsRepositoryProtocol,
        resolver: StaffForClientResolver,
        assignment: StaffAssignmentService,
        reconciler_factory: Callable[[bool], StaffClientReconciler],
        logger: logging.Logger,
    ) -> None:
        """Initialize service with collaborators."""
        self._repo = repo
        self._resolver = resolver
        self._assignment = assignment
        self._reconciler_factory = reconciler_factory
        self._logger = logger

    def staff_for_client(self, client_id: str) -> list[dict[str, Any]]:
        """Staff for a client via back-references, scanning when empty."""
        key = self._require_id(client_id, "clientId")
        try:
            lookup = self._resolver.resolve(key)
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        self._logger.info(
            "staff_for_client count=%s",
            len(lookup.staff),
            extra={"client_id": key, "source": str(lookup.source)},
        )
        return [public_staff(row) for row in lookup.staff]

    def legacy_staff_by_client(self, client_id: str) -> list[dict[str, Any]]:
        """Staff for a client via the legacy scan only."""
        key = self._require_id(client_id, "clientId")
        try:
            rows = self._resolver.scan(key)
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        return [public_staff(row) for row in rows]

    def assign_clients(self, staff_id: str, client_ids: list[str]) -> dict[str, Any]:
        """Assign staff to clients on both sides of the relationship."""
        staff_key = self._require_id(staff_id, "staffId")
        client_keys = [self._require_id(item, "clientIds") for item in client_ids]
        try:
            result = self._assignment.assign_staff_to_clients(staff_key, client_keys)
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        return {
            "staff_id": result.staff_id,
            "assigned_client_ids": result.assigned_client_ids,
            "already_assigned_client_ids": result.already_assigned_client_ids,
        }

    def unassign_clients(self, staff_id: str, client_ids_csv: str) -> dict[str, Any]:
        """Remove staff from a comma-separated list of clients."""
        staff_key = self._require_id(staff_id, "staffId")
        raw_ids = [item.strip() for item in client_ids_csv.split(",") if item.strip()]
        if not raw_ids:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="At least one client ID is required.",
            )
        client_keys = [self._require_id(item, "clientIds") for item in raw_ids]
        try:
            result = self._assignment.unassign_staff_from_clients(staff_key, client_keys)
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        return {
            "staff_id": result.staff_id,
            "removed_client_ids": result.removed_client_ids,
            "not_assigned_client_ids": result.not_assigned_client_ids,
        }

    def sync_status(self) -> dict[str, Any]:
        """Coverage counters plus a dry-run of the relationship sync."""
        try:
            stats = self._repo.collection_stats()
            pending = self._reconciler_factory(True).run()
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        return {
            "backend": self._repo.backend,
            "stats": stats,
            "pending": pending.to_dict(),
        }

    def run_sync(self) -> dict[str, Any]:
        """Run the relationship sync job and return its summary."""
        try:
            summary = self._reconciler_factory(False).run()
        except StaffingError as exc:
            raise api_error_for(exc) from exc
        return summary.to_dict()

    @staticmethod
    def _require_id(value: str, label: str) -> str:
        key = str(value or "").strip()
        if not key:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=f"{label} is required.",
            )
        if not _ID_RE.match(key):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=f"Invalid {label} format: {key}",
            )
        return key
