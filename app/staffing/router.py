"""FastAPI router for staff-client relationship endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from app.api.contracts import (
    ApiErrorResponse,
    AssignClientsRequest,
    AssignClientsResponse,
    StaffListResponse,
    StaffResponse,
    SyncStatusResponse,
    SyncSummaryResponse,
    UnassignClientsResponse,
)
from app.staffing.service import StaffingService

_READ_ERRORS = {
    400: {"model": ApiErrorResponse},
    404: {"model": ApiErrorResponse},
    503: {"model": ApiErrorResponse},
}


class StaffingRouter:
    """Factory wrapper that builds the staffing API router from a service."""

    def __init__(self, service: StaffingService) -> None:
        """Store service dependency used by route handlers."""
        self._service = service

    def build(self) -> APIRouter:
        """Create and return configured staffing router."""
        router = APIRouter(tags=["staffing"])

        @router.get(
            "/api/staff-for-client",
            response_model=StaffListResponse,
            responses=_READ_ERRORS,
        )
        def staff_for_client(
            client_id: str = Query(alias="clientId"),
        ) -> StaffListResponse:
            """List staff assigned to a client, falling back to a full scan."""
            rows = self._service.staff_for_client(client_id=client_id)
            return StaffListResponse(data=[StaffResponse(**row) for row in rows])

        @router.get(
            "/api/legacy-staff-by-client",
            response_model=StaffListResponse,
            responses=_READ_ERRORS,
        )
        def legacy_staff_by_client(
            client_id: str = Query(alias="clientId"),
        ) -> StaffListResponse:
            """List staff assigned to a client by scanning staff records."""
            rows = self._service.legacy_staff_by_client(client_id=client_id)
            return StaffListResponse(data=[StaffResponse(**row) for row in rows])

        @router.post(
            "/api/staff/assign-client",
            response_model=AssignClientsResponse,
            responses={
                400: {"model": ApiErrorResponse},
                404: {"model": ApiErrorResponse},
                500: {"model": ApiErrorResponse},
                503: {"model": ApiErrorResponse},
            },
        )
        def assign_client(req: AssignClientsRequest) -> AssignClientsResponse:
            """Assign a staff member to clients on both relationship sides."""
            payload = self._service.assign_clients(
                staff_id=req.staff_id,
                client_ids=req.client_ids,
            )
            return AssignClientsResponse(**payload)

        @router.delete(
            "/api/staff/assign-client",
            response_model=UnassignClientsResponse,
            responses={
                400: {"model": ApiErrorResponse},
                404: {"model": ApiErrorResponse},
                500: {"model": ApiErrorResponse},
                503: {"model": ApiErrorResponse},
            },
        )
        def unassign_client(
            staff_id: str = Query(alias="staffId"),
            client_ids: str = Query(alias="clientIds"),
        ) -> UnassignClientsResponse:
            """Remove a staff member from comma-separated clients."""
            payload = self._service.unassign_clients(
                staff_id=staff_id,
                client_ids_csv=client_ids,
            )
            return UnassignClientsResponse(**payload)

        @router.get(
            "/api/admin/staff-client-sync",
            response_model=SyncStatusResponse,
            responses={503: {"model": ApiErrorResponse}},
        )
        def staff_client_sync_status() -> SyncStatusResponse:
            """Relationship coverage and the repairs a sync would apply."""
            return SyncStatusResponse(**self._service.sync_status())

        @router.post(
            "/api/admin/staff-client-sync",
            response_model=SyncSummaryResponse,
            responses={503: {"model": ApiErrorResponse}},
        )
        def run_staff_client_sync() -> SyncSummaryResponse:
            """Backfill Client.staffs from Staff.clientIds."""
            return SyncSummaryResponse(**self._service.run_sync())

        return router


def create_staffing_router(service: StaffingService) -> APIRouter:
    """Create staffing router using provided application service."""
    return StaffingRouter(service=service).build()
