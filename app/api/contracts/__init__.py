"""Public API response contracts."""

from app.api.contracts.models import (
    ApiErrorResponse,
    AssignClientsRequest,
    AssignClientsResponse,
    HealthResponse,
    RelationshipStatsResponse,
    StaffListResponse,
    StaffResponse,
    SyncErrorResponse,
    SyncStatusResponse,
    SyncSummaryResponse,
    UnassignClientsResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AssignClientsRequest",
    "AssignClientsResponse",
    "HealthResponse",
    "RelationshipStatsResponse",
    "StaffListResponse",
    "StaffResponse",
    "SyncErrorResponse",
    "SyncStatusResponse",
    "SyncSummaryResponse",
    "UnassignClientsResponse",
]
