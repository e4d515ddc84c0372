"""Pydantic API request/response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StaffResponse(CamelModel):
    """Staff record; profile fields beyond the relationship pass through."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    client_ids: list[str] = Field(default_factory=list)


class StaffListResponse(BaseModel):
    """Canonical envelope for staff listings."""

    data: list[StaffResponse]


class AssignClientsRequest(CamelModel):
    """Assign one staff member to one or more clients."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    staff_id: str = Field(min_length=1)
    client_ids: list[str] = Field(min_length=1)


class AssignClientsResponse(CamelModel):
    """Assignment outcome per client."""

    staff_id: str
    assigned_client_ids: list[str] = Field(default_factory=list)
    already_assigned_client_ids: list[str] = Field(default_factory=list)


class UnassignClientsResponse(CamelModel):
    """Unassignment outcome per client."""

    staff_id: str
    removed_client_ids: list[str] = Field(default_factory=list)
    not_assigned_client_ids: list[str] = Field(default_factory=list)


class SyncErrorResponse(CamelModel):
    """One (staff, client) pair the sync job could not repair."""

    staff_id: str
    client_id: str
    reason: str
    message: str = ""


class SyncSummaryResponse(CamelModel):
    """Relationship sync run summary."""

    run_id: str = ""
    mode: str
    staff_total: int
    staff_skipped: int
    clients_updated: int
    already_synced: int = 0
    errors: list[SyncErrorResponse] = Field(default_factory=list)
    cancelled: bool = False


class RelationshipStatsResponse(CamelModel):
    """Coverage counters for both sides of the relationship."""

    staff_total: int
    staff_with_clients: int
    client_total: int
    clients_with_staffs: int


class SyncStatusResponse(CamelModel):
    """Current relationship coverage plus pending repairs."""

    backend: str
    stats: RelationshipStatsResponse
    pending: SyncSummaryResponse
