"""Domain errors for staff-client relationship handling."""

from __future__ import annotations

from enum import StrEnum


class StaffingError(Exception):
    """Base class for staffing domain errors."""


class StoreError(StaffingError):
    """Document store operation failed; callers may retry."""


class StoreUnavailableError(StoreError):
    """Backing store cannot be reached at all."""


class StoreTimeoutError(StoreError):
    """Store operation exceeded its time budget."""


class ClientNotFoundError(StaffingError):
    """Referenced client document does not exist."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"Client not found: {client_id}")
        self.client_id = client_id


class StaffNotFoundError(StaffingError):
    """Referenced staff document does not exist."""

    def __init__(self, staff_id: str) -> None:
        super().__init__(f"Staff member not found: {staff_id}")
        self.staff_id = staff_id


class PartialDualWriteError(StaffingError):
    """Client side of a dual write was applied but the staff side failed.

    The pair is left for the relationship sync job to repair.
    """

    def __init__(self, *, staff_id: str, client_id: str, operation: str) -> None:
        super().__init__(
            f"Partial {operation} for staff {staff_id} and client {client_id}: "
            "client record updated, staff record not updated."
        )
        self.staff_id = staff_id
        self.client_id = client_id
        self.operation = operation


class ResponseContractError(StaffingError):
    """Read API returned a payload outside the canonical envelope."""


class SyncErrorReason(StrEnum):
    """Per-pair failure reasons reported by the relationship sync job."""

    CLIENT_NOT_FOUND = "ClientNotFound"
    UPDATE_FAILED = "UpdateFailed"
