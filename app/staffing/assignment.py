"""Dual-write staff assignment keeping Staff.clientIds and Client.staffs aligned."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from app.staffing.errors import (
    ClientNotFoundError,
    PartialDualWriteError,
    StaffNotFoundError,
    StoreError,
)

LOGGER = logging.getLogger(__name__)


class AssignmentRepositoryProtocol(Protocol):
    """Repository methods used by assignment flows."""

    @property
    def supports_transactions(self) -> bool:
        """Whether both sides can be written in one transaction."""

    def get_staff(self, staff_id: str) -> dict[str, Any] | None:
        """Return staff record or ``None``."""

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        """Return client record or ``None``."""

    def add_staff_to_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        """Atomic add to ``Client.staffs``."""

    def add_client_to_staff(
        self, staff_id: str, client_id: str, *, session: Any = None
    ) -> bool:
        """Atomic add to ``Staff.clientIds``."""

    def remove_staff_from_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        """Atomic removal from ``Client.staffs``."""

    def remove_client_from_staff(
        self, staff_id: str, client_id: str, *, session: Any = None
    ) -> bool:
        """Atomic removal from ``Staff.clientIds``."""

    def run_in_transaction(self, fn: Callable[[Any], Any]) -> Any:
        """Run ``fn(session)`` in a multi-document transaction."""


@dataclass
class AssignmentResult:
    """Outcome of assigning one staff member to several clients."""

    staff_id: str
    assigned_client_ids: list[str] = field(default_factory=list)
    already_assigned_client_ids: list[str] = field(default_factory=list)


@dataclass
class UnassignmentResult:
    """Outcome of removing one staff member from several clients."""

    staff_id: str
    removed_client_ids: list[str] = field(default_factory=list)
    not_assigned_client_ids: list[str] = field(default_factory=list)


class StaffAssignmentService:
    """Write both sides of a staff-client relationship.

    With transactions both updates commit together. Without them the client
    side is written first and the staff side is the linearization point: a
    failure in between raises ``PartialDualWriteError`` and leaves a state
    the relationship sync job converges.
    """

    def __init__(
        self,
        repo: AssignmentRepositoryProtocol,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._repo = repo
        self._logger = logger or LOGGER

    def assign_staff_to_client(self, staff_id: str, client_id: str) -> bool:
        """Assign one pair; return ``True`` when the staff side changed."""
        self._require_staff(staff_id)
        self._require_client(client_id)
        return self._write_pair(staff_id, client_id, add=True)

    def assign_staff_to_clients(
        self, staff_id: str, client_ids: list[str]
    ) -> AssignmentResult:
        """Assign a staff member to every client in ``client_ids``."""
        unique_ids = list(dict.fromkeys(client_ids))
        self._require_staff(staff_id)
        for client_id in unique_ids:
            self._require_client(client_id)

        result = AssignmentResult(staff_id=staff_id)
        for client_id in unique_ids:
            if self._write_pair(staff_id, client_id, add=True):
                result.assigned_client_ids.append(client_id)
            else:
                result.already_assigned_client_ids.append(client_id)
        self._logger.info(
            "staff_assigned assigned=%s already=%s",
            len(result.assigned_client_ids),
            len(result.already_assigned_client_ids),
            extra={"staff_id": staff_id},
        )
        return result

    def unassign_staff_from_clients(
        self, staff_id: str, client_ids: list[str]
    ) -> UnassignmentResult:
        """Remove a staff member from every client in ``client_ids``."""
        unique_ids = list(dict.fromkeys(client_ids))
        self._require_staff(staff_id)
        for client_id in unique_ids:
            self._require_client(client_id)

        result = UnassignmentResult(staff_id=staff_id)
        for client_id in unique_ids:
            if self._write_pair(staff_id, client_id, add=False):
                result.removed_client_ids.append(client_id)
            else:
                result.not_assigned_client_ids.append(client_id)
        self._logger.info(
            "staff_unassigned removed=%s not_assigned=%s",
            len(result.removed_client_ids),
            len(result.not_assigned_client_ids),
            extra={"staff_id": staff_id},
        )
        return result

    def _require_staff(self, staff_id: str) -> None:
        if self._repo.get_staff(staff_id) is None:
            raise StaffNotFoundError(staff_id)

    def _require_client(self, client_id: str) -> None:
        if self._repo.get_client(client_id) is None:
            raise ClientNotFoundError(client_id)

    def _write_pair(self, staff_id: str, client_id: str, *, add: bool) -> bool:
        if add:
            client_write = self._repo.add_staff_to_client
            staff_write = self._repo.add_client_to_staff
        else:
            client_write = self._repo.remove_staff_from_client
            staff_write = self._repo.remove_client_from_staff

        if self._repo.supports_transactions:

            def apply(session: Any) -> bool:
                client_write(client_id, staff_id, session=session)
                return staff_write(staff_id, client_id, session=session)

            return bool(self._repo.run_in_transaction(apply))

        client_write(client_id, staff_id)
        try:
            return staff_write(staff_id, client_id)
        except StoreError as exc:
            operation = "assignment" if add else "unassignment"
            self._logger.error(
                "staff_%s_partial_write: %s",
                operation,
                exc,
                extra={"staff_id": staff_id, "client_id": client_id},
            )
            raise PartialDualWriteError(
                staff_id=staff_id, client_id=client_id, operation=operation
            ) from exc
