"""Staff-for-client read path: indexed lookup with legacy scan fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from app.core.config import ResolverConfig
from app.staffing.errors import ClientNotFoundError

LOGGER = logging.getLogger(__name__)


class LookupSource(StrEnum):
    """Which read path produced a staff list."""

    INDEX = "index"
    SCAN = "scan"


class ResolverRepositoryProtocol(Protocol):
    """Repository reads used by the staff-for-client resolver."""

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        """Return client record or ``None``."""

    def get_staff_by_ids(
        self, staff_ids: list[str], *, timeout_ms: int | None = None
    ) -> list[dict[str, Any]]:
        """Batch-fetch staff records."""

    def find_staff_by_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> list[dict[str, Any]]:
        """Scan staff records referencing the client."""


@dataclass(frozen=True)
class StaffLookup:
    """Staff records for one client and the path that served them."""

    staff: list[dict[str, Any]]
    source: LookupSource


def _sort_staff(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Newest first, id as tie-breaker, so both paths order identically."""
    by_id = sorted(rows, key=lambda row: str(row.get("id") or ""))
    return sorted(by_id, key=lambda row: str(row.get("createdAt") or ""), reverse=True)


class StaffForClientResolver:
    """Resolve the staff assigned to a client.

    The fast path follows ``Client.staffs``. An empty fast-path result cannot
    tell "no staff" apart from "back-references never populated", so it is
    always followed by exactly one scan of ``Staff.clientIds``.
    """

    def __init__(
        self,
        repo: ResolverRepositoryProtocol,
        config: ResolverConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._repo = repo
        self._config = config
        self._logger = logger or LOGGER

    def resolve(self, client_id: str) -> StaffLookup:
        """Return staff for ``client_id``, falling back to a scan when empty."""
        client = self._repo.get_client(
            client_id, timeout_ms=self._config.fast_path_timeout_ms
        )
        if client is None:
            raise ClientNotFoundError(client_id)

        staff = self._fast_path(client_id, client)
        if staff:
            return StaffLookup(staff=staff, source=LookupSource.INDEX)

        self._logger.info(
            "staff_lookup_fallback",
            extra={"client_id": client_id, "source": str(LookupSource.SCAN)},
        )
        return StaffLookup(staff=self._scan(client_id), source=LookupSource.SCAN)

    def scan(self, client_id: str) -> list[dict[str, Any]]:
        """Legacy lookup: scan only, for clients that exist."""
        client = self._repo.get_client(
            client_id, timeout_ms=self._config.fast_path_timeout_ms
        )
        if client is None:
            raise ClientNotFoundError(client_id)
        return self._scan(client_id)

    def _fast_path(self, client_id: str, client: dict[str, Any]) -> list[dict[str, Any]]:
        staff_ids = [str(item) for item in client.get("staffs") or [] if str(item)]
        if not staff_ids:
            return []
        rows = self._repo.get_staff_by_ids(
            list(dict.fromkeys(staff_ids)),
            timeout_ms=self._config.fast_path_timeout_ms,
        )
        # Staff.clientIds is the source of truth; drop stale back-references.
        current = [row for row in rows if client_id in (row.get("clientIds") or [])]
        if len(current) != len(rows):
            self._logger.warning(
                "staff_lookup_stale_back_references count=%s",
                len(rows) - len(current),
                extra={"client_id": client_id},
            )
        return _sort_staff(current)

    def _scan(self, client_id: str) -> list[dict[str, Any]]:
        rows = self._repo.find_staff_by_client(
            client_id, timeout_ms=self._config.slow_path_timeout_ms
        )
        return _sort_staff(rows)
