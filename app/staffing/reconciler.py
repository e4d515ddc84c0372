"""Batch sync of Client.staffs back-references from Staff.clientIds."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Protocol

from app.core.logging import new_run_id
from app.staffing.errors import (
    ClientNotFoundError,
    StoreError,
    StoreUnavailableError,
    SyncErrorReason,
)

LOGGER = logging.getLogger(__name__)

# Staff records queued per worker; the cursor is never read further ahead.
_PENDING_PER_WORKER = 4


class SyncRepositoryProtocol(Protocol):
    """Repository methods used by the relationship sync job."""

    def ping(self) -> None:
        """Raise ``StoreUnavailableError`` when the store is unreachable."""

    def iter_staff_client_ids(self) -> Iterator[tuple[str, list[str]]]:
        """Yield ``(staff_id, clientIds)`` pairs."""

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        """Return client record or ``None``."""

    def add_staff_to_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        """Atomically add staff id to client; return whether it was added."""


@dataclass(frozen=True)
class SyncError:
    """A single (staff, client) pair the sync job could not repair."""

    staff_id: str
    client_id: str
    reason: SyncErrorReason
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "staffId": self.staff_id,
            "clientId": self.client_id,
            "reason": str(self.reason),
            "message": self.message,
        }


@dataclass
class SyncSummary:
    """Aggregated result of one sync run.

    ``clients_updated`` counts (staff, client) additions, not distinct
    clients: a client gaining two staff ids counts twice.
    """

    mode: str = "write"
    staff_total: int = 0
    staff_skipped: int = 0
    clients_updated: int = 0
    already_synced: int = 0
    errors: list[SyncError] = field(default_factory=list)
    cancelled: bool = False
    run_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "mode": self.mode,
            "staffTotal": self.staff_total,
            "staffSkipped": self.staff_skipped,
            "clientsUpdated": self.clients_updated,
            "alreadySynced": self.already_synced,
            "errors": [error.to_dict() for error in self.errors],
            "cancelled": self.cancelled,
        }


@dataclass
class _StaffOutcome:
    skipped: bool = False
    updated: int = 0
    already_synced: int = 0
    errors: list[SyncError] = field(default_factory=list)


class StaffClientReconciler:
    """Union-only repair of ``Client.staffs`` from ``Staff.clientIds``.

    Never removes an entry from ``Client.staffs``. Every write is one atomic
    add-if-absent, so runs can be repeated, interrupted, or executed with
    several workers without lost updates.
    """

    def __init__(
        self,
        repo: SyncRepositoryProtocol,
        *,
        workers: int = 1,
        dry_run: bool = False,
        stop_event: threading.Event | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._repo = repo
        self._workers = max(1, workers)
        self._dry_run = dry_run
        self._stop_event = stop_event or threading.Event()
        self._logger = logger or LOGGER

    def stop(self) -> None:
        """Request graceful termination before the next staff record."""
        self._stop_event.set()

    def run(self) -> SyncSummary:
        """Run one sync pass; raise ``StoreUnavailableError`` if fatal."""
        summary = SyncSummary(
            mode="dry-run" if self._dry_run else "write",
            run_id=new_run_id("sync"),
        )
        self._repo.ping()
        self._logger.info(
            "staff_client_sync_started",
            extra={"run_id": summary.run_id, "source": summary.mode},
        )

        if self._workers == 1:
            for staff_id, client_ids in self._repo.iter_staff_client_ids():
                if self._stop_event.is_set():
                    summary.cancelled = True
                    break
                self._merge(summary, self._process_staff(staff_id, client_ids))
        else:
            self._run_pool(summary)

        self._logger.info(
            "staff_client_sync_finished staff=%s updated=%s skipped=%s errors=%s cancelled=%s",
            summary.staff_total,
            summary.clients_updated,
            summary.staff_skipped,
            len(summary.errors),
            summary.cancelled,
            extra={"run_id": summary.run_id},
        )
        return summary

    def _run_pool(self, summary: SyncSummary) -> None:
        max_pending = self._workers * _PENDING_PER_WORKER
        pending: set[Future[_StaffOutcome | None]] = set()
        with ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="staff-sync"
        ) as executor:
            try:
                for staff_id, client_ids in self._repo.iter_staff_client_ids():
                    if self._stop_event.is_set():
                        summary.cancelled = True
                        break
                    if len(pending) >= max_pending:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        self._collect(summary, done)
                    pending.add(
                        executor.submit(
                            self._process_staff_if_running, staff_id, client_ids
                        )
                    )
                self._collect(summary, wait(pending).done)
            except Exception:
                # Queued records skip themselves; running workers finish first.
                self._stop_event.set()
                raise

    def _collect(
        self, summary: SyncSummary, done: Iterable[Future[_StaffOutcome | None]]
    ) -> None:
        for future in done:
            outcome = future.result()
            if outcome is None:
                summary.cancelled = True
                continue
            self._merge(summary, outcome)

    def _process_staff_if_running(
        self, staff_id: str, client_ids: list[str]
    ) -> _StaffOutcome | None:
        if self._stop_event.is_set():
            return None
        return self._process_staff(staff_id, client_ids)

    @staticmethod
    def _merge(summary: SyncSummary, outcome: _StaffOutcome) -> None:
        summary.staff_total += 1
        if outcome.skipped:
            summary.staff_skipped += 1
        summary.clients_updated += outcome.updated
        summary.already_synced += outcome.already_synced
        summary.errors.extend(outcome.errors)

    def _process_staff(self, staff_id: str, client_ids: list[str]) -> _StaffOutcome:
        outcome = _StaffOutcome()
        if not client_ids:
            outcome.skipped = True
            return outcome

        for client_id in dict.fromkeys(client_ids):
            try:
                added = self._sync_pair(staff_id, client_id)
            except ClientNotFoundError as exc:
                self._logger.warning(
                    "staff_client_sync_missing_client",
                    extra={"staff_id": staff_id, "client_id": client_id},
                )
                outcome.errors.append(
                    SyncError(
                        staff_id=staff_id,
                        client_id=client_id,
                        reason=SyncErrorReason.CLIENT_NOT_FOUND,
                        message=str(exc),
                    )
                )
                continue
            except StoreUnavailableError:
                raise
            except StoreError as exc:
                self._logger.warning(
                    "staff_client_sync_update_failed: %s",
                    exc,
                    extra={"staff_id": staff_id, "client_id": client_id},
                )
                outcome.errors.append(
                    SyncError(
                        staff_id=staff_id,
                        client_id=client_id,
                        reason=SyncErrorReason.UPDATE_FAILED,
                        message=str(exc),
                    )
                )
                continue
            if added:
                outcome.updated += 1
            else:
                outcome.already_synced += 1
        return outcome

    def _sync_pair(self, staff_id: str, client_id: str) -> bool:
        if not self._dry_run:
            return self._repo.add_staff_to_client(client_id, staff_id)
        client = self._repo.get_client(client_id)
        if client is None:
            raise ClientNotFoundError(client_id)
        return staff_id not in (client.get("staffs") or [])
