from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterator

import pytest

from app.staffing.errors import (
    StoreError,
    StoreUnavailableError,
    SyncErrorReason,
)
from app.staffing.reconciler import StaffClientReconciler
from tests.staffing_fixtures import (
    client,
    make_repo,
    seed_two_staff_two_clients,
    staff,
)


def test_reconciler_backfills_missing_back_references(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    seed_two_staff_two_clients(repo)

    summary = StaffClientReconciler(repo).run()

    client_x = repo.get_client("X")
    client_y = repo.get_client("Y")
    assert client_x is not None and client_y is not None
    assert sorted(client_x["staffs"]) == ["A", "B"]
    assert client_y["staffs"] == ["B"]
    assert summary.staff_total == 2
    assert summary.clients_updated == 2
    assert summary.already_synced == 1
    assert summary.staff_skipped == 0
    assert summary.errors == []
    assert summary.cancelled is False


def test_reconciler_second_run_updates_nothing(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    seed_two_staff_two_clients(repo)

    StaffClientReconciler(repo).run()
    after_first = {key: repo.get_client(key) for key in ("X", "Y")}
    second = StaffClientReconciler(repo).run()
    after_second = {key: repo.get_client(key) for key in ("X", "Y")}

    assert second.clients_updated == 0
    assert second.already_synced == 3
    assert after_first == after_second


def test_reconciler_adds_each_staff_id_exactly_once(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    repo.upsert_staff(staff("S", ["C1", "C2", "C1"]))
    repo.upsert_client(client("C1"))
    repo.upsert_client(client("C2", []))

    StaffClientReconciler(repo).run()

    assert repo.get_client("C1")["staffs"] == ["S"]  # type: ignore[index]
    assert repo.get_client("C2")["staffs"] == ["S"]  # type: ignore[index]


def test_reconciler_records_dangling_client_reference_and_continues(
    tmp_path: Path,
) -> None:
    repo = make_repo(tmp_path)
    repo.upsert_staff(staff("A", ["ghost", "X"]))
    repo.upsert_staff(staff("B", ["X"]))
    repo.upsert_client(client("X"))

    summary = StaffClientReconciler(repo).run()

    assert len(summary.errors) == 1
    error = summary.errors[0]
    assert (error.staff_id, error.client_id) == ("A", "ghost")
    assert error.reason == SyncErrorReason.CLIENT_NOT_FOUND
    assert sorted(repo.get_client("X")["staffs"]) == ["A", "B"]  # type: ignore[index]
    assert summary.to_dict()["errors"][0]["reason"] == "ClientNotFound"


def test_reconciler_skips_staff_without_clients(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    repo.upsert_staff(staff("A", []))
    repo.upsert_staff(staff("B", None))

    summary = StaffClientReconciler(repo).run()

    assert summary.staff_total == 2
    assert summary.staff_skipped == 2
    assert summary.clients_updated == 0


def test_reconciler_never_removes_existing_back_references(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    repo.upsert_staff(staff("A", ["X"]))
    repo.upsert_client(client("X", ["legacy-staff"]))

    StaffClientReconciler(repo).run()

    assert repo.get_client("X")["staffs"] == ["legacy-staff", "A"]  # type: ignore[index]


def test_reconciler_repairs_client_with_null_staffs(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    repo.upsert_staff(staff("A", ["X"]))
    repo.upsert_client({**client("X"), "staffs": None})

    first = StaffClientReconciler(repo).run()
    second = StaffClientReconciler(repo).run()

    assert repo.get_client("X")["staffs"] == ["A"]  # type: ignore[index]
    assert first.clients_updated == 1
    assert first.errors == []
    assert second.clients_updated == 0


def test_reconciler_dry_run_reports_without_writing(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    seed_two_staff_two_clients(repo)

    summary = StaffClientReconciler(repo, dry_run=True).run()

    assert summary.mode == "dry-run"
    assert summary.clients_updated == 2
    assert "staffs" not in repo.get_client("X")  # type: ignore[operator]


def test_reconciler_worker_pool_matches_sequential_result(tmp_path: Path) -> None:
    repo = make_repo(tmp_path)
    for index in range(12):
        repo.upsert_staff(staff(f"S{index}", ["X", "Y"] if index % 2 else ["X"]))
    repo.upsert_client(client("X"))
    repo.upsert_client(client("Y"))

    summary = StaffClientReconciler(repo, workers=4).run()

    assert summary.staff_total == 12
    assert summary.clients_updated == 18
    assert len(repo.get_client("X")["staffs"]) == 12  # type: ignore[index]
    assert len(repo.get_client("Y")["staffs"]) == 6  # type: ignore[index]


def test_reconciler_stops_before_processing_when_stop_requested(
    tmp_path: Path,
) -> None:
    repo = make_repo(tmp_path)
    seed_two_staff_two_clients(repo)
    stop_event = threading.Event()
    stop_event.set()

    summary = StaffClientReconciler(repo, stop_event=stop_event).run()

    assert summary.cancelled is True
    assert summary.staff_total == 0
    assert "staffs" not in repo.get_client("X")  # type: ignore[operator]


class _FailingRepo:
    def __init__(
        self,
        *,
        ping_error: Exception | None = None,
        update_errors: dict[str, Exception] | None = None,
    ) -> None:
        self._ping_error = ping_error
        self._update_errors = update_errors or {}
        self.added: list[tuple[str, str]] = []

    def ping(self) -> None:
        if self._ping_error is not None:
            raise self._ping_error

    def iter_staff_client_ids(self) -> Iterator[tuple[str, list[str]]]:
        yield "A", ["X", "Y"]
        yield "B", ["Z"]

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        return {"id": client_id, "staffs": []}

    def add_staff_to_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        error = self._update_errors.get(client_id)
        if error is not None:
            raise error
        self.added.append((client_id, staff_id))
        return True


def test_reconciler_propagates_store_unavailable_on_ping() -> None:
    repo = _FailingRepo(ping_error=StoreUnavailableError("down"))

    with pytest.raises(StoreUnavailableError):
        StaffClientReconciler(repo).run()

    assert repo.added == []


def test_reconciler_records_single_update_failure_as_error() -> None:
    repo = _FailingRepo(update_errors={"Y": StoreError("write conflict")})

    summary = StaffClientReconciler(repo).run()

    assert summary.clients_updated == 2
    assert [(e.client_id, e.reason) for e in summary.errors] == [
        ("Y", SyncErrorReason.UPDATE_FAILED)
    ]
    assert ("Z", "B") in repo.added


def test_reconciler_aborts_when_store_drops_mid_run() -> None:
    repo = _FailingRepo(update_errors={"Y": StoreUnavailableError("lost")})

    with pytest.raises(StoreUnavailableError):
        StaffClientReconciler(repo).run()


def test_reconciler_worker_pool_propagates_store_unavailable() -> None:
    repo = _FailingRepo(update_errors={"Z": StoreUnavailableError("lost")})

    with pytest.raises(StoreUnavailableError):
        StaffClientReconciler(repo, workers=2).run()


class _CountingRepo:
    """Records how far the staff cursor runs ahead of the workers."""

    def __init__(
        self, staff_count: int, *, stop_after: int | None = None, stop_event: Any = None
    ) -> None:
        self._staff_count = staff_count
        self._stop_after = stop_after
        self._stop_event = stop_event
        self._lock = threading.Lock()
        self.yielded = 0
        self.processed = 0
        self.max_read_ahead = 0

    def ping(self) -> None:
        return None

    def iter_staff_client_ids(self) -> Iterator[tuple[str, list[str]]]:
        for index in range(self._staff_count):
            with self._lock:
                self.yielded += 1
                self.max_read_ahead = max(
                    self.max_read_ahead, self.yielded - self.processed
                )
            yield f"S{index}", ["X"]

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        return {"id": client_id, "staffs": []}

    def add_staff_to_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        with self._lock:
            self.processed += 1
            if self._stop_after is not None and self.processed >= self._stop_after:
                self._stop_event.set()
        return True


def test_reconciler_worker_pool_reads_staff_in_bounded_batches() -> None:
    repo = _CountingRepo(200)

    summary = StaffClientReconciler(repo, workers=2).run()

    assert summary.staff_total == 200
    assert summary.clients_updated == 200
    assert repo.max_read_ahead <= 2 * 4 + 1


def test_reconciler_worker_pool_stops_part_way() -> None:
    stop_event = threading.Event()
    repo = _CountingRepo(200, stop_after=3, stop_event=stop_event)

    summary = StaffClientReconciler(repo, workers=2, stop_event=stop_event).run()

    assert summary.cancelled is True
    assert 3 <= summary.staff_total < 200
    assert summary.clients_updated == summary.staff_total
    assert repo.yielded < 200
