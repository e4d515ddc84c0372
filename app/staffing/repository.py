"""Staff and client persistence with MongoDB primary and file-store fallback."""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
)

from app.core.config import StoreConfig
from app.staffing.errors import (
    ClientNotFoundError,
    StaffNotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# One lock for every file-store instance in the process; set updates on the
# local store are read-modify-write and must not interleave.
_FILE_STORE_LOCK = threading.RLock()


@contextmanager
def _mongo_errors(operation: str, *, session: Any = None) -> Iterator[None]:
    """Translate pymongo failures into staffing store errors.

    Inside a transaction callback (``session`` given) errors pass through
    untouched so ``with_transaction`` can read their retry labels; the
    translation then happens once around the whole transaction.
    """
    if session is not None:
        yield
        return
    try:
        yield
    except (ExecutionTimeout, NetworkTimeout) as exc:
        raise StoreTimeoutError(f"{operation} timed out: {exc}") from exc
    except (ConnectionFailure, ConfigurationError) as exc:
        raise StoreUnavailableError(f"{operation} failed, store unreachable: {exc}") from exc
    except PyMongoError as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


def _id_set_pipeline(field: str, value: str, *, add: bool) -> list[dict[str, Any]]:
    """Update pipeline adding/removing ``value`` in an id array field.

    A null or missing field counts as an empty array; ``$addToSet`` rejects
    a null field on legacy records.
    """
    current = {"$ifNull": [f"${field}", []]}
    member = {"$literal": value}
    present = {"$in": [member, current]}
    if add:
        updated = {
            "$cond": [present, f"${field}", {"$concatArrays": [current, [member]]}]
        }
    else:
        updated = {
            "$cond": [
                present,
                {"$filter": {"input": current, "cond": {"$ne": ["$$this", member]}}},
                f"${field}",
            ]
        }
    return [{"$set": {field: updated}}]


def _id_query_value(raw: str) -> Any:
    """Use ObjectId for 24-hex identifiers, plain strings otherwise."""
    return ObjectId(raw) if ObjectId.is_valid(raw) else raw


def _string_ids(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [str(value).strip() for value in values if str(value or "").strip()]


def _from_mongo(doc: dict[str, Any]) -> dict[str, Any]:
    record = dict(doc)
    record["id"] = str(record.pop("_id"))
    if "clientIds" in record:
        record["clientIds"] = _string_ids(record.get("clientIds"))
    if "staffs" in record:
        record["staffs"] = _string_ids(record.get("staffs"))
    return record


class _Deadline:
    """Monotonic time budget for file-store scans."""

    def __init__(self, timeout_ms: int | None) -> None:
        self._expires_at = (
            time.monotonic() + timeout_ms / 1000.0 if timeout_ms else None
        )

    def check(self, operation: str) -> None:
        if self._expires_at is not None and time.monotonic() > self._expires_at:
            raise StoreTimeoutError(f"{operation} exceeded its time budget.")


class StaffingRepository:
    """Staff/client repository with MongoDB primary and file-store fallback.

    When ``StoreConfig.mongo_uri`` is empty, records live in
    ``<app_root>/<runtime_dir>/staffing_store/{staffs,clients}.json``. Once a
    URI is configured the repository never falls back silently: an unreachable
    server surfaces as ``StoreUnavailableError``.
    """

    def __init__(self, config: StoreConfig, app_root: Path) -> None:
        """Initialize repository storage backend."""
        self._config = config
        self._mongo_enabled = bool(config.mongo_uri)
        self._client: Any | None = None
        self._staff_collection: Any | None = None
        self._client_collection: Any | None = None

        self._fallback_dir = app_root / config.runtime_dir / "staffing_store"
        self._staff_file = self._fallback_dir / "staffs.json"
        self._client_file = self._fallback_dir / "clients.json"

        if self._mongo_enabled:
            with _mongo_errors("MongoDB client setup"):
                self._client = MongoClient(
                    config.mongo_uri,
                    serverSelectionTimeoutMS=config.server_selection_timeout_ms,
                    connect=False,
                )
            db = self._client[config.mongo_db]
            self._staff_collection = db[config.staff_collection]
            self._client_collection = db[config.client_collection]
            LOGGER.info(
                "StaffingRepository using MongoDB: db=%s staff=%s clients=%s",
                config.mongo_db,
                config.staff_collection,
                config.client_collection,
            )
        else:
            self._fallback_dir.mkdir(parents=True, exist_ok=True)
            LOGGER.warning(
                "MONGODB_URI is not set. Using local staffing store fallback: %s",
                self._fallback_dir,
            )

    @property
    def backend(self) -> str:
        """Return active backend name."""
        return "mongodb" if self._mongo_enabled else "file"

    @property
    def supports_transactions(self) -> bool:
        """Whether both sides of a relationship can be written atomically."""
        return self._mongo_enabled and self._config.use_transactions

    def ping(self) -> None:
        """Verify the store is reachable or raise ``StoreUnavailableError``."""
        if self._mongo_enabled and self._client is not None:
            with _mongo_errors("MongoDB ping"):
                self._client.admin.command("ping")
            return
        if not self._fallback_dir.is_dir():
            raise StoreUnavailableError(
                f"Local staffing store is missing: {self._fallback_dir}"
            )

    def close(self) -> None:
        """Release store connections."""
        if self._client is not None:
            self._client.close()

    # ----- file store helpers -----

    def _read_rows(self, path: Path, *, strict: bool = False) -> list[dict[str, Any]]:
        """Read list payload from JSON file.

        Lenient reads treat a corrupted file as empty; strict reads (used
        before writes) refuse to overwrite it.
        """
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            if strict:
                raise StoreError(f"Local staffing store is unreadable: {path}") from exc
            LOGGER.exception("Failed reading local staffing store: %s", path)
            return []
        if not isinstance(payload, list):
            if strict:
                raise StoreError(f"Local staffing store is malformed: {path}")
            return []
        return [row for row in payload if isinstance(row, dict)]

    def _write_rows(self, path: Path, rows: list[dict[str, Any]]) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(
                json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            tmp_path.replace(path)
        except OSError as exc:
            raise StoreError(f"Failed writing local staffing store: {path}") from exc

    @staticmethod
    def _find_row(rows: list[dict[str, Any]], record_id: str) -> dict[str, Any] | None:
        for row in rows:
            if str(row.get("id") or "") == record_id:
                return row
        return None

    def _update_id_set(
        self,
        path: Path,
        record_id: str,
        field: str,
        value: str,
        *,
        add: bool,
    ) -> bool | None:
        """Add/remove ``value`` in ``field`` of a file-store record.

        Returns ``None`` when the record does not exist, otherwise whether
        the set changed.
        """
        with _FILE_STORE_LOCK:
            rows = self._read_rows(path, strict=True)
            row = self._find_row(rows, record_id)
            if row is None:
                return None
            current = _string_ids(row.get(field))
            if add:
                if value in current:
                    return False
                row[field] = [*current, value]
            else:
                if value not in current:
                    return False
                row[field] = [item for item in current if item != value]
            self._write_rows(path, rows)
            return True

    def _upsert_row(self, path: Path, record: dict[str, Any]) -> None:
        record_id = str(record.get("id") or "").strip()
        if not record_id:
            raise ValueError("id is required for staffing store upsert.")
        with _FILE_STORE_LOCK:
            rows = self._read_rows(path, strict=True)
            next_rows = [row for row in rows if str(row.get("id") or "") != record_id]
            next_rows.append({**record, "id": record_id})
            self._write_rows(path, next_rows)

    # ----- reads -----

    def iter_staff_client_ids(self) -> Iterator[tuple[str, list[str]]]:
        """Yield ``(staff_id, clientIds)`` for every staff record."""
        if self._mongo_enabled and self._staff_collection is not None:
            with _mongo_errors("Staff scan"):
                cursor = self._staff_collection.find({}, {"clientIds": 1})
                for doc in cursor:
                    yield str(doc["_id"]), _string_ids(doc.get("clientIds"))
            return
        for row in self._read_rows(self._staff_file):
            staff_id = str(row.get("id") or "").strip()
            if staff_id:
                yield staff_id, _string_ids(row.get("clientIds"))

    def get_staff(self, staff_id: str) -> dict[str, Any] | None:
        """Return staff record by id."""
        if self._mongo_enabled and self._staff_collection is not None:
            with _mongo_errors("Staff lookup"):
                doc = self._staff_collection.find_one({"_id": _id_query_value(staff_id)})
            return _from_mongo(doc) if doc else None
        row = self._find_row(self._read_rows(self._staff_file), staff_id)
        return dict(row) if row else None

    def get_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> dict[str, Any] | None:
        """Return client record by id."""
        if self._mongo_enabled and self._client_collection is not None:
            with _mongo_errors("Client lookup"):
                doc = self._client_collection.find_one(
                    {"_id": _id_query_value(client_id)}, max_time_ms=timeout_ms
                )
            return _from_mongo(doc) if doc else None
        deadline = _Deadline(timeout_ms)
        row = self._find_row(self._read_rows(self._client_file), client_id)
        deadline.check("Client lookup")
        return dict(row) if row else None

    def get_staff_by_ids(
        self, staff_ids: list[str], *, timeout_ms: int | None = None
    ) -> list[dict[str, Any]]:
        """Batch-fetch staff records by identifier."""
        if not staff_ids:
            return []
        if self._mongo_enabled and self._staff_collection is not None:
            query = {"_id": {"$in": [_id_query_value(item) for item in staff_ids]}}
            with _mongo_errors("Staff batch lookup"):
                cursor = self._staff_collection.find(query, max_time_ms=timeout_ms)
                return [_from_mongo(doc) for doc in cursor]
        wanted = set(staff_ids)
        deadline = _Deadline(timeout_ms)
        result: list[dict[str, Any]] = []
        for row in self._read_rows(self._staff_file):
            deadline.check("Staff batch lookup")
            if str(row.get("id") or "") in wanted:
                result.append(dict(row))
        return result

    def find_staff_by_client(
        self, client_id: str, *, timeout_ms: int | None = None
    ) -> list[dict[str, Any]]:
        """Scan staff records whose ``clientIds`` contain ``client_id``."""
        if self._mongo_enabled and self._staff_collection is not None:
            with _mongo_errors("Staff scan by client"):
                cursor = self._staff_collection.find(
                    {"clientIds": client_id}, max_time_ms=timeout_ms
                )
                return [_from_mongo(doc) for doc in cursor]
        deadline = _Deadline(timeout_ms)
        result: list[dict[str, Any]] = []
        for row in self._read_rows(self._staff_file):
            deadline.check("Staff scan by client")
            if client_id in _string_ids(row.get("clientIds")):
                result.append(dict(row))
        return result

    def collection_stats(self) -> dict[str, int]:
        """Return relationship coverage counters for both collections."""
        if (
            self._mongo_enabled
            and self._staff_collection is not None
            and self._client_collection is not None
        ):
            with _mongo_errors("Collection stats"):
                return {
                    "staff_total": self._staff_collection.count_documents({}),
                    "staff_with_clients": self._staff_collection.count_documents(
                        {"clientIds.0": {"$exists": True}}
                    ),
                    "client_total": self._client_collection.count_documents({}),
                    "clients_with_staffs": self._client_collection.count_documents(
                        {"staffs.0": {"$exists": True}}
                    ),
                }
        staff_rows = self._read_rows(self._staff_file)
        client_rows = self._read_rows(self._client_file)
        return {
            "staff_total": len(staff_rows),
            "staff_with_clients": sum(
                1 for row in staff_rows if _string_ids(row.get("clientIds"))
            ),
            "client_total": len(client_rows),
            "clients_with_staffs": sum(
                1 for row in client_rows if _string_ids(row.get("staffs"))
            ),
        }

    # ----- atomic set updates -----

    def _update_mongo_id_set(
        self,
        collection: Any,
        record_id: str,
        field: str,
        value: str,
        *,
        add: bool,
        operation: str,
        session: Any,
    ) -> bool | None:
        """Mongo counterpart of ``_update_id_set``; ``None`` when no record matched."""
        with _mongo_errors(operation, session=session):
            result = collection.update_one(
                {"_id": _id_query_value(record_id)},
                _id_set_pipeline(field, value, add=add),
                session=session,
            )
        if result.matched_count == 0:
            return None
        return result.modified_count == 1

    def add_staff_to_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        """Add ``staff_id`` to ``Client.staffs`` if absent; return whether added."""
        if self._mongo_enabled and self._client_collection is not None:
            changed = self._update_mongo_id_set(
                self._client_collection,
                client_id,
                "staffs",
                staff_id,
                add=True,
                operation="Client staffs update",
                session=session,
            )
        else:
            changed = self._update_id_set(
                self._client_file, client_id, "staffs", staff_id, add=True
            )
        if changed is None:
            raise ClientNotFoundError(client_id)
        return changed

    def add_client_to_staff(
        self, staff_id: str, client_id: str, *, session: Any = None
    ) -> bool:
        """Add ``client_id`` to ``Staff.clientIds`` if absent; return whether added."""
        if self._mongo_enabled and self._staff_collection is not None:
            changed = self._update_mongo_id_set(
                self._staff_collection,
                staff_id,
                "clientIds",
                client_id,
                add=True,
                operation="Staff clientIds update",
                session=session,
            )
        else:
            changed = self._update_id_set(
                self._staff_file, staff_id, "clientIds", client_id, add=True
            )
        if changed is None:
            raise StaffNotFoundError(staff_id)
        return changed

    def remove_staff_from_client(
        self, client_id: str, staff_id: str, *, session: Any = None
    ) -> bool:
        """Remove ``staff_id`` from ``Client.staffs``; return whether removed."""
        if self._mongo_enabled and self._client_collection is not None:
            changed = self._update_mongo_id_set(
                self._client_collection,
                client_id,
                "staffs",
                staff_id,
                add=False,
                operation="Client staffs removal",
                session=session,
            )
        else:
            changed = self._update_id_set(
                self._client_file, client_id, "staffs", staff_id, add=False
            )
        if changed is None:
            raise ClientNotFoundError(client_id)
        return changed

    def remove_client_from_staff(
        self, staff_id: str, client_id: str, *, session: Any = None
    ) -> bool:
        """Remove ``client_id`` from ``Staff.clientIds``; return whether removed."""
        if self._mongo_enabled and self._staff_collection is not None:
            changed = self._update_mongo_id_set(
                self._staff_collection,
                staff_id,
                "clientIds",
                client_id,
                add=False,
                operation="Staff clientIds removal",
                session=session,
            )
        else:
            changed = self._update_id_set(
                self._staff_file, staff_id, "clientIds", client_id, add=False
            )
        if changed is None:
            raise StaffNotFoundError(staff_id)
        return changed

    def run_in_transaction(self, fn: Callable[[Any], T]) -> T:
        """Run ``fn(session)`` inside a MongoDB multi-document transaction.

        ``with_transaction`` retries on transient and commit-unknown labels;
        whatever still fails is translated here.
        """
        if not self.supports_transactions or self._client is None:
            raise StoreError("Multi-document transactions are not enabled.")
        with _mongo_errors("Transaction"):
            with self._client.start_session() as session:
                return session.with_transaction(fn)

    # ----- seeding -----

    def upsert_staff(self, record: dict[str, Any]) -> None:
        """Create or replace a staff record (``id`` required)."""
        self._upsert(self._staff_collection, self._staff_file, record)

    def upsert_client(self, record: dict[str, Any]) -> None:
        """Create or replace a client record (``id`` required)."""
        self._upsert(self._client_collection, self._client_file, record)

    def _upsert(self, collection: Any, path: Path, record: dict[str, Any]) -> None:
        if self._mongo_enabled and collection is not None:
            record_id = str(record.get("id") or "").strip()
            if not record_id:
                raise ValueError("id is required for staffing store upsert.")
            doc = {key: value for key, value in record.items() if key != "id"}
            with _mongo_errors("Upsert"):
                collection.replace_one(
                    {"_id": _id_query_value(record_id)}, doc, upsert=True
                )
            return
        self._upsert_row(path, record)
