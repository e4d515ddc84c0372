"""Versioned MongoDB index migrations for the staffing collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from app.core.config import StoreConfig
from app.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any, StoreConfig], None]


def _migration_20260301_01_relationship_indexes(db: Any, config: StoreConfig) -> None:
    db[config.staff_collection].create_index("clientIds")
    db[config.client_collection].create_index("staffs")


def _migration_20260301_02_staff_created_at(db: Any, config: StoreConfig) -> None:
    db[config.staff_collection].create_index([("createdAt", -1)])


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20260301_01_relationship_indexes", _migration_20260301_01_relationship_indexes),
    ("20260301_02_staff_created_at", _migration_20260301_02_staff_created_at),
]


def apply_mongo_migrations(config: StoreConfig) -> list[str]:
    """Apply pending migrations when MongoDB is configured.

    Returns the ids applied in this call. Failures are logged and leave the
    remaining migrations for the next start.
    """
    if not config.mongo_uri:
        return []

    applied: list[str] = []
    client: Any | None = None
    try:
        client = MongoClient(
            config.mongo_uri,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
        )
        client.admin.command("ping")
        db = client[config.mongo_db]
        migration_collection = db["schema_migrations"]
        migration_collection.create_index("migration_id", unique=True)

        for migration_id, migration_fn in MIGRATIONS:
            if migration_collection.find_one({"migration_id": migration_id}):
                continue
            migration_fn(db, config)
            migration_collection.insert_one(
                {
                    "migration_id": migration_id,
                    "applied_at": datetime.now(timezone.utc),
                    "correlation_id": CORRELATION_ID_CTX.get(),
                }
            )
            applied.append(migration_id)
    except PyMongoError:
        LOGGER.exception("MongoDB migrations failed; continuing without them.")
    finally:
        if client is not None:
            client.close()
    return applied
