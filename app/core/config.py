"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class StoreConfig:
    """Document store connection settings."""

    mongo_uri: str
    mongo_db: str
    staff_collection: str
    client_collection: str
    server_selection_timeout_ms: int
    use_transactions: bool
    runtime_dir: str


@dataclass(frozen=True)
class ResolverConfig:
    """Read-path timeouts for the staff-for-client lookup."""

    fast_path_timeout_ms: int
    slow_path_timeout_ms: int


@dataclass(frozen=True)
class ReconcilerConfig:
    """Batch relationship sync settings."""

    workers: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    store: StoreConfig
    resolver: ResolverConfig
    reconciler: ReconcilerConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "real_estate").strip() or "real_estate"
        staff_collection = (
            os.getenv("MONGODB_STAFF_COLLECTION", "staffs").strip() or "staffs"
        )
        client_collection = (
            os.getenv("MONGODB_CLIENT_COLLECTION", "clients").strip() or "clients"
        )
        server_selection_timeout_ms = int(
            os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "3000")
        )
        runtime_dir = (
            os.getenv("STAFFING_RUNTIME_DIR", "runtime").strip() or "runtime"
        )
        fast_path_timeout_ms = int(os.getenv("STAFF_FAST_PATH_TIMEOUT_MS", "2000"))
        slow_path_timeout_ms = int(os.getenv("STAFF_SLOW_PATH_TIMEOUT_MS", "10000"))
        if fast_path_timeout_ms >= slow_path_timeout_ms:
            raise ValueError(
                "STAFF_FAST_PATH_TIMEOUT_MS must be lower than "
                "STAFF_SLOW_PATH_TIMEOUT_MS."
            )
        workers = max(1, int(os.getenv("STAFF_SYNC_WORKERS", "1")))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))

        return AppConfig(
            store=StoreConfig(
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
                staff_collection=staff_collection,
                client_collection=client_collection,
                server_selection_timeout_ms=server_selection_timeout_ms,
                use_transactions=_env_flag("MONGODB_USE_TRANSACTIONS"),
                runtime_dir=runtime_dir,
            ),
            resolver=ResolverConfig(
                fast_path_timeout_ms=fast_path_timeout_ms,
                slow_path_timeout_ms=slow_path_timeout_ms,
            ),
            reconciler=ReconcilerConfig(workers=workers),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
