from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.contracts import HealthResponse
from app.api.http_setup import register_exception_handlers, register_http_middleware
from app.core.config import AppConfig
from app.core.logging import setup_logging
from app.core.mongo_migrations import apply_mongo_migrations
from app.staffing.assignment import StaffAssignmentService
from app.staffing.reconciler import StaffClientReconciler
from app.staffing.repository import StaffingRepository
from app.staffing.resolver import StaffForClientResolver
from app.staffing.router import create_staffing_router
from app.staffing.service import StaffingService

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def create_app(
    config: AppConfig = APP_CONFIG, app_root: Path = APP_ROOT
) -> FastAPI:
    repo = StaffingRepository(config.store, app_root)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        apply_mongo_migrations(config.store)
        yield
        repo.close()

    app = FastAPI(
        title="Staff-Client Relationship API", version="1.0.0", lifespan=lifespan
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    resolver = StaffForClientResolver(repo, config.resolver, logger=LOGGER)
    assignment = StaffAssignmentService(repo, logger=LOGGER)

    def build_reconciler(dry_run: bool) -> StaffClientReconciler:
        return StaffClientReconciler(
            repo,
            workers=config.reconciler.workers,
            dry_run=dry_run,
            logger=LOGGER,
        )

    staffing_service = StaffingService(
        repo=repo,
        resolver=resolver,
        assignment=assignment,
        reconciler_factory=build_reconciler,
        logger=LOGGER,
    )
    app.include_router(create_staffing_router(service=staffing_service))

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app


app = create_app()
