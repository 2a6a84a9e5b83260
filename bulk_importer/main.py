"""FastAPI application bootstrap."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from bulk_importer.api.routers import health, imports, jobs
from bulk_importer.core.config import Settings, configure_logging, get_settings
from bulk_importer.db import models  # noqa: F401
from bulk_importer.db.base import Base
from bulk_importer.db.session import engine
from bulk_importer.services.event_bus import CeleryEventBus, EventBus
from bulk_importer.storage.blob_store import BlobStore, LocalBlobStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    event_bus: EventBus | None = None,
    blob_store: BlobStore | None = None,
) -> FastAPI:
    """Instantiate the FastAPI app, its collaborators, and the routers."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version="0.1.0")

    if event_bus is None:
        from bulk_importer.workers.celery_app import celery_app

        event_bus = CeleryEventBus(celery_app)
    app.state.event_bus = event_bus
    app.state.blob_store = blob_store or LocalBlobStore(
        settings.uploads_dir, base_url=settings.blob_base_url
    )

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.create_tables_on_startup:

        @app.on_event("startup")
        def create_tables() -> None:
            try:
                Base.metadata.create_all(bind=engine)
            except SQLAlchemyError as e:
                logger.error(f"Failed to create tables: {e}", exc_info=True)

    app.include_router(health.router)
    app.include_router(imports.router, prefix="/api/imports", tags=["imports"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])

    return app


app = create_app()
