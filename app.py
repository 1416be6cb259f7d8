"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the store and services, registers routers, and runs startup
initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.dashboard_controller import router as dashboard_router
from backend.controllers.occupancy_controller import router as occupancy_router
from backend.repository.base import BookingAlertStore, create_store
from backend.services.alert_service import AlertService
from backend.services.booking_service import BookingService
from backend.services.occupancy_pipeline import OccupancyPipelineService
from backend.services.workflow_service import WorkflowService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service receives its collaborators explicitly and is exposed on
    app.state for dependency resolution.
    """
    settings = settings or get_settings()

    # --- Store (in-memory map or SQLite, per STORAGE_BACKEND) ---
    store = create_store(settings)

    # --- Services ---
    alert_service = AlertService(store)
    booking_service = BookingService(store)
    pipeline_service = OccupancyPipelineService(
        store=store,
        alert_service=alert_service,
        settings=settings,
    )
    workflow_service = WorkflowService(store=store, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(occupancy_router)
    app.include_router(dashboard_router)

    app.state.settings = settings
    app.state.store = store
    app.state.alert_service = alert_service
    app.state.booking_service = booking_service
    app.state.pipeline_service = pipeline_service
    app.state.workflow_service = workflow_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the demo property is seeded.
    """
    store: BookingAlertStore = app.state.store

    logger.info("Startup: initializing %s store", settings.storage_backend)
    store.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo bookings (skipped if bookings exist)")
        store.seed_demo_data()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
