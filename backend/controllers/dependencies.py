"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from backend.services.alert_service import AlertService
from backend.services.booking_service import BookingService
from backend.services.occupancy_pipeline import OccupancyPipelineService
from backend.services.workflow_service import WorkflowService


def _require_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_pipeline_service(request: Request) -> OccupancyPipelineService:
    return _require_state(request, "pipeline_service", "Occupancy pipeline")


def get_alert_service(request: Request) -> AlertService:
    service = getattr(request.app.state, "alert_service", None)
    if service is None:
        store = getattr(request.app.state, "store", None)
        if store is not None:
            service = AlertService(store)
            request.app.state.alert_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Alert service is not initialized",
        )
    return service


def get_booking_service(request: Request) -> BookingService:
    service = getattr(request.app.state, "booking_service", None)
    if service is None:
        store = getattr(request.app.state, "store", None)
        if store is not None:
            service = BookingService(store)
            request.app.state.booking_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized",
        )
    return service


def get_workflow_service(request: Request) -> WorkflowService:
    return _require_state(request, "workflow_service", "Workflow service")
