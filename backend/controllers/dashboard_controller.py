"""Controller layer for the operator dashboard: bookings, alerts and summary."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_alert_service, get_booking_service
from backend.domain.errors import (
    AlertNotFound,
    BookingNotFound,
    InvalidStatusTransition,
    StoreFailure,
)
from backend.services.alert_service import AlertService
from backend.services.booking_service import BookingService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["dashboard"])


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    guest_id: int
    room_id: int
    reserved_at: str
    reserved_count: int = Field(gt=0)
    status: str
    guest_name: Optional[str] = None
    room_name: Optional[str] = None


class BookingStatusRequest(BaseModel):
    status: Literal["booked", "checked_in", "checked_out", "canceled"]


class AlertResponse(BaseModel):
    alert_id: int = Field(gt=0)
    booking_id: int = Field(gt=0)
    detected_at: str
    reserved_count: int
    actual_count: int
    status: str


class AlertStatusRequest(BaseModel):
    status: Literal["open", "acknowledged", "resolved"]


class StatsResponse(BaseModel):
    total_bookings: int = Field(ge=0)
    booked_bookings: int = Field(ge=0)
    checked_in_bookings: int = Field(ge=0)
    checked_out_bookings: int = Field(ge=0)
    canceled_bookings: int = Field(ge=0)
    open_alerts: int = Field(ge=0)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/stats", response_model=StatsResponse, status_code=status.HTTP_200_OK)
async def get_stats(
    booking_service: BookingService = Depends(get_booking_service),
) -> StatsResponse:
    try:
        return StatsResponse(**booking_service.get_stats())
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.get("/bookings", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
async def list_bookings(
    booking_service: BookingService = Depends(get_booking_service),
) -> list[BookingResponse]:
    try:
        return [BookingResponse(**row) for row in booking_service.list_bookings()]
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.get("/bookings/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
async def get_booking(
    booking_id: int,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = booking_service.get_booking(booking_id)
        return BookingResponse(**booking_service.describe(booking))
    except BookingNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.patch(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def update_booking_status(
    booking_id: int,
    payload: BookingStatusRequest,
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = booking_service.update_status(booking_id, payload.status)
        return BookingResponse(**booking_service.describe(booking))
    except BookingNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidStatusTransition as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.get("/alerts", response_model=list[AlertResponse], status_code=status.HTTP_200_OK)
async def list_alerts(
    status_filter: Optional[Literal["open", "acknowledged", "resolved"]] = Query(
        default=None,
        alias="status",
    ),
    alert_service: AlertService = Depends(get_alert_service),
) -> list[AlertResponse]:
    try:
        return [AlertResponse(**alert.to_dict()) for alert in alert_service.list_alerts(status_filter)]
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.get("/alerts/{alert_id}", response_model=AlertResponse, status_code=status.HTTP_200_OK)
async def get_alert(
    alert_id: int,
    alert_service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    try:
        return AlertResponse(**alert_service.get_alert(alert_id).to_dict())
    except AlertNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc


@router.patch("/alerts/{alert_id}/status", response_model=AlertResponse, status_code=status.HTTP_200_OK)
async def update_alert_status(
    alert_id: int,
    payload: AlertStatusRequest,
    alert_service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    try:
        return AlertResponse(**alert_service.update_status(alert_id, payload.status).to_dict())
    except AlertNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidStatusTransition as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc
