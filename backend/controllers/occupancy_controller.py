"""HTTP controller layer for occupancy checks and workflow forwarding."""

from __future__ import annotations

from pathlib import PurePath
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_pipeline_service, get_workflow_service
from backend.domain.errors import (
    BookingNotFound,
    EstimationUnavailable,
    ExternalServiceFailure,
    ExtractionFailed,
    InvalidInput,
    StoreFailure,
)
from backend.services.occupancy_pipeline import OccupancyPipelineService
from backend.services.workflow_service import WorkflowService
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/occupancy", tags=["occupancy"])

_IMAGE_SUFFIXES = {".jpg": "jpeg", ".jpeg": "jpeg", ".png": "png", ".webp": "webp"}
_UPLOAD_CHUNK_BYTES = 1024 * 1024


class FrameEstimateResponse(BaseModel):
    index: int = Field(ge=0)
    count: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    description: str
    flagged: bool


class VerdictResponse(BaseModel):
    reserved_count: int = Field(gt=0)
    detected_count: int = Field(ge=0)
    status: str = Field(pattern=r"^(normal|error)$")
    message: str


class AlertResponse(BaseModel):
    alert_id: int = Field(gt=0)
    booking_id: int = Field(gt=0)
    detected_at: str
    reserved_count: int
    actual_count: int
    status: str


class OccupancyCheckResponse(BaseModel):
    """Output DTO for one complete pipeline run."""

    run_id: str
    booking_id: Optional[int] = None
    media_kind: str
    detected_count: int = Field(ge=0)
    frame_count: int = Field(gt=0)
    estimates: list[FrameEstimateResponse]
    verdict: VerdictResponse
    alert: Optional[AlertResponse] = None


class WorkflowTriggerRequest(BaseModel):
    has_discrepancy: bool
    reserved_count: int = Field(gt=0)
    detected_count: int = Field(ge=0)
    booking_name: Optional[str] = Field(default=None, max_length=200)
    booking_id: Optional[int] = Field(default=None, gt=0)


class WorkflowTriggerResponse(BaseModel):
    workflow_run_id: str
    task_id: str
    status: str
    outputs: dict[str, Any]
    error: Optional[str] = None


def resolve_media_kind(content_type: Optional[str], filename: Optional[str]) -> tuple[str, str]:
    """Return (media_kind, image_encoding) for an upload."""
    if content_type:
        major, _, minor = content_type.partition("/")
        if major == "image" and minor:
            return "image", "jpeg" if minor == "jpg" else minor
        if major == "video":
            return "video", "jpeg"
    if filename:
        encoding = _IMAGE_SUFFIXES.get(PurePath(filename).suffix.lower())
        if encoding is not None:
            return "image", encoding
    return "video", "jpeg"


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, rejecting it with 413 once it passes `max_bytes`."""
    chunks: list[bytes] = []
    received = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        received += len(chunk)
        if received > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Upload exceeds {max_bytes} bytes",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/check", response_model=OccupancyCheckResponse, status_code=status.HTTP_200_OK)
async def check_occupancy(
    file: UploadFile = File(...),
    booking_id: Optional[int] = Form(default=None, gt=0),
    reserved_count: Optional[int] = Form(default=None, gt=0),
    interval_seconds: Optional[float] = Form(default=None, gt=0.0),
    pipeline_service: OccupancyPipelineService = Depends(get_pipeline_service),
) -> OccupancyCheckResponse:
    media_bytes = await read_upload(file, settings.max_upload_bytes)
    media_kind, image_encoding = resolve_media_kind(file.content_type, file.filename)

    try:
        result = await run_in_threadpool(
            pipeline_service.run,
            media_bytes,
            booking_id=booking_id,
            reserved_count=reserved_count,
            media_kind=media_kind,
            interval_seconds=interval_seconds,
            image_encoding=image_encoding,
        )
        return OccupancyCheckResponse(**result.to_dict())
    except BookingNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.to_dict(),
        ) from exc
    except InvalidInput as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.to_dict(),
        ) from exc
    except ExtractionFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict(),
        ) from exc
    except EstimationUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.to_dict(),
        ) from exc
    except StoreFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=exc.to_dict(),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected occupancy check failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run occupancy check",
        ) from exc


@router.post("/workflow", response_model=WorkflowTriggerResponse, status_code=status.HTTP_200_OK)
async def trigger_workflow(
    payload: WorkflowTriggerRequest,
    workflow_service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowTriggerResponse:
    try:
        run = await run_in_threadpool(
            workflow_service.trigger,
            has_discrepancy=payload.has_discrepancy,
            reserved_count=payload.reserved_count,
            detected_count=payload.detected_count,
            booking_name=payload.booking_name,
            booking_id=payload.booking_id,
        )
        return WorkflowTriggerResponse(
            workflow_run_id=run.workflow_run_id,
            task_id=run.task_id,
            status=run.status,
            outputs=run.outputs,
            error=run.error,
        )
    except BookingNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.to_dict(),
        ) from exc
    except ExternalServiceFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=exc.to_dict(),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected workflow trigger failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to trigger workflow",
        ) from exc
