"""End-to-end occupancy discrepancy pipeline.

Received -> Extracting -> Estimating -> Evaluating -> Recording|Skipping -> Completed.
Any stage may end in Failed; the caller then receives exactly one
`OccupancyPipelineError` and no partial result.
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional
from uuid import uuid4

from backend.domain.constraints import PipelineConfig, validate_pipeline_config
from backend.domain.discrepancy import evaluate_discrepancy
from backend.domain.errors import (
    BookingNotFound,
    EstimationUnavailable,
    ExtractionFailed,
    InvalidInput,
    OccupancyPipelineError,
)
from backend.domain.models import (
    Alert,
    DiscrepancyVerdict,
    FrameEstimate,
    FrameSample,
    PipelineResult,
)
from backend.repository.base import BookingAlertStore, create_store
from backend.services.alert_service import AlertService
from backend.services.frame_sampler import FfmpegFrameSampler, FrameSampler
from backend.services.occupancy_estimator import OccupancyEstimator, flagged_estimate
from backend.services.vision_client import create_vision_client
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

MEDIA_KINDS = ("video", "image")


class OccupancyPipelineService:
    """Composes frame sampling, estimation, evaluation and alert recording."""

    def __init__(
        self,
        store: Optional[BookingAlertStore] = None,
        frame_sampler: Optional[FrameSampler] = None,
        estimator: Optional[OccupancyEstimator] = None,
        alert_service: Optional[AlertService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = PipelineConfig(
            frame_interval_seconds=self._settings.frame_interval_seconds,
            frame_max_count=self._settings.frame_max_count,
            ffmpeg_timeout_seconds=self._settings.ffmpeg_timeout_seconds,
            vision_timeout_seconds=self._settings.vision_timeout_seconds,
            estimation_max_workers=self._settings.estimation_max_workers,
        )
        validate_pipeline_config(self._config)
        self._store = store or create_store(self._settings)
        self._frame_sampler = frame_sampler or FfmpegFrameSampler(self._settings)
        self._estimator = estimator or OccupancyEstimator(create_vision_client(self._settings))
        self._alert_service = alert_service or AlertService(self._store)

    def _resolve_reserved_count(
        self,
        booking_id: Optional[int],
        reserved_count: Optional[int],
    ) -> int:
        if reserved_count is not None:
            if isinstance(reserved_count, bool) or not isinstance(reserved_count, int):
                raise InvalidInput("reserved_count must be an integer")
            if reserved_count <= 0:
                raise InvalidInput("reserved_count must be a positive integer")

        if booking_id is None:
            if reserved_count is None:
                raise InvalidInput("Either booking_id or reserved_count is required")
            return reserved_count

        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} does not exist")
        if reserved_count is not None and reserved_count != booking.reserved_count:
            raise InvalidInput(
                f"reserved_count {reserved_count} does not match booking {booking_id} "
                f"({booking.reserved_count})"
            )
        return booking.reserved_count

    def _extract(
        self,
        media_bytes: bytes,
        media_kind: str,
        interval_seconds: float,
        image_encoding: str,
    ) -> list[FrameSample]:
        if media_kind == "image":
            return [FrameSample(index=0, data=media_bytes, encoding=image_encoding)]
        frames = self._frame_sampler.extract_frames(media_bytes, interval_seconds)
        if not frames:
            raise ExtractionFailed("No frames could be sampled from the video")
        return frames

    def _estimate_all(self, frames: list[FrameSample], run_id: str) -> list[FrameEstimate]:
        """Estimate every frame concurrently and return results in sampling order.

        A frame whose vision call is unavailable becomes a flagged zero; only
        when every frame is unavailable does the run abort.
        """
        estimates: dict[int, FrameEstimate] = {}
        failures: list[EstimationUnavailable] = []
        workers = min(self._config.estimation_max_workers, len(frames))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"estimate-{run_id}") as executor:
            futures = {executor.submit(self._estimator.estimate, frame): frame for frame in frames}
            for future in as_completed(futures):
                frame = futures[future]
                try:
                    estimates[frame.index] = future.result()
                except EstimationUnavailable as exc:
                    failures.append(exc)
                    logger.warning(
                        "run=%s frame=%s estimation unavailable: %s",
                        run_id,
                        frame.index,
                        exc.message,
                    )
                    estimates[frame.index] = flagged_estimate(
                        frame.index,
                        f"estimation unavailable: {exc.message}",
                    )

        if failures and len(failures) == len(frames):
            first = failures[0]
            raise EstimationUnavailable(
                f"Vision capability unavailable for all {len(frames)} frames: {first.message}",
                diagnostic=first.diagnostic,
            )
        return [estimates[frame.index] for frame in frames]

    def _record(
        self,
        verdict: DiscrepancyVerdict,
        booking_id: Optional[int],
        run_id: str,
    ) -> Optional[Alert]:
        if verdict.status != "error":
            logger.info("run=%s stage=skipping verdict=normal", run_id)
            return None
        if booking_id is None:
            logger.warning(
                "run=%s stage=skipping discrepancy detected without a booking; no alert recorded",
                run_id,
            )
            return None
        logger.info("run=%s stage=recording booking=%s", run_id, booking_id)
        return self._alert_service.record_if_needed(verdict, booking_id)

    def run(
        self,
        media_bytes: bytes,
        *,
        booking_id: Optional[int] = None,
        reserved_count: Optional[int] = None,
        media_kind: str = "video",
        interval_seconds: Optional[float] = None,
        image_encoding: str = "jpeg",
    ) -> PipelineResult:
        run_id = uuid4().hex[:12]
        stage = "received"
        logger.info("run=%s stage=received booking=%s kind=%s", run_id, booking_id, media_kind)
        try:
            if not media_bytes:
                raise InvalidInput("Media payload is empty")
            if media_kind not in MEDIA_KINDS:
                raise InvalidInput(f"media_kind must be one of {', '.join(MEDIA_KINDS)}")
            interval = (
                self._config.frame_interval_seconds
                if interval_seconds is None
                else interval_seconds
            )
            if not math.isfinite(interval) or interval <= 0:
                raise InvalidInput("interval_seconds must be a finite number > 0")
            resolved_reserved_count = self._resolve_reserved_count(booking_id, reserved_count)

            stage = "extracting"
            frames = self._extract(media_bytes, media_kind, interval, image_encoding)
            logger.info("run=%s stage=extracting frames=%s", run_id, len(frames))

            stage = "estimating"
            estimates = self._estimate_all(frames, run_id)

            stage = "evaluating"
            verdict = evaluate_discrepancy(estimates, resolved_reserved_count)
            logger.info("run=%s stage=evaluating %s", run_id, verdict.message)

            stage = "recording"
            alert = self._record(verdict, booking_id, run_id)
        except OccupancyPipelineError as exc:
            exc.stage = stage
            logger.error(
                "run=%s stage=failed failed_stage=%s booking=%s error=%s message=%s diagnostic=%s",
                run_id,
                stage,
                booking_id,
                type(exc).__name__,
                exc.message,
                exc.diagnostic,
            )
            raise

        logger.info(
            "run=%s stage=completed detected=%s reserved=%s status=%s",
            run_id,
            verdict.detected_count,
            verdict.reserved_count,
            verdict.status,
        )
        return PipelineResult(
            run_id=run_id,
            booking_id=booking_id,
            media_kind=media_kind,
            detected_count=verdict.detected_count,
            frame_count=len(frames),
            estimates=estimates,
            verdict=verdict,
            alert=alert,
        )
