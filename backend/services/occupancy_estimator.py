"""Per-frame people count estimation with response sanitizing."""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from backend.domain.errors import EstimationUnavailable
from backend.domain.models import FrameEstimate, FrameSample
from backend.services.vision_client import VisionCapability, VisionResponseError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

COUNTING_INSTRUCTION = (
    "Count every person visible in this image, including people who are only "
    "partially visible. Return a non-negative integer `count`, a `confidence` "
    "between 0 and 1, and a short `description` of what you see."
)


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def flagged_estimate(index: int, reason: str) -> FrameEstimate:
    return FrameEstimate(index=index, count=0, confidence=0.0, description=reason, flagged=True)


def sanitize_vision_response(index: int, payload: Any) -> FrameEstimate:
    """Coerce an untyped vision answer into a FrameEstimate.

    A missing or non-numeric count yields a flagged zero instead of an error.
    """
    if not isinstance(payload, Mapping):
        return flagged_estimate(index, "vision response was not an object")

    raw_description = payload.get("description")
    description = raw_description.strip() if isinstance(raw_description, str) else ""

    count = _coerce_number(payload.get("count"))
    if count is None:
        return flagged_estimate(index, description or "vision response had no usable count")

    confidence = _coerce_number(payload.get("confidence"))
    return FrameEstimate(
        index=index,
        count=max(0, _round_half_up(count)),
        confidence=0.0 if confidence is None else min(1.0, max(0.0, confidence)),
        description=description,
    )


class OccupancyEstimator:
    """Stateless wrapper around a vision capability; one call per frame."""

    def __init__(self, vision: VisionCapability, instruction: str = COUNTING_INSTRUCTION) -> None:
        self._vision = vision
        self._instruction = instruction

    def estimate(self, frame: FrameSample) -> FrameEstimate:
        try:
            payload = self._vision.count_people(
                frame.data,
                self._instruction,
                encoding=frame.encoding,
            )
        except VisionResponseError as exc:
            logger.warning("Frame %s: unusable vision response: %s", frame.index, exc)
            return flagged_estimate(frame.index, f"unusable vision response: {exc}")
        except EstimationUnavailable:
            raise
        except Exception as exc:
            logger.warning("Frame %s: vision capability raised %r", frame.index, exc)
            raise EstimationUnavailable(
                f"Vision capability failed: {type(exc).__name__}",
                diagnostic=str(exc),
            ) from exc

        estimate = sanitize_vision_response(frame.index, payload)
        if estimate.flagged:
            logger.warning("Frame %s flagged: %s", frame.index, estimate.description)
        return estimate
