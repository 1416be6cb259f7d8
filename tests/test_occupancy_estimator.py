from __future__ import annotations

import pytest

from backend.domain.errors import EstimationUnavailable
from backend.domain.models import FrameSample
from backend.services.occupancy_estimator import (
    COUNTING_INSTRUCTION,
    OccupancyEstimator,
    sanitize_vision_response,
)
from backend.services.vision_client import VisionResponseError


class RecordingVision:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[bytes, str, str]] = []

    def count_people(self, image_bytes, instruction, *, encoding="jpeg"):
        self.calls.append((image_bytes, instruction, encoding))
        if self.error is not None:
            raise self.error
        return self.response


def _frame(index: int = 0) -> FrameSample:
    return FrameSample(index=index, data=b"image-bytes", encoding="png")


def test_well_formed_response_is_passed_through():
    estimate = sanitize_vision_response(
        3,
        {"count": 4, "confidence": 0.82, "description": "four people at a table"},
    )

    assert estimate.index == 3
    assert estimate.count == 4
    assert estimate.confidence == pytest.approx(0.82)
    assert estimate.description == "four people at a table"
    assert not estimate.flagged


@pytest.mark.parametrize(
    ("raw_count", "expected"),
    [(2.4, 2), (2.5, 3), (3.5, 4), (-2, 0), ("3", 3), (0, 0)],
)
def test_count_is_rounded_half_up_and_clamped(raw_count, expected):
    estimate = sanitize_vision_response(0, {"count": raw_count, "confidence": 0.5})

    assert estimate.count == expected
    assert not estimate.flagged


@pytest.mark.parametrize("raw_count", [None, "many", True, [3], float("nan")])
def test_unusable_count_becomes_flagged_zero(raw_count):
    estimate = sanitize_vision_response(1, {"count": raw_count, "confidence": 0.9})

    assert estimate.count == 0
    assert estimate.confidence == 0.0
    assert estimate.flagged


def test_missing_count_key_is_flagged():
    estimate = sanitize_vision_response(0, {"confidence": 0.9, "description": "blurry"})

    assert estimate.flagged
    assert estimate.count == 0
    assert estimate.description == "blurry"


@pytest.mark.parametrize(("raw", "expected"), [(1.7, 1.0), (-0.3, 0.0), (None, 0.0), ("x", 0.0)])
def test_confidence_is_clamped_into_unit_interval(raw, expected):
    estimate = sanitize_vision_response(0, {"count": 2, "confidence": raw})

    assert estimate.confidence == expected


def test_non_mapping_response_is_flagged():
    estimate = sanitize_vision_response(0, ["not", "an", "object"])

    assert estimate.flagged
    assert estimate.count == 0


def test_estimator_sends_counting_instruction_and_encoding():
    vision = RecordingVision(response={"count": 2, "confidence": 0.9, "description": "two"})
    estimator = OccupancyEstimator(vision)

    estimate = estimator.estimate(_frame(index=5))

    assert estimate.index == 5
    assert estimate.count == 2
    assert vision.calls == [(b"image-bytes", COUNTING_INSTRUCTION, "png")]
    assert "partially visible" in COUNTING_INSTRUCTION


def test_estimator_degrades_unusable_response_to_flagged_zero():
    estimator = OccupancyEstimator(RecordingVision(error=VisionResponseError("garbled")))

    estimate = estimator.estimate(_frame())

    assert estimate.flagged
    assert estimate.count == 0
    assert "garbled" in estimate.description


def test_estimator_propagates_unavailable_capability():
    estimator = OccupancyEstimator(RecordingVision(error=EstimationUnavailable("no key")))

    with pytest.raises(EstimationUnavailable):
        estimator.estimate(_frame())


def test_estimates_are_repeatable_for_the_same_frame():
    estimator = OccupancyEstimator(RecordingVision(response={"count": 3, "confidence": 0.7}))

    assert estimator.estimate(_frame()) == estimator.estimate(_frame())


def test_unexpected_capability_error_is_reported_as_unavailable():
    estimator = OccupancyEstimator(RecordingVision(error=ConnectionError("socket reset")))

    with pytest.raises(EstimationUnavailable) as exc_info:
        estimator.estimate(_frame())

    assert exc_info.value.diagnostic == "socket reset"
    assert exc_info.value.stage == "estimating"
    assert isinstance(exc_info.value.__cause__, ConnectionError)
