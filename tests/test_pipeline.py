from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional

import pytest

from backend.domain.errors import (
    BookingNotFound,
    EstimationUnavailable,
    ExtractionFailed,
    InvalidInput,
    StoreFailure,
)
from backend.domain.models import Booking, FrameSample, Guest, Room
from backend.repository.memory_repository import InMemoryStore
from backend.services.occupancy_estimator import OccupancyEstimator
from backend.services.occupancy_pipeline import OccupancyPipelineService
from backend.services.vision_client import VisionResponseError
from backend.utils.config import get_settings


class ScriptedSampler:
    """Returns one frame per scripted count; frame bytes encode the index."""

    def __init__(self, frame_count: int = 0, error: Optional[Exception] = None) -> None:
        self.frame_count = frame_count
        self.error = error
        self.calls: list[float] = []

    def extract_frames(self, video_bytes: bytes, interval_seconds: float) -> list[FrameSample]:
        self.calls.append(interval_seconds)
        if self.error is not None:
            raise self.error
        return [FrameSample(index=i, data=f"frame-{i}".encode()) for i in range(self.frame_count)]


class ScriptedVision:
    """Answers by frame bytes; an exception instance in the script is raised."""

    def __init__(self, script: dict[bytes, object]) -> None:
        self.script = script
        self.calls = 0
        self._lock = threading.Lock()

    def count_people(self, image_bytes, instruction, *, encoding="jpeg"):
        with self._lock:
            self.calls += 1
        answer = self.script[image_bytes]
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, int):
            return {"count": answer, "confidence": 0.9, "description": f"{answer} people"}
        return answer


def _counts(*counts) -> dict[bytes, object]:
    return {f"frame-{i}".encode(): count for i, count in enumerate(counts)}


def _seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    store.seed_demo_data()
    store.add_guest(Guest(guest_id=10, full_name="Test Guest"))
    store.add_room(Room(room_id=10, name="Test Room"))
    store.add_booking(Booking(10, guest_id=10, room_id=10, reserved_at="2025-01-01T00:00:00Z", reserved_count=3))
    store.add_booking(Booking(11, guest_id=10, room_id=10, reserved_at="2025-01-02T00:00:00Z", reserved_count=2))
    return store


def _build_pipeline(store, sampler, vision, **overrides) -> OccupancyPipelineService:
    fields = {"frame_interval_seconds": 1.0, "estimation_max_workers": 3}
    fields.update(overrides)
    return OccupancyPipelineService(
        store=store,
        frame_sampler=sampler,
        estimator=OccupancyEstimator(vision),
        settings=replace(get_settings(), **fields),
    )


def test_over_occupancy_records_one_alert():
    store = _seeded_store()
    alerts_before = len(store.list_alerts())
    pipeline = _build_pipeline(store, ScriptedSampler(3), ScriptedVision(_counts(2, 4, 3)))

    result = pipeline.run(b"video", booking_id=10)

    assert result.detected_count == 4
    assert result.verdict.status == "error"
    assert result.verdict.reserved_count == 3
    assert result.frame_count == 3
    assert [estimate.index for estimate in result.estimates] == [0, 1, 2]
    assert result.alert is not None
    assert result.alert.booking_id == 10
    assert (result.alert.reserved_count, result.alert.actual_count) == (3, 4)
    assert len(store.list_alerts()) == alerts_before + 1


def test_within_reservation_records_nothing():
    store = _seeded_store()
    alerts_before = len(store.list_alerts())
    pipeline = _build_pipeline(store, ScriptedSampler(3), ScriptedVision(_counts(1, 2, 3)))

    result = pipeline.run(b"video", booking_id=10)

    assert result.verdict.status == "normal"
    assert result.detected_count == 3
    assert result.alert is None
    assert len(store.list_alerts()) == alerts_before


def test_extraction_failure_stops_before_estimation():
    store = _seeded_store()
    vision = ScriptedVision({})
    sampler = ScriptedSampler(error=ExtractionFailed("corrupt video", diagnostic="moov atom not found"))
    pipeline = _build_pipeline(store, sampler, vision)

    with pytest.raises(ExtractionFailed) as exc_info:
        pipeline.run(b"garbage", booking_id=10)

    assert exc_info.value.stage == "extracting"
    assert exc_info.value.to_dict()["diagnostic"] == "moov atom not found"
    assert vision.calls == 0
    assert len(store.list_alerts()) == 3


def test_sampler_returning_no_frames_fails_extraction():
    pipeline = _build_pipeline(_seeded_store(), ScriptedSampler(0), ScriptedVision({}))

    with pytest.raises(ExtractionFailed):
        pipeline.run(b"video", booking_id=10)


def test_isolated_estimation_failure_is_a_flagged_zero():
    store = _seeded_store()
    script = _counts(None, 5, 2)
    script[b"frame-0"] = EstimationUnavailable("vision timeout")
    pipeline = _build_pipeline(store, ScriptedSampler(3), ScriptedVision(script))

    result = pipeline.run(b"video", reserved_count=4, booking_id=None)

    assert result.estimates[0].flagged
    assert result.estimates[0].count == 0
    assert result.detected_count == 5
    assert result.verdict.status == "error"


def test_unusable_vision_answer_is_a_flagged_zero():
    store = _seeded_store()
    script = _counts(None, 2)
    script[b"frame-0"] = VisionResponseError("garbled")
    pipeline = _build_pipeline(store, ScriptedSampler(2), ScriptedVision(script))

    result = pipeline.run(b"video", booking_id=10)

    assert result.estimates[0].flagged
    assert result.verdict.status == "normal"


def test_unexpected_error_on_one_frame_is_a_flagged_zero():
    store = _seeded_store()
    script = _counts(None, 5)
    script[b"frame-0"] = ConnectionError("socket reset")
    pipeline = _build_pipeline(store, ScriptedSampler(2), ScriptedVision(script))

    result = pipeline.run(b"video", booking_id=1)

    assert result.estimates[0].flagged
    assert result.estimates[0].count == 0
    assert result.detected_count == 5
    assert result.verdict.status == "error"
    assert result.alert is not None


def test_unexpected_error_on_every_frame_fails_at_estimating():
    store = _seeded_store()
    script = {f"frame-{i}".encode(): RuntimeError("driver crashed") for i in range(2)}
    pipeline = _build_pipeline(store, ScriptedSampler(2), ScriptedVision(script))

    with pytest.raises(EstimationUnavailable) as exc_info:
        pipeline.run(b"video", booking_id=1)

    assert exc_info.value.stage == "estimating"
    assert exc_info.value.diagnostic == "driver crashed"
    assert len(store.list_alerts()) == 3


def test_all_frames_unavailable_aborts_without_alert():
    store = _seeded_store()
    script = {f"frame-{i}".encode(): EstimationUnavailable("down") for i in range(3)}
    pipeline = _build_pipeline(store, ScriptedSampler(3), ScriptedVision(script))

    with pytest.raises(EstimationUnavailable) as exc_info:
        pipeline.run(b"video", booking_id=1)

    assert exc_info.value.stage == "estimating"
    assert len(store.list_alerts()) == 3


def test_concurrent_runs_keep_alerts_separate():
    store = _seeded_store()
    script = _counts(4, 4)
    pipeline = _build_pipeline(store, ScriptedSampler(2), ScriptedVision(script))
    booking_ids = [10, 11] * 10

    with ThreadPoolExecutor(max_workers=6) as executor:
        results = list(executor.map(lambda booking_id: pipeline.run(b"video", booking_id=booking_id), booking_ids))

    alert_ids = [result.alert.alert_id for result in results]
    assert len(set(alert_ids)) == len(booking_ids)
    for result in results:
        assert result.alert.booking_id == result.booking_id
        expected_reserved = 3 if result.booking_id == 10 else 2
        assert result.alert.reserved_count == expected_reserved
        assert result.alert.actual_count == 4
    assert len({result.run_id for result in results}) == len(booking_ids)


def test_image_input_skips_the_sampler():
    sampler = ScriptedSampler(3)
    vision = ScriptedVision({b"photo": 5})
    pipeline = _build_pipeline(_seeded_store(), sampler, vision)

    result = pipeline.run(b"photo", booking_id=10, media_kind="image", image_encoding="png")

    assert sampler.calls == []
    assert result.frame_count == 1
    assert result.media_kind == "image"
    assert result.alert is not None


def test_interval_override_reaches_the_sampler():
    sampler = ScriptedSampler(1)
    pipeline = _build_pipeline(_seeded_store(), sampler, ScriptedVision(_counts(1)))

    pipeline.run(b"video", booking_id=10, interval_seconds=2.5)
    pipeline.run(b"video", booking_id=10)

    assert sampler.calls == [2.5, 1.0]


def test_reserved_count_without_booking_never_records():
    store = _seeded_store()
    pipeline = _build_pipeline(store, ScriptedSampler(1), ScriptedVision(_counts(9)))

    result = pipeline.run(b"video", reserved_count=2)

    assert result.verdict.status == "error"
    assert result.alert is None
    assert len(store.list_alerts()) == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"reserved_count": 0},
        {"reserved_count": -1},
        {"booking_id": 10, "reserved_count": 7},
        {"booking_id": 10, "interval_seconds": 0},
        {"booking_id": 10, "interval_seconds": float("inf")},
        {"booking_id": 10, "media_kind": "audio"},
    ],
)
def test_invalid_inputs_are_rejected_at_received(kwargs):
    sampler = ScriptedSampler(1)
    pipeline = _build_pipeline(_seeded_store(), sampler, ScriptedVision(_counts(1)))

    with pytest.raises(InvalidInput) as exc_info:
        pipeline.run(b"video", **kwargs)

    assert exc_info.value.stage == "received"
    assert sampler.calls == []


def test_empty_media_is_invalid_input():
    pipeline = _build_pipeline(_seeded_store(), ScriptedSampler(1), ScriptedVision(_counts(1)))

    with pytest.raises(InvalidInput):
        pipeline.run(b"", booking_id=10)


def test_unknown_booking_is_not_found():
    pipeline = _build_pipeline(_seeded_store(), ScriptedSampler(1), ScriptedVision(_counts(1)))

    with pytest.raises(BookingNotFound):
        pipeline.run(b"video", booking_id=404)


def test_store_failure_surfaces_at_recording_stage(monkeypatch):
    def failing_create_alert(*args, **kwargs):
        raise StoreFailure("disk full")

    store = _seeded_store()
    monkeypatch.setattr(store, "create_alert", failing_create_alert)
    pipeline = _build_pipeline(store, ScriptedSampler(1), ScriptedVision(_counts(9)))

    with pytest.raises(StoreFailure) as exc_info:
        pipeline.run(b"video", booking_id=1)

    assert exc_info.value.stage == "recording"


def test_invalid_configuration_is_rejected_at_construction():
    with pytest.raises(ValueError):
        _build_pipeline(_seeded_store(), ScriptedSampler(1), ScriptedVision({}), estimation_max_workers=0)
