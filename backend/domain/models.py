"""Domain models for bookings, occupancy estimation and discrepancy alerts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional


BookingStatus = Literal["booked", "checked_in", "checked_out", "canceled"]
AlertStatus = Literal["open", "acknowledged", "resolved"]
VerdictStatus = Literal["normal", "error"]
MediaKind = Literal["video", "image"]

BOOKING_STATUSES: tuple[str, ...] = ("booked", "checked_in", "checked_out", "canceled")
ALERT_STATUSES: tuple[str, ...] = ("open", "acknowledged", "resolved")

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    "booked": frozenset({"checked_in", "canceled"}),
    "checked_in": frozenset({"checked_out"}),
    "checked_out": frozenset(),
    "canceled": frozenset(),
}

ALERT_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"acknowledged", "resolved"}),
    "acknowledged": frozenset({"resolved"}),
    "resolved": frozenset(),
}


@dataclass(frozen=True)
class Guest:
    guest_id: int
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Room:
    room_id: int
    name: str
    address: Optional[str] = None


@dataclass(frozen=True)
class Booking:
    booking_id: int
    guest_id: int
    room_id: int
    reserved_at: str
    reserved_count: int
    status: str = "booked"

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "guest_id": self.guest_id,
            "room_id": self.room_id,
            "reserved_at": self.reserved_at,
            "reserved_count": self.reserved_count,
            "status": self.status,
        }


@dataclass(frozen=True)
class Alert:
    alert_id: int
    booking_id: int
    detected_at: str
    reserved_count: int
    actual_count: int
    status: str = "open"

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "booking_id": self.booking_id,
            "detected_at": self.detected_at,
            "reserved_count": self.reserved_count,
            "actual_count": self.actual_count,
            "status": self.status,
        }


@dataclass(frozen=True)
class FrameSample:
    """One still image taken from the input media; never persisted."""

    index: int
    data: bytes = field(repr=False)
    encoding: str = "jpeg"


@dataclass(frozen=True)
class FrameEstimate:
    """Sanitized people count for one frame.

    `flagged` marks a frame whose count could not be trusted (unusable vision
    response or an isolated estimation failure); its count is then 0 with zero
    confidence.
    """

    index: int
    count: int
    confidence: float = 0.0
    description: str = ""
    flagged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "count": self.count,
            "confidence": self.confidence,
            "description": self.description,
            "flagged": self.flagged,
        }


@dataclass(frozen=True)
class DiscrepancyVerdict:
    reserved_count: int
    detected_count: int
    status: str
    message: str

    @property
    def has_discrepancy(self) -> bool:
        return self.status == "error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "reserved_count": self.reserved_count,
            "detected_count": self.detected_count,
            "status": self.status,
            "message": self.message,
        }


@dataclass(frozen=True)
class PipelineResult:
    run_id: str
    booking_id: Optional[int]
    media_kind: str
    detected_count: int
    frame_count: int
    estimates: list[FrameEstimate]
    verdict: DiscrepancyVerdict
    alert: Optional[Alert]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "booking_id": self.booking_id,
            "media_kind": self.media_kind,
            "detected_count": self.detected_count,
            "frame_count": self.frame_count,
            "estimates": [estimate.to_dict() for estimate in self.estimates],
            "verdict": self.verdict.to_dict(),
            "alert": self.alert.to_dict() if self.alert is not None else None,
        }


@dataclass(frozen=True)
class WorkflowRun:
    workflow_run_id: str
    task_id: str
    status: str
    outputs: dict[str, Any]
    error: Optional[str] = None
