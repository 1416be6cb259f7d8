"""Aggregation of per-frame counts into a single occupancy verdict."""

from __future__ import annotations

from typing import Iterable

from backend.domain.models import DiscrepancyVerdict, FrameEstimate


def aggregate_detected_count(estimates: Iterable[FrameEstimate]) -> int:
    """Return the highest count seen on any frame, or 0 when there are none.

    The maximum is used so that one occluded or blurred frame cannot hide an
    over-occupancy visible elsewhere in the clip.
    """
    return max((estimate.count for estimate in estimates), default=0)


def format_verdict_message(reserved_count: int, detected_count: int, status: str) -> str:
    if status == "error":
        return (
            f"Over-occupancy: detected {detected_count} people "
            f"against a reservation for {reserved_count}"
        )
    return (
        f"Occupancy within reservation: detected {detected_count} people "
        f"against a reservation for {reserved_count}"
    )


def evaluate_discrepancy(
    estimates: Iterable[FrameEstimate],
    reserved_count: int,
) -> DiscrepancyVerdict:
    detected_count = aggregate_detected_count(estimates)
    status = "error" if detected_count > reserved_count else "normal"
    return DiscrepancyVerdict(
        reserved_count=reserved_count,
        detected_count=detected_count,
        status=status,
        message=format_verdict_message(reserved_count, detected_count, status),
    )
