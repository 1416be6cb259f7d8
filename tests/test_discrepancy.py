from __future__ import annotations

import itertools

import pytest

from backend.domain.discrepancy import aggregate_detected_count, evaluate_discrepancy
from backend.domain.models import FrameEstimate


def _estimates(counts: list[int]) -> list[FrameEstimate]:
    return [
        FrameEstimate(index=index, count=count, confidence=0.9)
        for index, count in enumerate(counts)
    ]


@pytest.mark.parametrize(
    ("counts", "reserved", "expected_status"),
    [
        ([2, 4, 3], 3, "error"),
        ([1, 2, 3], 3, "normal"),
        ([3, 3, 3], 3, "normal"),
        ([0], 1, "normal"),
        ([7], 6, "error"),
        ([5, 0, 0, 0], 4, "error"),
    ],
)
def test_verdict_is_error_only_when_max_exceeds_reserved(counts, reserved, expected_status):
    verdict = evaluate_discrepancy(_estimates(counts), reserved)

    assert verdict.status == expected_status
    assert verdict.detected_count == max(counts)
    assert verdict.reserved_count == reserved
    assert (verdict.status == "error") == (max(counts) > reserved)


def test_detected_count_is_independent_of_frame_order():
    counts = [2, 6, 1, 4]
    results = {
        evaluate_discrepancy(_estimates(list(order)), 5)
        for order in itertools.permutations(counts)
    }

    assert len(results) == 1
    (verdict,) = results
    assert verdict.detected_count == 6
    assert verdict.status == "error"


def test_empty_estimates_yield_zero_and_normal():
    verdict = evaluate_discrepancy([], 0)

    assert verdict.detected_count == 0
    assert verdict.status == "normal"
    assert aggregate_detected_count([]) == 0


def test_evaluation_is_deterministic():
    estimates = _estimates([1, 5, 2])

    first = evaluate_discrepancy(estimates, 3)
    second = evaluate_discrepancy(estimates, 3)

    assert first == second
    assert first.message == second.message


def test_message_embeds_both_counts():
    over = evaluate_discrepancy(_estimates([2, 4, 3]), 3)
    within = evaluate_discrepancy(_estimates([1, 2, 3]), 3)

    assert "4" in over.message and "3" in over.message
    assert over.message.startswith("Over-occupancy")
    assert within.message.startswith("Occupancy within reservation")
    assert over.has_discrepancy
    assert not within.has_discrepancy


def test_flagged_zero_does_not_lower_the_maximum():
    estimates = [
        FrameEstimate(index=0, count=0, confidence=0.0, flagged=True),
        FrameEstimate(index=1, count=5, confidence=0.8),
        FrameEstimate(index=2, count=2, confidence=0.7),
    ]

    verdict = evaluate_discrepancy(estimates, 4)

    assert verdict.detected_count == 5
    assert verdict.status == "error"
