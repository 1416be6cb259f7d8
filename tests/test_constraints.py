"""Tests for pipeline configuration validation logic.

Covers every validation branch in validate_pipeline_config().
"""

from __future__ import annotations

import pytest

from backend.domain.constraints import PipelineConfig, validate_pipeline_config


def valid_config(**overrides) -> PipelineConfig:
    """Return a valid baseline PipelineConfig, optionally overriding fields."""
    defaults = {
        "frame_interval_seconds": 1.0,
        "frame_max_count": 0,
        "ffmpeg_timeout_seconds": 60.0,
        "vision_timeout_seconds": 30.0,
        "estimation_max_workers": 4,
    }
    defaults.update(overrides)
    return PipelineConfig(**defaults)


def test_valid_config_passes() -> None:
    validate_pipeline_config(valid_config())


# --- frame_interval_seconds ---

def test_frame_interval_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(frame_interval_seconds=0.0))


def test_frame_interval_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(frame_interval_seconds=-0.5))


def test_fractional_frame_interval_passes() -> None:
    validate_pipeline_config(valid_config(frame_interval_seconds=0.25))


# --- frame_max_count ---

def test_frame_max_count_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(frame_max_count=-1))


def test_frame_max_count_zero_means_unlimited() -> None:
    validate_pipeline_config(valid_config(frame_max_count=0))


# --- timeouts ---

def test_ffmpeg_timeout_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(ffmpeg_timeout_seconds=0))


def test_vision_timeout_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(vision_timeout_seconds=-1))


# --- estimation_max_workers ---

def test_estimation_workers_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_pipeline_config(valid_config(estimation_max_workers=0))


def test_single_estimation_worker_passes() -> None:
    validate_pipeline_config(valid_config(estimation_max_workers=1))
