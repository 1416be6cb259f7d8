"""Domain-level validation rules for the occupancy pipeline configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineConfig:
    frame_interval_seconds: float
    frame_max_count: int
    ffmpeg_timeout_seconds: float
    vision_timeout_seconds: float
    estimation_max_workers: int


def validate_pipeline_config(config: PipelineConfig) -> None:
    if config.frame_interval_seconds <= 0:
        raise ValueError("frame_interval_seconds must be > 0")
    if config.frame_max_count < 0:
        raise ValueError("frame_max_count must be >= 0")
    if config.ffmpeg_timeout_seconds <= 0:
        raise ValueError("ffmpeg_timeout_seconds must be > 0")
    if config.vision_timeout_seconds <= 0:
        raise ValueError("vision_timeout_seconds must be > 0")
    if config.estimation_max_workers <= 0:
        raise ValueError("estimation_max_workers must be > 0")
