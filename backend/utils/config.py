"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_optional_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return _env_int(name, 0)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration shared by every layer."""

    app_name: str
    app_version: str
    log_level: str

    storage_backend: str
    database_path: Path
    seed_demo_data: bool

    frame_interval_seconds: float
    frame_max_count: int
    frame_image_format: str
    ffmpeg_binary: str
    ffmpeg_timeout_seconds: float

    vision_backend: str
    openai_api_key: Optional[str]
    openai_base_url: str
    vision_model: str
    vision_timeout_seconds: float
    vision_max_tokens: int
    estimation_max_workers: int
    stub_random_seed: Optional[int]

    workflow_api_url: Optional[str]
    workflow_api_key: Optional[str]
    workflow_user: str
    workflow_timeout_seconds: float

    max_upload_bytes: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call `get_settings.cache_clear()` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", "Minpaku Guard"),
        app_version=_env_str("APP_VERSION", "0.1.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        storage_backend=_env_str("STORAGE_BACKEND", "memory").lower(),
        database_path=Path(
            _env_str("DATABASE_PATH", str(PROJECT_ROOT / "data" / "minpaku_guard.db"))
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        frame_interval_seconds=_env_float("FRAME_INTERVAL_SECONDS", 1.0),
        frame_max_count=_env_int("FRAME_MAX_COUNT", 0),
        frame_image_format=_env_str("FRAME_IMAGE_FORMAT", "jpeg").lower(),
        ffmpeg_binary=_env_str("FFMPEG_BINARY", "ffmpeg"),
        ffmpeg_timeout_seconds=_env_float("FFMPEG_TIMEOUT_SECONDS", 120.0),
        vision_backend=_env_str("VISION_BACKEND", "openai").lower(),
        openai_api_key=_env_optional_str("OPENAI_API_KEY"),
        openai_base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
        vision_model=_env_str("VISION_MODEL", "gpt-5"),
        vision_timeout_seconds=_env_float("VISION_TIMEOUT_SECONDS", 30.0),
        vision_max_tokens=_env_int("VISION_MAX_TOKENS", 500),
        estimation_max_workers=_env_int("ESTIMATION_MAX_WORKERS", 4),
        stub_random_seed=_env_optional_int("STUB_RANDOM_SEED"),
        workflow_api_url=_env_optional_str("DIFY_API_URL"),
        workflow_api_key=_env_optional_str("DIFY_API_KEY"),
        workflow_user=_env_str("DIFY_USER", "minpaku-guard-system"),
        workflow_timeout_seconds=_env_float("DIFY_TIMEOUT_SECONDS", 30.0),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 200 * 1024 * 1024),
    )
