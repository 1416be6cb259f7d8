#!/usr/bin/env python3
"""Validate local Minpaku Guard environment readiness."""

from __future__ import annotations

import importlib
import shutil
import subprocess
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.constraints import PipelineConfig, validate_pipeline_config
from backend.repository.data_repository import SqliteRepository
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="minpaku-env-")
    settings = get_settings()

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("multipart", "python-multipart"),
        ("requests", "requests"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    try:
        from importlib.metadata import version
    except Exception:  # pragma: no cover
        version = None  # type: ignore[assignment]
    for module_name, dist_name in package_specs:
        try:
            module = importlib.import_module(module_name)
            if version is not None:
                _ = version(dist_name)
            else:
                _ = getattr(module, "__version__", "unknown")
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 3: Pipeline configuration
    try:
        validate_pipeline_config(
            PipelineConfig(
                frame_interval_seconds=settings.frame_interval_seconds,
                frame_max_count=settings.frame_max_count,
                ffmpeg_timeout_seconds=settings.ffmpeg_timeout_seconds,
                vision_timeout_seconds=settings.vision_timeout_seconds,
                estimation_max_workers=settings.estimation_max_workers,
            )
        )
        ok, line = _print_result("Pipeline configuration", True)
    except ValueError as exc:
        ok, line = _print_result("Pipeline configuration", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: Media tool on PATH and runnable
    binary_path = shutil.which(settings.ffmpeg_binary)
    if binary_path is None:
        ok, line = _print_result("Media tool", False, f"{settings.ffmpeg_binary!r} not found on PATH")
    else:
        try:
            completed = subprocess.run(
                [binary_path, "-hide_banner", "-version"],
                capture_output=True,
                timeout=10,
                check=False,
            )
            first_line = completed.stdout.decode("utf-8", errors="replace").splitlines()[:1]
            if completed.returncode != 0:
                raise RuntimeError(f"exit code {completed.returncode}")
            ok, line = _print_result("Media tool", True, f": {first_line[0] if first_line else binary_path}")
        except Exception as exc:
            ok, line = _print_result("Media tool", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 5: Vision capability configuration (warning only for stub)
    if settings.vision_backend == "stub":
        ok, line = _print_result("Vision backend", True, ": stub (development only, counts are not real)")
    elif settings.openai_api_key:
        ok, line = _print_result("Vision backend", True, f": {settings.vision_model}")
    else:
        ok, line = _print_result("Vision backend", False, "OPENAI_API_KEY is not set")
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            settings,
            database_path=Path(temp_dir) / "minpaku_validation.db",
        )
        repository = SqliteRepository(validation_settings)

        # CHECK 6: Database initialization and demo seed
        try:
            repository.initialize_database()
            repository.seed_demo_data()
            bookings = repository.list_bookings()
            if len(bookings) != 3:
                raise RuntimeError(f"expected 3 demo bookings, got {len(bookings)}")
            ok, line = _print_result("Database initialization and seed", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization and seed", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 7: Alert write path
        try:
            alert = repository.create_alert(booking_id=1, reserved_count=4, actual_count=5)
            if repository.get_alert(alert.alert_id) is None:
                raise RuntimeError("created alert could not be read back")
            ok, line = _print_result("Alert write path", True, f": alert id {alert.alert_id}")
        except Exception as exc:
            ok, line = _print_result("Alert write path", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Minpaku Guard Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
