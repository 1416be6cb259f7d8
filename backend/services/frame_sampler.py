"""Fixed-interval still-frame extraction from uploaded video."""

from __future__ import annotations

import math
import subprocess
import tempfile
from fractions import Fraction
from pathlib import Path
from typing import Optional, Protocol

from backend.domain.errors import ExtractionFailed, InvalidInput
from backend.domain.models import FrameSample
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_FILE_EXTENSIONS = {"jpeg": "jpg", "png": "png"}
_DIAGNOSTIC_LIMIT = 4000
_RATE_MAX_DENOMINATOR = 1_000_000


class FrameSampler(Protocol):
    def extract_frames(self, video_bytes: bytes, interval_seconds: float) -> list[FrameSample]: ...


def _decode_diagnostic(stream: bytes | str | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        stream = stream.decode("utf-8", errors="replace")
    return stream.strip()[-_DIAGNOSTIC_LIMIT:]


def sampling_rate_expression(interval_seconds: float) -> str:
    """Return an ffmpeg `fps` value emitting one frame every `interval_seconds`.

    Raises InvalidInput when the interval is not finite or is too small to
    express as a rational rate.
    """
    if not math.isfinite(interval_seconds) or interval_seconds <= 0:
        raise InvalidInput("interval_seconds must be a finite number > 0", stage="extracting")
    interval = Fraction(str(interval_seconds)).limit_denominator(_RATE_MAX_DENOMINATOR)
    if interval == 0:
        raise InvalidInput(
            f"interval_seconds {interval_seconds!r} is below the minimum of 1/{_RATE_MAX_DENOMINATOR}s",
            stage="extracting",
        )
    rate = 1 / interval
    return f"{rate.numerator}/{rate.denominator}"


class FfmpegFrameSampler:
    """Shells out to ffmpeg inside a private scratch directory.

    The directory is created per call and removed on every exit path, so
    concurrent runs never see each other's files.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._binary = self._settings.ffmpeg_binary
        self._timeout_seconds = self._settings.ffmpeg_timeout_seconds
        self._max_frames = self._settings.frame_max_count
        self._image_format = self._settings.frame_image_format
        if self._image_format not in _FILE_EXTENSIONS:
            raise ValueError(
                f"frame_image_format must be one of {sorted(_FILE_EXTENSIONS)}, "
                f"got {self._image_format!r}"
            )

    def _build_command(self, input_path: Path, output_pattern: Path, rate: str) -> list[str]:
        command = [
            self._binary,
            "-hide_banner",
            "-nostdin",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(input_path),
            "-vf",
            f"fps={rate}",
        ]
        if self._max_frames > 0:
            command += ["-frames:v", str(self._max_frames)]
        if self._image_format == "jpeg":
            command += ["-q:v", "2"]
        command.append(str(output_pattern))
        return command

    def _run(self, command: list[str]) -> str:
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ExtractionFailed(
                f"Media tool {self._binary!r} was not found",
                diagnostic=str(exc),
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExtractionFailed(
                f"Media tool timed out after {self._timeout_seconds:g}s",
                diagnostic=_decode_diagnostic(exc.stderr),
            ) from exc
        except OSError as exc:
            raise ExtractionFailed(
                f"Media tool {self._binary!r} could not be started",
                diagnostic=str(exc),
            ) from exc

        diagnostic = _decode_diagnostic(completed.stderr)
        if completed.returncode != 0:
            raise ExtractionFailed(
                f"Media tool exited with code {completed.returncode}",
                diagnostic=diagnostic,
            )
        return diagnostic

    def extract_frames(self, video_bytes: bytes, interval_seconds: float) -> list[FrameSample]:
        rate = sampling_rate_expression(interval_seconds)
        if not video_bytes:
            raise ExtractionFailed("Video payload is empty")

        extension = _FILE_EXTENSIONS[self._image_format]
        with tempfile.TemporaryDirectory(prefix="minpaku-frames-") as scratch:
            scratch_dir = Path(scratch)
            input_path = scratch_dir / "input.video"
            input_path.write_bytes(video_bytes)
            output_pattern = scratch_dir / f"frame_%05d.{extension}"

            command = self._build_command(input_path, output_pattern, rate)
            logger.debug("Running media tool: %s", " ".join(command))
            diagnostic = self._run(command)

            frame_paths = sorted(scratch_dir.glob(f"frame_*.{extension}"))
            frames = [
                FrameSample(index=index, data=path.read_bytes(), encoding=self._image_format)
                for index, path in enumerate(frame_paths)
            ]

        if not frames:
            raise ExtractionFailed(
                "Media tool produced no frames; the video may be corrupt or too short",
                diagnostic=diagnostic,
            )
        logger.info(
            "Extracted %s frames at %.3fs interval",
            len(frames),
            interval_seconds,
        )
        return frames
