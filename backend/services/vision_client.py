"""People-counting vision capability clients."""

from __future__ import annotations

import base64
import hashlib
import json
import random
from typing import Any, Mapping, Optional, Protocol

import requests

from backend.domain.errors import EstimationUnavailable
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert in analyzing images to count people. "
    "Respond only with JSON in this format: "
    '{"count": number, "confidence": number (0-1), "description": string}'
)

# Status codes that reject a single image rather than the service as a whole.
_FRAME_REJECTION_STATUSES = {400, 413, 415, 422}


class VisionResponseError(Exception):
    """Raised when the vision service answered but the answer is unusable."""


class VisionCapability(Protocol):
    def count_people(
        self,
        image_bytes: bytes,
        instruction: str,
        *,
        encoding: str = "jpeg",
    ) -> Mapping[str, Any]: ...


class OpenAIVisionClient:
    """Calls an OpenAI-compatible chat completions endpoint with one image."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._api_key = self._settings.openai_api_key
        self._base_url = self._settings.openai_base_url.rstrip("/")
        self._model = self._settings.vision_model
        self._timeout_seconds = self._settings.vision_timeout_seconds
        self._max_tokens = self._settings.vision_max_tokens

    def _build_payload(self, image_bytes: bytes, instruction: str, encoding: str) -> dict[str, Any]:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": instruction},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/{encoding};base64,{encoded}"},
                        },
                    ],
                },
            ],
            "response_format": {"type": "json_object"},
            "max_completion_tokens": self._max_tokens,
        }

    def count_people(
        self,
        image_bytes: bytes,
        instruction: str,
        *,
        encoding: str = "jpeg",
    ) -> Mapping[str, Any]:
        if not self._api_key:
            raise EstimationUnavailable(
                "OPENAI_API_KEY is not configured. Set it or use VISION_BACKEND=stub for development."
            )

        try:
            response = requests.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=self._build_payload(image_bytes, instruction, encoding),
                timeout=self._timeout_seconds,
            )
        except requests.exceptions.Timeout as exc:
            raise EstimationUnavailable(
                f"Vision request timed out after {self._timeout_seconds:g}s",
                diagnostic=str(exc),
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise EstimationUnavailable(
                "Vision service is unreachable",
                diagnostic=str(exc),
            ) from exc

        if response.status_code in _FRAME_REJECTION_STATUSES:
            raise VisionResponseError(
                f"Vision service rejected the image: HTTP {response.status_code} {response.text[:500]}"
            )
        if not response.ok:
            raise EstimationUnavailable(
                f"Vision service returned HTTP {response.status_code}",
                diagnostic=response.text[:1000],
            )

        try:
            envelope = response.json()
            content = envelope["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise VisionResponseError(f"Unexpected vision response envelope: {exc}") from exc

        try:
            parsed = json.loads(content or "{}")
        except (TypeError, json.JSONDecodeError) as exc:
            raise VisionResponseError(f"Vision content is not JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise VisionResponseError("Vision content is not a JSON object")
        return parsed


class StubVisionClient:
    """Development fallback that invents counts without any vision service.

    Counts are pseudo-random but derived from the image digest, so the same
    image always yields the same answer. Only selected with VISION_BACKEND=stub.
    """

    def __init__(self, seed: Optional[int] = None, max_count: int = 6) -> None:
        self._seed = seed if seed is not None else 0
        self._max_count = max_count

    def count_people(
        self,
        image_bytes: bytes,
        instruction: str,
        *,
        encoding: str = "jpeg",
    ) -> Mapping[str, Any]:
        digest = hashlib.sha256(image_bytes).hexdigest()
        generator = random.Random(f"{self._seed}:{digest}")
        return {
            "count": generator.randint(0, self._max_count),
            "confidence": round(generator.uniform(0.6, 1.0), 3),
            "description": "stub estimate; no vision service was called",
        }


def create_vision_client(settings: Optional[Settings] = None) -> VisionCapability:
    resolved = settings or get_settings()
    if resolved.vision_backend == "openai":
        return OpenAIVisionClient(resolved)
    if resolved.vision_backend == "stub":
        logger.warning("Using StubVisionClient; people counts are not real detections")
        return StubVisionClient(seed=resolved.stub_random_seed)
    raise ValueError(
        f"Unsupported vision_backend {resolved.vision_backend!r}; expected openai|stub"
    )
