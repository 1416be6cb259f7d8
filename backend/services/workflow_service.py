"""Forwarding of occupancy results to an external workflow engine (Dify API)."""

from __future__ import annotations

import json
from typing import Any, Optional

import requests

from backend.domain.errors import BookingNotFound, ExternalServiceFailure
from backend.domain.models import WorkflowRun
from backend.repository.base import BookingAlertStore
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class WorkflowClient:
    """Blocking-mode client for the `/workflows/run` endpoint."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._api_url = (self._settings.workflow_api_url or "").rstrip("/")
        self._api_key = self._settings.workflow_api_key
        self._user = self._settings.workflow_user
        self._timeout_seconds = self._settings.workflow_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_url and self._api_key)

    def run_workflow(self, inputs: dict[str, Any]) -> WorkflowRun:
        if not self.configured:
            raise ExternalServiceFailure("Workflow API credentials are not configured")

        request_body = {
            "inputs": inputs,
            "response_mode": "blocking",
            "user": self._user,
        }
        logger.info("Calling workflow API %s", self._api_url)
        logger.debug("Workflow request body: %s", json.dumps(request_body, ensure_ascii=False))

        try:
            response = requests.post(
                f"{self._api_url}/workflows/run",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=request_body,
                timeout=self._timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise ExternalServiceFailure(
                "Workflow API is unreachable",
                diagnostic=str(exc),
            ) from exc

        logger.info("Workflow API responded with HTTP %s", response.status_code)
        if not response.ok:
            raise ExternalServiceFailure(
                f"Workflow API returned HTTP {response.status_code}",
                diagnostic=response.text[:2000],
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceFailure(
                "Workflow API returned a non-JSON body",
                diagnostic=response.text[:2000],
            ) from exc
        if not isinstance(payload, dict):
            raise ExternalServiceFailure(
                "Workflow API returned an unexpected body",
                diagnostic=response.text[:2000],
            )

        data = payload.get("data") or {}
        return WorkflowRun(
            workflow_run_id=str(payload.get("workflow_run_id", "")),
            task_id=str(payload.get("task_id", "")),
            status=str(data.get("status", "unknown")),
            outputs=dict(data.get("outputs") or {}),
            error=data.get("error"),
        )


class WorkflowService:
    def __init__(
        self,
        store: BookingAlertStore,
        client: Optional[WorkflowClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._client = client or WorkflowClient(settings or get_settings())

    def trigger(
        self,
        *,
        has_discrepancy: bool,
        reserved_count: int,
        detected_count: int,
        booking_name: Optional[str] = None,
        booking_id: Optional[int] = None,
    ) -> WorkflowRun:
        """Run the workflow; `booking_id` supplies the guest name when none is given."""
        if booking_name is None and booking_id is not None:
            booking_name = self.booking_name(booking_id)
        inputs: dict[str, Any] = {
            "hasDiscrepancy": has_discrepancy,
            "reservedCount": reserved_count,
            "detectedCount": detected_count,
        }
        if booking_name:
            inputs["bookingName"] = booking_name
        try:
            run = self._client.run_workflow(inputs)
        except ExternalServiceFailure as exc:
            logger.error(
                "Workflow forwarding failed: %s diagnostic=%s",
                exc.message,
                exc.diagnostic,
            )
            raise
        if run.status not in {"succeeded", "unknown"}:
            logger.warning("Workflow run %s finished with status %s", run.workflow_run_id, run.status)
        return run

    def booking_name(self, booking_id: int) -> Optional[str]:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} does not exist")
        guest = self._store.get_guest(booking.guest_id)
        return guest.full_name if guest is not None else None
