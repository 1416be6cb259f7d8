"""Error taxonomy shared by the occupancy pipeline and its collaborators."""

from __future__ import annotations

from typing import Any, Optional


class OccupancyPipelineError(Exception):
    """Base failure carrying the pipeline stage it happened in."""

    default_stage = "received"

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        diagnostic: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.diagnostic = diagnostic

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "error": type(self).__name__,
            "message": self.message,
            "diagnostic": self.diagnostic,
        }


class InvalidInput(OccupancyPipelineError):
    """Raised when required pipeline inputs are missing or malformed."""


class BookingNotFound(InvalidInput):
    """Raised when a booking id does not exist in the store."""


class ExtractionFailed(OccupancyPipelineError):
    """Raised when the media tool cannot produce any frame."""

    default_stage = "extracting"


class EstimationUnavailable(OccupancyPipelineError):
    """Raised when the vision capability cannot be reached or is unconfigured."""

    default_stage = "estimating"


class StoreFailure(OccupancyPipelineError):
    """Raised when the booking/alert store cannot complete a read or write."""

    default_stage = "recording"


class ExternalServiceFailure(OccupancyPipelineError):
    """Raised when a downstream workflow integration rejects or drops a call."""

    default_stage = "forwarding"


class LifecycleError(Exception):
    """Base exception for booking and alert status changes."""


class AlertNotFound(LifecycleError):
    """Raised when an alert id does not exist in the store."""


class InvalidStatusTransition(LifecycleError):
    """Raised when a status change is not allowed from the current status."""
