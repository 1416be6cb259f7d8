"""Alert creation for discrepancy verdicts and the alert status lifecycle."""

from __future__ import annotations

from threading import RLock
from typing import Optional

from backend.domain.errors import AlertNotFound, InvalidStatusTransition
from backend.domain.models import ALERT_STATUSES, ALERT_TRANSITIONS, Alert, DiscrepancyVerdict
from backend.repository.base import BookingAlertStore
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AlertService:
    """Records over-occupancy alerts and applies operator status changes."""

    def __init__(self, store: BookingAlertStore) -> None:
        self._store = store
        self._lock = RLock()

    def record_if_needed(self, verdict: DiscrepancyVerdict, booking_id: int) -> Optional[Alert]:
        """Create one open alert for an "error" verdict; do nothing otherwise.

        No deduplication is applied: each discrepancy-positive run produces
        its own alert.
        """
        if verdict.status != "error":
            return None

        alert = self._store.create_alert(
            booking_id=booking_id,
            reserved_count=verdict.reserved_count,
            actual_count=verdict.detected_count,
        )
        logger.info(
            "Alert %s opened for booking %s (reserved=%s, detected=%s)",
            alert.alert_id,
            booking_id,
            alert.reserved_count,
            alert.actual_count,
        )
        return alert

    def list_alerts(self, status: Optional[str] = None) -> list[Alert]:
        if status is not None and status not in ALERT_STATUSES:
            raise InvalidStatusTransition(
                f"Unknown alert status {status!r}; expected one of {', '.join(ALERT_STATUSES)}"
            )
        return self._store.list_alerts(status=status)

    def get_alert(self, alert_id: int) -> Alert:
        alert = self._store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFound(f"Alert {alert_id} does not exist")
        return alert

    def update_status(self, alert_id: int, status: str) -> Alert:
        if status not in ALERT_STATUSES:
            raise InvalidStatusTransition(
                f"Unknown alert status {status!r}; expected one of {', '.join(ALERT_STATUSES)}"
            )
        with self._lock:
            current = self.get_alert(alert_id)
            if current.status == status:
                return current
            if status not in ALERT_TRANSITIONS[current.status]:
                raise InvalidStatusTransition(
                    f"Alert {alert_id} cannot move from {current.status} to {status}"
                )
            updated = self._store.update_alert_status(alert_id, status)
        if updated is None:
            raise AlertNotFound(f"Alert {alert_id} does not exist")
        logger.info("Alert %s moved %s -> %s", alert_id, current.status, status)
        return updated
