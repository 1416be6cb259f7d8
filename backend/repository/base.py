"""Storage contract consumed by the services, plus backend selection."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Protocol

from backend.domain.models import Alert, Booking, Guest, Room
from backend.utils.config import Settings, get_settings


class BookingAlertStore(Protocol):
    """Keyed booking/alert persistence.

    Implementations must make `create_alert` and each status update atomic and
    must never reuse an alert identity.
    """

    def initialize_database(self) -> None: ...

    def seed_demo_data(self) -> None: ...

    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    def list_bookings(self) -> list[Booking]: ...

    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]: ...

    def get_guest(self, guest_id: int) -> Optional[Guest]: ...

    def get_room(self, room_id: int) -> Optional[Room]: ...

    def create_alert(
        self,
        booking_id: int,
        reserved_count: int,
        actual_count: int,
        detected_at: Optional[str] = None,
    ) -> Alert: ...

    def get_alert(self, alert_id: int) -> Optional[Alert]: ...

    def list_alerts(self, status: Optional[str] = None) -> list[Alert]: ...

    def update_alert_status(self, alert_id: int, status: str) -> Optional[Alert]: ...


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def create_store(settings: Optional[Settings] = None) -> BookingAlertStore:
    """Return the store selected by `settings.storage_backend`."""
    resolved = settings or get_settings()
    if resolved.storage_backend == "memory":
        from backend.repository.memory_repository import InMemoryStore

        return InMemoryStore()
    if resolved.storage_backend == "sqlite":
        from backend.repository.data_repository import SqliteRepository

        return SqliteRepository(resolved)
    raise ValueError(
        f"Unsupported storage_backend {resolved.storage_backend!r}; expected memory|sqlite"
    )
