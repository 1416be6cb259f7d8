"""Booking lookups, status lifecycle and dashboard summary counts."""

from __future__ import annotations

from threading import RLock
from typing import Any

from backend.domain.errors import BookingNotFound, InvalidStatusTransition
from backend.domain.models import BOOKING_STATUSES, BOOKING_TRANSITIONS, Booking
from backend.repository.base import BookingAlertStore
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class BookingService:
    def __init__(self, store: BookingAlertStore) -> None:
        self._store = store
        self._lock = RLock()

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} does not exist")
        return booking

    def describe(self, booking: Booking) -> dict[str, Any]:
        """Return the booking joined with guest and room names for display."""
        guest = self._store.get_guest(booking.guest_id)
        room = self._store.get_room(booking.room_id)
        payload = booking.to_dict()
        payload["guest_name"] = guest.full_name if guest is not None else None
        payload["room_name"] = room.name if room is not None else None
        return payload

    def list_bookings(self) -> list[dict[str, Any]]:
        return [self.describe(booking) for booking in self._store.list_bookings()]

    def update_status(self, booking_id: int, status: str) -> Booking:
        if status not in BOOKING_STATUSES:
            raise InvalidStatusTransition(
                f"Unknown booking status {status!r}; expected one of {', '.join(BOOKING_STATUSES)}"
            )
        with self._lock:
            current = self.get_booking(booking_id)
            if current.status == status:
                return current
            if status not in BOOKING_TRANSITIONS[current.status]:
                raise InvalidStatusTransition(
                    f"Booking {booking_id} cannot move from {current.status} to {status}"
                )
            updated = self._store.update_booking_status(booking_id, status)
        if updated is None:
            raise BookingNotFound(f"Booking {booking_id} does not exist")
        logger.info("Booking %s moved %s -> %s", booking_id, current.status, status)
        return updated

    def get_stats(self) -> dict[str, int]:
        bookings = self._store.list_bookings()
        stats = {f"{status}_bookings": 0 for status in BOOKING_STATUSES}
        for booking in bookings:
            stats[f"{booking.status}_bookings"] += 1
        stats["total_bookings"] = len(bookings)
        stats["open_alerts"] = len(self._store.list_alerts(status="open"))
        return stats
