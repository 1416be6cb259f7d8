"""In-process keyed-map store used for demos and tests."""

from __future__ import annotations

import itertools
from dataclasses import replace
from threading import RLock
from typing import Optional

from backend.domain.models import Alert, Booking, Guest, Room
from backend.repository.base import utc_timestamp
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class InMemoryStore:
    """Dict-backed store; every read-modify-write runs under one lock."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._guests: dict[int, Guest] = {}
        self._rooms: dict[int, Room] = {}
        self._bookings: dict[int, Booking] = {}
        self._alerts: dict[int, Alert] = {}
        self._alert_ids = itertools.count(1)

    def initialize_database(self) -> None:
        logger.info("Using in-memory booking/alert store")

    def seed_demo_data(self) -> None:
        """Load the demo property data only when the store is empty."""
        with self._lock:
            if self._bookings:
                logger.info("Demo data already present; skipping seed")
                return

            for guest in (
                Guest(guest_id=1, full_name="田中太郎"),
                Guest(guest_id=2, full_name="佐藤花子"),
                Guest(guest_id=3, full_name="山田次郎"),
            ):
                self._guests[guest.guest_id] = guest

            for room in (
                Room(room_id=1, name="漁師町の民家"),
                Room(room_id=2, name="長屋1号室"),
            ):
                self._rooms[room.room_id] = room

            for booking in (
                Booking(1, guest_id=1, room_id=1, reserved_at="2024-10-15T14:00:00Z",
                        reserved_count=4, status="checked_in"),
                Booking(2, guest_id=2, room_id=2, reserved_at="2024-10-16T15:00:00Z",
                        reserved_count=2, status="booked"),
                Booking(3, guest_id=3, room_id=1, reserved_at="2024-10-17T16:00:00Z",
                        reserved_count=3, status="checked_in"),
            ):
                self._bookings[booking.booking_id] = booking

            self.create_alert(1, 4, 6, detected_at="2025-10-20T18:30:00Z")
            acknowledged = self.create_alert(3, 3, 4, detected_at="2025-10-19T20:15:00Z")
            self.update_alert_status(acknowledged.alert_id, "acknowledged")
            resolved = self.create_alert(1, 4, 5, detected_at="2025-10-18T19:00:00Z")
            self.update_alert_status(resolved.alert_id, "resolved")
        logger.info("Seeded in-memory demo data with %s bookings", len(self._bookings))

    def add_guest(self, guest: Guest) -> Guest:
        with self._lock:
            self._guests[guest.guest_id] = guest
            return guest

    def add_room(self, room: Room) -> Room:
        with self._lock:
            self._rooms[room.room_id] = room
            return room

    def add_booking(self, booking: Booking) -> Booking:
        with self._lock:
            self._bookings[booking.booking_id] = booking
            return booking

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    def list_bookings(self) -> list[Booking]:
        with self._lock:
            return [self._bookings[key] for key in sorted(self._bookings)]

    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            updated = replace(booking, status=status)
            self._bookings[booking_id] = updated
            return updated

    def get_guest(self, guest_id: int) -> Optional[Guest]:
        with self._lock:
            return self._guests.get(guest_id)

    def get_room(self, room_id: int) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(room_id)

    def create_alert(
        self,
        booking_id: int,
        reserved_count: int,
        actual_count: int,
        detected_at: Optional[str] = None,
    ) -> Alert:
        with self._lock:
            alert = Alert(
                alert_id=next(self._alert_ids),
                booking_id=booking_id,
                detected_at=detected_at or utc_timestamp(),
                reserved_count=reserved_count,
                actual_count=actual_count,
                status="open",
            )
            self._alerts[alert.alert_id] = alert
            return alert

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self._lock:
            return self._alerts.get(alert_id)

    def list_alerts(self, status: Optional[str] = None) -> list[Alert]:
        with self._lock:
            alerts = [self._alerts[key] for key in sorted(self._alerts)]
        if status is not None:
            alerts = [alert for alert in alerts if alert.status == status]
        return alerts

    def update_alert_status(self, alert_id: int, status: str) -> Optional[Alert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            updated = replace(alert, status=status)
            self._alerts[alert_id] = updated
            return updated
