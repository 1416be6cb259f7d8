"""SQLite-backed booking/alert store."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from backend.domain.errors import StoreFailure
from backend.domain.models import Alert, Booking, Guest, Room
from backend.repository.base import utc_timestamp
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=int(row["id"]),
        guest_id=int(row["guest_id"]),
        room_id=int(row["room_id"]),
        reserved_at=str(row["reserved_at"]),
        reserved_count=int(row["reserved_count"]),
        status=str(row["status"]),
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        alert_id=int(row["id"]),
        booking_id=int(row["booking_id"]),
        detected_at=str(row["detected_at"]),
        reserved_count=int(row["reserved_count"]),
        actual_count=int(row["actual_count"]),
        status=str(row["status"]),
    )


class SqliteRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=10.0)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Guests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        full_name TEXT NOT NULL,
                        phone TEXT,
                        email TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        address TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        guest_id INTEGER NOT NULL,
                        room_id INTEGER NOT NULL,
                        reserved_at TEXT NOT NULL,
                        reserved_count INTEGER NOT NULL CHECK (reserved_count > 0),
                        status TEXT NOT NULL DEFAULT 'booked'
                            CHECK (status IN ('booked', 'checked_in', 'checked_out', 'canceled')),
                        FOREIGN KEY (guest_id) REFERENCES Guests(id),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Alerts (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id INTEGER NOT NULL,
                        detected_at TEXT NOT NULL,
                        reserved_count INTEGER NOT NULL,
                        actual_count INTEGER NOT NULL,
                        status TEXT NOT NULL DEFAULT 'open'
                            CHECK (status IN ('open', 'acknowledged', 'resolved')),
                        CHECK (actual_count > reserved_count),
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_alerts_booking_status
                    ON Alerts(booking_id, status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise StoreFailure(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed the demo property only when tables are empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                cursor.executemany(
                    "INSERT INTO Guests (full_name) VALUES (?);",
                    [("田中太郎",), ("佐藤花子",), ("山田次郎",)],
                )
                cursor.executemany(
                    "INSERT INTO Rooms (name) VALUES (?);",
                    [("漁師町の民家",), ("長屋1号室",)],
                )
                cursor.executemany(
                    """
                    INSERT INTO Bookings (guest_id, room_id, reserved_at, reserved_count, status)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        (1, 1, "2024-10-15T14:00:00Z", 4, "checked_in"),
                        (2, 2, "2024-10-16T15:00:00Z", 2, "booked"),
                        (3, 1, "2024-10-17T16:00:00Z", 3, "checked_in"),
                    ],
                )
                cursor.executemany(
                    """
                    INSERT INTO Alerts (booking_id, detected_at, reserved_count, actual_count, status)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        (1, "2025-10-20T18:30:00Z", 4, 6, "open"),
                        (3, "2025-10-19T20:15:00Z", 3, 4, "acknowledged"),
                        (1, "2025-10-18T19:00:00Z", 4, 5, "resolved"),
                    ],
                )
                conn.commit()
            logger.info("Demo seed completed")
        except sqlite3.Error as exc:
            raise StoreFailure(f"Demo data seeding failed: {exc}") from exc

    def create_guest(self, full_name: str, phone: Optional[str] = None, email: Optional[str] = None) -> Guest:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT INTO Guests (full_name, phone, email) VALUES (?, ?, ?);",
                    (full_name, phone, email),
                )
                conn.commit()
                return Guest(int(cursor.lastrowid), full_name, phone, email)
        except sqlite3.Error as exc:
            raise StoreFailure(f"Guest insert failed: {exc}") from exc

    def create_room(self, name: str, address: Optional[str] = None) -> Room:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT INTO Rooms (name, address) VALUES (?, ?);",
                    (name, address),
                )
                conn.commit()
                return Room(int(cursor.lastrowid), name, address)
        except sqlite3.Error as exc:
            raise StoreFailure(f"Room insert failed: {exc}") from exc

    def create_booking(
        self,
        guest_id: int,
        room_id: int,
        reserved_at: str,
        reserved_count: int,
        status: str = "booked",
    ) -> Booking:
        """Insert a booking row and return the created entity."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Bookings (guest_id, room_id, reserved_at, reserved_count, status)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    (guest_id, room_id, reserved_at, reserved_count, status),
                )
                conn.commit()
                return Booking(
                    booking_id=int(cursor.lastrowid),
                    guest_id=guest_id,
                    room_id=room_id,
                    reserved_at=reserved_at,
                    reserved_count=reserved_count,
                    status=status,
                )
        except sqlite3.Error as exc:
            raise StoreFailure(f"Booking insert failed: {exc}") from exc

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, guest_id, room_id, reserved_at, reserved_count, status
                    FROM Bookings WHERE id = ?;
                    """,
                    (booking_id,),
                )
                row = cursor.fetchone()
                return _row_to_booking(row) if row is not None else None
        except sqlite3.Error as exc:
            raise StoreFailure(f"Booking lookup failed: {exc}", stage="received") from exc

    def list_bookings(self) -> list[Booking]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, guest_id, room_id, reserved_at, reserved_count, status
                    FROM Bookings ORDER BY id ASC;
                    """
                )
                return [_row_to_booking(row) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise StoreFailure(f"Booking listing failed: {exc}") from exc

    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE Bookings SET status = ? WHERE id = ?;",
                    (status, booking_id),
                )
                if cursor.rowcount == 0:
                    return None
                cursor.execute(
                    """
                    SELECT id, guest_id, room_id, reserved_at, reserved_count, status
                    FROM Bookings WHERE id = ?;
                    """,
                    (booking_id,),
                )
                row = cursor.fetchone()
                conn.commit()
                return _row_to_booking(row)
        except sqlite3.Error as exc:
            raise StoreFailure(f"Booking status update failed: {exc}") from exc

    def get_guest(self, guest_id: int) -> Optional[Guest]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT id, full_name, phone, email FROM Guests WHERE id = ?;",
                    (guest_id,),
                )
                row = cursor.fetchone()
                if row is None:
                    return None
                return Guest(
                    guest_id=int(row["id"]),
                    full_name=str(row["full_name"]),
                    phone=row["phone"],
                    email=row["email"],
                )
        except sqlite3.Error as exc:
            raise StoreFailure(f"Guest lookup failed: {exc}") from exc

    def get_room(self, room_id: int) -> Optional[Room]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT id, name, address FROM Rooms WHERE id = ?;",
                    (room_id,),
                )
                row = cursor.fetchone()
                if row is None:
                    return None
                return Room(room_id=int(row["id"]), name=str(row["name"]), address=row["address"])
        except sqlite3.Error as exc:
            raise StoreFailure(f"Room lookup failed: {exc}") from exc

    def create_alert(
        self,
        booking_id: int,
        reserved_count: int,
        actual_count: int,
        detected_at: Optional[str] = None,
    ) -> Alert:
        """Append one open alert; the id comes from AUTOINCREMENT and is never reused."""
        timestamp = detected_at or utc_timestamp()
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Alerts (booking_id, detected_at, reserved_count, actual_count, status)
                    VALUES (?, ?, ?, ?, 'open');
                    """,
                    (booking_id, timestamp, reserved_count, actual_count),
                )
                conn.commit()
                return Alert(
                    alert_id=int(cursor.lastrowid),
                    booking_id=booking_id,
                    detected_at=timestamp,
                    reserved_count=reserved_count,
                    actual_count=actual_count,
                    status="open",
                )
        except sqlite3.Error as exc:
            raise StoreFailure(f"Alert insert failed: {exc}") from exc

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, booking_id, detected_at, reserved_count, actual_count, status
                    FROM Alerts WHERE id = ?;
                    """,
                    (alert_id,),
                )
                row = cursor.fetchone()
                return _row_to_alert(row) if row is not None else None
        except sqlite3.Error as exc:
            raise StoreFailure(f"Alert lookup failed: {exc}") from exc

    def list_alerts(self, status: Optional[str] = None) -> list[Alert]:
        query = """
            SELECT id, booking_id, detected_at, reserved_count, actual_count, status
            FROM Alerts
        """
        params: tuple[str, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status,)
        query += " ORDER BY id ASC;"
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                return [_row_to_alert(row) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise StoreFailure(f"Alert listing failed: {exc}") from exc

    def update_alert_status(self, alert_id: int, status: str) -> Optional[Alert]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE Alerts SET status = ? WHERE id = ?;",
                    (status, alert_id),
                )
                if cursor.rowcount == 0:
                    return None
                cursor.execute(
                    """
                    SELECT id, booking_id, detected_at, reserved_count, actual_count, status
                    FROM Alerts WHERE id = ?;
                    """,
                    (alert_id,),
                )
                row = cursor.fetchone()
                conn.commit()
                return _row_to_alert(row)
        except sqlite3.Error as exc:
            raise StoreFailure(f"Alert status update failed: {exc}") from exc
