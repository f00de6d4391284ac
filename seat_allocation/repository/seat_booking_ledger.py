"""Per-seat booking records and their pending/approved/rejected lifecycle."""

from __future__ import annotations

import sqlite3
from typing import Iterable, Optional, Sequence

from seat_allocation.domain.constraints import validate_required_text, validate_seat_numbers
from seat_allocation.domain.exceptions import SeatConflict
from seat_allocation.domain.models import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    SeatBooking,
)
from seat_allocation.repository.database import Database
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

_BOOKING_COLUMNS = """
    id, request_id, lab_id, floor_id, lab_name, seat_number,
    division, status, booking_date, asset_id, notes
"""


def _to_booking(row: sqlite3.Row) -> SeatBooking:
    return SeatBooking(
        booking_id=int(row["id"]),
        request_id=int(row["request_id"]),
        lab_id=int(row["lab_id"]),
        floor_id=int(row["floor_id"]),
        lab_name=str(row["lab_name"]),
        seat_number=int(row["seat_number"]),
        division=str(row["division"]),
        status=BookingStatus(row["status"]),
        booking_date=str(row["booking_date"]),
        asset_id=row["asset_id"],
        notes=row["notes"],
    )


def _placeholders(values: Sequence[object]) -> str:
    return ",".join("?" for _ in values)


class SeatBookingLedger:
    """Stores seat bookings; refuses a second active booking for the same seat."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def find_active_conflicts(
        self,
        lab_id: int,
        floor_id: int,
        seat_numbers: Sequence[int],
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[SeatBooking]:
        if not seat_numbers:
            return []
        params = (lab_id, floor_id, *ACTIVE_BOOKING_STATUSES, *seat_numbers)
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM SeatBookings
                WHERE lab_id = ? AND floor_id = ?
                  AND status IN ({_placeholders(ACTIVE_BOOKING_STATUSES)})
                  AND seat_number IN ({_placeholders(seat_numbers)})
                ORDER BY seat_number ASC;
                """,
                params,
            ).fetchall()
        return [_to_booking(row) for row in rows]

    def create_bookings(
        self,
        request_id: int,
        lab_id: int,
        floor_id: int,
        lab_name: str,
        seat_numbers: Iterable[int],
        division: str,
        asset_ids: Optional[Sequence[Optional[str]]] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[SeatBooking]:
        """Insert one pending booking per seat after checking for active holders."""
        seats = validate_seat_numbers(seat_numbers)
        division = validate_required_text(division, "division")
        if not seats:
            return []

        with self._database.session(conn) as session:
            conflicts = self.find_active_conflicts(lab_id, floor_id, seats, conn=session)
            if conflicts:
                taken = tuple(booking.seat_number for booking in conflicts)
                raise SeatConflict(
                    f"seats already booked in lab '{lab_name}': "
                    f"{', '.join(str(seat) for seat in taken)}",
                    seat_numbers=taken,
                )

            booking_ids: list[int] = []
            for index, seat in enumerate(seats):
                asset_id = None
                if asset_ids is not None and index < len(asset_ids):
                    asset_id = asset_ids[index]
                try:
                    cursor = session.execute(
                        """
                        INSERT INTO SeatBookings (
                            request_id, lab_id, floor_id, lab_name,
                            seat_number, division, status, asset_id
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                        """,
                        (
                            request_id,
                            lab_id,
                            floor_id,
                            lab_name,
                            seat,
                            division,
                            BookingStatus.PENDING.value,
                            asset_id,
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    # A concurrent writer took the seat between check and insert.
                    if "UNIQUE constraint failed" in str(exc):
                        raise SeatConflict(
                            f"seat {seat} in lab '{lab_name}' was booked concurrently",
                            seat_numbers=(seat,),
                        ) from exc
                    raise
                booking_ids.append(int(cursor.lastrowid))

            rows = session.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM SeatBookings
                WHERE id IN ({_placeholders(booking_ids)})
                ORDER BY id ASC;
                """,
                tuple(booking_ids),
            ).fetchall()

        logger.info(
            "Created %s pending bookings for request %s in lab %s",
            len(booking_ids),
            request_id,
            lab_name,
        )
        return [_to_booking(row) for row in rows]

    def approve_by_request(
        self,
        request_id: int,
        notes: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        with self._database.session(conn) as session:
            cursor = session.execute(
                """
                UPDATE SeatBookings
                SET status = ?, notes = COALESCE(?, notes)
                WHERE request_id = ? AND status = ?;
                """,
                (
                    BookingStatus.APPROVED.value,
                    notes,
                    request_id,
                    BookingStatus.PENDING.value,
                ),
            )
            return int(cursor.rowcount)

    def reject_by_request(
        self,
        request_id: int,
        reason: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        with self._database.session(conn) as session:
            cursor = session.execute(
                f"""
                UPDATE SeatBookings
                SET status = ?, notes = ?
                WHERE request_id = ?
                  AND status IN ({_placeholders(ACTIVE_BOOKING_STATUSES)});
                """,
                (
                    BookingStatus.REJECTED.value,
                    reason,
                    request_id,
                    *ACTIVE_BOOKING_STATUSES,
                ),
            )
            return int(cursor.rowcount)

    def retag_pending(
        self,
        request_id: int,
        lab_id: int,
        floor_id: int,
        division: str,
        asset_ids: dict[int, Optional[str]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Move a request's held seats to ``division``; a given asset id replaces the old one."""
        if not asset_ids:
            return 0
        division = validate_required_text(division, "division")
        with self._database.session(conn) as session:
            cursor = session.executemany(
                """
                UPDATE SeatBookings
                SET division = ?, asset_id = COALESCE(?, asset_id)
                WHERE request_id = ? AND lab_id = ? AND floor_id = ?
                  AND seat_number = ? AND status = ?;
                """,
                [
                    (
                        division,
                        asset_id,
                        request_id,
                        lab_id,
                        floor_id,
                        seat,
                        BookingStatus.PENDING.value,
                    )
                    for seat, asset_id in asset_ids.items()
                ],
            )
            return int(cursor.rowcount)

    def delete_pending_for_seats(
        self,
        request_id: int,
        lab_id: int,
        floor_id: int,
        seat_numbers: Sequence[int],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Drop a request's own pending rows for seats that are being re-saved."""
        if not seat_numbers:
            return 0
        with self._database.session(conn) as session:
            cursor = session.execute(
                f"""
                DELETE FROM SeatBookings
                WHERE request_id = ? AND lab_id = ? AND floor_id = ? AND status = ?
                  AND seat_number IN ({_placeholders(seat_numbers)});
                """,
                (
                    request_id,
                    lab_id,
                    floor_id,
                    BookingStatus.PENDING.value,
                    *seat_numbers,
                ),
            )
            return int(cursor.rowcount)

    def query_active_by_lab(
        self,
        lab_id: int,
        floor_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[SeatBooking]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM SeatBookings
                WHERE lab_id = ? AND floor_id = ?
                  AND status IN ({_placeholders(ACTIVE_BOOKING_STATUSES)})
                ORDER BY seat_number ASC;
                """,
                (lab_id, floor_id, *ACTIVE_BOOKING_STATUSES),
            ).fetchall()
        return [_to_booking(row) for row in rows]

    def list_by_request(
        self,
        request_id: int,
        statuses: Optional[Sequence[BookingStatus]] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[SeatBooking]:
        params: list[object] = [request_id]
        status_clause = ""
        if statuses:
            status_values = [status.value for status in statuses]
            status_clause = f"AND status IN ({_placeholders(status_values)})"
            params.extend(status_values)
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM SeatBookings
                WHERE request_id = ? {status_clause}
                ORDER BY lab_id ASC, seat_number ASC;
                """,
                params,
            ).fetchall()
        return [_to_booking(row) for row in rows]

    def list_active(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[SeatBooking]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM SeatBookings
                WHERE status IN ({_placeholders(ACTIVE_BOOKING_STATUSES)})
                ORDER BY lab_id ASC, seat_number ASC;
                """,
                ACTIVE_BOOKING_STATUSES,
            ).fetchall()
        return [_to_booking(row) for row in rows]
