"""Requests, employees, office/floor lookups and the notification inbox."""

from __future__ import annotations

import sqlite3
import time
from typing import Iterable, Optional, Sequence

from seat_allocation.domain.exceptions import NotFound
from seat_allocation.domain.models import (
    Employee,
    Floor,
    InboxMessage,
    Office,
    RequestStatus,
    WorkstationRequest,
)
from seat_allocation.repository.database import Database
from seat_allocation.utils.config import Settings, get_settings
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)


def _encode_seats(seats: Sequence[int]) -> str:
    return ",".join(str(seat) for seat in seats)


def _decode_seats(raw: Optional[str]) -> tuple[int, ...]:
    if not raw:
        return ()
    return tuple(int(item) for item in raw.split(",") if item.strip())


def _to_request(row: sqlite3.Row) -> WorkstationRequest:
    return WorkstationRequest(
        request_id=int(row["id"]),
        request_number=str(row["request_number"]),
        requestor_id=int(row["requestor_id"]),
        requestor_name=str(row["requestor_name"]),
        division=str(row["division"]),
        num_workstations=int(row["num_workstations"]),
        seats=_decode_seats(row["seats"]),
        lab_id=None if row["lab_id"] is None else int(row["lab_id"]),
        floor_id=None if row["floor_id"] is None else int(row["floor_id"]),
        lab_name=str(row["lab_name"]),
        location=str(row["location"]),
        floor_name=str(row["floor_name"]),
        justification=str(row["justification"]),
        remarks=str(row["remarks"]),
        status=RequestStatus(row["status"]),
        admin_notes=str(row["admin_notes"]),
        approved_by=None if row["approved_by"] is None else int(row["approved_by"]),
        requested_allocation_date=row["requested_allocation_date"],
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _to_employee(row: sqlite3.Row) -> Employee:
    return Employee(
        employee_id=int(row["id"]),
        employee_code=str(row["employee_code"]),
        name=str(row["name"]),
        email=str(row["email"]),
        role=str(row["role"]),
    )


class RequestRepository:
    """Storage for workstation requests and the records they reference."""

    def __init__(self, database: Database, settings: Optional[Settings] = None) -> None:
        self._database = database
        self._settings = settings or get_settings()

    # Employees

    def create_employee(
        self,
        employee_code: str,
        name: str,
        email: str,
        role: str = "Employee",
    ) -> Employee:
        with self._database.session() as session:
            cursor = session.execute(
                """
                INSERT INTO Employees (employee_code, name, email, role)
                VALUES (?, ?, ?, ?);
                """,
                (employee_code, name, email, role),
            )
            employee_id = int(cursor.lastrowid)
        return Employee(
            employee_id=employee_id,
            employee_code=employee_code,
            name=name,
            email=email,
            role=role,
        )

    def get_employee(
        self,
        employee_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Employee]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                "SELECT id, employee_code, name, email, role FROM Employees WHERE id = ?;",
                (employee_id,),
            ).fetchone()
        return None if row is None else _to_employee(row)

    def list_employees_by_role(
        self,
        role: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Employee]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                """
                SELECT id, employee_code, name, email, role
                FROM Employees
                WHERE role = ?
                ORDER BY id ASC;
                """,
                (role,),
            ).fetchall()
        return [_to_employee(row) for row in rows]

    # Offices and floors

    def find_or_create_office(self, office_name: str, city: str = "") -> Office:
        with self._database.session() as session:
            row = session.execute(
                """
                SELECT id, office_name, city FROM Offices
                WHERE lower(office_name) = lower(?);
                """,
                (office_name.strip(),),
            ).fetchone()
            if row is not None:
                return Office(
                    office_id=int(row["id"]),
                    office_name=str(row["office_name"]),
                    city=str(row["city"]),
                )
            cursor = session.execute(
                "INSERT INTO Offices (office_name, city) VALUES (?, ?);",
                (office_name.strip(), city or office_name.strip()),
            )
            return Office(
                office_id=int(cursor.lastrowid),
                office_name=office_name.strip(),
                city=city or office_name.strip(),
            )

    def find_or_create_floor(self, office_id: int, floor_name: str) -> Floor:
        with self._database.session() as session:
            row = session.execute(
                """
                SELECT id, office_id, floor_name FROM Floors
                WHERE office_id = ? AND lower(floor_name) = lower(?);
                """,
                (office_id, floor_name.strip()),
            ).fetchone()
            if row is not None:
                floor_id = int(row["id"])
            else:
                floor_id = int(
                    session.execute(
                        "INSERT INTO Floors (office_id, floor_name) VALUES (?, ?);",
                        (office_id, floor_name.strip()),
                    ).lastrowid
                )
            floor = self.get_floor(floor_id, conn=session)
        return floor

    def get_floor(
        self,
        floor_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Floor]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                """
                SELECT f.id, f.office_id, f.floor_name, o.office_name
                FROM Floors AS f
                INNER JOIN Offices AS o ON o.id = f.office_id
                WHERE f.id = ?;
                """,
                (floor_id,),
            ).fetchone()
        if row is None:
            return None
        return Floor(
            floor_id=int(row["id"]),
            office_id=int(row["office_id"]),
            floor_name=str(row["floor_name"]),
            office_name=str(row["office_name"]),
        )

    def list_floors(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Floor]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                """
                SELECT f.id, f.office_id, f.floor_name, o.office_name
                FROM Floors AS f
                INNER JOIN Offices AS o ON o.id = f.office_id
                ORDER BY o.office_name ASC, f.floor_name ASC;
                """
            ).fetchall()
        return [
            Floor(
                floor_id=int(row["id"]),
                office_id=int(row["office_id"]),
                floor_name=str(row["floor_name"]),
                office_name=str(row["office_name"]),
            )
            for row in rows
        ]

    # Requests

    def _next_request_number(self, conn: sqlite3.Connection) -> str:
        stamp = int(time.time() * 1000)
        while True:
            candidate = f"{self._settings.request_number_prefix}-{stamp}"
            row = conn.execute(
                "SELECT 1 FROM Requests WHERE request_number = ?;",
                (candidate,),
            ).fetchone()
            if row is None:
                return candidate
            stamp += 1

    def create_request(
        self,
        *,
        requestor_id: int,
        requestor_name: str,
        division: str,
        num_workstations: int,
        seats: Sequence[int] = (),
        lab_id: Optional[int] = None,
        floor_id: Optional[int] = None,
        lab_name: str = "",
        location: str = "",
        floor_name: str = "",
        justification: str = "",
        remarks: str = "",
        requested_allocation_date: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WorkstationRequest:
        """Insert a pending request row and return it."""
        with self._database.session(conn) as session:
            request_number = self._next_request_number(session)
            cursor = session.execute(
                """
                INSERT INTO Requests (
                    request_number, requestor_id, requestor_name, division,
                    num_workstations, seats, lab_id, floor_id, lab_name,
                    location, floor_name, justification, remarks,
                    status, requested_allocation_date
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    request_number,
                    requestor_id,
                    requestor_name,
                    division,
                    num_workstations,
                    _encode_seats(seats),
                    lab_id,
                    floor_id,
                    lab_name,
                    location,
                    floor_name,
                    justification,
                    remarks,
                    RequestStatus.PENDING.value,
                    requested_allocation_date,
                ),
            )
            return self.require_request(int(cursor.lastrowid), conn=session)

    def get_request(
        self,
        request_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[WorkstationRequest]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                "SELECT * FROM Requests WHERE id = ?;",
                (request_id,),
            ).fetchone()
        return None if row is None else _to_request(row)

    def require_request(
        self,
        request_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WorkstationRequest:
        request = self.get_request(request_id, conn=conn)
        if request is None:
            raise NotFound(f"request {request_id} does not exist")
        return request

    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[WorkstationRequest]:
        with self._database.reader(conn) as reader:
            if status is None:
                rows = reader.execute(
                    "SELECT * FROM Requests ORDER BY created_at DESC, id DESC;"
                ).fetchall()
            else:
                rows = reader.execute(
                    """
                    SELECT * FROM Requests
                    WHERE status = ?
                    ORDER BY created_at DESC, id DESC;
                    """,
                    (status.value,),
                ).fetchall()
        return [_to_request(row) for row in rows]

    def count_requests_by_status(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> dict[str, int]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                "SELECT status, COUNT(*) AS count FROM Requests GROUP BY status;"
            ).fetchall()
        return {str(row["status"]): int(row["count"]) for row in rows}

    def update_request_status(
        self,
        request_id: int,
        status: RequestStatus,
        *,
        expected: Iterable[RequestStatus],
        admin_notes: Optional[str] = None,
        approved_by: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Compare-and-set the status; returns False when the row moved on."""
        expected_values = [item.value for item in expected]
        placeholders = ",".join("?" for _ in expected_values)
        with self._database.session(conn) as session:
            cursor = session.execute(
                f"""
                UPDATE Requests
                SET status = ?,
                    admin_notes = COALESCE(?, admin_notes),
                    approved_by = COALESCE(?, approved_by),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND status IN ({placeholders});
                """,
                (status.value, admin_notes, approved_by, request_id, *expected_values),
            )
            return cursor.rowcount == 1

    # Notification inbox

    def add_notifications(self, messages: Iterable[InboxMessage]) -> int:
        rows = [
            (
                message.employee_id,
                message.request_id,
                message.title,
                message.message,
                message.message_type,
            )
            for message in messages
        ]
        if not rows:
            return 0
        with self._database.session() as session:
            session.executemany(
                """
                INSERT INTO Notifications (employee_id, request_id, title, message, type)
                VALUES (?, ?, ?, ?, ?);
                """,
                rows,
            )
        return len(rows)

    def list_notifications(self, employee_id: int) -> list[InboxMessage]:
        with self._database.connection() as reader:
            rows = reader.execute(
                """
                SELECT employee_id, request_id, title, message, type
                FROM Notifications
                WHERE employee_id = ?
                ORDER BY id ASC;
                """,
                (employee_id,),
            ).fetchall()
        return [
            InboxMessage(
                employee_id=int(row["employee_id"]),
                request_id=int(row["request_id"]),
                title=str(row["title"]),
                message=str(row["message"]),
                message_type=str(row["type"]),
            )
            for row in rows
        ]
