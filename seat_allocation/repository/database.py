"""SQLite connection management, schema creation and demo seeding."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from seat_allocation.utils.config import Settings, get_settings
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)


_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS Offices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        office_name TEXT NOT NULL,
        city TEXT NOT NULL DEFAULT ''
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Floors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        office_id INTEGER NOT NULL,
        floor_name TEXT NOT NULL,
        FOREIGN KEY (office_id) REFERENCES Offices(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS LabAllocations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        floor_id INTEGER NOT NULL,
        lab_name TEXT NOT NULL,
        total_workstations INTEGER NOT NULL CHECK (total_workstations >= 0),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (floor_id, lab_name),
        FOREIGN KEY (floor_id) REFERENCES Floors(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS DivisionUsages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        floor_id INTEGER NOT NULL,
        lab_name TEXT NOT NULL,
        division TEXT NOT NULL CHECK (length(trim(division)) > 0),
        in_use INTEGER NOT NULL DEFAULT 0 CHECK (in_use >= 0),
        asset_id_range TEXT NOT NULL DEFAULT '',
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (floor_id, lab_name, division),
        FOREIGN KEY (floor_id, lab_name) REFERENCES LabAllocations(floor_id, lab_name)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Employees (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'Employee'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_number TEXT NOT NULL UNIQUE,
        requestor_id INTEGER NOT NULL,
        requestor_name TEXT NOT NULL,
        division TEXT NOT NULL,
        num_workstations INTEGER NOT NULL CHECK (num_workstations > 0),
        seats TEXT NOT NULL DEFAULT '',
        lab_id INTEGER,
        floor_id INTEGER,
        lab_name TEXT NOT NULL DEFAULT '',
        location TEXT NOT NULL DEFAULT '',
        floor_name TEXT NOT NULL DEFAULT '',
        justification TEXT NOT NULL DEFAULT '',
        remarks TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected', 'partially_allocated')),
        admin_notes TEXT NOT NULL DEFAULT '',
        approved_by INTEGER,
        requested_allocation_date TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (requestor_id) REFERENCES Employees(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS SeatBookings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id INTEGER NOT NULL,
        lab_id INTEGER NOT NULL,
        floor_id INTEGER NOT NULL,
        lab_name TEXT NOT NULL,
        seat_number INTEGER NOT NULL CHECK (seat_number > 0),
        division TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected')),
        asset_id TEXT,
        notes TEXT,
        booking_date DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (request_id) REFERENCES Requests(id),
        FOREIGN KEY (lab_id) REFERENCES LabAllocations(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS Notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id INTEGER NOT NULL,
        request_id INTEGER,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'info',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (employee_id) REFERENCES Employees(id)
    );
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_seat_bookings_active_seat
    ON SeatBookings(lab_id, floor_id, seat_number)
    WHERE status IN ('pending', 'approved');
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_seat_bookings_request
    ON SeatBookings(request_id, status);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_requests_status
    ON Requests(status);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_division_usages_lab
    ON DivisionUsages(floor_id, lab_name);
    """,
)


class Database:
    """Owns the SQLite file and hands out connections and transactions."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly in transaction().
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.database_busy_timeout_seconds,
            isolation_level=None,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield an autocommit connection for reads."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection holding the write lock; commit or roll back on exit."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def session(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's connection, or open a transaction of our own."""
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own

    @contextmanager
    def reader(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self.connection() as own:
            yield own

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self.transaction() as conn:
                for statement in _SCHEMA_STATEMENTS:
                    conn.execute(statement)
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed one office with two floors, labs and staff when tables are empty."""
        try:
            with self.transaction() as conn:
                row = conn.execute("SELECT COUNT(*) AS count FROM Offices;").fetchone()
                if int(row["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                office_id = conn.execute(
                    "INSERT INTO Offices (office_name, city) VALUES (?, ?);",
                    ("Head Office", "Bengaluru"),
                ).lastrowid
                floor_ids = []
                for floor_name in ("F9", "F10"):
                    floor_ids.append(
                        conn.execute(
                            "INSERT INTO Floors (office_id, floor_name) VALUES (?, ?);",
                            (office_id, floor_name),
                        ).lastrowid
                    )

                labs = [
                    (floor_ids[0], "Aero1", 50),
                    (floor_ids[0], "Aero2", 40),
                    (floor_ids[1], "Propulsion", 60),
                    (floor_ids[1], "Avionics", 30),
                ]
                conn.executemany(
                    """
                    INSERT INTO LabAllocations (floor_id, lab_name, total_workstations)
                    VALUES (?, ?, ?);
                    """,
                    labs,
                )

                employees = [
                    ("ADM001", "Facilities Admin", "admin@example.com", "Admin"),
                    ("MGR001", "Structures Manager", "structures.mgr@example.com", "Manager"),
                    ("MGR002", "Systems Manager", "systems.mgr@example.com", "Manager"),
                    ("TEC001", "Desk Support", "desk.support@example.com", "Technical"),
                ]
                conn.executemany(
                    """
                    INSERT INTO Employees (employee_code, name, email, role)
                    VALUES (?, ?, ?, ?);
                    """,
                    employees,
                )
            logger.info(
                "Demo seed completed with %s labs and %s employees",
                len(labs),
                len(employees),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc
