"""Lab capacity and per-division usage records."""

from __future__ import annotations

import sqlite3
from typing import Optional

from seat_allocation.domain.asset_ranges import merge_asset_id_ranges
from seat_allocation.domain.constraints import (
    validate_capacity,
    validate_positive_count,
    validate_required_text,
)
from seat_allocation.domain.exceptions import (
    CapacityExceeded,
    LabNotProvisioned,
    NotFound,
    ValidationError,
)
from seat_allocation.domain.models import DivisionUsage, LabAllocation, UsageKey
from seat_allocation.repository.database import Database
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)


def _to_lab(row: sqlite3.Row) -> LabAllocation:
    return LabAllocation(
        lab_id=int(row["id"]),
        floor_id=int(row["floor_id"]),
        lab_name=str(row["lab_name"]),
        total_workstations=int(row["total_workstations"]),
    )


def _to_usage(row: sqlite3.Row) -> DivisionUsage:
    return DivisionUsage(
        usage_id=int(row["id"]),
        floor_id=int(row["floor_id"]),
        lab_name=str(row["lab_name"]),
        division=str(row["division"]),
        in_use=int(row["in_use"]),
        asset_id_range=str(row["asset_id_range"]),
    )


class CapacityStore:
    """Persists lab capacity and division usage; never lets usage exceed capacity.

    Every method takes an optional open connection so several calls can share
    one transaction. Without one, writes run in their own transaction.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def create_lab_allocation(
        self,
        floor_id: int,
        lab_name: str,
        total_workstations: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> LabAllocation:
        name = validate_required_text(lab_name, "lab_name")
        validate_capacity(total_workstations)
        with self._database.session(conn) as session:
            if self.get_lab_allocation(floor_id, name, conn=session) is not None:
                raise ValidationError(
                    f"lab '{name}' already exists on floor {floor_id}"
                )
            cursor = session.execute(
                """
                INSERT INTO LabAllocations (floor_id, lab_name, total_workstations)
                VALUES (?, ?, ?);
                """,
                (floor_id, name, total_workstations),
            )
            lab_id = int(cursor.lastrowid)
        logger.info(
            "Provisioned lab %s on floor %s with %s workstations",
            name,
            floor_id,
            total_workstations,
        )
        return LabAllocation(
            lab_id=lab_id,
            floor_id=floor_id,
            lab_name=name,
            total_workstations=total_workstations,
        )

    def update_lab_capacity(
        self,
        lab_id: int,
        total_workstations: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> LabAllocation:
        validate_capacity(total_workstations)
        with self._database.session(conn) as session:
            lab = self.get_lab_allocation_by_id(lab_id, conn=session)
            if lab is None:
                raise NotFound(f"lab {lab_id} does not exist")
            in_use = self.lab_in_use(lab.floor_id, lab.lab_name, conn=session)
            if total_workstations < in_use:
                raise CapacityExceeded(
                    f"lab '{lab.lab_name}' has {in_use} seats in use; "
                    f"capacity cannot drop to {total_workstations}"
                )
            session.execute(
                "UPDATE LabAllocations SET total_workstations = ? WHERE id = ?;",
                (total_workstations, lab_id),
            )
        return LabAllocation(
            lab_id=lab.lab_id,
            floor_id=lab.floor_id,
            lab_name=lab.lab_name,
            total_workstations=total_workstations,
        )

    def get_lab_allocation(
        self,
        floor_id: int,
        lab_name: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[LabAllocation]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                """
                SELECT id, floor_id, lab_name, total_workstations
                FROM LabAllocations
                WHERE floor_id = ? AND lab_name = ?;
                """,
                (floor_id, lab_name),
            ).fetchone()
        return None if row is None else _to_lab(row)

    def get_lab_allocation_by_id(
        self,
        lab_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[LabAllocation]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                """
                SELECT id, floor_id, lab_name, total_workstations
                FROM LabAllocations
                WHERE id = ?;
                """,
                (lab_id,),
            ).fetchone()
        return None if row is None else _to_lab(row)

    def list_lab_allocations(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[LabAllocation]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                """
                SELECT id, floor_id, lab_name, total_workstations
                FROM LabAllocations
                ORDER BY floor_id ASC, lab_name ASC;
                """
            ).fetchall()
        return [_to_lab(row) for row in rows]

    def get_division_usages(
        self,
        floor_id: int,
        lab_name: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[DivisionUsage]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                """
                SELECT id, floor_id, lab_name, division, in_use, asset_id_range
                FROM DivisionUsages
                WHERE floor_id = ? AND lab_name = ?
                ORDER BY division ASC;
                """,
                (floor_id, lab_name),
            ).fetchall()
        return [_to_usage(row) for row in rows]

    def get_division_usage(
        self,
        key: UsageKey,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[DivisionUsage]:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                """
                SELECT id, floor_id, lab_name, division, in_use, asset_id_range
                FROM DivisionUsages
                WHERE floor_id = ? AND lab_name = ? AND division = ?;
                """,
                (key.floor_id, key.lab_name, key.division),
            ).fetchone()
        return None if row is None else _to_usage(row)

    def list_division_usages(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[DivisionUsage]:
        with self._database.reader(conn) as reader:
            rows = reader.execute(
                """
                SELECT id, floor_id, lab_name, division, in_use, asset_id_range
                FROM DivisionUsages
                ORDER BY floor_id ASC, lab_name ASC, division ASC;
                """
            ).fetchall()
        return [_to_usage(row) for row in rows]

    def lab_in_use(
        self,
        floor_id: int,
        lab_name: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        with self._database.reader(conn) as reader:
            row = reader.execute(
                """
                SELECT COALESCE(SUM(in_use), 0) AS in_use
                FROM DivisionUsages
                WHERE floor_id = ? AND lab_name = ?;
                """,
                (floor_id, lab_name),
            ).fetchone()
        return int(row["in_use"])

    def upsert_division_usage(
        self,
        key: UsageKey,
        seat_delta: int,
        asset_id_range_append: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> DivisionUsage:
        """Add ``seat_delta`` seats to a division's usage of a lab.

        The increment is one conditional UPDATE (or INSERT) whose WHERE clause
        re-checks the lab total, so concurrent writers cannot lose increments
        or overshoot capacity. Nothing is written when the check fails.
        """
        validate_positive_count(seat_delta, "seat_delta")
        division = validate_required_text(key.division, "division")
        key = UsageKey(floor_id=key.floor_id, lab_name=key.lab_name, division=division)

        with self._database.session(conn) as session:
            lab = self.get_lab_allocation(key.floor_id, key.lab_name, conn=session)
            if lab is None:
                raise LabNotProvisioned(
                    f"lab '{key.lab_name}' on floor {key.floor_id} has no capacity record"
                )

            existing = self.get_division_usage(key, conn=session)
            if existing is not None:
                cursor = session.execute(
                    """
                    UPDATE DivisionUsages
                    SET in_use = in_use + ?,
                        asset_id_range = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                      AND (
                        SELECT COALESCE(SUM(in_use), 0)
                        FROM DivisionUsages
                        WHERE floor_id = ? AND lab_name = ?
                      ) + ? <= ?;
                    """,
                    (
                        seat_delta,
                        merge_asset_id_ranges(existing.asset_id_range, asset_id_range_append),
                        existing.usage_id,
                        key.floor_id,
                        key.lab_name,
                        seat_delta,
                        lab.total_workstations,
                    ),
                )
            else:
                cursor = session.execute(
                    """
                    INSERT INTO DivisionUsages (floor_id, lab_name, division, in_use, asset_id_range)
                    SELECT ?, ?, ?, ?, ?
                    WHERE (
                        SELECT COALESCE(SUM(in_use), 0)
                        FROM DivisionUsages
                        WHERE floor_id = ? AND lab_name = ?
                    ) + ? <= ?;
                    """,
                    (
                        key.floor_id,
                        key.lab_name,
                        key.division,
                        seat_delta,
                        merge_asset_id_ranges(asset_id_range_append),
                        key.floor_id,
                        key.lab_name,
                        seat_delta,
                        lab.total_workstations,
                    ),
                )

            if cursor.rowcount == 0:
                in_use = self.lab_in_use(key.floor_id, key.lab_name, conn=session)
                raise CapacityExceeded(
                    f"lab '{key.lab_name}' has {lab.total_workstations - in_use} free "
                    f"workstations; cannot allocate {seat_delta} to {key.division}"
                )

            updated = self.get_division_usage(key, conn=session)

        logger.info(
            "Division %s now uses %s seats in lab %s (floor %s)",
            key.division,
            updated.in_use,
            key.lab_name,
            key.floor_id,
        )
        return updated
