"""Read-only capacity roll-ups for dashboards.

Every call recomputes from the stores; there is no cached or incremental view.
"""

from __future__ import annotations

from typing import Any

import pandas as pd

from seat_allocation.domain.exceptions import NotFound
from seat_allocation.domain.models import BookingStatus, RequestStatus
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger


_LAB_COLUMNS = ["floor_id", "lab_name", "total", "office", "floor"]
_USAGE_COLUMNS = ["floor_id", "lab_name", "division", "in_use"]


class AggregationReporter:
    """Builds floor, division and office availability summaries."""

    def __init__(
        self,
        capacity_store: CapacityStore,
        ledger: SeatBookingLedger,
        repository: RequestRepository,
    ) -> None:
        self._capacity_store = capacity_store
        self._ledger = ledger
        self._repository = repository

    def _lab_frame(self) -> pd.DataFrame:
        """One row per lab with its total, summed usage and free seats."""
        floors = {floor.floor_id: floor for floor in self._repository.list_floors()}
        labs = pd.DataFrame(
            [
                {
                    "floor_id": lab.floor_id,
                    "lab_name": lab.lab_name,
                    "total": lab.total_workstations,
                    "office": floors[lab.floor_id].office_name if lab.floor_id in floors else "",
                    "floor": floors[lab.floor_id].floor_name if lab.floor_id in floors else "",
                }
                for lab in self._capacity_store.list_lab_allocations()
            ],
            columns=_LAB_COLUMNS,
        )
        if labs.empty:
            return labs.assign(in_use=0, available=0)

        usage = self._usage_frame()
        if usage.empty:
            frame = labs.assign(in_use=0)
        else:
            in_use = usage.groupby(["floor_id", "lab_name"], as_index=False)["in_use"].sum()
            frame = labs.merge(in_use, on=["floor_id", "lab_name"], how="left")
            frame["in_use"] = frame["in_use"].fillna(0).astype(int)
        frame["total"] = frame["total"].astype(int)
        frame["available"] = (frame["total"] - frame["in_use"]).clip(lower=0)
        return frame

    def _usage_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "floor_id": usage.floor_id,
                    "lab_name": usage.lab_name,
                    "division": usage.division,
                    "in_use": usage.in_use,
                }
                for usage in self._capacity_store.list_division_usages()
            ],
            columns=_USAGE_COLUMNS,
        )

    @staticmethod
    def _utilization(in_use: int, total: int) -> float:
        return float(in_use / total * 100.0) if total > 0 else 0.0

    def floor_rollup(self) -> list[dict[str, Any]]:
        frame = self._lab_frame()
        if frame.empty:
            return []
        grouped = (
            frame.groupby(["floor_id", "office", "floor"], as_index=False)[
                ["total", "in_use", "available"]
            ]
            .sum()
            .sort_values(["office", "floor"])
        )
        return [
            {
                "floor_id": int(row.floor_id),
                "office": str(row.office),
                "floor": str(row.floor),
                "total": int(row.total),
                "in_use": int(row.in_use),
                "available": int(row.available),
                "utilization": self._utilization(int(row.in_use), int(row.total)),
            }
            for row in grouped.itertuples(index=False)
        ]

    def office_rollup(self) -> list[dict[str, Any]]:
        frame = self._lab_frame()
        if frame.empty:
            return []
        grouped = (
            frame.groupby("office", as_index=False)[["total", "in_use", "available"]]
            .sum()
            .sort_values("office")
        )
        return [
            {
                "office": str(row.office),
                "total": int(row.total),
                "in_use": int(row.in_use),
                "available": int(row.available),
            }
            for row in grouped.itertuples(index=False)
        ]

    def division_rollup(self) -> list[dict[str, Any]]:
        usage = self._usage_frame()
        if usage.empty:
            return []
        labs = self._lab_frame()
        merged = usage.merge(
            labs[["floor_id", "lab_name", "office", "floor", "available"]],
            on=["floor_id", "lab_name"],
            how="left",
        )
        rollup: list[dict[str, Any]] = []
        for division, rows in merged.groupby("division", sort=True):
            floor_details = (
                rows.groupby(["office", "floor"], as_index=False)["in_use"]
                .sum()
                .sort_values(["office", "floor"])
            )
            rollup.append(
                {
                    "division": str(division),
                    "in_use": int(rows["in_use"].sum()),
                    "labs": sorted({str(name) for name in rows["lab_name"]}),
                    "floor_details": [
                        {
                            "office": str(detail.office),
                            "floor": str(detail.floor),
                            "in_use": int(detail.in_use),
                        }
                        for detail in floor_details.itertuples(index=False)
                    ],
                }
            )
        return rollup

    def lab_availability(self, lab_id: int) -> dict[str, Any]:
        lab = self._capacity_store.get_lab_allocation_by_id(lab_id)
        if lab is None:
            raise NotFound(f"lab {lab_id} does not exist")
        in_use = self._capacity_store.lab_in_use(lab.floor_id, lab.lab_name)
        active = self._ledger.query_active_by_lab(lab.lab_id, lab.floor_id)
        return {
            "lab_id": lab.lab_id,
            "floor_id": lab.floor_id,
            "lab_name": lab.lab_name,
            "total": lab.total_workstations,
            "in_use": in_use,
            "available": max(0, lab.total_workstations - in_use),
            "pending_seats": [
                booking.seat_number
                for booking in active
                if booking.status == BookingStatus.PENDING
            ],
            "approved_seats": [
                booking.seat_number
                for booking in active
                if booking.status == BookingStatus.APPROVED
            ],
        }

    def dashboard_summary(self) -> dict[str, Any]:
        frame = self._lab_frame()
        total = int(frame["total"].sum()) if not frame.empty else 0
        in_use = int(frame["in_use"].sum()) if not frame.empty else 0
        available = int(frame["available"].sum()) if not frame.empty else 0
        counts = self._repository.count_requests_by_status()
        return {
            "total_workstations": total,
            "occupied_workstations": in_use,
            "available_workstations": available,
            "pending_requests": counts.get(RequestStatus.PENDING.value, 0),
            "partially_allocated_requests": counts.get(
                RequestStatus.PARTIALLY_ALLOCATED.value, 0
            ),
            "utilization_rate": self._utilization(in_use, total),
        }
