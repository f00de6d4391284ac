"""Admin allocation: incremental seat saves and the final all-or-nothing commit."""

from __future__ import annotations

import sqlite3
from collections import defaultdict
from itertools import islice
from typing import Iterable, Optional

from seat_allocation.domain.asset_ranges import iter_asset_ids, merge_asset_id_ranges
from seat_allocation.domain.constraints import (
    validate_allocations,
    validate_required_text,
    validate_seat_numbers,
)
from seat_allocation.domain.exceptions import LabNotProvisioned, StaleState, ValidationError
from seat_allocation.domain.models import (
    Allocation,
    AllocationGroup,
    BookingStatus,
    LabAllocation,
    WorkflowOutcome,
    WorkstationRequest,
)
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.database import Database
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger
from seat_allocation.services.notification_service import NotificationService
from seat_allocation.services.request_workflow import RequestWorkflowService
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)


def group_allocations(allocations: Iterable[Allocation]) -> list[AllocationGroup]:
    """Merge allocations that target the same lab for the same division.

    Seats are concatenated in input order and non-empty asset-ID fragments
    are kept for joining with ", ".
    """
    groups: dict[tuple[int, str, str], AllocationGroup] = {}
    for allocation in allocations:
        key = (allocation.floor_id, allocation.lab_name.strip(), allocation.division.strip())
        group = groups.get(key)
        if group is None:
            group = AllocationGroup(
                floor_id=allocation.floor_id,
                lab_id=allocation.lab_id,
                lab_name=key[1],
                division=key[2],
            )
            groups[key] = group
        group.seats.extend(allocation.seats)
        if allocation.asset_id_range and allocation.asset_id_range.strip():
            group.asset_id_fragments.append(allocation.asset_id_range.strip())
    return list(groups.values())


def _asset_ids_for_seats(asset_id_range: Optional[str], seat_count: int) -> list[Optional[str]]:
    """Pair asset IDs with seats by position; extra seats get none."""
    asset_ids: list[Optional[str]] = [
        str(item) for item in islice(iter_asset_ids(asset_id_range), seat_count)
    ]
    return asset_ids + [None] * (seat_count - len(asset_ids))


class AllocationEngine:
    """Turns admin allocation decisions into capacity usage and approved bookings."""

    def __init__(
        self,
        database: Database,
        capacity_store: CapacityStore,
        ledger: SeatBookingLedger,
        repository: RequestRepository,
        workflow: RequestWorkflowService,
        notification_service: NotificationService,
    ) -> None:
        self._database = database
        self._capacity_store = capacity_store
        self._ledger = ledger
        self._repository = repository
        self._workflow = workflow
        self._notifications = notification_service

    def _require_open(self, request: WorkstationRequest) -> None:
        if request.status.is_terminal:
            raise StaleState(
                f"request {request.request_number} is already {request.status.value}"
            )

    def _require_lab(
        self,
        allocation_lab_id: int,
        floor_id: int,
        lab_name: str,
        conn: sqlite3.Connection,
    ) -> LabAllocation:
        lab = self._capacity_store.get_lab_allocation(floor_id, lab_name, conn=conn)
        if lab is None:
            raise LabNotProvisioned(
                f"lab '{lab_name}' on floor {floor_id} has no capacity record"
            )
        if lab.lab_id != allocation_lab_id:
            raise ValidationError(
                f"lab id {allocation_lab_id} does not match lab '{lab_name}' on floor {floor_id}"
            )
        return lab

    def save_partial_allocation(
        self,
        request_id: int,
        allocation: Allocation,
    ) -> WorkstationRequest:
        """Persist one step of a manual multi-lab allocation as pending bookings.

        Capacity is untouched until the final allocation. Re-saving seats the
        request already holds in the lab replaces those rows.
        """
        validate_required_text(allocation.lab_name, "lab_name")
        validate_required_text(allocation.division, "division")
        seats = validate_seat_numbers(allocation.seats)
        if not seats:
            raise ValidationError("allocation must contain at least one seat")

        with self._database.transaction() as conn:
            request = self._repository.require_request(request_id, conn=conn)
            self._require_open(request)
            lab = self._require_lab(
                allocation.lab_id, allocation.floor_id, allocation.lab_name.strip(), conn
            )

            self._ledger.delete_pending_for_seats(
                request_id, lab.lab_id, lab.floor_id, seats, conn=conn
            )
            held = self._ledger.list_by_request(request_id, [BookingStatus.PENDING], conn=conn)
            remaining = request.num_workstations - len(held)
            if len(seats) > remaining:
                raise ValidationError(
                    f"cannot allocate {len(seats)} seats; only {remaining} remaining "
                    f"for request {request.request_number}"
                )

            self._ledger.create_bookings(
                request_id=request_id,
                lab_id=lab.lab_id,
                floor_id=lab.floor_id,
                lab_name=lab.lab_name,
                seat_numbers=seats,
                division=allocation.division.strip(),
                asset_ids=_asset_ids_for_seats(allocation.asset_id_range, len(seats)),
                conn=conn,
            )
            updated = self._workflow.mark_partially_allocated(request_id, conn)

        logger.info(
            "Saved %s seats in %s for request %s (%s of %s held)",
            len(seats),
            lab.lab_name,
            updated.request_number,
            len(held) + len(seats),
            updated.num_workstations,
        )
        return updated

    def finalize_allocation(
        self,
        request_id: int,
        approver_id: int,
        allocations: list[Allocation],
        notes: Optional[str] = None,
    ) -> WorkflowOutcome:
        """Commit every allocation group and approve the request in one transaction.

        A failure on any group (unprovisioned lab, full lab, seat conflict)
        rolls back all groups, all bookings created here and the status change.
        """
        with self._database.transaction() as conn:
            request = self._repository.require_request(request_id, conn=conn)
            self._require_open(request)
            total_seats = validate_allocations(allocations, request.num_workstations)
            groups = group_allocations(allocations)

            held = self._ledger.list_by_request(request_id, [BookingStatus.PENDING], conn=conn)
            held_seats = {(b.lab_id, b.floor_id, b.seat_number) for b in held}
            allocated_seats = {
                (group.lab_id, group.floor_id, seat) for group in groups for seat in group.seats
            }
            self._drop_unallocated(request_id, held_seats - allocated_seats, conn)

            for group in groups:
                validate_seat_numbers(group.seats)
                lab = self._require_lab(group.lab_id, group.floor_id, group.lab_name, conn)
                asset_id_range = merge_asset_id_ranges(*group.asset_id_fragments)
                self._capacity_store.upsert_division_usage(
                    group.key,
                    group.seat_count,
                    asset_id_range,
                    conn=conn,
                )
                seat_asset_ids = dict(
                    zip(group.seats, _asset_ids_for_seats(asset_id_range, group.seat_count))
                )
                held_here = {
                    seat: asset_id
                    for seat, asset_id in seat_asset_ids.items()
                    if (lab.lab_id, lab.floor_id, seat) in held_seats
                }
                self._ledger.retag_pending(
                    request_id,
                    lab.lab_id,
                    lab.floor_id,
                    group.division,
                    held_here,
                    conn=conn,
                )
                missing = [seat for seat in group.seats if seat not in held_here]
                if missing:
                    self._ledger.create_bookings(
                        request_id=request_id,
                        lab_id=lab.lab_id,
                        floor_id=lab.floor_id,
                        lab_name=lab.lab_name,
                        seat_numbers=missing,
                        division=group.division,
                        asset_ids=[seat_asset_ids[seat] for seat in missing],
                        conn=conn,
                    )

            outcome = self._workflow.approve(
                request_id,
                approver_id,
                notes,
                labs_already_updated=True,
                conn=conn,
            )

        logger.info(
            "Final allocation for %s committed: %s seats across %s lab group(s)",
            outcome.request.request_number,
            total_seats,
            len(groups),
        )
        self._notifications.dispatch(outcome)
        return outcome

    def _drop_unallocated(
        self,
        request_id: int,
        stale: set[tuple[int, int, int]],
        conn: sqlite3.Connection,
    ) -> None:
        """Remove held seats the admin left out of the final allocation."""
        by_lab: dict[tuple[int, int], list[int]] = defaultdict(list)
        for lab_id, floor_id, seat in stale:
            by_lab[(lab_id, floor_id)].append(seat)
        for (lab_id, floor_id), seats in by_lab.items():
            self._ledger.delete_pending_for_seats(
                request_id, lab_id, floor_id, sorted(seats), conn=conn
            )
