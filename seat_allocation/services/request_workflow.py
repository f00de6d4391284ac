"""Request lifecycle: submission, approval and rejection."""

from __future__ import annotations

import sqlite3
from collections import Counter
from typing import Optional, Sequence

from seat_allocation.domain.constraints import (
    validate_allocation_date,
    validate_positive_count,
    validate_required_text,
    validate_seat_numbers,
)
from seat_allocation.domain.exceptions import (
    LabNotProvisioned,
    NotFound,
    StaleState,
    ValidationError,
)
from seat_allocation.domain.models import (
    BookingStatus,
    InboxMessage,
    NotificationPayload,
    RequestStatus,
    SeatBooking,
    UsageKey,
    WorkflowOutcome,
    WorkstationRequest,
)
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.database import Database
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger
from seat_allocation.services.notification_service import (
    APPROVED_EVENT,
    NEW_REQUEST_EVENT,
    REJECTED_EVENT,
    NotificationService,
)
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

OPEN_STATUSES = (RequestStatus.PENDING, RequestStatus.PARTIALLY_ALLOCATED)


class RequestWorkflowService:
    """State machine driving a request from pending to approved or rejected.

    pending -> approved | rejected | partially_allocated
    partially_allocated -> approved | rejected | partially_allocated
    """

    def __init__(
        self,
        database: Database,
        capacity_store: CapacityStore,
        ledger: SeatBookingLedger,
        repository: RequestRepository,
        notification_service: NotificationService,
    ) -> None:
        self._database = database
        self._capacity_store = capacity_store
        self._ledger = ledger
        self._repository = repository
        self._notifications = notification_service

    def get_request(self, request_id: int) -> WorkstationRequest:
        return self._repository.require_request(request_id)

    def list_requests(self, status: Optional[RequestStatus] = None) -> list[WorkstationRequest]:
        return self._repository.list_requests(status)

    def list_bookings(self, request_id: int) -> list[SeatBooking]:
        self._repository.require_request(request_id)
        return self._ledger.list_by_request(request_id)

    def submit_request(
        self,
        *,
        requestor_id: int,
        division: str,
        num_workstations: int,
        seats: Sequence[int] = (),
        lab_id: Optional[int] = None,
        location: str = "",
        floor_name: str = "",
        justification: str = "",
        remarks: str = "",
        requested_allocation_date: Optional[str] = None,
    ) -> WorkstationRequest:
        """Create a pending request; explicit seats are booked as pending at once."""
        division = validate_required_text(division, "division")
        validate_positive_count(num_workstations, "num_workstations")
        validate_allocation_date(requested_allocation_date)
        seat_numbers = validate_seat_numbers(seats)
        if seat_numbers and lab_id is None:
            raise ValidationError("lab_id is required when seats are pre-selected")
        if len(seat_numbers) > num_workstations:
            raise ValidationError(
                f"{len(seat_numbers)} seats selected but only {num_workstations} requested"
            )

        with self._database.transaction() as conn:
            requestor = self._repository.get_employee(requestor_id, conn=conn)
            if requestor is None:
                raise NotFound(f"employee {requestor_id} does not exist")

            lab = None
            if lab_id is not None:
                lab = self._capacity_store.get_lab_allocation_by_id(lab_id, conn=conn)
                if lab is None:
                    raise LabNotProvisioned(f"lab {lab_id} has no capacity record")
                floor = self._repository.get_floor(lab.floor_id, conn=conn)
                if floor is not None:
                    location = location or floor.office_name
                    floor_name = floor_name or floor.floor_name

            request = self._repository.create_request(
                requestor_id=requestor.employee_id,
                requestor_name=requestor.name,
                division=division,
                num_workstations=num_workstations,
                seats=seat_numbers,
                lab_id=lab.lab_id if lab else None,
                floor_id=lab.floor_id if lab else None,
                lab_name=lab.lab_name if lab else "",
                location=location,
                floor_name=floor_name,
                justification=justification,
                remarks=remarks,
                requested_allocation_date=requested_allocation_date,
                conn=conn,
            )
            if seat_numbers and lab is not None:
                self._ledger.create_bookings(
                    request_id=request.request_id,
                    lab_id=lab.lab_id,
                    floor_id=lab.floor_id,
                    lab_name=lab.lab_name,
                    seat_numbers=seat_numbers,
                    division=division,
                    conn=conn,
                )
            admins = self._repository.list_employees_by_role("Admin", conn=conn)

        logger.info(
            "Request %s submitted by %s for %s workstations (%s pre-selected)",
            request.request_number,
            requestor.name,
            num_workstations,
            len(seat_numbers),
        )
        self._notifications.dispatch(
            WorkflowOutcome(
                request=request,
                bookings_changed=len(seat_numbers),
                notification=NotificationPayload(
                    event=NEW_REQUEST_EVENT,
                    request_number=request.request_number,
                    requestor_email=requestor.email,
                    division=request.division,
                    num_workstations=request.num_workstations,
                    location=request.location or "Unknown Location",
                    floor=request.floor_name or "Unknown Floor",
                    lab_name=request.lab_name or None,
                ),
                inbox=tuple(
                    InboxMessage(
                        employee_id=admin.employee_id,
                        request_id=request.request_id,
                        title="New Workstation Request",
                        message=(
                            f"{requestor.name} has submitted a request for "
                            f"{num_workstations} workstations"
                        ),
                    )
                    for admin in admins
                ),
            )
        )
        return request

    def approve(
        self,
        request_id: int,
        approver_id: int,
        notes: Optional[str] = None,
        labs_already_updated: bool = False,
        conn: Optional[sqlite3.Connection] = None,
    ) -> WorkflowOutcome:
        """Approve a request and cascade approval to its pending bookings.

        With ``labs_already_updated`` the caller has applied the capacity
        deltas itself and only statuses flip here. When ``conn`` is given the
        caller owns the transaction and must dispatch the returned outcome
        after commit.
        """
        if conn is not None:
            return self._approve(conn, request_id, approver_id, notes, labs_already_updated)

        with self._database.transaction() as own:
            outcome = self._approve(own, request_id, approver_id, notes, labs_already_updated)
        self._notifications.dispatch(outcome)
        return outcome

    def _approve(
        self,
        conn: sqlite3.Connection,
        request_id: int,
        approver_id: int,
        notes: Optional[str],
        labs_already_updated: bool,
    ) -> WorkflowOutcome:
        request = self._repository.require_request(request_id, conn=conn)
        if request.status.is_terminal:
            raise StaleState(
                f"request {request.request_number} is already {request.status.value}"
            )
        if self._repository.get_employee(approver_id, conn=conn) is None:
            raise NotFound(f"approver {approver_id} does not exist")

        pending = self._ledger.list_by_request(
            request_id, [BookingStatus.PENDING], conn=conn
        )
        if not labs_already_updated:
            self._apply_capacity_for(request, pending, conn)

        approved = self._ledger.approve_by_request(request_id, notes, conn=conn)
        if not self._repository.update_request_status(
            request_id,
            RequestStatus.APPROVED,
            expected=OPEN_STATUSES,
            admin_notes=notes,
            approved_by=approver_id,
            conn=conn,
        ):
            raise StaleState(f"request {request.request_number} changed concurrently")

        updated = self._repository.require_request(request_id, conn=conn)
        logger.info(
            "Request %s approved by %s; %s bookings approved",
            updated.request_number,
            approver_id,
            approved,
        )

        requestor = self._repository.get_employee(updated.requestor_id, conn=conn)
        technicians = self._repository.list_employees_by_role("Technical", conn=conn)
        location, floor, lab_name = self._describe_location(updated, pending, conn)
        inbox = [
            InboxMessage(
                employee_id=updated.requestor_id,
                request_id=request_id,
                title="Request Approved",
                message=f"Your workstation request {updated.request_number} has been approved",
                message_type="success",
            )
        ]
        inbox.extend(
            InboxMessage(
                employee_id=tech.employee_id,
                request_id=request_id,
                title="New Assignment",
                message=f"Request {updated.request_number} has been approved and needs setup",
            )
            for tech in technicians
        )
        return WorkflowOutcome(
            request=updated,
            bookings_changed=approved,
            notification=NotificationPayload(
                event=APPROVED_EVENT,
                request_number=updated.request_number,
                requestor_email=requestor.email if requestor else "",
                division=updated.division,
                num_workstations=updated.num_workstations,
                location=location,
                floor=floor,
                lab_name=lab_name,
                approval_notes=notes,
            ),
            inbox=tuple(inbox),
        )

    def _apply_capacity_for(
        self,
        request: WorkstationRequest,
        pending: list[SeatBooking],
        conn: sqlite3.Connection,
    ) -> None:
        """Quick-approval path: derive usage increments from the request itself."""
        if pending:
            counts = Counter(
                UsageKey(
                    floor_id=booking.floor_id,
                    lab_name=booking.lab_name,
                    division=booking.division,
                )
                for booking in pending
            )
            for key, count in counts.items():
                self._capacity_store.upsert_division_usage(key, count, conn=conn)
            return

        if request.floor_id is None or not request.lab_name:
            raise ValidationError(
                f"request {request.request_number} has no seats or target lab; "
                "use final allocation to assign labs"
            )
        self._capacity_store.upsert_division_usage(
            UsageKey(
                floor_id=request.floor_id,
                lab_name=request.lab_name,
                division=request.division,
            ),
            request.num_workstations,
            conn=conn,
        )

    def reject(self, request_id: int, reason: str) -> WorkflowOutcome:
        """Reject a request and its active bookings; capacity is never touched.

        Rejecting an already rejected request is a no-op. Rejecting an
        approved request raises StaleState.
        """
        reason = validate_required_text(reason, "reason")
        with self._database.transaction() as conn:
            request = self._repository.require_request(request_id, conn=conn)
            if request.status == RequestStatus.REJECTED:
                logger.info("Request %s already rejected; nothing to do", request.request_number)
                return WorkflowOutcome(request=request, bookings_changed=0)
            if request.status == RequestStatus.APPROVED:
                raise StaleState(f"request {request.request_number} is already approved")

            bookings = self._ledger.list_by_request(request_id, conn=conn)
            rejected = self._ledger.reject_by_request(request_id, reason, conn=conn)
            if not self._repository.update_request_status(
                request_id,
                RequestStatus.REJECTED,
                expected=OPEN_STATUSES,
                admin_notes=reason,
                conn=conn,
            ):
                raise StaleState(f"request {request.request_number} changed concurrently")
            updated = self._repository.require_request(request_id, conn=conn)
            requestor = self._repository.get_employee(updated.requestor_id, conn=conn)
            location, floor, lab_name = self._describe_location(updated, bookings, conn)

        logger.info(
            "Request %s rejected; %s bookings released",
            updated.request_number,
            rejected,
        )
        outcome = WorkflowOutcome(
            request=updated,
            bookings_changed=rejected,
            notification=NotificationPayload(
                event=REJECTED_EVENT,
                request_number=updated.request_number,
                requestor_email=requestor.email if requestor else "",
                division=updated.division,
                num_workstations=updated.num_workstations,
                location=location,
                floor=floor,
                lab_name=lab_name,
                rejection_reason=reason,
            ),
            inbox=(
                InboxMessage(
                    employee_id=updated.requestor_id,
                    request_id=request_id,
                    title="Request Rejected",
                    message=(
                        f"Your workstation request {updated.request_number} has been "
                        f"rejected. Reason: {reason}"
                    ),
                    message_type="error",
                ),
            ),
        )
        self._notifications.dispatch(outcome)
        return outcome

    def mark_partially_allocated(
        self,
        request_id: int,
        conn: sqlite3.Connection,
    ) -> WorkstationRequest:
        request = self._repository.require_request(request_id, conn=conn)
        if not self._repository.update_request_status(
            request_id,
            RequestStatus.PARTIALLY_ALLOCATED,
            expected=OPEN_STATUSES,
            conn=conn,
        ):
            raise StaleState(
                f"request {request.request_number} is already {request.status.value}"
            )
        return self._repository.require_request(request_id, conn=conn)

    def _describe_location(
        self,
        request: WorkstationRequest,
        bookings: list[SeatBooking],
        conn: sqlite3.Connection,
    ) -> tuple[str, str, Optional[str]]:
        """Prefer the floors and labs actually booked over the requested ones."""
        locations: list[str] = []
        floors: list[str] = []
        labs: list[str] = []
        for floor_id in dict.fromkeys(booking.floor_id for booking in bookings):
            floor = self._repository.get_floor(floor_id, conn=conn)
            if floor is None:
                continue
            if floor.floor_name not in floors:
                floors.append(floor.floor_name)
            if floor.office_name not in locations:
                locations.append(floor.office_name)
        for booking in bookings:
            if booking.lab_name not in labs:
                labs.append(booking.lab_name)

        location = ", ".join(locations) or request.location or "Unknown Location"
        floor_name = ", ".join(floors) or request.floor_name or "Unknown Floor"
        lab_name = ", ".join(labs) or request.lab_name or None
        return location, floor_name, lab_name
