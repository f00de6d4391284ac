"""Domain models for lab capacity, seat bookings and allocation requests."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_ALLOCATED = "partially_allocated"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.APPROVED, RequestStatus.REJECTED)


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.APPROVED.value)


@dataclass(frozen=True)
class Office:
    office_id: int
    office_name: str
    city: str


@dataclass(frozen=True)
class Floor:
    floor_id: int
    office_id: int
    floor_name: str
    office_name: str = ""


@dataclass(frozen=True)
class LabAllocation:
    """Fixed workstation capacity of one lab on one floor."""

    lab_id: int
    floor_id: int
    lab_name: str
    total_workstations: int


@dataclass(frozen=True)
class DivisionUsage:
    """Seats of a lab consumed by one division."""

    usage_id: int
    floor_id: int
    lab_name: str
    division: str
    in_use: int
    asset_id_range: str


@dataclass(frozen=True)
class UsageKey:
    floor_id: int
    lab_name: str
    division: str


@dataclass(frozen=True)
class SeatBooking:
    booking_id: int
    request_id: int
    lab_id: int
    floor_id: int
    lab_name: str
    seat_number: int
    division: str
    status: BookingStatus
    booking_date: str
    asset_id: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status.value in ACTIVE_BOOKING_STATUSES


@dataclass(frozen=True)
class Employee:
    employee_id: int
    employee_code: str
    name: str
    email: str
    role: str


@dataclass(frozen=True)
class WorkstationRequest:
    request_id: int
    request_number: str
    requestor_id: int
    requestor_name: str
    division: str
    num_workstations: int
    seats: tuple[int, ...]
    lab_id: Optional[int]
    floor_id: Optional[int]
    lab_name: str
    location: str
    floor_name: str
    justification: str
    remarks: str
    status: RequestStatus
    admin_notes: str
    approved_by: Optional[int]
    requested_allocation_date: Optional[str]
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["seats"] = list(self.seats)
        payload["status"] = self.status.value
        return payload


@dataclass(frozen=True)
class Allocation:
    """One admin allocation decision: a set of seats in one lab for one division."""

    lab_name: str
    lab_id: int
    floor_id: int
    division: str
    seats: tuple[int, ...]
    asset_id_range: Optional[str] = None


@dataclass
class AllocationGroup:
    floor_id: int
    lab_id: int
    lab_name: str
    division: str
    seats: list[int] = field(default_factory=list)
    asset_id_fragments: list[str] = field(default_factory=list)

    @property
    def seat_count(self) -> int:
        return len(self.seats)

    @property
    def key(self) -> UsageKey:
        return UsageKey(
            floor_id=self.floor_id,
            lab_name=self.lab_name,
            division=self.division,
        )


@dataclass(frozen=True)
class NotificationPayload:
    event: str
    request_number: str
    requestor_email: str
    division: str
    num_workstations: int
    location: str
    floor: str
    lab_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    approval_notes: Optional[str] = None
    recipients: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "requestNumber": self.request_number,
            "requestorEmail": self.requestor_email,
            "division": self.division,
            "numWorkstations": self.num_workstations,
            "location": self.location,
            "floor": self.floor,
            "labName": self.lab_name,
            "rejectionReason": self.rejection_reason,
            "approvalNotes": self.approval_notes,
            "recipients": list(self.recipients),
        }


@dataclass(frozen=True)
class InboxMessage:
    employee_id: int
    request_id: int
    title: str
    message: str
    message_type: str = "info"


@dataclass(frozen=True)
class WorkflowOutcome:
    """Result of a workflow transition plus the side effects owed after commit."""

    request: WorkstationRequest
    bookings_changed: int
    notification: Optional[NotificationPayload] = None
    inbox: tuple[InboxMessage, ...] = ()
