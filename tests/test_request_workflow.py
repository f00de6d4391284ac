from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

import pytest

from seat_allocation.domain.exceptions import (
    CapacityExceeded,
    LabNotProvisioned,
    NotFound,
    SeatConflict,
    StaleState,
    ValidationError,
)
from seat_allocation.domain.models import BookingStatus, RequestStatus, UsageKey
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.database import Database
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger
from seat_allocation.services.notification_service import NotificationService
from seat_allocation.services.request_workflow import RequestWorkflowService
from seat_allocation.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
        notification_webhook_url=None,
        notification_override_recipient=None,
        notification_admin_recipients=(),
    )


def _build_workflow(tmp_path, filename: str) -> SimpleNamespace:
    settings = _build_test_settings(tmp_path, filename)
    database = Database(settings)
    database.initialize_database()
    store = CapacityStore(database)
    ledger = SeatBookingLedger(database)
    repository = RequestRepository(database, settings)
    workflow = RequestWorkflowService(
        database=database,
        capacity_store=store,
        ledger=ledger,
        repository=repository,
        notification_service=NotificationService(repository, settings),
    )

    office = repository.find_or_create_office("Head Office", "Bengaluru")
    floor = repository.find_or_create_floor(office.office_id, "F9")
    lab = store.create_lab_allocation(floor.floor_id, "Aero1", 50)
    return SimpleNamespace(
        database=database,
        workflow=workflow,
        store=store,
        ledger=ledger,
        repository=repository,
        lab=lab,
        admin=repository.create_employee("ADM001", "Facilities Admin", "admin@example.com", "Admin"),
        manager=repository.create_employee("MGR001", "Structures Manager", "mgr@example.com", "Manager"),
        other_manager=repository.create_employee("MGR002", "Systems Manager", "sys@example.com", "Manager"),
        technician=repository.create_employee("TEC001", "Desk Support", "desk@example.com", "Technical"),
    )


def test_submit_with_seats_books_them_as_pending(tmp_path):
    ctx = _build_workflow(tmp_path, "submit.db")

    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=3,
        seats=[1, 2, 3],
        lab_id=ctx.lab.lab_id,
        requested_allocation_date="2026-03-01",
    )

    assert request.status == RequestStatus.PENDING
    assert request.request_number.startswith("REQ-")
    assert request.seats == (1, 2, 3)
    assert request.location == "Head Office"
    assert request.floor_name == "F9"
    bookings = ctx.workflow.list_bookings(request.request_id)
    assert [booking.status for booking in bookings] == [BookingStatus.PENDING] * 3
    assert ctx.store.lab_in_use(ctx.lab.floor_id, "Aero1") == 0

    admin_inbox = ctx.repository.list_notifications(ctx.admin.employee_id)
    assert [message.title for message in admin_inbox] == ["New Workstation Request"]


def test_submit_validates_input(tmp_path):
    ctx = _build_workflow(tmp_path, "submit_invalid.db")

    with pytest.raises(ValidationError):
        ctx.workflow.submit_request(
            requestor_id=ctx.manager.employee_id,
            division="Structures",
            num_workstations=2,
            seats=[1, 2],
        )
    with pytest.raises(ValidationError):
        ctx.workflow.submit_request(
            requestor_id=ctx.manager.employee_id,
            division="Structures",
            num_workstations=1,
            seats=[1, 2],
            lab_id=ctx.lab.lab_id,
        )
    with pytest.raises(NotFound):
        ctx.workflow.submit_request(
            requestor_id=999,
            division="Structures",
            num_workstations=1,
        )
    with pytest.raises(LabNotProvisioned):
        ctx.workflow.submit_request(
            requestor_id=ctx.manager.employee_id,
            division="Structures",
            num_workstations=1,
            seats=[1],
            lab_id=999,
        )
    assert ctx.workflow.list_requests() == []


def test_rejecting_a_request_releases_its_seats(tmp_path):
    ctx = _build_workflow(tmp_path, "reject_frees.db")
    first = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=2,
        seats=[1, 2],
        lab_id=ctx.lab.lab_id,
    )

    with pytest.raises(SeatConflict):
        ctx.workflow.submit_request(
            requestor_id=ctx.other_manager.employee_id,
            division="Systems",
            num_workstations=2,
            seats=[2, 3],
            lab_id=ctx.lab.lab_id,
        )
    assert len(ctx.workflow.list_requests()) == 1

    outcome = ctx.workflow.reject(first.request_id, "Budget freeze")

    assert outcome.request.status == RequestStatus.REJECTED
    assert outcome.request.admin_notes == "Budget freeze"
    assert outcome.bookings_changed == 2
    assert ctx.store.list_division_usages() == []

    second = ctx.workflow.submit_request(
        requestor_id=ctx.other_manager.employee_id,
        division="Systems",
        num_workstations=2,
        seats=[2, 3],
        lab_id=ctx.lab.lab_id,
    )
    assert [b.seat_number for b in ctx.workflow.list_bookings(second.request_id)] == [2, 3]

    inbox = ctx.repository.list_notifications(ctx.manager.employee_id)
    assert inbox[-1].title == "Request Rejected"
    assert "Budget freeze" in inbox[-1].message


def test_reject_twice_is_a_no_op(tmp_path):
    ctx = _build_workflow(tmp_path, "reject_twice.db")
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
    )
    ctx.workflow.reject(request.request_id, "Duplicate")

    again = ctx.workflow.reject(request.request_id, "Still duplicate")

    assert again.bookings_changed == 0
    assert again.request.status == RequestStatus.REJECTED
    assert again.request.admin_notes == "Duplicate"


def test_reject_requires_a_reason(tmp_path):
    ctx = _build_workflow(tmp_path, "reject_reason.db")
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
    )

    with pytest.raises(ValidationError):
        ctx.workflow.reject(request.request_id, "   ")
    assert ctx.workflow.get_request(request.request_id).status == RequestStatus.PENDING


def test_terminal_requests_cannot_transition_again(tmp_path):
    ctx = _build_workflow(tmp_path, "terminal.db")
    approved = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=2,
        seats=[1, 2],
        lab_id=ctx.lab.lab_id,
    )
    rejected = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
    )
    ctx.workflow.approve(approved.request_id, ctx.admin.employee_id)
    ctx.workflow.reject(rejected.request_id, "No budget")

    with pytest.raises(StaleState):
        ctx.workflow.approve(approved.request_id, ctx.admin.employee_id)
    with pytest.raises(StaleState):
        ctx.workflow.reject(approved.request_id, "Too late")
    with pytest.raises(StaleState):
        ctx.workflow.approve(rejected.request_id, ctx.admin.employee_id)
    assert ctx.store.lab_in_use(ctx.lab.floor_id, "Aero1") == 2


def test_quick_approve_applies_capacity_from_bookings(tmp_path):
    ctx = _build_workflow(tmp_path, "quick_approve.db")
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=3,
        seats=[10, 11, 12],
        lab_id=ctx.lab.lab_id,
    )

    outcome = ctx.workflow.approve(request.request_id, ctx.admin.employee_id, "Approved for Q2")

    assert outcome.request.status == RequestStatus.APPROVED
    assert outcome.request.approved_by == ctx.admin.employee_id
    assert outcome.bookings_changed == 3
    usage = ctx.store.get_division_usage(UsageKey(ctx.lab.floor_id, "Aero1", "Structures"))
    assert usage.in_use == 3
    bookings = ctx.workflow.list_bookings(request.request_id)
    assert {booking.status for booking in bookings} == {BookingStatus.APPROVED}

    assert ctx.repository.list_notifications(ctx.manager.employee_id)[-1].title == "Request Approved"
    assert [m.title for m in ctx.repository.list_notifications(ctx.technician.employee_id)] == [
        "New Assignment"
    ]


def test_quick_approve_uses_target_lab_when_no_seats_are_held(tmp_path):
    ctx = _build_workflow(tmp_path, "quick_target.db")
    with ctx.database.transaction() as conn:
        request = ctx.repository.create_request(
            requestor_id=ctx.manager.employee_id,
            requestor_name=ctx.manager.name,
            division="Structures",
            num_workstations=4,
            lab_id=ctx.lab.lab_id,
            floor_id=ctx.lab.floor_id,
            lab_name=ctx.lab.lab_name,
            conn=conn,
        )

    ctx.workflow.approve(request.request_id, ctx.admin.employee_id)

    assert ctx.store.lab_in_use(ctx.lab.floor_id, "Aero1") == 4


def test_quick_approve_without_seats_or_lab_is_refused(tmp_path):
    ctx = _build_workflow(tmp_path, "quick_no_lab.db")
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=4,
    )

    with pytest.raises(ValidationError):
        ctx.workflow.approve(request.request_id, ctx.admin.employee_id)
    assert ctx.workflow.get_request(request.request_id).status == RequestStatus.PENDING


def test_quick_approve_over_capacity_rolls_back(tmp_path):
    ctx = _build_workflow(tmp_path, "quick_full.db")
    ctx.store.upsert_division_usage(UsageKey(ctx.lab.floor_id, "Aero1", "Systems"), 49)
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=2,
        seats=[1, 2],
        lab_id=ctx.lab.lab_id,
    )

    with pytest.raises(CapacityExceeded):
        ctx.workflow.approve(request.request_id, ctx.admin.employee_id)

    assert ctx.workflow.get_request(request.request_id).status == RequestStatus.PENDING
    assert {b.status for b in ctx.workflow.list_bookings(request.request_id)} == {
        BookingStatus.PENDING
    }
    assert ctx.store.lab_in_use(ctx.lab.floor_id, "Aero1") == 49


def test_unknown_approver_is_refused(tmp_path):
    ctx = _build_workflow(tmp_path, "unknown_approver.db")
    request = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
        seats=[1],
        lab_id=ctx.lab.lab_id,
    )

    with pytest.raises(NotFound):
        ctx.workflow.approve(request.request_id, 999)


def test_list_requests_filters_by_status(tmp_path):
    ctx = _build_workflow(tmp_path, "list.db")
    kept = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
    )
    dropped = ctx.workflow.submit_request(
        requestor_id=ctx.manager.employee_id,
        division="Structures",
        num_workstations=1,
    )
    ctx.workflow.reject(dropped.request_id, "Duplicate")

    pending = ctx.workflow.list_requests(RequestStatus.PENDING)

    assert [item.request_id for item in pending] == [kept.request_id]
    assert kept.request_number != dropped.request_number
    with pytest.raises(NotFound):
        ctx.workflow.get_request(999)
