from __future__ import annotations

from dataclasses import replace

import pytest

from seat_allocation.domain.exceptions import SeatConflict, ValidationError
from seat_allocation.domain.models import BookingStatus
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.database import Database
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger
from seat_allocation.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
        notification_webhook_url=None,
    )


def _build_ledger(tmp_path, filename: str):
    settings = _build_test_settings(tmp_path, filename)
    database = Database(settings)
    database.initialize_database()
    repository = RequestRepository(database, settings)
    office = repository.find_or_create_office("Head Office", "Bengaluru")
    floor = repository.find_or_create_floor(office.office_id, "F9")
    lab = CapacityStore(database).create_lab_allocation(floor.floor_id, "Aero1", 50)
    manager = repository.create_employee("MGR001", "Structures Manager", "mgr@example.com", "Manager")
    return SeatBookingLedger(database), repository, lab, manager


def _new_request(repository: RequestRepository, manager, division: str = "Structures"):
    return repository.create_request(
        requestor_id=manager.employee_id,
        requestor_name=manager.name,
        division=division,
        num_workstations=5,
    )


def test_create_bookings_stores_pending_rows_with_asset_ids(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "create.db")
    request = _new_request(repository, manager)

    bookings = ledger.create_bookings(
        request_id=request.request_id,
        lab_id=lab.lab_id,
        floor_id=lab.floor_id,
        lab_name=lab.lab_name,
        seat_numbers=[4, 5],
        division="Structures",
        asset_ids=["112"],
    )

    assert [booking.seat_number for booking in bookings] == [4, 5]
    assert all(booking.status == BookingStatus.PENDING for booking in bookings)
    assert [booking.asset_id for booking in bookings] == ["112", None]


def test_second_active_booking_for_a_seat_is_refused(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "conflict.db")
    first = _new_request(repository, manager)
    second = _new_request(repository, manager, division="Systems")
    ledger.create_bookings(first.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [1, 2], "Structures")

    with pytest.raises(SeatConflict) as excinfo:
        ledger.create_bookings(second.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [2, 3], "Systems")

    assert excinfo.value.seat_numbers == (2,)
    active = ledger.query_active_by_lab(lab.lab_id, lab.floor_id)
    assert [(booking.request_id, booking.seat_number) for booking in active] == [
        (first.request_id, 1),
        (first.request_id, 2),
    ]


def test_rejecting_bookings_frees_the_seats(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "reject.db")
    first = _new_request(repository, manager)
    second = _new_request(repository, manager, division="Systems")
    ledger.create_bookings(first.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [7, 8], "Structures")

    assert ledger.reject_by_request(first.request_id, "not needed") == 2
    rebooked = ledger.create_bookings(
        second.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [7, 8], "Systems"
    )

    assert len(rebooked) == 2
    history = ledger.list_by_request(first.request_id, [BookingStatus.REJECTED])
    assert {booking.notes for booking in history} == {"not needed"}


def test_approve_only_touches_pending_rows(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "approve.db")
    request = _new_request(repository, manager)
    ledger.create_bookings(request.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [1, 2, 3], "Structures")

    assert ledger.approve_by_request(request.request_id, "go ahead") == 3
    assert ledger.approve_by_request(request.request_id) == 0
    approved = ledger.list_by_request(request.request_id, [BookingStatus.APPROVED])
    assert [booking.notes for booking in approved] == ["go ahead"] * 3


def test_retag_pending_moves_own_pending_rows(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "retag.db")
    first = _new_request(repository, manager)
    second = _new_request(repository, manager)
    ledger.create_bookings(
        first.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [1, 2], "Structures", ["11", "12"]
    )
    ledger.create_bookings(second.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [3], "Structures")

    changed = ledger.retag_pending(
        first.request_id, lab.lab_id, lab.floor_id, "Systems", {1: "201", 2: None, 3: "203"}
    )

    assert changed == 2
    rows = {(b.seat_number, b.division, b.asset_id) for b in ledger.list_active()}
    assert rows == {(1, "Systems", "201"), (2, "Systems", "12"), (3, "Structures", None)}
    assert ledger.retag_pending(first.request_id, lab.lab_id, lab.floor_id, "Systems", {}) == 0
    with pytest.raises(ValidationError):
        ledger.retag_pending(first.request_id, lab.lab_id, lab.floor_id, " ", {1: None})


def test_delete_pending_for_seats_only_removes_own_rows(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "delete.db")
    first = _new_request(repository, manager)
    second = _new_request(repository, manager, division="Systems")
    ledger.create_bookings(first.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [1, 2], "Structures")
    ledger.create_bookings(second.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [3], "Systems")

    removed = ledger.delete_pending_for_seats(second.request_id, lab.lab_id, lab.floor_id, [1, 2, 3])

    assert removed == 1
    assert [booking.seat_number for booking in ledger.list_active()] == [1, 2]


def test_invalid_seat_numbers_are_rejected(tmp_path):
    ledger, repository, lab, manager = _build_ledger(tmp_path, "invalid.db")
    request = _new_request(repository, manager)

    with pytest.raises(ValidationError):
        ledger.create_bookings(request.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [0], "Structures")
    with pytest.raises(ValidationError):
        ledger.create_bookings(request.request_id, lab.lab_id, lab.floor_id, lab.lab_name, [5, 5], "Structures")
