"""Domain-level validation rules for requests and allocations."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from seat_allocation.domain.exceptions import ValidationError
from seat_allocation.domain.models import Allocation


def validate_required_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def validate_positive_count(value: int, field_name: str) -> None:
    if value <= 0:
        raise ValidationError(f"{field_name} must be > 0")


def validate_capacity(total_workstations: int) -> None:
    if total_workstations < 0:
        raise ValidationError("total_workstations must be >= 0")


def validate_seat_numbers(seat_numbers: Iterable[int]) -> tuple[int, ...]:
    seats = tuple(int(seat) for seat in seat_numbers)
    for seat in seats:
        if seat <= 0:
            raise ValidationError("seat numbers must be positive integers")
    duplicates = sorted({seat for seat in seats if seats.count(seat) > 1})
    if duplicates:
        raise ValidationError(
            f"seat numbers must be unique; duplicated: {', '.join(map(str, duplicates))}"
        )
    return seats


def validate_allocation_date(value: Optional[str]) -> None:
    if value is None:
        return
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise ValidationError("requested_allocation_date must follow YYYY-MM-DD format") from exc


def validate_allocations(
    allocations: list[Allocation],
    num_workstations: int,
) -> int:
    """Check an admin allocation list and return its total seat count."""
    if not allocations:
        raise ValidationError("at least one allocation is required")

    total = 0
    for allocation in allocations:
        validate_required_text(allocation.lab_name, "lab_name")
        validate_required_text(allocation.division, "division")
        seats = validate_seat_numbers(allocation.seats)
        if not seats:
            raise ValidationError(
                f"allocation for lab '{allocation.lab_name}' must contain at least one seat"
            )
        total += len(seats)

    if total > num_workstations:
        raise ValidationError(
            f"cannot allocate {total} seats; request asks for {num_workstations}"
        )
    return total
