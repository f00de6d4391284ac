"""Failure taxonomy shared by the stores, workflow and allocation engine."""

from __future__ import annotations


class AllocationError(Exception):
    """Base class for every domain failure surfaced to callers."""


class ValidationError(AllocationError):
    """Raised on missing or invalid input, e.g. a non-positive seat count."""


class SeatConflict(AllocationError):
    """Raised when a target seat already holds a pending or approved booking."""

    def __init__(self, message: str, seat_numbers: tuple[int, ...] = ()) -> None:
        super().__init__(message)
        self.seat_numbers = seat_numbers


class LabNotProvisioned(AllocationError):
    """Raised when no capacity row exists for the target lab."""


class CapacityExceeded(AllocationError):
    """Raised when an update would push summed usage past lab capacity."""


class NotFound(AllocationError):
    """Raised for unknown identifiers."""


class StaleState(AllocationError):
    """Raised when a transition targets a request that is already terminal."""
