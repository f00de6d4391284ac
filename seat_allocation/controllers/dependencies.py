"""Shared FastAPI dependency providers and error translation for controllers."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from seat_allocation.domain.exceptions import (
    AllocationError,
    CapacityExceeded,
    LabNotProvisioned,
    NotFound,
    SeatConflict,
    StaleState,
    ValidationError,
)
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.services.aggregation_service import AggregationReporter
from seat_allocation.services.allocation_engine import AllocationEngine
from seat_allocation.services.request_workflow import RequestWorkflowService
from seat_allocation.utils.config import Settings


_STATUS_BY_ERROR: dict[type[AllocationError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    SeatConflict: status.HTTP_409_CONFLICT,
    StaleState: status.HTTP_409_CONFLICT,
    CapacityExceeded: status.HTTP_409_CONFLICT,
    LabNotProvisioned: status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: AllocationError) -> HTTPException:
    """Map a domain failure to an HTTP error carrying the raw reason."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(
                status_code=status_code,
                detail={"error": type(exc).__name__, "message": str(exc)},
            )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": type(exc).__name__, "message": str(exc)},
    )


def _from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_workflow_service(request: Request) -> RequestWorkflowService:
    return _from_state(request, "workflow_service", "Request workflow")


def get_allocation_engine(request: Request) -> AllocationEngine:
    return _from_state(request, "allocation_engine", "Allocation engine")


def get_capacity_store(request: Request) -> CapacityStore:
    return _from_state(request, "capacity_store", "Capacity store")


def get_request_repository(request: Request) -> RequestRepository:
    return _from_state(request, "request_repository", "Request repository")


def get_reporter(request: Request) -> AggregationReporter:
    return _from_state(request, "reporter", "Aggregation reporter")


def get_app_settings(request: Request) -> Settings:
    return _from_state(request, "settings", "Settings")
