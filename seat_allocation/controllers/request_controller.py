"""HTTP controller layer for the request and allocation workflow."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from seat_allocation.controllers.dependencies import (
    get_allocation_engine,
    get_workflow_service,
    to_http_exception,
)
from seat_allocation.domain.exceptions import AllocationError
from seat_allocation.domain.models import (
    Allocation,
    RequestStatus,
    SeatBooking,
    WorkflowOutcome,
    WorkstationRequest,
)
from seat_allocation.services.allocation_engine import AllocationEngine
from seat_allocation.services.request_workflow import RequestWorkflowService
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


def _unique_positive_seats(value: list[int]) -> list[int]:
    for seat in value:
        if seat <= 0:
            raise ValueError("seat numbers must be positive integers")
    if len(set(value)) != len(value):
        raise ValueError("seat numbers must be unique")
    return value


class SubmitRequest(BaseModel):
    requestor_id: int = Field(gt=0)
    division: str = Field(min_length=1)
    num_workstations: int = Field(gt=0)
    seats: list[int] = Field(default_factory=list)
    lab_id: Optional[int] = Field(default=None, gt=0)
    location: str = ""
    floor_name: str = ""
    justification: str = ""
    remarks: str = ""
    requested_allocation_date: Optional[date] = None

    @field_validator("seats")
    @classmethod
    def validate_seats(cls, value: list[int]) -> list[int]:
        return _unique_positive_seats(value)


class RequestResponse(BaseModel):
    request_id: int
    request_number: str
    requestor_id: int
    requestor_name: str
    division: str
    num_workstations: int
    seats: list[int]
    lab_id: Optional[int] = None
    floor_id: Optional[int] = None
    lab_name: str
    location: str
    floor_name: str
    justification: str
    remarks: str
    status: RequestStatus
    admin_notes: str
    approved_by: Optional[int] = None
    requested_allocation_date: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, request: WorkstationRequest) -> "RequestResponse":
        return cls(**request.to_dict())


class BookingResponse(BaseModel):
    booking_id: int
    request_id: int
    lab_id: int
    floor_id: int
    lab_name: str
    seat_number: int
    division: str
    status: str
    booking_date: str
    asset_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, booking: SeatBooking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            request_id=booking.request_id,
            lab_id=booking.lab_id,
            floor_id=booking.floor_id,
            lab_name=booking.lab_name,
            seat_number=booking.seat_number,
            division=booking.division,
            status=booking.status.value,
            booking_date=booking.booking_date,
            asset_id=booking.asset_id,
            notes=booking.notes,
        )


class TransitionResponse(BaseModel):
    request: RequestResponse
    bookings_changed: int = Field(ge=0)

    @classmethod
    def from_outcome(cls, outcome: WorkflowOutcome) -> "TransitionResponse":
        return cls(
            request=RequestResponse.from_domain(outcome.request),
            bookings_changed=outcome.bookings_changed,
        )


class ApproveRequest(BaseModel):
    approver_id: int = Field(gt=0)
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class AllocationPayload(BaseModel):
    lab_name: str = Field(min_length=1)
    lab_id: int = Field(gt=0)
    floor_id: int = Field(gt=0)
    division: str = Field(min_length=1)
    seats: list[int] = Field(min_length=1)
    asset_id_range: Optional[str] = None

    @field_validator("seats")
    @classmethod
    def validate_seats(cls, value: list[int]) -> list[int]:
        return _unique_positive_seats(value)

    def to_domain(self) -> Allocation:
        return Allocation(
            lab_name=self.lab_name,
            lab_id=self.lab_id,
            floor_id=self.floor_id,
            division=self.division,
            seats=tuple(self.seats),
            asset_id_range=self.asset_id_range,
        )


class FinalizeRequest(BaseModel):
    approver_id: int = Field(gt=0)
    allocations: list[AllocationPayload] = Field(min_length=1)
    notes: Optional[str] = None


def _internal_error(message: str) -> HTTPException:
    logger.exception(message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message,
    )


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequest,
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> RequestResponse:
    try:
        request = workflow.submit_request(
            requestor_id=payload.requestor_id,
            division=payload.division,
            num_workstations=payload.num_workstations,
            seats=payload.seats,
            lab_id=payload.lab_id,
            location=payload.location,
            floor_name=payload.floor_name,
            justification=payload.justification,
            remarks=payload.remarks,
            requested_allocation_date=(
                payload.requested_allocation_date.isoformat()
                if payload.requested_allocation_date
                else None
            ),
        )
        return RequestResponse.from_domain(request)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to submit request") from exc


@router.get("", response_model=list[RequestResponse], status_code=status.HTTP_200_OK)
async def list_requests(
    status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> list[RequestResponse]:
    return [RequestResponse.from_domain(item) for item in workflow.list_requests(status_filter)]


@router.get("/{request_id}", response_model=RequestResponse, status_code=status.HTTP_200_OK)
async def get_request(
    request_id: int,
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> RequestResponse:
    try:
        return RequestResponse.from_domain(workflow.get_request(request_id))
    except AllocationError as exc:
        raise to_http_exception(exc) from exc


@router.get(
    "/{request_id}/bookings",
    response_model=list[BookingResponse],
    status_code=status.HTTP_200_OK,
)
async def list_request_bookings(
    request_id: int,
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> list[BookingResponse]:
    try:
        return [BookingResponse.from_domain(item) for item in workflow.list_bookings(request_id)]
    except AllocationError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/{request_id}/approve",
    response_model=TransitionResponse,
    status_code=status.HTTP_200_OK,
)
async def approve_request(
    request_id: int,
    payload: ApproveRequest,
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> TransitionResponse:
    """Quick approval; capacity comes from the request's own bookings or target lab."""
    try:
        outcome = workflow.approve(
            request_id,
            payload.approver_id,
            payload.notes,
        )
        return TransitionResponse.from_outcome(outcome)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to approve request") from exc


@router.post(
    "/{request_id}/reject",
    response_model=TransitionResponse,
    status_code=status.HTTP_200_OK,
)
async def reject_request(
    request_id: int,
    payload: RejectRequest,
    workflow: RequestWorkflowService = Depends(get_workflow_service),
) -> TransitionResponse:
    try:
        outcome = workflow.reject(request_id, payload.reason)
        return TransitionResponse.from_outcome(outcome)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to reject request") from exc


@router.post(
    "/{request_id}/allocations",
    response_model=RequestResponse,
    status_code=status.HTTP_200_OK,
)
async def save_partial_allocation(
    request_id: int,
    payload: AllocationPayload,
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> RequestResponse:
    try:
        request = engine.save_partial_allocation(request_id, payload.to_domain())
        return RequestResponse.from_domain(request)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to save allocation") from exc


@router.post(
    "/{request_id}/finalize",
    response_model=TransitionResponse,
    status_code=status.HTTP_200_OK,
)
async def finalize_allocation(
    request_id: int,
    payload: FinalizeRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> TransitionResponse:
    try:
        outcome = engine.finalize_allocation(
            request_id,
            payload.approver_id,
            [item.to_domain() for item in payload.allocations],
            payload.notes,
        )
        return TransitionResponse.from_outcome(outcome)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _internal_error("Failed to finalize allocation") from exc
