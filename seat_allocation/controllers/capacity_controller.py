"""Controller layer for lab capacity provisioning and asset-ID tooling."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from seat_allocation.controllers.dependencies import (
    get_app_settings,
    get_capacity_store,
    get_reporter,
    get_request_repository,
    to_http_exception,
)
from seat_allocation.domain.asset_ranges import (
    expand_asset_id_tags,
    format_asset_id_ranges,
    parse_asset_id_range,
)
from seat_allocation.domain.exceptions import AllocationError
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.services.aggregation_service import AggregationReporter
from seat_allocation.utils.config import Settings
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["capacity"])


class FloorRequest(BaseModel):
    office_name: str = Field(min_length=1)
    city: str = ""
    floor_name: str = Field(min_length=1)


class FloorResponse(BaseModel):
    floor_id: int
    office_id: int
    floor_name: str
    office_name: str


class LabCreateRequest(BaseModel):
    floor_id: int = Field(gt=0)
    lab_name: str = Field(min_length=1)
    total_workstations: int = Field(ge=0)


class LabCapacityUpdate(BaseModel):
    total_workstations: int = Field(ge=0)


class LabResponse(BaseModel):
    lab_id: int
    floor_id: int
    lab_name: str
    total_workstations: int


class DivisionUsageResponse(BaseModel):
    usage_id: int
    floor_id: int
    lab_name: str
    division: str
    in_use: int = Field(ge=0)
    asset_id_range: str


class LabAvailabilityResponse(BaseModel):
    lab_id: int
    floor_id: int
    lab_name: str
    total: int = Field(ge=0)
    in_use: int = Field(ge=0)
    available: int = Field(ge=0)
    pending_seats: list[int]
    approved_seats: list[int]


class AssetIdParseRequest(BaseModel):
    asset_id_range: str
    strict: Optional[bool] = None


class AssetIdParseResponse(BaseModel):
    asset_ids: list[int]
    tags: list[str]
    canonical: str


@router.post("/floors", response_model=FloorResponse, status_code=status.HTTP_200_OK)
async def ensure_floor(
    payload: FloorRequest,
    repository: RequestRepository = Depends(get_request_repository),
) -> FloorResponse:
    office = repository.find_or_create_office(payload.office_name, payload.city)
    floor = repository.find_or_create_floor(office.office_id, payload.floor_name)
    return FloorResponse(
        floor_id=floor.floor_id,
        office_id=floor.office_id,
        floor_name=floor.floor_name,
        office_name=floor.office_name,
    )


@router.get("/floors", response_model=list[FloorResponse], status_code=status.HTTP_200_OK)
async def list_floors(
    repository: RequestRepository = Depends(get_request_repository),
) -> list[FloorResponse]:
    return [
        FloorResponse(
            floor_id=floor.floor_id,
            office_id=floor.office_id,
            floor_name=floor.floor_name,
            office_name=floor.office_name,
        )
        for floor in repository.list_floors()
    ]


@router.post("/labs", response_model=LabResponse, status_code=status.HTTP_201_CREATED)
async def create_lab(
    payload: LabCreateRequest,
    store: CapacityStore = Depends(get_capacity_store),
    repository: RequestRepository = Depends(get_request_repository),
) -> LabResponse:
    if repository.get_floor(payload.floor_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"floor {payload.floor_id} does not exist",
        )
    try:
        lab = store.create_lab_allocation(
            payload.floor_id,
            payload.lab_name,
            payload.total_workstations,
        )
        return LabResponse(**lab.__dict__)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc


@router.get("/labs", response_model=list[LabResponse], status_code=status.HTTP_200_OK)
async def list_labs(
    store: CapacityStore = Depends(get_capacity_store),
) -> list[LabResponse]:
    return [LabResponse(**lab.__dict__) for lab in store.list_lab_allocations()]


@router.patch("/labs/{lab_id}", response_model=LabResponse, status_code=status.HTTP_200_OK)
async def update_lab_capacity(
    lab_id: int,
    payload: LabCapacityUpdate,
    store: CapacityStore = Depends(get_capacity_store),
) -> LabResponse:
    try:
        lab = store.update_lab_capacity(lab_id, payload.total_workstations)
        return LabResponse(**lab.__dict__)
    except AllocationError as exc:
        raise to_http_exception(exc) from exc


@router.get(
    "/labs/{lab_id}/availability",
    response_model=LabAvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def lab_availability(
    lab_id: int,
    reporter: AggregationReporter = Depends(get_reporter),
) -> LabAvailabilityResponse:
    try:
        return LabAvailabilityResponse(**reporter.lab_availability(lab_id))
    except AllocationError as exc:
        raise to_http_exception(exc) from exc


@router.get(
    "/division_usages",
    response_model=list[DivisionUsageResponse],
    status_code=status.HTTP_200_OK,
)
async def list_division_usages(
    store: CapacityStore = Depends(get_capacity_store),
) -> list[DivisionUsageResponse]:
    return [DivisionUsageResponse(**usage.__dict__) for usage in store.list_division_usages()]


@router.post(
    "/asset_ids/parse",
    response_model=AssetIdParseResponse,
    status_code=status.HTTP_200_OK,
)
async def parse_asset_ids(
    payload: AssetIdParseRequest,
    settings: Settings = Depends(get_app_settings),
) -> AssetIdParseResponse:
    strict = settings.asset_id_parse_strict if payload.strict is None else payload.strict
    try:
        asset_ids = parse_asset_id_range(
            payload.asset_id_range,
            strict=strict,
            max_ids=settings.asset_id_max_ids,
        )
        tags = expand_asset_id_tags(
            payload.asset_id_range,
            pad_width=settings.asset_id_pad_width,
            strict=strict,
            max_ids=settings.asset_id_max_ids,
        )
    except AllocationError as exc:
        raise to_http_exception(exc) from exc
    return AssetIdParseResponse(
        asset_ids=asset_ids,
        tags=tags,
        canonical=format_asset_id_ranges(asset_ids),
    )
