"""Controller layer for read-only utilization reports."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from seat_allocation.controllers.dependencies import get_reporter
from seat_allocation.services.aggregation_service import AggregationReporter
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


class FloorRollupRow(BaseModel):
    floor_id: int
    office: str
    floor: str
    total: int = Field(ge=0)
    in_use: int = Field(ge=0)
    available: int = Field(ge=0)
    utilization: float = Field(ge=0.0)


class OfficeRollupRow(BaseModel):
    office: str
    total: int = Field(ge=0)
    in_use: int = Field(ge=0)
    available: int = Field(ge=0)


class DivisionFloorDetail(BaseModel):
    office: str
    floor: str
    in_use: int = Field(ge=0)


class DivisionRollupRow(BaseModel):
    division: str
    in_use: int = Field(ge=0)
    labs: list[str]
    floor_details: list[DivisionFloorDetail]


class SummaryResponse(BaseModel):
    total_workstations: int = Field(ge=0)
    occupied_workstations: int = Field(ge=0)
    available_workstations: int = Field(ge=0)
    pending_requests: int = Field(ge=0)
    partially_allocated_requests: int = Field(ge=0)
    utilization_rate: float = Field(ge=0.0)


def _report_failure(name: str) -> HTTPException:
    logger.exception("Unexpected %s report failure", name)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to compute {name} report",
    )


@router.get("/floors", response_model=list[FloorRollupRow], status_code=status.HTTP_200_OK)
async def floor_report(
    reporter: AggregationReporter = Depends(get_reporter),
) -> list[FloorRollupRow]:
    try:
        return [FloorRollupRow(**row) for row in reporter.floor_rollup()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _report_failure("floor") from exc


@router.get("/offices", response_model=list[OfficeRollupRow], status_code=status.HTTP_200_OK)
async def office_report(
    reporter: AggregationReporter = Depends(get_reporter),
) -> list[OfficeRollupRow]:
    try:
        return [OfficeRollupRow(**row) for row in reporter.office_rollup()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _report_failure("office") from exc


@router.get(
    "/divisions",
    response_model=list[DivisionRollupRow],
    status_code=status.HTTP_200_OK,
)
async def division_report(
    reporter: AggregationReporter = Depends(get_reporter),
) -> list[DivisionRollupRow]:
    try:
        return [DivisionRollupRow(**row) for row in reporter.division_rollup()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _report_failure("division") from exc


@router.get("/summary", response_model=SummaryResponse, status_code=status.HTTP_200_OK)
async def summary_report(
    reporter: AggregationReporter = Depends(get_reporter),
) -> SummaryResponse:
    try:
        return SummaryResponse(**reporter.dashboard_summary())
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _report_failure("summary") from exc
