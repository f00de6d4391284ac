"""FastAPI application factory and startup lifecycle.

Usage:
    uvicorn seat_allocation.app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from seat_allocation.controllers.capacity_controller import router as capacity_router
from seat_allocation.controllers.report_controller import router as report_router
from seat_allocation.controllers.request_controller import router as request_router
from seat_allocation.repository.capacity_store import CapacityStore
from seat_allocation.repository.database import Database
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.repository.seat_booking_ledger import SeatBookingLedger
from seat_allocation.services.aggregation_service import AggregationReporter
from seat_allocation.services.allocation_engine import AllocationEngine
from seat_allocation.services.notification_service import NotificationService
from seat_allocation.services.request_workflow import RequestWorkflowService
from seat_allocation.utils.config import Settings, get_settings
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with every service wired onto app.state."""
    settings = settings or get_settings()

    database = Database(settings)
    capacity_store = CapacityStore(database)
    ledger = SeatBookingLedger(database)
    repository = RequestRepository(database, settings)
    notification_service = NotificationService(repository, settings)
    workflow_service = RequestWorkflowService(
        database=database,
        capacity_store=capacity_store,
        ledger=ledger,
        repository=repository,
        notification_service=notification_service,
    )
    allocation_engine = AllocationEngine(
        database=database,
        capacity_store=capacity_store,
        ledger=ledger,
        repository=repository,
        workflow=workflow_service,
        notification_service=notification_service,
    )
    reporter = AggregationReporter(
        capacity_store=capacity_store,
        ledger=ledger,
        repository=repository,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(request_router)
    app.include_router(capacity_router)
    app.include_router(report_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    app.state.settings = settings
    app.state.database = database
    app.state.capacity_store = capacity_store
    app.state.seat_ledger = ledger
    app.state.request_repository = repository
    app.state.notification_service = notification_service
    app.state.workflow_service = workflow_service
    app.state.allocation_engine = allocation_engine
    app.state.reporter = reporter

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent: schema creation and demo seeding both skip existing rows."""
    database: Database = app.state.database

    logger.info("Startup: initializing database schema at %s", settings.database_path)
    database.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo offices, labs and employees")
        database.seed_demo_data()

    logger.info("Startup complete")


app = create_app()
