"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.admin_controller import router as admin_router
from backend.controllers.allotment_controller import router as allotment_router
from backend.controllers.auth_controller import router as auth_router
from backend.controllers.directory_controller import router as directory_router
from backend.controllers.error_handlers import install_error_handlers
from backend.repository.data_repository import DataRepository
from backend.services.admin_override_service import AdminOverrideService
from backend.services.allotment_service import AllotmentCoordinator
from backend.services.auth_service import AuthService
from backend.services.dashboard_service import AdminDashboardService
from backend.services.directory_service import RoomDirectoryService
from backend.services.occupancy_service import OccupancyIndex
from backend.services.profile_service import ProfileService
from backend.services.slip_service import SlipService
from backend.services.window_service import AllotmentWindowGate
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every dependency is traceable from this function.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    window_gate = AllotmentWindowGate(repository=repository, settings=settings)
    directory_service = RoomDirectoryService(repository=repository, settings=settings)
    occupancy_index = OccupancyIndex(
        repository=repository,
        directory=directory_service,
        settings=settings,
    )
    coordinator = AllotmentCoordinator(
        repository=repository,
        window_gate=window_gate,
        settings=settings,
    )
    override_service = AdminOverrideService(
        repository=repository,
        coordinator=coordinator,
        settings=settings,
    )
    profile_service = ProfileService(repository=repository, settings=settings)
    slip_service = SlipService(repository=repository, settings=settings)
    auth_service = AuthService(
        settings=settings,
        repository=repository,
        profile_service=profile_service,
    )
    dashboard_service = AdminDashboardService(
        repository=repository,
        occupancy_index=occupancy_index,
        window_gate=window_gate,
        override_service=override_service,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    install_error_handlers(app)

    # --- Routers ---
    app.include_router(directory_router)
    app.include_router(auth_router)
    app.include_router(allotment_router)
    app.include_router(admin_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.window_gate = window_gate
    app.state.directory_service = directory_service
    app.state.occupancy_index = occupancy_index
    app.state.coordinator = coordinator
    app.state.override_service = override_service
    app.state.profile_service = profile_service
    app.state.slip_service = slip_service
    app.state.auth_service = auth_service
    app.state.dashboard_service = dashboard_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before seeding.
      2. Demo hostel and rooms are seeded only into an empty store.
      3. The warden profile is provisioned when password login is configured.
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository
    auth_service: AuthService = app.state.auth_service

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo hostel (skipped if a hostel already exists)")
        repository.seed_demo_data()

    if auth_service.admin_login_enabled:
        logger.info("Startup: provisioning warden profile")
        repository.ensure_admin_profile(email=settings.admin_email, name=settings.admin_name)
    else:
        logger.warning("ADMIN_EMAIL / ADMIN_PASSWORD not set; warden login is disabled")

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
