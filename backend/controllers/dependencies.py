"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.domain.models import ROLE_STUDENT, UserProfile
from backend.repository.data_repository import DataRepository, StoreError
from backend.repository.scoped_reader import StudentScopedReader
from backend.services.allotment_service import AllotmentCoordinator
from backend.services.auth_service import AuthService, InvalidCredentialError
from backend.services.dashboard_service import AdminDashboardService
from backend.services.occupancy_service import OccupancyIndex
from backend.services.profile_service import ProfileService
from backend.services.slip_service import SlipService
from backend.services.window_service import AllotmentWindowGate
from backend.utils.logger import get_logger


logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    token: str
    profile: Optional[UserProfile]


def _from_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> DataRepository:
    return _from_state(request, "repository", "Repository")


def get_auth_service(request: Request) -> AuthService:
    return _from_state(request, "auth_service", "Auth service")


def get_window_gate(request: Request) -> AllotmentWindowGate:
    return _from_state(request, "window_gate", "Allotment window gate")


def get_coordinator(request: Request) -> AllotmentCoordinator:
    return _from_state(request, "coordinator", "Allotment coordinator")


def get_occupancy_index(request: Request) -> OccupancyIndex:
    return _from_state(request, "occupancy_index", "Occupancy index")


def get_profile_service(request: Request) -> ProfileService:
    return _from_state(request, "profile_service", "Profile service")


def get_slip_service(request: Request) -> SlipService:
    return _from_state(request, "slip_service", "Slip service")


def get_dashboard_service(request: Request) -> AdminDashboardService:
    return _from_state(request, "dashboard_service", "Admin dashboard service")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
    repository: DataRepository = Depends(get_repository),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
        )
    try:
        user_id = auth_service.resolve_session(credentials.credentials)
    except InvalidCredentialError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    try:
        profile = repository.get_user(user_id)
    except StoreError as exc:
        logger.exception("Profile lookup failed during authentication")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed",
        ) from exc
    return CurrentUser(user_id=user_id, token=credentials.credentials, profile=profile)


async def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current_user.profile is None or not current_user.profile.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def require_student(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current_user.profile is None or current_user.profile.role != ROLE_STUDENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student access required",
        )
    return current_user


async def get_scoped_reader(
    current_user: CurrentUser = Depends(get_current_user),
    repository: DataRepository = Depends(get_repository),
) -> StudentScopedReader:
    return StudentScopedReader(repository, current_user.user_id)
