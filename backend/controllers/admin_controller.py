"""Controller layer for warden dashboard endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import CurrentUser, get_dashboard_service, require_admin
from backend.repository.data_repository import StoreError
from backend.services.admin_override_service import StudentNotFoundError
from backend.services.allotment_service import (
    AllotmentDeniedError,
    AllotmentStoreError,
    AllotmentValidationError,
    InconsistentAllotmentStateError,
)
from backend.services.dashboard_service import AdminDashboardService
from backend.services.directory_service import RoomNotFoundError
from backend.services.window_service import WindowValidationError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

ASSIGN_RETRY_MESSAGE = "Failed to allot room. Try again."

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class StatsResponse(BaseModel):
    total_students: int = Field(ge=0)
    total_rooms: int = Field(ge=0)
    total_allotments: int = Field(ge=0)
    blocked_rooms: int = Field(ge=0)
    available_rooms: int = Field(ge=0)


class OccupantResponse(BaseModel):
    student_id: str
    name: str
    email: str
    branch: str
    year: int
    allotted_at: datetime


class AdminRoomView(BaseModel):
    room_id: int
    hostel_id: int
    hostel_name: str
    room_number: str
    floor: int
    capacity: int = Field(gt=0)
    is_blocked: bool
    block_reason: Optional[str] = None
    occupants: list[OccupantResponse]
    occupied: int = Field(ge=0)
    available: int
    status: str


class AdminRoomsResponse(BaseModel):
    rooms: list[AdminRoomView]


class AllotmentRow(BaseModel):
    allotment_id: str
    student_id: str
    student_name: str
    email: str
    branch: str
    year: int
    room_id: int
    room_number: str
    floor: int
    hostel_name: str
    allotted_at: datetime


class AllotmentsResponse(BaseModel):
    allotments: list[AllotmentRow]


class StudentRow(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[int] = None


class StudentsResponse(BaseModel):
    students: list[StudentRow]


class AssignRequest(BaseModel):
    student_id: str = Field(min_length=1)
    room_id: int = Field(gt=0)

    @field_validator("student_id")
    @classmethod
    def validate_student_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("student_id must not be blank")
        return value.strip()


class AssignResponse(BaseModel):
    message: str
    action: str
    allotment_id: str
    student_id: str
    room_id: int
    previous_room_id: Optional[int] = None


class UnassignRequest(BaseModel):
    student_id: str = Field(min_length=1)


class UnassignResponse(BaseModel):
    message: str
    removed_room_id: Optional[int] = None


class BlockRoomRequest(BaseModel):
    room_id: int = Field(gt=0)
    reason: Optional[str] = Field(default=None, max_length=200)


class UnblockRoomRequest(BaseModel):
    room_id: int = Field(gt=0)


class RoomResponse(BaseModel):
    room_id: int
    hostel_id: int
    room_number: str
    floor: int
    capacity: int
    is_blocked: bool
    block_reason: Optional[str] = None


class VacancyRow(BaseModel):
    room_id: int
    room_number: str
    floor: int
    capacity: int
    occupied: int = Field(ge=0)
    available: int
    vacancy_percent: int
    is_blocked: bool
    status: str


class VacancyMapResponse(BaseModel):
    rooms: list[VacancyRow]


class WindowRow(BaseModel):
    window_id: int
    title: str
    open_at: datetime
    close_at: datetime
    created_by: Optional[str] = None


class WindowListResponse(BaseModel):
    windows: list[WindowRow]
    active: Optional[WindowRow] = None


class CreateWindowRequest(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    open_at: datetime
    close_at: datetime


class IncidentRow(BaseModel):
    incident_id: int
    student_id: str
    old_room_id: Optional[int] = None
    target_room_id: Optional[int] = None
    detail: str
    recorded_at: datetime


class IncidentsResponse(BaseModel):
    incidents: list[IncidentRow]


def _store_failure(exc: Exception, label: str) -> HTTPException:
    logger.exception("Admin %s failed", label)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {label}",
    )


@router.get("/stats", response_model=StatsResponse, status_code=status.HTTP_200_OK)
async def get_stats(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> StatsResponse:
    try:
        return StatsResponse(**dashboard_service.get_stats())
    except StoreError as exc:
        raise _store_failure(exc, "load stats") from exc


@router.get("/rooms", response_model=AdminRoomsResponse, status_code=status.HTTP_200_OK)
async def list_rooms(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> AdminRoomsResponse:
    try:
        views = dashboard_service.list_rooms()
    except StoreError as exc:
        raise _store_failure(exc, "list rooms") from exc
    return AdminRoomsResponse(rooms=[AdminRoomView(**view) for view in views])


@router.get("/allotments", response_model=AllotmentsResponse, status_code=status.HTTP_200_OK)
async def list_allotments(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> AllotmentsResponse:
    try:
        rows = dashboard_service.list_allotments()
    except StoreError as exc:
        raise _store_failure(exc, "list allotments") from exc
    return AllotmentsResponse(allotments=[AllotmentRow(**row) for row in rows])


@router.get("/students", response_model=StudentsResponse, status_code=status.HTTP_200_OK)
async def search_students(
    search: Optional[str] = Query(default=None, max_length=100),
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> StudentsResponse:
    try:
        rows = dashboard_service.search_students(search)
    except StoreError as exc:
        raise _store_failure(exc, "search students") from exc
    return StudentsResponse(students=[StudentRow(**row) for row in rows])


@router.post("/assign", response_model=AssignResponse, status_code=status.HTTP_201_CREATED)
async def assign_student(
    payload: AssignRequest,
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> AssignResponse:
    try:
        outcome = dashboard_service.overrides.assign(
            student_id=payload.student_id,
            room_id=payload.room_id,
        )
    except AllotmentValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StudentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AllotmentDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=exc.reason,
        ) from exc
    except (InconsistentAllotmentStateError, AllotmentStoreError, StoreError) as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=ASSIGN_RETRY_MESSAGE,
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected admin assign failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=ASSIGN_RETRY_MESSAGE,
        ) from exc

    return AssignResponse(
        message=f"Student {outcome.action} successfully",
        action=outcome.action,
        allotment_id=outcome.allotment.allotment_id,
        student_id=outcome.allotment.student_id,
        room_id=outcome.allotment.room_id,
        previous_room_id=outcome.previous_room_id,
    )


@router.post("/unassign", response_model=UnassignResponse, status_code=status.HTTP_200_OK)
async def unassign_student(
    payload: UnassignRequest,
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> UnassignResponse:
    try:
        outcome = dashboard_service.overrides.unassign(student_id=payload.student_id)
    except AllotmentValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except AllotmentStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to unassign",
        ) from exc
    if not outcome.changed:
        return UnassignResponse(message="Student has no allotment")
    return UnassignResponse(
        message="Student unassigned successfully",
        removed_room_id=outcome.removed.room_id,
    )


@router.post("/block-room", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def block_room(
    payload: BlockRoomRequest,
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> RoomResponse:
    try:
        return RoomResponse(**dashboard_service.block_room(payload.room_id, payload.reason))
    except RoomNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise _store_failure(exc, "block room") from exc


@router.post("/unblock-room", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def unblock_room(
    payload: UnblockRoomRequest,
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> RoomResponse:
    try:
        return RoomResponse(**dashboard_service.unblock_room(payload.room_id))
    except RoomNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise _store_failure(exc, "unblock room") from exc


@router.get("/vacancy-map", response_model=VacancyMapResponse, status_code=status.HTTP_200_OK)
async def vacancy_map(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> VacancyMapResponse:
    try:
        rows = dashboard_service.vacancy_map()
    except StoreError as exc:
        raise _store_failure(exc, "build vacancy map") from exc
    return VacancyMapResponse(rooms=[VacancyRow(**row) for row in rows])


@router.get("/window", response_model=WindowListResponse, status_code=status.HTTP_200_OK)
async def list_windows(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> WindowListResponse:
    try:
        return WindowListResponse(**dashboard_service.list_windows())
    except StoreError as exc:
        raise _store_failure(exc, "list windows") from exc


@router.post("/window", response_model=WindowRow, status_code=status.HTTP_201_CREATED)
async def create_window(
    payload: CreateWindowRequest,
    current_user: CurrentUser = Depends(require_admin),
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> WindowRow:
    try:
        window = dashboard_service.create_window(
            title=payload.title,
            open_at=payload.open_at,
            close_at=payload.close_at,
            created_by=current_user.user_id,
        )
    except WindowValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        raise _store_failure(exc, "create window") from exc
    return WindowRow(**window)


@router.get("/incidents", response_model=IncidentsResponse, status_code=status.HTTP_200_OK)
async def list_incidents(
    dashboard_service: AdminDashboardService = Depends(get_dashboard_service),
) -> IncidentsResponse:
    try:
        rows = dashboard_service.list_incidents()
    except StoreError as exc:
        raise _store_failure(exc, "list incidents") from exc
    return IncidentsResponse(incidents=[IncidentRow(**row) for row in rows])
