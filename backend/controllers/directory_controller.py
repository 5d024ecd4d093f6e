"""Controller layer for health, hostel/room browsing and the own profile."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_occupancy_index,
    get_profile_service,
    get_scoped_reader,
)
from backend.repository.data_repository import StoreError
from backend.repository.scoped_reader import StudentScopedReader
from backend.services.directory_service import HostelNotFoundError
from backend.services.occupancy_service import OccupancyIndex
from backend.services.profile_service import ProfileNotProvisionedError, ProfileService
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["directory"])


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class HostelResponse(BaseModel):
    hostel_id: int
    name: str
    total_rooms: int = Field(ge=0)


class HostelListResponse(BaseModel):
    hostels: list[HostelResponse]


class PublicOccupantResponse(BaseModel):
    student_id: str
    name: str
    branch: str
    year: int


class StudentRoomView(BaseModel):
    room_id: int
    hostel_id: int
    room_number: str
    floor: int
    capacity: int = Field(gt=0)
    is_blocked: bool
    block_reason: Optional[str] = None
    occupants: list[PublicOccupantResponse]
    occupied: int = Field(ge=0)
    available: int
    status: str


class RoomListResponse(BaseModel):
    rooms: list[StudentRoomView]


class ProfileAllotment(BaseModel):
    allotment_id: str
    room_id: int
    room_number: str
    floor: int
    hostel_id: int
    hostel_name: str
    allotted_at: datetime


class RoomHistoryEntry(BaseModel):
    old_room_id: Optional[int] = None
    new_room_id: Optional[int] = None
    changed_at: datetime


class ProfileResponse(BaseModel):
    user_id: str
    email: str
    role: str
    name: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[int] = None
    allotment: Optional[ProfileAllotment] = None
    room_history: list[RoomHistoryEntry]


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=request.app.title,
        version=request.app.version,
    )


@router.get("/hostels", response_model=HostelListResponse, status_code=status.HTTP_200_OK)
async def list_hostels(
    reader: StudentScopedReader = Depends(get_scoped_reader),
) -> HostelListResponse:
    try:
        hostels = reader.hostels()
    except StoreError as exc:
        logger.exception("Hostel listing failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch hostels",
        ) from exc
    return HostelListResponse(
        hostels=[
            HostelResponse(hostel_id=hostel.hostel_id, name=hostel.name, total_rooms=hostel.total_rooms)
            for hostel in hostels
        ]
    )


@router.get("/rooms/{hostel_id}", response_model=RoomListResponse, status_code=status.HTTP_200_OK)
async def list_rooms(
    hostel_id: int,
    reader: StudentScopedReader = Depends(get_scoped_reader),
    occupancy_index: OccupancyIndex = Depends(get_occupancy_index),
) -> RoomListResponse:
    try:
        views = occupancy_index.student_room_views(reader, hostel_id)
    except HostelNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        logger.exception("Room listing failed for hostel %s", hostel_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch rooms",
        ) from exc
    return RoomListResponse(rooms=[StudentRoomView(**view) for view in views])


@router.get("/profile", response_model=ProfileResponse, status_code=status.HTTP_200_OK)
async def own_profile(
    reader: StudentScopedReader = Depends(get_scoped_reader),
    profile_service: ProfileService = Depends(get_profile_service),
) -> ProfileResponse:
    try:
        summary = profile_service.profile_summary(reader)
    except ProfileNotProvisionedError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StoreError as exc:
        logger.exception("Profile lookup failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch profile",
        ) from exc
    return ProfileResponse(**summary)
