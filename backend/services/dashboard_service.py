"""Warden dashboard orchestration: stats, rooms, students, windows, overrides."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from backend.domain.models import AllotmentWindow, Room
from backend.repository.data_repository import DataRepository
from backend.services.admin_override_service import AdminOverrideService
from backend.services.directory_service import RoomNotFoundError
from backend.services.occupancy_service import OccupancyIndex
from backend.services.window_service import AllotmentWindowGate
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ADMIN_BLOCK_REASON = "Blocked by admin"


def window_payload(window: Optional[AllotmentWindow]) -> Optional[dict[str, Any]]:
    if window is None:
        return None
    return {
        "window_id": window.window_id,
        "title": window.title,
        "open_at": window.open_at,
        "close_at": window.close_at,
        "created_by": window.created_by,
    }


def room_payload(room: Room) -> dict[str, Any]:
    return {
        "room_id": room.room_id,
        "hostel_id": room.hostel_id,
        "room_number": room.room_number,
        "floor": room.floor,
        "capacity": room.capacity,
        "is_blocked": room.is_blocked,
        "block_reason": room.block_reason,
    }


class AdminDashboardService:
    """Coordinates the warden-facing read models and room/window mutations."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        occupancy_index: Optional[OccupancyIndex] = None,
        window_gate: Optional[AllotmentWindowGate] = None,
        override_service: Optional[AdminOverrideService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._occupancy_index = occupancy_index or OccupancyIndex(
            repository=self._repository,
            settings=self._settings,
        )
        self._window_gate = window_gate or AllotmentWindowGate(
            repository=self._repository,
            settings=self._settings,
        )
        self._override_service = override_service or AdminOverrideService(
            repository=self._repository,
            settings=self._settings,
        )

    @property
    def overrides(self) -> AdminOverrideService:
        return self._override_service

    def get_stats(self) -> dict[str, int]:
        total_rooms = self._repository.count_rooms()
        blocked_rooms = self._repository.count_rooms(blocked=True)
        return {
            "total_students": self._repository.count_students(),
            "total_rooms": total_rooms,
            "total_allotments": self._repository.count_allotments(),
            "blocked_rooms": blocked_rooms,
            "available_rooms": total_rooms - blocked_rooms,
        }

    def list_rooms(self) -> list[dict[str, Any]]:
        return self._occupancy_index.admin_room_views()

    def list_allotments(self) -> list[dict[str, Any]]:
        return [
            {
                "allotment_id": record.allotment_id,
                "student_id": record.student_id,
                "student_name": record.student_name or "Unknown",
                "email": record.email,
                "branch": record.branch or "",
                "year": record.year or 0,
                "room_id": record.room_id,
                "room_number": record.room_number,
                "floor": record.floor,
                "hostel_name": record.hostel_name,
                "allotted_at": record.allotted_at,
            }
            for record in self._repository.list_allotment_details()
        ]

    def search_students(self, search: Optional[str] = None) -> list[dict[str, Any]]:
        term = search.strip() if search else None
        return [
            {
                "user_id": profile.user_id,
                "email": profile.email,
                "name": profile.name,
                "branch": profile.branch,
                "year": profile.year,
            }
            for profile in self._repository.list_students(term or None)
        ]

    def block_room(self, room_id: int, reason: Optional[str] = None) -> dict[str, Any]:
        effective_reason = (reason or "").strip() or DEFAULT_ADMIN_BLOCK_REASON
        room = self._repository.set_room_block(room_id, is_blocked=True, reason=effective_reason)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        logger.info("Room %s blocked: %s", room.room_number, effective_reason)
        return room_payload(room)

    def unblock_room(self, room_id: int) -> dict[str, Any]:
        room = self._repository.set_room_block(room_id, is_blocked=False)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        logger.info("Room %s unblocked", room.room_number)
        return room_payload(room)

    def vacancy_map(self) -> list[dict[str, Any]]:
        return self._occupancy_index.vacancy_map()

    def list_windows(self, now: Optional[datetime] = None) -> dict[str, Any]:
        windows, active = self._window_gate.recent_windows(now)
        return {
            "windows": [window_payload(window) for window in windows],
            "active": window_payload(active),
        }

    def create_window(
        self,
        *,
        title: str,
        open_at: datetime,
        close_at: datetime,
        created_by: Optional[str],
    ) -> dict[str, Any]:
        window = self._window_gate.create_window(
            title=title,
            open_at=open_at,
            close_at=close_at,
            created_by=created_by,
        )
        return window_payload(window)

    def list_incidents(self) -> list[dict[str, Any]]:
        return [
            {
                "incident_id": incident.incident_id,
                "student_id": incident.student_id,
                "old_room_id": incident.old_room_id,
                "target_room_id": incident.target_room_id,
                "detail": incident.detail,
                "recorded_at": incident.recorded_at,
            }
            for incident in self._repository.list_incidents()
        ]
