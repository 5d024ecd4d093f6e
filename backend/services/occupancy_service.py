"""Occupancy index: live occupant counts derived from allotment rows.

Occupancy is never cached. Every figure here is recomputed from the
Allotments table at call time.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Optional

from backend.domain.models import Room
from backend.repository.data_repository import DataRepository
from backend.repository.scoped_reader import StudentScopedReader
from backend.services.directory_service import HostelNotFoundError, RoomDirectoryService
from backend.utils.config import Settings, get_settings


STATUS_BLOCKED = "blocked"
STATUS_FULL = "full"
STATUS_AVAILABLE = "available"
STATUS_PARTIAL = "partial"
STATUS_EMPTY = "empty"


def room_status(room: Room, occupied: int) -> str:
    if room.is_blocked:
        return STATUS_BLOCKED
    if occupied >= room.capacity:
        return STATUS_FULL
    return STATUS_AVAILABLE


def vacancy_status(room: Room, occupied: int) -> str:
    if room.is_blocked:
        return STATUS_BLOCKED
    if occupied >= room.capacity:
        return STATUS_FULL
    if occupied > 0:
        return STATUS_PARTIAL
    return STATUS_EMPTY


def vacancy_percent(room: Room, occupied: int) -> int:
    if room.capacity <= 0:
        return 0
    return int(math.floor((room.capacity - occupied) / room.capacity * 100 + 0.5))


def _room_fields(room: Room) -> dict[str, Any]:
    return {
        "room_id": room.room_id,
        "hostel_id": room.hostel_id,
        "room_number": room.room_number,
        "floor": room.floor,
        "capacity": room.capacity,
        "is_blocked": room.is_blocked,
        "block_reason": room.block_reason,
    }


class OccupancyIndex:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        directory: Optional[RoomDirectoryService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._directory = directory or RoomDirectoryService(
            repository=self._repository,
            settings=self._settings,
        )

    def occupancy_of(self, room_id: int) -> int:
        return self._repository.count_allotments_for_room(room_id)

    def admin_room_views(self) -> list[dict[str, Any]]:
        """All rooms with full occupant details, for the warden."""
        rooms = self._directory.all_rooms()
        hostel_names = {hostel.hostel_id: hostel.name for hostel in self._directory.list_hostels()}
        occupants_by_room: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for record in self._repository.list_occupants():
            occupants_by_room[record.room_id].append(
                {
                    "student_id": record.student_id,
                    "name": record.name or "Unknown",
                    "email": record.email,
                    "branch": record.branch or "",
                    "year": record.year or 0,
                    "allotted_at": record.allotted_at,
                }
            )

        views: list[dict[str, Any]] = []
        for room in rooms:
            occupants = occupants_by_room.get(room.room_id, [])
            views.append(
                {
                    **_room_fields(room),
                    "hostel_name": hostel_names.get(room.hostel_id, ""),
                    "occupants": occupants,
                    "occupied": len(occupants),
                    "available": room.capacity - len(occupants),
                    "status": room_status(room, len(occupants)),
                }
            )
        return views

    def student_room_views(self, reader: StudentScopedReader, hostel_id: int) -> list[dict[str, Any]]:
        """Rooms of one hostel with occupants reduced to public fields."""
        if reader.hostel(hostel_id) is None:
            raise HostelNotFoundError(f"Hostel {hostel_id} not found")
        rooms = reader.rooms(hostel_id)
        occupants_by_room: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for occupant in reader.public_occupants([room.room_id for room in rooms]):
            occupants_by_room[occupant.room_id].append(
                {
                    "student_id": occupant.student_id,
                    "name": occupant.name or "Unknown",
                    "branch": occupant.branch or "",
                    "year": occupant.year or 0,
                }
            )

        views: list[dict[str, Any]] = []
        for room in rooms:
            occupants = occupants_by_room.get(room.room_id, [])
            views.append(
                {
                    **_room_fields(room),
                    "occupants": occupants,
                    "occupied": len(occupants),
                    "available": room.capacity - len(occupants),
                    "status": room_status(room, len(occupants)),
                }
            )
        return views

    def vacancy_map(self) -> list[dict[str, Any]]:
        counts = self._repository.occupancy_by_room()
        rows: list[dict[str, Any]] = []
        for room in self._directory.all_rooms():
            occupied = counts.get(room.room_id, 0)
            rows.append(
                {
                    "room_id": room.room_id,
                    "room_number": room.room_number,
                    "floor": room.floor,
                    "capacity": room.capacity,
                    "occupied": occupied,
                    "available": room.capacity - occupied,
                    "vacancy_percent": vacancy_percent(room, occupied),
                    "is_blocked": room.is_blocked,
                    "status": vacancy_status(room, occupied),
                }
            )
        return rows
