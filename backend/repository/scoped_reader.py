"""Store handle scoped to one authenticated end user.

The repository itself is the trusted service-level handle. Student-facing
reads go through this reader instead, which only exposes the caller's own
rows plus room listings with occupant contact details removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.domain.models import Allotment, Hostel, Room, RoomChangeEntry, UserProfile
from backend.repository.data_repository import AllotmentDetailRecord, DataRepository


@dataclass(frozen=True)
class PublicOccupant:
    """Occupant fields other students are allowed to see."""

    room_id: int
    student_id: str
    name: Optional[str]
    branch: Optional[str]
    year: Optional[int]


class StudentScopedReader:
    def __init__(self, repository: DataRepository, user_id: str) -> None:
        self._repository = repository
        self._user_id = user_id

    @property
    def user_id(self) -> str:
        return self._user_id

    def own_profile(self) -> Optional[UserProfile]:
        return self._repository.get_user(self._user_id)

    def own_allotment(self) -> Optional[Allotment]:
        return self._repository.get_allotment_for_student(self._user_id)

    def own_allotment_detail(self) -> Optional[AllotmentDetailRecord]:
        return self._repository.get_allotment_detail_for_student(self._user_id)

    def own_room_changes(self, limit: int) -> list[RoomChangeEntry]:
        return self._repository.list_room_changes(self._user_id, limit=limit)

    def hostels(self) -> list[Hostel]:
        return self._repository.list_hostels()

    def hostel(self, hostel_id: int) -> Optional[Hostel]:
        return self._repository.get_hostel(hostel_id)

    def rooms(self, hostel_id: int) -> list[Room]:
        return self._repository.list_rooms(hostel_id=hostel_id)

    def public_occupants(self, room_ids: list[int]) -> list[PublicOccupant]:
        return [
            PublicOccupant(
                room_id=record.room_id,
                student_id=record.student_id,
                name=record.name,
                branch=record.branch,
                year=record.year,
            )
            for record in self._repository.list_occupants(room_ids)
        ]
