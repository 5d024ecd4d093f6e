"""Domain models for hostel rooms, allotments and allotment windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Hostel:
    hostel_id: int
    name: str
    total_rooms: int = 0


@dataclass(frozen=True)
class Room:
    room_id: int
    hostel_id: int
    room_number: str
    floor: int
    capacity: int
    is_blocked: bool = False
    block_reason: Optional[str] = None


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    email: str
    role: str = ROLE_STUDENT
    name: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class Allotment:
    allotment_id: str
    student_id: str
    room_id: int
    allotted_at: datetime


@dataclass(frozen=True)
class AllotmentWindow:
    window_id: int
    title: str
    open_at: datetime
    close_at: datetime
    created_by: Optional[str] = None


@dataclass(frozen=True)
class RoomChangeEntry:
    entry_id: int
    student_id: str
    old_room_id: Optional[int]
    new_room_id: Optional[int]
    changed_at: datetime


@dataclass(frozen=True)
class AllotmentIncident:
    incident_id: int
    student_id: str
    old_room_id: Optional[int]
    target_room_id: int
    detail: str
    recorded_at: datetime
