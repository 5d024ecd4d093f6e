"""Read-only room directory."""

from __future__ import annotations

from typing import Optional

from backend.domain.models import Hostel, Room
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings


class HostelNotFoundError(Exception):
    """Raised when a hostel id does not exist."""


class RoomNotFoundError(Exception):
    """Raised when a room id does not exist."""


class RoomDirectoryService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def list_hostels(self) -> list[Hostel]:
        return self._repository.list_hostels()

    def all_rooms(self) -> list[Room]:
        return self._repository.list_rooms()
