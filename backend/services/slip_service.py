"""Allotment slip facts and public QR verification."""

from __future__ import annotations

from typing import Any, Optional

from backend.domain.models import UserProfile
from backend.repository.data_repository import AllotmentDetailRecord, DataRepository
from backend.utils.config import Settings, get_settings


class AllotmentNotFoundError(Exception):
    """Raised when an allotment id is unknown."""


class SlipAccessDeniedError(Exception):
    """Raised when a student requests someone else's slip."""


class SlipService:
    """Produces the facts a slip renderer or QR encoder needs."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def verify_url(self, allotment_id: str) -> str:
        return f"{self._settings.verify_base_url}/verify/{allotment_id}"

    def _detail(self, allotment_id: str) -> AllotmentDetailRecord:
        detail = self._repository.get_allotment_detail(allotment_id)
        if detail is None:
            raise AllotmentNotFoundError("Allotment not found")
        return detail

    def slip(self, *, allotment_id: str, requester: UserProfile) -> dict[str, Any]:
        detail = self._detail(allotment_id)
        if detail.student_id != requester.user_id and not requester.is_admin:
            raise SlipAccessDeniedError("Access denied")
        return {
            "allotment_id": detail.allotment_id,
            "student_name": detail.student_name or "Unknown",
            "email": detail.email,
            "branch": detail.branch or "",
            "year": detail.year or 0,
            "hostel_name": detail.hostel_name,
            "room_number": detail.room_number,
            "floor": detail.floor,
            "allotted_at": detail.allotted_at,
            "verify_url": self.verify_url(detail.allotment_id),
        }

    def verify(self, allotment_id: str) -> dict[str, Any]:
        detail = self._detail(allotment_id)
        return {
            "allotment_id": detail.allotment_id,
            "student_name": detail.student_name or "Unknown",
            "email": detail.email,
            "branch": detail.branch or "",
            "year": detail.year or 0,
            "hostel": detail.hostel_name,
            "room_number": detail.room_number,
            "floor": detail.floor,
            "allotted_at": detail.allotted_at,
        }
