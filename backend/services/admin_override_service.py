"""Privileged allotment operations for wardens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.domain.models import ROLE_STUDENT, Allotment
from backend.repository.data_repository import DataRepository, StoreError
from backend.services.allotment_service import (
    AllotmentCoordinator,
    AllotmentOutcome,
    AllotmentStage,
    AllotmentStoreError,
    AllotmentValidationError,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class StudentNotFoundError(Exception):
    """Raised when the target user is not a provisioned student."""


@dataclass(frozen=True)
class UnassignOutcome:
    removed: Optional[Allotment]
    history_recorded: bool

    @property
    def changed(self) -> bool:
        return self.removed is not None


class AdminOverrideService:
    """Assign bypasses the window gate only; unassign skips the rules entirely."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        coordinator: Optional[AllotmentCoordinator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._coordinator = coordinator or AllotmentCoordinator(
            repository=self._repository,
            settings=self._settings,
        )

    def _require_student(self, student_id: str) -> None:
        if not student_id or not student_id.strip():
            raise AllotmentValidationError("student_id is required", AllotmentStage.START)
        try:
            profile = self._repository.get_user(student_id)
        except StoreError as exc:
            raise AllotmentStoreError("Failed to read student profile", AllotmentStage.START) from exc
        if profile is None or profile.role != ROLE_STUDENT:
            raise StudentNotFoundError(f"Student {student_id} not found")

    def assign(self, *, student_id: str, room_id: int) -> AllotmentOutcome:
        self._require_student(student_id)
        outcome = self._coordinator.execute(
            student_id=student_id,
            room_id=room_id,
            window_open=True,
        )
        logger.info("Admin assigned student %s to room %s", student_id, room_id)
        return outcome

    def unassign(self, *, student_id: str) -> UnassignOutcome:
        if not student_id or not student_id.strip():
            raise AllotmentValidationError("student_id is required", AllotmentStage.START)
        try:
            existing = self._repository.get_allotment_for_student(student_id)
            if existing is None:
                return UnassignOutcome(removed=None, history_recorded=False)
            self._repository.delete_allotment_for_student(student_id)
        except StoreError as exc:
            logger.warning("Admin unassign failed for student=%s: %s", student_id, exc)
            raise AllotmentStoreError("Failed to unassign", AllotmentStage.DELETING_OLD) from exc

        history_recorded = True
        try:
            self._repository.append_room_change(
                student_id=student_id,
                old_room_id=existing.room_id,
                new_room_id=None,
            )
        except StoreError:
            logger.exception("Room change history append failed for unassign of student=%s", student_id)
            history_recorded = False
        logger.info("Admin unassigned student %s from room %s", student_id, existing.room_id)
        return UnassignOutcome(removed=existing, history_recorded=history_recorded)
