"""Allotment transaction coordinator.

Moves a student from their current room (if any) to a target room as a
sequence of individually atomic store calls:

    START -> CHECKED -> DENIED
                     -> DELETING_OLD -> INSERTING_NEW -> COMMITTED
                                                      -> COMPENSATING -> RESTORED
                                                                      -> INCONSISTENT

DENIED, COMMITTED, RESTORED and INCONSISTENT are terminal. RESTORED also
covers a failed restore when a concurrent request for the same student has
already committed a row. Every error raised by the coordinator carries the
stage it stopped in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NoReturn, Optional

from backend.domain.constraints import ALREADY_IN_ROOM_REASON, decide, full_reason
from backend.domain.models import Allotment, Room
from backend.repository.data_repository import CapacityGuardError, DataRepository, StoreError
from backend.services.window_service import AllotmentWindowGate
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AllotmentStage(str, Enum):
    START = "START"
    CHECKED = "CHECKED"
    DENIED = "DENIED"
    DELETING_OLD = "DELETING_OLD"
    INSERTING_NEW = "INSERTING_NEW"
    COMMITTED = "COMMITTED"
    COMPENSATING = "COMPENSATING"
    RESTORED = "RESTORED"
    INCONSISTENT = "INCONSISTENT"


class AllotmentError(Exception):
    """Base class for coordinator failures."""

    def __init__(self, message: str, stage: AllotmentStage) -> None:
        super().__init__(message)
        self.stage = stage


class AllotmentValidationError(AllotmentError):
    """Raised when the request is malformed; nothing was read or written."""


class AllotmentDeniedError(AllotmentError):
    """Raised for policy denials. The message is safe to show to the user."""

    @property
    def reason(self) -> str:
        return str(self)


class AllotmentStoreError(AllotmentError):
    """Raised when a store call failed and the prior state is intact."""


class InconsistentAllotmentStateError(AllotmentError):
    """Raised when the old allotment was deleted and could not be restored."""

    def __init__(self, message: str, *, student_id: str, lost_allotment: Allotment) -> None:
        super().__init__(message, AllotmentStage.INCONSISTENT)
        self.student_id = student_id
        self.lost_allotment = lost_allotment


@dataclass(frozen=True)
class AllotmentOutcome:
    allotment: Allotment
    previous_room_id: Optional[int]
    is_switch: bool
    history_recorded: bool
    stage: AllotmentStage = AllotmentStage.COMMITTED

    @property
    def action(self) -> str:
        return "switched" if self.is_switch else "allotted"


@dataclass
class _Attempt:
    """Tracks one allotment attempt through the state machine."""

    student_id: str
    room_id: int
    stage: AllotmentStage = AllotmentStage.START

    def advance(self, stage: AllotmentStage) -> None:
        logger.debug(
            "Allotment student=%s room=%s: %s -> %s",
            self.student_id,
            self.room_id,
            self.stage.value,
            stage.value,
        )
        self.stage = stage


def _validate_request(student_id: str, room_id: int) -> None:
    if not isinstance(student_id, str) or not student_id.strip():
        raise AllotmentValidationError("student_id is required", AllotmentStage.START)
    if isinstance(room_id, bool) or not isinstance(room_id, int) or room_id <= 0:
        raise AllotmentValidationError("room_id must be a positive integer", AllotmentStage.START)


class AllotmentCoordinator:
    """Applies allotment rules and performs the delete-old / insert-new move."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        window_gate: Optional[AllotmentWindowGate] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._window_gate = window_gate or AllotmentWindowGate(
            repository=self._repository,
            settings=self._settings,
        )

    def allot(
        self,
        *,
        student_id: str,
        room_id: int,
        now: Optional[datetime] = None,
    ) -> AllotmentOutcome:
        """Student path: the allotment window must be open."""
        _validate_request(student_id, room_id)
        status = self._window_gate.is_window_open(now)
        return self.execute(student_id=student_id, room_id=room_id, window_open=status.open)

    def execute(
        self,
        *,
        student_id: str,
        room_id: int,
        window_open: bool,
    ) -> AllotmentOutcome:
        _validate_request(student_id, room_id)
        attempt = _Attempt(student_id=student_id, room_id=room_id)

        try:
            room = self._repository.get_room(room_id)
            occupancy = self._repository.count_allotments_for_room(room_id)
            existing = self._repository.get_allotment_for_student(student_id)
        except StoreError as exc:
            logger.warning("Allotment pre-check reads failed for student=%s: %s", student_id, exc)
            raise AllotmentStoreError("Failed to read allotment state", attempt.stage) from exc
        attempt.advance(AllotmentStage.CHECKED)

        if existing is not None and existing.room_id == room_id:
            attempt.advance(AllotmentStage.DENIED)
            raise AllotmentDeniedError(ALREADY_IN_ROOM_REASON, attempt.stage)

        decision = decide(
            room=room,
            current_occupancy=occupancy,
            is_blocked=room.is_blocked if room is not None else False,
            window_open=window_open,
        )
        if not decision.allowed:
            attempt.advance(AllotmentStage.DENIED)
            logger.info(
                "Allotment denied for student=%s room=%s: %s",
                student_id,
                room_id,
                decision.reason,
            )
            raise AllotmentDeniedError(decision.reason, attempt.stage)

        if existing is not None:
            attempt.advance(AllotmentStage.DELETING_OLD)
            try:
                self._repository.delete_allotment_for_student(student_id)
            except StoreError as exc:
                logger.warning("Deleting old allotment failed for student=%s: %s", student_id, exc)
                raise AllotmentStoreError("Failed to release the current room", attempt.stage) from exc

        attempt.advance(AllotmentStage.INSERTING_NEW)
        try:
            allotment = self._repository.insert_allotment(student_id=student_id, room_id=room_id)
        except (StoreError, CapacityGuardError) as exc:
            self._fail_insert(attempt, room, existing, exc)

        attempt.advance(AllotmentStage.COMMITTED)
        previous_room_id = existing.room_id if existing is not None else None
        history_recorded = self._append_history(student_id, previous_room_id, room_id)
        logger.info(
            "Student %s %s to room %s (previous room %s)",
            student_id,
            "switched" if existing is not None else "allotted",
            room_id,
            previous_room_id,
        )
        return AllotmentOutcome(
            allotment=allotment,
            previous_room_id=previous_room_id,
            is_switch=existing is not None,
            history_recorded=history_recorded,
        )

    def _fail_insert(
        self,
        attempt: _Attempt,
        room: Optional[Room],
        existing: Optional[Allotment],
        exc: Exception,
    ) -> NoReturn:
        capacity_rejected = isinstance(exc, CapacityGuardError)

        if existing is None:
            if capacity_rejected and room is not None:
                attempt.advance(AllotmentStage.DENIED)
                raise AllotmentDeniedError(full_reason(room), attempt.stage) from exc
            logger.warning("Inserting allotment failed for student=%s: %s", attempt.student_id, exc)
            raise AllotmentStoreError("Failed to allot room", attempt.stage) from exc

        attempt.advance(AllotmentStage.COMPENSATING)
        logger.warning(
            "Insert failed after releasing room %s for student=%s; restoring: %s",
            existing.room_id,
            attempt.student_id,
            exc,
        )
        try:
            self._repository.restore_allotment(existing)
        except StoreError as restore_exc:
            if self._still_allotted(attempt.student_id):
                # A concurrent request for the same student committed first.
                attempt.advance(AllotmentStage.RESTORED)
                logger.warning(
                    "Restore skipped for student=%s; another allotment was committed concurrently",
                    attempt.student_id,
                )
                raise AllotmentStoreError(
                    "Allotment changed concurrently; try again",
                    attempt.stage,
                ) from exc
            attempt.advance(AllotmentStage.INCONSISTENT)
            self._report_inconsistent(attempt, existing, restore_exc)
            raise InconsistentAllotmentStateError(
                "Student left without an allotment; manual recovery needed",
                student_id=attempt.student_id,
                lost_allotment=existing,
            ) from restore_exc

        attempt.advance(AllotmentStage.RESTORED)
        if capacity_rejected and room is not None:
            raise AllotmentDeniedError(full_reason(room), attempt.stage) from exc
        raise AllotmentStoreError("Failed to switch room", attempt.stage) from exc

    def _still_allotted(self, student_id: str) -> bool:
        try:
            return self._repository.get_allotment_for_student(student_id) is not None
        except StoreError:
            logger.exception("Re-reading allotment failed for student=%s", student_id)
            return False

    def _report_inconsistent(
        self,
        attempt: _Attempt,
        lost: Allotment,
        exc: Exception,
    ) -> None:
        logger.critical(
            "INCONSISTENT allotment state: student=%s lost allotment %s in room %s "
            "while moving to room %s; manual recovery needed (%s)",
            attempt.student_id,
            lost.allotment_id,
            lost.room_id,
            attempt.room_id,
            exc,
        )
        try:
            self._repository.record_incident(
                student_id=attempt.student_id,
                old_room_id=lost.room_id,
                target_room_id=attempt.room_id,
                detail=f"Allotment {lost.allotment_id} could not be restored: {exc}",
            )
        except StoreError:
            logger.exception("Recording allotment incident failed for student=%s", attempt.student_id)

    def _append_history(
        self,
        student_id: str,
        old_room_id: Optional[int],
        new_room_id: Optional[int],
    ) -> bool:
        try:
            self._repository.append_room_change(
                student_id=student_id,
                old_room_id=old_room_id,
                new_room_id=new_room_id,
            )
        except StoreError:
            logger.exception(
                "Room change history append failed for student=%s (%s -> %s)",
                student_id,
                old_room_id,
                new_room_id,
            )
            return False
        return True
