from __future__ import annotations

from dataclasses import replace

import pytest

from backend.domain.models import ROLE_ADMIN, UserProfile
from backend.repository.data_repository import DataRepository, StoreError
from backend.services.admin_override_service import AdminOverrideService, StudentNotFoundError
from backend.services.allotment_service import (
    AllotmentCoordinator,
    AllotmentDeniedError,
    AllotmentStage,
    AllotmentStoreError,
)
from backend.services.window_service import AllotmentWindowGate
from backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
    )


def _build_service(tmp_path, filename: str):
    """No allotment window is configured, so the student path is always closed."""
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    hostel = repository.create_hostel("Override Hostel")
    single = repository.create_room(hostel_id=hostel.hostel_id, room_number="S1", capacity=1)
    double = repository.create_room(hostel_id=hostel.hostel_id, room_number="D1", capacity=2)
    repository.upsert_user(UserProfile(user_id="stu-1", email="stu1@itbhu.ac.in"))
    repository.upsert_user(UserProfile(user_id="stu-2", email="stu2@itbhu.ac.in"))
    repository.upsert_user(UserProfile(user_id="warden", email="warden@itbhu.ac.in", role=ROLE_ADMIN))

    gate = AllotmentWindowGate(repository=repository, settings=settings)
    coordinator = AllotmentCoordinator(repository=repository, window_gate=gate, settings=settings)
    service = AdminOverrideService(repository=repository, coordinator=coordinator, settings=settings)
    return service, coordinator, repository, single, double


def test_assign_bypasses_closed_window(tmp_path):
    service, coordinator, repository, single, _ = _build_service(tmp_path, "bypass.db")

    with pytest.raises(AllotmentDeniedError):
        coordinator.allot(student_id="stu-1", room_id=single.room_id)

    outcome = service.assign(student_id="stu-1", room_id=single.room_id)
    assert outcome.action == "allotted"
    assert repository.get_allotment_for_student("stu-1").room_id == single.room_id


def test_assign_switches_existing_allotment(tmp_path):
    service, _, repository, single, double = _build_service(tmp_path, "admin_switch.db")
    service.assign(student_id="stu-1", room_id=single.room_id)

    outcome = service.assign(student_id="stu-1", room_id=double.room_id)

    assert outcome.action == "switched"
    assert outcome.previous_room_id == single.room_id
    assert repository.count_allotments() == 1


def test_assign_still_respects_capacity(tmp_path):
    service, _, repository, single, _ = _build_service(tmp_path, "admin_full.db")
    service.assign(student_id="stu-1", room_id=single.room_id)

    with pytest.raises(AllotmentDeniedError) as exc_info:
        service.assign(student_id="stu-2", room_id=single.room_id)

    assert exc_info.value.reason == "Room S1 is full."
    assert repository.get_allotment_for_student("stu-2") is None


def test_assign_still_respects_block(tmp_path):
    service, _, repository, _, double = _build_service(tmp_path, "admin_blocked.db")
    repository.set_room_block(double.room_id, is_blocked=True, reason="Flooded")

    with pytest.raises(AllotmentDeniedError) as exc_info:
        service.assign(student_id="stu-1", room_id=double.room_id)

    assert exc_info.value.reason == "Room D1 is blocked: Flooded"


def test_assign_requires_known_student(tmp_path):
    service, _, _, single, _ = _build_service(tmp_path, "unknown_student.db")
    with pytest.raises(StudentNotFoundError):
        service.assign(student_id="ghost", room_id=single.room_id)


def test_assign_rejects_admin_accounts(tmp_path):
    service, _, _, single, _ = _build_service(tmp_path, "admin_target.db")
    with pytest.raises(StudentNotFoundError):
        service.assign(student_id="warden", room_id=single.room_id)


def test_unassign_without_allotment_is_a_no_op(tmp_path):
    service, _, repository, _, _ = _build_service(tmp_path, "unassign_noop.db")

    outcome = service.unassign(student_id="stu-1")

    assert outcome.changed is False
    assert outcome.history_recorded is False
    assert repository.list_room_changes("stu-1") == []


def test_unassign_removes_allotment_and_records_history(tmp_path):
    service, _, repository, _, double = _build_service(tmp_path, "unassign.db")
    assigned = service.assign(student_id="stu-1", room_id=double.room_id)

    outcome = service.unassign(student_id="stu-1")

    assert outcome.changed is True
    assert outcome.removed == assigned.allotment
    assert outcome.history_recorded is True
    assert repository.get_allotment_for_student("stu-1") is None
    latest = repository.list_room_changes("stu-1")[0]
    assert (latest.old_room_id, latest.new_room_id) == (double.room_id, None)


def test_unassign_delete_failure_is_reported(monkeypatch, tmp_path):
    service, _, repository, _, double = _build_service(tmp_path, "unassign_fail.db")
    service.assign(student_id="stu-1", room_id=double.room_id)

    def broken_delete(student_id):
        raise StoreError("Allotment delete failed: locked")

    monkeypatch.setattr(repository, "delete_allotment_for_student", broken_delete)
    with pytest.raises(AllotmentStoreError) as exc_info:
        service.unassign(student_id="stu-1")

    assert exc_info.value.stage == AllotmentStage.DELETING_OLD
    assert repository.get_allotment_for_student("stu-1") is not None
