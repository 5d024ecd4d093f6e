from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from backend.repository.data_repository import DataRepository, StoreError
from backend.services.window_service import AllotmentWindowGate, WindowValidationError
from backend.utils.config import get_settings


NOW = datetime(2026, 8, 3, 12, 0, tzinfo=timezone.utc)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
        admin_window_list_limit=3,
    )


def _build_gate(tmp_path, filename: str) -> tuple[AllotmentWindowGate, DataRepository]:
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    return AllotmentWindowGate(repository=repository, settings=settings), repository


def test_gate_is_closed_without_windows(tmp_path):
    gate, _ = _build_gate(tmp_path, "no_windows.db")
    status = gate.is_window_open(NOW)
    assert status.open is False
    assert status.active_window is None


def test_gate_opens_inside_window_and_closes_after(tmp_path):
    gate, _ = _build_gate(tmp_path, "inside_window.db")
    window = gate.create_window(
        title="Semester change",
        open_at=NOW - timedelta(hours=1),
        close_at=NOW + timedelta(hours=1),
        created_by=None,
    )

    inside = gate.is_window_open(NOW)
    assert inside.open is True
    assert inside.active_window == window

    before = gate.is_window_open(NOW - timedelta(hours=2))
    after = gate.is_window_open(NOW + timedelta(hours=2))
    assert before.open is False
    assert after.open is False


def test_gate_bounds_are_inclusive(tmp_path):
    gate, _ = _build_gate(tmp_path, "inclusive.db")
    open_at = NOW
    close_at = NOW + timedelta(hours=4)
    gate.create_window(title="Edges", open_at=open_at, close_at=close_at, created_by=None)

    assert gate.is_window_open(open_at).open is True
    assert gate.is_window_open(close_at).open is True
    assert gate.is_window_open(close_at + timedelta(microseconds=1)).open is False


def test_overlapping_windows_prefer_latest_open(tmp_path):
    gate, _ = _build_gate(tmp_path, "overlap.db")
    gate.create_window(
        title="Long window",
        open_at=NOW - timedelta(days=2),
        close_at=NOW + timedelta(days=2),
        created_by=None,
    )
    later = gate.create_window(
        title="Short window",
        open_at=NOW - timedelta(hours=1),
        close_at=NOW + timedelta(hours=1),
        created_by=None,
    )

    status = gate.is_window_open(NOW)
    assert status.open is True
    assert status.active_window.window_id == later.window_id


def test_identical_open_times_prefer_newest_row(tmp_path):
    gate, _ = _build_gate(tmp_path, "tie.db")
    gate.create_window(
        title="First",
        open_at=NOW - timedelta(hours=1),
        close_at=NOW + timedelta(hours=1),
        created_by=None,
    )
    second = gate.create_window(
        title="Second",
        open_at=NOW - timedelta(hours=1),
        close_at=NOW + timedelta(hours=3),
        created_by=None,
    )
    assert gate.is_window_open(NOW).active_window.window_id == second.window_id


def test_naive_datetimes_are_treated_as_utc(tmp_path):
    gate, _ = _build_gate(tmp_path, "naive.db")
    gate.create_window(
        title="Naive",
        open_at=datetime(2026, 8, 3, 11, 0),
        close_at=datetime(2026, 8, 3, 13, 0),
        created_by=None,
    )
    assert gate.is_window_open(NOW).open is True


def test_lookup_failure_fails_closed(monkeypatch, tmp_path):
    gate, repository = _build_gate(tmp_path, "fail_closed.db")
    gate.create_window(
        title="Open now",
        open_at=NOW - timedelta(hours=1),
        close_at=NOW + timedelta(hours=1),
        created_by=None,
    )

    def broken_lookup(moment):
        raise StoreError("Active window lookup failed: disk I/O error")

    monkeypatch.setattr(repository, "find_active_window", broken_lookup)
    status = gate.is_window_open(NOW)
    assert status.open is False
    assert status.active_window is None


def test_create_window_rejects_reversed_bounds(tmp_path):
    gate, repository = _build_gate(tmp_path, "reversed.db")
    with pytest.raises(WindowValidationError):
        gate.create_window(
            title="Backwards",
            open_at=NOW,
            close_at=NOW - timedelta(minutes=1),
            created_by=None,
        )
    assert repository.list_windows(10) == []


def test_recent_windows_are_limited_and_report_active(tmp_path):
    gate, _ = _build_gate(tmp_path, "recent.db")
    for offset in range(5):
        gate.create_window(
            title=f"Window {offset}",
            open_at=NOW - timedelta(days=10 - offset),
            close_at=NOW - timedelta(days=9 - offset),
            created_by=None,
        )
    active = gate.create_window(
        title="Current",
        open_at=NOW - timedelta(minutes=30),
        close_at=NOW + timedelta(minutes=30),
        created_by=None,
    )

    windows, current = gate.recent_windows(NOW)
    assert len(windows) == 3
    assert windows[0].window_id == active.window_id
    assert current.window_id == active.window_id
