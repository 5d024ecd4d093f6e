"""Tests for the allotment rule engine.

Covers each rule branch of decide(), the fixed rule order, and the
window/capacity validators.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.constraints import (
    ALLOWED_REASON,
    ROOM_NOT_FOUND_REASON,
    WINDOW_CLOSED_REASON,
    decide,
    validate_room_capacity,
    validate_window_bounds,
)
from backend.domain.models import Room


def make_room(**overrides) -> Room:
    """Return a baseline two-bed room, optionally overriding fields."""
    defaults = {
        "room_id": 7,
        "hostel_id": 1,
        "room_number": "204",
        "floor": 2,
        "capacity": 2,
        "is_blocked": False,
        "block_reason": None,
    }
    defaults.update(overrides)
    return Room(**defaults)


# --- Baseline pass ---

def test_open_window_with_free_bed_is_allowed() -> None:
    decision = decide(room=make_room(), current_occupancy=1, is_blocked=False, window_open=True)
    assert decision.allowed
    assert decision.reason == ALLOWED_REASON


def test_empty_room_is_allowed() -> None:
    decision = decide(room=make_room(), current_occupancy=0, is_blocked=False, window_open=True)
    assert decision.allowed


# --- Single rule failures ---

def test_closed_window_denies() -> None:
    decision = decide(room=make_room(), current_occupancy=0, is_blocked=False, window_open=False)
    assert not decision.allowed
    assert decision.reason == WINDOW_CLOSED_REASON


def test_missing_room_denies() -> None:
    decision = decide(room=None, current_occupancy=0, is_blocked=False, window_open=True)
    assert not decision.allowed
    assert decision.reason == ROOM_NOT_FOUND_REASON


def test_blocked_room_reports_block_reason() -> None:
    room = make_room(is_blocked=True, block_reason="Maintenance")
    decision = decide(room=room, current_occupancy=0, is_blocked=True, window_open=True)
    assert not decision.allowed
    assert decision.reason == "Room 204 is blocked: Maintenance"


def test_blocked_room_without_reason_uses_default() -> None:
    room = make_room(is_blocked=True)
    decision = decide(room=room, current_occupancy=0, is_blocked=True, window_open=True)
    assert decision.reason == "Room 204 is blocked: Unavailable"


def test_full_room_denies() -> None:
    decision = decide(room=make_room(), current_occupancy=2, is_blocked=False, window_open=True)
    assert not decision.allowed
    assert decision.reason == "Room 204 is full."


def test_over_capacity_room_still_reports_full() -> None:
    decision = decide(room=make_room(), current_occupancy=3, is_blocked=False, window_open=True)
    assert decision.reason == "Room 204 is full."


# --- Rule order: first failing rule wins ---

def test_closed_window_wins_over_missing_room() -> None:
    decision = decide(room=None, current_occupancy=0, is_blocked=False, window_open=False)
    assert decision.reason == WINDOW_CLOSED_REASON


def test_closed_window_wins_over_blocked_and_full() -> None:
    room = make_room(is_blocked=True, block_reason="Pest control")
    decision = decide(room=room, current_occupancy=5, is_blocked=True, window_open=False)
    assert decision.reason == WINDOW_CLOSED_REASON


def test_blocked_wins_over_full() -> None:
    room = make_room(is_blocked=True, block_reason="Pest control")
    decision = decide(room=room, current_occupancy=2, is_blocked=True, window_open=True)
    assert decision.reason == "Room 204 is blocked: Pest control"


def test_decide_is_deterministic() -> None:
    kwargs = {"room": make_room(), "current_occupancy": 2, "is_blocked": False, "window_open": True}
    assert decide(**kwargs) == decide(**kwargs)


# --- Window bounds ---

def test_window_bounds_accept_ordered_range() -> None:
    start = datetime(2026, 7, 1, 9, tzinfo=timezone.utc)
    validate_window_bounds("July change window", start, start + timedelta(hours=8))


def test_window_bounds_reject_equal_times() -> None:
    start = datetime(2026, 7, 1, 9, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        validate_window_bounds("Zero length", start, start)


def test_window_bounds_reject_reversed_times() -> None:
    start = datetime(2026, 7, 1, 9, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        validate_window_bounds("Backwards", start, start - timedelta(minutes=1))


def test_window_bounds_reject_blank_title() -> None:
    start = datetime(2026, 7, 1, 9, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        validate_window_bounds("   ", start, start + timedelta(hours=1))


# --- Room capacity ---

def test_room_capacity_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_room_capacity(0)


def test_room_capacity_one_passes() -> None:
    validate_room_capacity(1)
