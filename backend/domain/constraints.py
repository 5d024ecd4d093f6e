"""Domain-level rules for room allotment decisions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from backend.domain.models import Room


WINDOW_CLOSED_REASON = "Allotment window is closed. Room changes are not allowed right now."
ROOM_NOT_FOUND_REASON = "Room not found."
ALREADY_IN_ROOM_REASON = "You are already in this room."
ALLOWED_REASON = "Allotment allowed."
DEFAULT_BLOCK_REASON = "Unavailable"


@dataclass(frozen=True)
class AllotmentDecision:
    allowed: bool
    reason: str


def blocked_reason(room: Room) -> str:
    return f"Room {room.room_number} is blocked: {room.block_reason or DEFAULT_BLOCK_REASON}"


def full_reason(room: Room) -> str:
    return f"Room {room.room_number} is full."


def decide(
    *,
    room: Optional[Room],
    current_occupancy: int,
    is_blocked: bool,
    window_open: bool,
) -> AllotmentDecision:
    """Evaluate allotment rules in fixed order; the first failing rule wins.

    The admin override path calls this with ``window_open=True`` so that only
    the room existence, blocked and capacity rules apply.
    """
    if not window_open:
        return AllotmentDecision(allowed=False, reason=WINDOW_CLOSED_REASON)
    if room is None:
        return AllotmentDecision(allowed=False, reason=ROOM_NOT_FOUND_REASON)
    if is_blocked:
        return AllotmentDecision(allowed=False, reason=blocked_reason(room))
    if current_occupancy >= room.capacity:
        return AllotmentDecision(allowed=False, reason=full_reason(room))
    return AllotmentDecision(allowed=True, reason=ALLOWED_REASON)


def validate_window_bounds(title: str, open_at: datetime, close_at: datetime) -> None:
    if not title or not title.strip():
        raise ValueError("title must not be empty")
    if close_at <= open_at:
        raise ValueError("close_at must be after open_at")


def validate_room_capacity(capacity: int) -> None:
    if capacity <= 0:
        raise ValueError("capacity must be > 0")
