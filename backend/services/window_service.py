"""Allotment window gate: decides whether students may allot right now."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from backend.domain.constraints import validate_window_bounds
from backend.domain.models import AllotmentWindow
from backend.repository.data_repository import DataRepository, StoreError
from backend.utils.clock import utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class WindowValidationError(Exception):
    """Raised when a new allotment window is malformed."""


@dataclass(frozen=True)
class WindowStatus:
    open: bool
    active_window: Optional[AllotmentWindow]


CLOSED = WindowStatus(open=False, active_window=None)


class AllotmentWindowGate:
    """Reads admin-configured windows; never reports open on a failed lookup."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def is_window_open(self, now: Optional[datetime] = None) -> WindowStatus:
        moment = now or utc_now()
        try:
            window = self._repository.find_active_window(moment)
        except StoreError:
            logger.exception("Allotment window lookup failed; treating window as closed")
            return CLOSED
        if window is None:
            return CLOSED
        return WindowStatus(open=True, active_window=window)

    def create_window(
        self,
        *,
        title: str,
        open_at: datetime,
        close_at: datetime,
        created_by: Optional[str],
    ) -> AllotmentWindow:
        try:
            validate_window_bounds(title, open_at, close_at)
        except ValueError as exc:
            raise WindowValidationError(str(exc)) from exc
        window = self._repository.create_window(
            title=title.strip(),
            open_at=open_at,
            close_at=close_at,
            created_by=created_by,
        )
        logger.info(
            "Allotment window %s created: %s -> %s",
            window.window_id,
            window.open_at.isoformat(),
            window.close_at.isoformat(),
        )
        return window

    def recent_windows(
        self,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[AllotmentWindow], Optional[AllotmentWindow]]:
        """Latest windows by open time together with whichever one is active."""
        windows = self._repository.list_windows(limit or self._settings.admin_window_list_limit)
        return windows, self.is_window_open(now).active_window
