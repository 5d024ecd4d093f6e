"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str

    auth_allowed_email_domain: str
    admin_email: str
    admin_password: str
    admin_name: str
    otp_length: int
    otp_ttl_seconds: int
    otp_max_attempts: int
    otp_debug_echo: bool
    session_ttl_minutes: int

    verify_base_url: str
    profile_history_limit: int
    admin_window_list_limit: int

    seed_demo_data: bool
    demo_hostel_name: str
    demo_floors: int
    demo_rooms_per_floor: int
    demo_room_capacity: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Hostel Room Allotment"),
        app_version=os.getenv("APP_VERSION", "2.0.0"),
        database_path=Path(os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "hostel.db"))),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        auth_allowed_email_domain=os.getenv("AUTH_ALLOWED_EMAIL_DOMAIN", "@itbhu.ac.in").lower(),
        admin_email=os.getenv("ADMIN_EMAIL", "").lower(),
        admin_password=os.getenv("ADMIN_PASSWORD", ""),
        admin_name=os.getenv("ADMIN_NAME", "Hostel Warden"),
        otp_length=_env_int("OTP_LENGTH", 6),
        otp_ttl_seconds=_env_int("OTP_TTL_SECONDS", 300),
        otp_max_attempts=_env_int("OTP_MAX_ATTEMPTS", 5),
        otp_debug_echo=_env_bool("OTP_DEBUG_ECHO", False),
        session_ttl_minutes=_env_int("SESSION_TTL_MINUTES", 720),
        verify_base_url=os.getenv("VERIFY_BASE_URL", "http://127.0.0.1:8000").rstrip("/"),
        profile_history_limit=_env_int("PROFILE_HISTORY_LIMIT", 10),
        admin_window_list_limit=_env_int("ADMIN_WINDOW_LIST_LIMIT", 5),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        demo_hostel_name=os.getenv("DEMO_HOSTEL_NAME", "Satish Dhawan Hostel"),
        demo_floors=_env_int("DEMO_FLOORS", 3),
        demo_rooms_per_floor=_env_int("DEMO_ROOMS_PER_FLOOR", 10),
        demo_room_capacity=_env_int("DEMO_ROOM_CAPACITY", 2),
    )
