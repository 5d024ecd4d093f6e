"""Email OTP login for students, password login for the warden, bearer sessions."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import RLock
from typing import Callable, Optional
from uuid import uuid4

from backend.domain.models import UserProfile
from backend.repository.data_repository import DataRepository
from backend.services.profile_service import ProfileService
from backend.utils.clock import utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication failure."""


class EmailDomainNotAllowedError(AuthenticationError):
    """Raised when an OTP is requested for a non-institute address."""


class InvalidOtpError(AuthenticationError):
    """Raised when an OTP is wrong, expired or already used."""


class InvalidCredentialError(AuthenticationError):
    """Raised when a bearer token is unknown or expired."""


class AdminLoginNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_EMAIL / ADMIN_PASSWORD are missing."""


class InvalidAdminCredentialsError(AuthenticationError):
    """Raised when the warden email or password does not match."""


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class OtpIssue:
    email: str
    code: str
    expires_at: datetime
    failed_attempts: int = 0


def _constant_time_equals(supplied: str, expected: str) -> bool:
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def log_otp_delivery(email: str, code: str) -> None:
    """Default delivery hook; real mail delivery is handled outside this service."""
    logger.info("OTP issued for %s", email)


class AuthService:
    """Issues and validates OTP codes and opaque bearer sessions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        repository: Optional[DataRepository] = None,
        profile_service: Optional[ProfileService] = None,
        otp_delivery: Optional[Callable[[str, str], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._profile_service = profile_service or ProfileService(
            repository=self._repository,
            settings=self._settings,
        )
        self._otp_delivery = otp_delivery or log_otp_delivery
        self._clock = clock
        self._lock = RLock()
        self._pending_otps: dict[str, OtpIssue] = {}
        self._sessions: dict[str, Session] = {}

    @property
    def debug_echo_enabled(self) -> bool:
        return self._settings.otp_debug_echo

    @property
    def admin_login_enabled(self) -> bool:
        return bool(self._settings.admin_email and self._settings.admin_password)

    def _normalize_email(self, email: str) -> str:
        normalized = (email or "").strip().lower()
        if not normalized.endswith(self._settings.auth_allowed_email_domain):
            raise EmailDomainNotAllowedError(
                f"Only {self._settings.auth_allowed_email_domain} emails are allowed"
            )
        return normalized

    def _generate_code(self) -> str:
        length = self._settings.otp_length
        return f"{secrets.randbelow(10 ** length):0{length}d}"

    def _prune_expired(self, now: datetime) -> None:
        """Drop lapsed OTPs and sessions. Caller holds the lock."""
        for email in [key for key, issue in self._pending_otps.items() if issue.expires_at < now]:
            del self._pending_otps[email]
        for token in [key for key, session in self._sessions.items() if session.expires_at < now]:
            del self._sessions[token]

    def _open_session(self, user_id: str) -> Session:
        now = self._clock()
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=now + timedelta(minutes=self._settings.session_ttl_minutes),
        )
        with self._lock:
            self._prune_expired(now)
            self._sessions[session.token] = session
        return session

    def request_otp(self, email: str) -> OtpIssue:
        normalized = self._normalize_email(email)
        now = self._clock()
        issue = OtpIssue(
            email=normalized,
            code=self._generate_code(),
            expires_at=now + timedelta(seconds=self._settings.otp_ttl_seconds),
        )
        with self._lock:
            self._prune_expired(now)
            self._pending_otps[normalized] = issue
        self._otp_delivery(normalized, issue.code)
        return issue

    def verify_otp(self, email: str, code: str) -> tuple[Session, UserProfile]:
        normalized = self._normalize_email(email)
        with self._lock:
            issue = self._pending_otps.get(normalized)
            if issue is None or issue.expires_at < self._clock():
                self._pending_otps.pop(normalized, None)
                raise InvalidOtpError("Invalid or expired OTP")
            if not _constant_time_equals(str(code or ""), issue.code):
                failed_attempts = issue.failed_attempts + 1
                if failed_attempts >= self._settings.otp_max_attempts:
                    del self._pending_otps[normalized]
                    logger.warning("OTP for %s discarded after %s failed attempts", normalized, failed_attempts)
                else:
                    self._pending_otps[normalized] = replace(issue, failed_attempts=failed_attempts)
                raise InvalidOtpError("Invalid or expired OTP")
            del self._pending_otps[normalized]

        existing = self._repository.get_user_by_email(normalized)
        user_id = existing.user_id if existing is not None else uuid4().hex
        profile = self._profile_service.provision_student(user_id=user_id, email=normalized)
        logger.info("OTP login succeeded for user %s", user_id)
        return self._open_session(user_id), profile

    def admin_login(self, email: str, password: str) -> tuple[Session, UserProfile]:
        if not self.admin_login_enabled:
            raise AdminLoginNotConfiguredError(
                "ADMIN_EMAIL / ADMIN_PASSWORD are not configured."
            )
        email_ok = _constant_time_equals((email or "").strip().lower(), self._settings.admin_email)
        password_ok = _constant_time_equals(password or "", self._settings.admin_password)
        if not (email_ok and password_ok):
            raise InvalidAdminCredentialsError("Invalid email or password")

        profile = self._repository.ensure_admin_profile(
            email=self._settings.admin_email,
            name=self._settings.admin_name,
        )
        logger.info("Admin login succeeded for %s", profile.email)
        return self._open_session(profile.user_id), profile

    def resolve_session(self, bearer_token: str) -> str:
        with self._lock:
            session = self._sessions.get(bearer_token)
            if session is None:
                raise InvalidCredentialError("Invalid or expired token")
            if session.expires_at < self._clock():
                del self._sessions[bearer_token]
                raise InvalidCredentialError("Invalid or expired token")
        return session.user_id

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)
