"""Student profile provisioning and profile summaries."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from backend.domain.email_profile import parse_institute_email
from backend.domain.models import ROLE_STUDENT, UserProfile
from backend.repository.data_repository import DataRepository
from backend.repository.scoped_reader import StudentScopedReader
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ProfileNotProvisionedError(Exception):
    """Raised when an authenticated identity has no profile row yet."""


class ProfileService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def provision_student(self, *, user_id: str, email: str, today: Optional[date] = None) -> UserProfile:
        """Create or refresh a profile from the address; an existing role is kept."""
        existing = self._repository.get_user(user_id)
        parsed = parse_institute_email(
            email,
            domain=self._settings.auth_allowed_email_domain,
            today=today,
        )
        if parsed is None:
            logger.info("Email %s did not match the institute format; profile left unparsed", email)
        profile = UserProfile(
            user_id=user_id,
            email=email.lower(),
            role=existing.role if existing is not None else ROLE_STUDENT,
            name=parsed.name if parsed else None,
            branch=parsed.branch if parsed else None,
            year=parsed.year if parsed else None,
        )
        return self._repository.upsert_user(profile)

    def profile_summary(self, reader: StudentScopedReader) -> dict[str, Any]:
        profile = reader.own_profile()
        if profile is None:
            raise ProfileNotProvisionedError("Profile has not been provisioned yet")

        detail = reader.own_allotment_detail()
        allotment = None
        if detail is not None:
            allotment = {
                "allotment_id": detail.allotment_id,
                "room_id": detail.room_id,
                "room_number": detail.room_number,
                "floor": detail.floor,
                "hostel_id": detail.hostel_id,
                "hostel_name": detail.hostel_name,
                "allotted_at": detail.allotted_at,
            }

        history = [
            {
                "old_room_id": entry.old_room_id,
                "new_room_id": entry.new_room_id,
                "changed_at": entry.changed_at,
            }
            for entry in reader.own_room_changes(self._settings.profile_history_limit)
        ]
        return {
            "user_id": profile.user_id,
            "email": profile.email,
            "role": profile.role,
            "name": profile.name,
            "branch": profile.branch,
            "year": profile.year,
            "allotment": allotment,
            "room_history": history,
        }
