"""Profile lookup and viewer resolution."""

from __future__ import annotations

from typing import List, Optional

from inbox_sync.clients.database import Profile as ProfileORM, session_scope
from inbox_sync.models.enums import UserRole
from inbox_sync.models.profile import Profile, Viewer


class UnknownViewerError(RuntimeError):
    """Raised when an action is attempted by an unregistered identity."""


class PermissionDeniedError(RuntimeError):
    """Raised when a non-staff viewer calls a staff-only operation."""


class ProfileService:
    """Reads and maintains participant profiles."""

    def upsert_profile(
        self,
        profile_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> Profile:
        with session_scope() as db:
            profile = db.get(ProfileORM, profile_id)
            if profile is None:
                profile = ProfileORM(id=profile_id)
                db.add(profile)
            profile.full_name = full_name
            profile.email = email
            profile.role = role
            db.flush()
            db.refresh(profile)
            return Profile.model_validate(profile, from_attributes=True)

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        with session_scope() as db:
            profile = db.get(ProfileORM, profile_id)
            return Profile.model_validate(profile, from_attributes=True) if profile else None

    def find_by_email(self, email: str) -> Optional[Profile]:
        with session_scope() as db:
            profile = db.query(ProfileORM).filter(ProfileORM.email == email).first()
            return Profile.model_validate(profile, from_attributes=True) if profile else None

    def resolve_viewer(self, viewer_id: str) -> Viewer:
        """Build the acting viewer, looking its role up in the profile table."""
        profile = self.get_profile(viewer_id)
        if profile is None:
            raise UnknownViewerError(f"Unknown viewer '{viewer_id}'.")
        return Viewer.from_profile(profile)

    def list_all_profiles(self, viewer: Viewer) -> List[Profile]:
        if not viewer.is_admin:
            raise PermissionDeniedError("Only staff may list profiles.")
        with session_scope() as db:
            profiles = db.query(ProfileORM).order_by(ProfileORM.created_at.asc(), ProfileORM.id.asc()).all()
            return [Profile.model_validate(obj, from_attributes=True) for obj in profiles]

    def list_customers(self) -> List[Profile]:
        """Profiles outside the staff roles."""
        with session_scope() as db:
            profiles = (
                db.query(ProfileORM)
                .filter(ProfileORM.role.not_in([UserRole.ADMIN, UserRole.SUPPORT]))
                .order_by(ProfileORM.id.asc())
                .all()
            )
            return [Profile.model_validate(obj, from_attributes=True) for obj in profiles]
