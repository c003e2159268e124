"""Profile and viewer models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from inbox_sync.models.enums import STAFF_ROLES, UserRole


class Profile(BaseModel):
    """Read-only participant profile."""

    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class ProfileUpsertRequest(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: UserRole = UserRole.USER


class Viewer(BaseModel):
    """Identity on whose behalf actions run and unread state is computed."""

    id: str
    is_admin: bool = False
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "Viewer":
        return cls(
            id=profile.id,
            is_admin=profile.is_staff,
            name=profile.full_name,
            email=profile.email,
        )
