"""Shared enums for inbox-sync models."""

from __future__ import annotations

from enum import Enum


class MessageStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"


class UserRole(str, Enum):
    ADMIN = "admin"
    SUPPORT = "support"
    RESELLER = "reseller"
    USER = "user"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPPORT})


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class ThreadLoadState(str, Enum):
    PARTIAL = "PARTIAL"
    LOADING = "LOADING"
    COMPLETE = "COMPLETE"


class InboxFilter(str, Enum):
    ALL = "all"
    UNREAD = "unread"
