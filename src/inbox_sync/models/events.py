"""Realtime change events."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field

from inbox_sync import constants
from inbox_sync.models.enums import ChangeEventType


class ChangeEvent(BaseModel):
    """Insert or update pushed by the change feed.

    ``record`` is kept as a raw mapping; consumers validate it themselves.
    """

    event_type: ChangeEventType
    table: str = constants.MESSAGES_TABLE
    record: Dict[str, Any] = Field(default_factory=dict)
