"""Conversation thread view model."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from inbox_sync.models.message import Message


class Thread(BaseModel):
    """Derived grouping of every message exchanged with one participant."""

    participant_id: str
    name: str
    email: str = ""
    messages: List[Message] = Field(default_factory=list)
    last_message: Optional[Message] = None
    unread_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.messages
