"""User-visible, non-blocking notices."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel

LOG = logging.getLogger(__name__)


class Notice(BaseModel):
    level: str
    text: str


class Notifier:
    """Collects notices for the view layer and mirrors them to the log."""

    def __init__(self, limit: int = 50) -> None:
        self.limit = limit
        self.notices: List[Notice] = []

    def info(self, text: str) -> None:
        self._push("info", text)

    def success(self, text: str) -> None:
        self._push("success", text)

    def error(self, text: str) -> None:
        self._push("error", text)

    def latest(self, level: Optional[str] = None) -> Optional[Notice]:
        for notice in reversed(self.notices):
            if level is None or notice.level == level:
                return notice
        return None

    def _push(self, level: str, text: str) -> None:
        LOG.log(logging.WARNING if level == "error" else logging.INFO, "[%s] %s", level, text)
        self.notices.append(Notice(level=level, text=text))
        del self.notices[: -self.limit]
