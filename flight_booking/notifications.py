"""User-visible notices produced by the services and shown by the web layer."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional

logger = logging.getLogger(__name__)

NoticeLevel = Literal["success", "info", "error"]


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str


@dataclass
class Notifier:
    """Collects notices for the current request."""

    notices: List[Notice] = field(default_factory=list)

    def push(self, level: NoticeLevel, message: str) -> None:
        logger.debug("notice[%s]: %s", level, message)
        self.notices.append(Notice(level, message))

    def error(self, message: str) -> None:
        self.push("error", message)

    def drain(self) -> List[Notice]:
        drained, self.notices = self.notices, []
        return drained


def notify(notifier: Optional[Notifier], level: NoticeLevel, message: str) -> None:
    if notifier is not None:
        notifier.push(level, message)
