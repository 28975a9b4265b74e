from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    level: str  # "success" | "error"
    message: str


class Notifier:
    """Transient user-facing notifications (the UI's toasts)."""

    def __init__(self) -> None:
        self.notices: List[Notice] = []
        self._listeners: List[Callable[[Notice], None]] = []

    def subscribe(self, listener: Callable[[Notice], None]) -> None:
        self._listeners.append(listener)

    def success(self, message: str) -> None:
        self._emit(Notice("success", message))

    def error(self, message: str) -> None:
        self._emit(Notice("error", message))

    def _emit(self, notice: Notice) -> None:
        if notice.level == "error":
            logger.warning("notice level=%s message=%s", notice.level, notice.message)
        else:
            logger.info("notice level=%s message=%s", notice.level, notice.message)
        self.notices.append(notice)
        for listener in self._listeners:
            listener(notice)
