"""
Activity log and notifications for a generation session.

Every entry is timestamped and kept (newest first, up to MAX_ENTRIES);
notifications are short-lived messages a front end shows once and drops.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Callable

from .models import LogEntry

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100

_LEVELS = {
    "info": logging.INFO,
    "loading": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ActivityLog:
    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._entries: deque[LogEntry] = deque(maxlen=MAX_ENTRIES)
        self._notifications: list[str] = []

    def log(self, step: str, message: str, level: str = "info") -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), step=step, message=message, level=level)
        self._entries.appendleft(entry)
        logger.log(_LEVELS.get(level, logging.INFO), f"[{step}] {message}")
        return entry

    def notify(self, message: str):
        self._notifications.append(message)

    def failure(self, step: str, message: str) -> LogEntry:
        """A failure always produces both a log entry and a notification."""
        self.notify(message)
        return self.log(step, message, "error")

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def drain_notifications(self) -> list[str]:
        pending, self._notifications = self._notifications, []
        return pending
