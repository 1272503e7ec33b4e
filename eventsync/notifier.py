from __future__ import annotations

import threading
from collections import deque

from loguru import logger

from eventsync.models import Notification


VARIANT_DEFAULT = "default"
VARIANT_DESTRUCTIVE = "destructive"


class Notifier:
    """Bounded, newest-last log of user-facing notifications."""

    def __init__(self, max_entries: int = 50) -> None:
        self._items: deque[Notification] = deque(maxlen=max(1, max_entries))
        self._lock = threading.Lock()

    def notify(self, title: str, description: str = "", variant: str = VARIANT_DEFAULT) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        with self._lock:
            self._items.append(notification)
        if variant == VARIANT_DESTRUCTIVE:
            logger.warning("notification: {} - {}", title, description)
        else:
            logger.info("notification: {} - {}", title, description)
        return notification

    def success(self, description: str, title: str = "Success") -> Notification:
        return self.notify(title, description)

    def error(self, description: str, title: str = "Error") -> Notification:
        return self.notify(title, description, VARIANT_DESTRUCTIVE)

    def recent(self, limit: int = 20) -> list[Notification]:
        with self._lock:
            items = list(self._items)
        return list(reversed(items))[: max(1, limit)]

    def last(self) -> Notification | None:
        with self._lock:
            return self._items[-1] if self._items else None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
