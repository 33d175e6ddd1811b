"""Non-blocking, dismissible notifications surfaced to the renderer."""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """One user-visible message."""
    id: int
    level: NotificationLevel
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "created_at": self.created_at,
        }


class NotificationCenter:
    """Bounded notification list; every notification is also logged."""

    def __init__(self, view: str = "default", max_items: int = 50):
        self.view = view
        self.max_items = max_items
        self.logger = structlog.get_logger("notifications").bind(view=view)
        self._items: List[Notification] = []
        self._ids = itertools.count(1)
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def notify(
        self,
        level: NotificationLevel,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Record a notification and fan it out to listeners."""
        notification = Notification(
            id=next(self._ids),
            level=level,
            code=code,
            message=message,
            details=details or {},
        )
        self._items.append(notification)
        if len(self._items) > self.max_items:
            self._items = self._items[-self.max_items:]

        log = getattr(self.logger, level.value)
        log(message, code=code, **notification.details)

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                self.logger.error("Notification listener failed", code=code, error=str(e))
        return notification

    def info(self, code: str, message: str, **details) -> Notification:
        return self.notify(NotificationLevel.INFO, code, message, details)

    def warning(self, code: str, message: str, **details) -> Notification:
        return self.notify(NotificationLevel.WARNING, code, message, details)

    def error(self, code: str, message: str, **details) -> Notification:
        return self.notify(NotificationLevel.ERROR, code, message, details)

    def dismiss(self, notification_id: int) -> bool:
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notification_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items.clear()

    def active(self) -> List[Notification]:
        return list(self._items)

    def codes(self) -> List[str]:
        return [n.code for n in self._items]
