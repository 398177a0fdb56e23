from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, List, Protocol

from .logger import setup_logger


class NotificationKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    description: str = ""
    created_at: str = ""


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


_LEVELS = {
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.WARNING: logging.WARNING,
    NotificationKind.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """Writes notifications to the log and keeps the latest ones for display."""

    def __init__(self, max_recent: int = 50):
        self.logger = setup_logger(self.__class__.__name__)
        self._recent: Deque[Notification] = deque(maxlen=max_recent)

    def notify(self, notification: Notification) -> None:
        if not notification.created_at:
            notification = Notification(
                kind=notification.kind,
                title=notification.title,
                description=notification.description,
                created_at=datetime.now().isoformat(timespec="seconds"),
            )
        self._recent.append(notification)
        if notification.description:
            self.logger.log(_LEVELS[notification.kind], "%s: %s", notification.title, notification.description)
        else:
            self.logger.log(_LEVELS[notification.kind], "%s", notification.title)

    def recent(self) -> List[Notification]:
        return list(self._recent)
