"""Transient user-facing notifications (toasts) with auto-dismiss."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import uuid4

from modules.deliveries.constants import NOTIFICATION_TTL_SECONDS


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    created_at: datetime
    expires_at: datetime
    level: str = "info"
    play_sound: bool = False
    id: str = field(default_factory=lambda: uuid4().hex)

    @classmethod
    def create(
        cls,
        title: str,
        message: str,
        now: datetime,
        *,
        level: str = "info",
        play_sound: bool = False,
        ttl: float = NOTIFICATION_TTL_SECONDS,
    ) -> Notification:
        return cls(
            title=title,
            message=message,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            level=level,
            play_sound=play_sound,
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "level": self.level,
            "play_sound": self.play_sound,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


class NotificationCenter:
    """Holds live notifications; expired ones are pruned on every add and read."""

    def __init__(self, ttl: float = NOTIFICATION_TTL_SECONDS) -> None:
        self.ttl = ttl
        self._lock = threading.Lock()
        self._items: list[Notification] = []

    def push(
        self,
        title: str,
        message: str,
        now: datetime,
        *,
        level: str = "info",
        play_sound: bool = False,
    ) -> Notification:
        notification = Notification.create(
            title, message, now, level=level, play_sound=play_sound, ttl=self.ttl
        )
        return self.add(notification)

    def add(self, notification: Notification) -> Notification:
        with self._lock:
            self._items = [
                n for n in self._items if not n.is_expired(notification.created_at)
            ]
            self._items.append(notification)
        return notification

    def error(self, title: str, message: str, now: datetime) -> Notification:
        return self.push(title, message, now, level="error")

    def active(self, now: datetime) -> list[Notification]:
        with self._lock:
            self._items = [n for n in self._items if not n.is_expired(now)]
            return list(self._items)

    def dismiss(self, notification_id: str) -> bool:
        with self._lock:
            before = len(self._items)
            self._items = [n for n in self._items if n.id != notification_id]
            return len(self._items) != before

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
