"""Outbound events from the local scheduler and the web poller to the application layer."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from pyee.asyncio import AsyncIOEventEmitter

from .capabilities import LocalNotification

logger = logging.getLogger(__name__)


class E:
    COMPLETED = "notification.completed"
    OPENED = "notification.opened"
    RECEIVED = "notification.received"
    SNOOZED = "notification.snoozed"
    RESCHEDULED = "notification.rescheduled"
    IN_APP_ALERT = "reminder.in_app_alert"


@dataclass(frozen=True)
class SourceEvent:
    """Carries the id of the task/note/... a notification belongs to."""
    source_kind: str
    source_id: str
    action_id: Optional[str] = None


@dataclass(frozen=True)
class NotificationReceived:
    notification: LocalNotification


@dataclass(frozen=True)
class NotificationSnoozed:
    source_kind: Optional[str]
    source_id: Optional[str]
    handle_id: int
    until: datetime


@dataclass(frozen=True)
class Rescheduled:
    source_kind: str
    source_id: str
    handle_id: int
    at: datetime


@dataclass(frozen=True)
class InAppAlert:
    title: str
    body: str
    key: str
    priority: Optional[str] = None
    duration_ms: int = 15000
    sound: str = "/notification-sound.mp3"
    vibration: List[int] = field(default_factory=lambda: [200, 100, 200, 100, 200])
    extra: Dict[str, Any] = field(default_factory=dict)


class NotificationBus(AsyncIOEventEmitter):
    """Typed wrapper over pyee: one event name per payload type."""

    def publish(self, event: str, payload: Any) -> bool:
        logger.debug(f"[Bus] {event} -> {payload!r}")
        return self.emit(event, payload)
