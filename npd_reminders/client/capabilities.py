"""
Capability interface of the host platform's notification subsystem.

A native shell (Android/iOS) supplies a ``NotificationSubsystem``; a browser
only supplies a ``WebNotifier`` (the Notification API) or nothing at all.
Missing capabilities are a normal condition, never an error.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from npd_reminders.reminders.errors import CapabilityUnavailable


ACTION_PERFORMED = "localNotificationActionPerformed"
NOTIFICATION_RECEIVED = "localNotificationReceived"


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


@dataclass
class ChannelConfig:
    id: str
    name: str = "Reminders"
    description: str = "Task and note reminders"
    importance: int = 5  # max importance
    visibility: int = 1  # public
    lights: bool = True
    vibration: bool = True


@dataclass
class Action:
    id: str
    title: str
    destructive: bool = False


@dataclass
class ActionType:
    id: str
    actions: List[Action]


@dataclass
class LocalNotification:
    id: int
    title: str
    body: str
    at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    channel_id: Optional[str] = None
    action_type_id: Optional[str] = None
    allow_while_idle: bool = True  # delivery in Doze mode
    small_icon: str = "npd_notification_icon"


@dataclass
class ActionPerformed:
    action_id: str
    notification: LocalNotification


class NotificationSubsystem(ABC):
    """On-device notification plugin. Every call is an I/O suspension point."""

    @abstractmethod
    async def check_permissions(self) -> PermissionState: ...

    @abstractmethod
    async def request_permissions(self) -> PermissionState: ...

    @abstractmethod
    async def create_channel(self, config: ChannelConfig) -> None: ...

    @abstractmethod
    async def register_action_types(self, types: List[ActionType]) -> None: ...

    @abstractmethod
    async def schedule(self, notifications: List[LocalNotification]) -> None: ...

    @abstractmethod
    async def cancel(self, ids: List[int]) -> None: ...

    @abstractmethod
    async def get_pending(self) -> List[LocalNotification]: ...

    @abstractmethod
    def add_listener(self, event: str, handler: Callable[[Any], Any]) -> None: ...


class WebNotifier(ABC):
    """Browser Notification API."""

    @abstractmethod
    def permission(self) -> PermissionState: ...

    @abstractmethod
    async def request_permission(self) -> PermissionState: ...

    @abstractmethod
    def show(self, title: str, body: str) -> None: ...


def is_capability_unavailable(err: BaseException) -> bool:
    """True for errors that only mean "this platform does not implement that call"."""
    if isinstance(err, (CapabilityUnavailable, NotImplementedError)):
        return True
    msg = str(err)
    return "not implemented" in msg or "not available" in msg
