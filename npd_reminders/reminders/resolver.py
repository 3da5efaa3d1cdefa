"""
Delivery target resolution: reminder -> push token
"""
from typing import Optional, Protocol

from .devices import DeviceRegistry
from .errors import NoTargetFound


class _Addressable(Protocol):
    token: Optional[str]
    owner_id: Optional[str]


def resolve_target(reminder: _Addressable, registry: DeviceRegistry) -> str:
    """Prefer the token captured on the reminder, then the owner's registered device.

    Raises NoTargetFound when neither yields a token, so reminders created before
    the device registered still find it on a later sweep.
    """
    if reminder.token:
        return reminder.token
    if reminder.owner_id:
        token = registry.resolve(reminder.owner_id)
        if token:
            return token
    raise NoTargetFound()
