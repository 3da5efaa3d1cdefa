"""Error taxonomy shared by the server sweep, the HTTP surface and the client."""
from typing import Optional


class ReminderError(Exception):
    """Base class for reminder delivery errors."""


class PermissionDenied(ReminderError):
    """The user declined notification permission."""


class CapabilityUnavailable(ReminderError):
    """The notification subsystem (or one of its calls) does not exist on this platform."""


class NoTargetFound(ReminderError):
    """No delivery address could be resolved for a reminder."""

    def __init__(self, message: str = "No token found"):
        super().__init__(message)


class DispatchError(ReminderError):
    """The push provider rejected a send for a reason that is neither transient nor token related."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class TokenInvalid(DispatchError):
    """The provider reported the target token as unregistered or malformed."""


class NetworkError(DispatchError):
    """Transient transport or provider availability failure."""


class ValidationError(ReminderError):
    """Malformed request at the HTTP boundary."""


class NotFound(ReminderError):
    """Delete or cancel of a record that does not exist (callers treat it as success)."""
