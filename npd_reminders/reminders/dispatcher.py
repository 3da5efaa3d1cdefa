"""
Push dispatcher: shapes FCM payloads, sends them and classifies provider errors.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import json
import logging
import os

import requests
from firebase_admin import messaging, credentials, initialize_app, exceptions as fb_exceptions, _apps  # type: ignore

from .config import settings
from .errors import DispatchError, NetworkError, TokenInvalid
from .metrics import reminders_dispatch_success_total, reminders_dispatch_failed_total

logger = logging.getLogger(__name__)


def _ensure_firebase_initialized() -> bool:
    """Initialise the default firebase app once per process. Returns False if FCM is unusable."""
    if _apps:
        return True

    proj = settings.FCM_PROJECT_ID
    creds_json: Optional[str] = (
        settings.FCM_CREDENTIALS_JSON
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    )
    options = {"projectId": proj} if proj else None
    logger.info(f"🔍 [FCM] Initializing Firebase | project_id={proj} creds set={bool(creds_json)}")

    try:
        if creds_json and creds_json.strip().startswith("{"):
            initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
        elif creds_json and os.path.exists(creds_json):
            initialize_app(credentials.Certificate(creds_json), options=options)
        elif proj:
            initialize_app(options=options)
        else:
            logger.warning("⚠️  [FCM] No credentials provided - push notifications are disabled")
            return False
    except (ValueError, OSError) as e:
        logger.error(f"❌ [FCM] Failed to initialize Firebase: {e!r}")
        return False
    logger.info(f"✅ [FCM] Firebase app initialized. apps={len(_apps)}")
    return True


def classify_send_error(exc: Exception) -> DispatchError:
    """Map a firebase-admin / transport exception onto the delivery error taxonomy."""
    if isinstance(exc, DispatchError):
        return exc
    message = str(exc) or exc.__class__.__name__
    code = getattr(exc, "code", None)
    if isinstance(exc, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
        return TokenInvalid(message, code=code)
    if isinstance(exc, fb_exceptions.InvalidArgumentError) and "registration token" in message.lower():
        return TokenInvalid(message, code=code)
    if isinstance(exc, (
        fb_exceptions.UnavailableError,
        fb_exceptions.DeadlineExceededError,
        fb_exceptions.InternalError,
        requests.exceptions.ConnectionError,
        requests.exceptions.Timeout,
    )):
        return NetworkError(message, code=code)
    return DispatchError(message, code=code)


def _stringify(data: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    # FCM data payloads only carry string values
    return {str(k): str(v) for k, v in (data or {}).items() if v is not None}


@dataclass
class BroadcastResult:
    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: List[str] = field(default_factory=list)


class PushDispatcher:
    """Single-target and multicast push sends through FCM (APNs for iOS via FCM)."""

    def __init__(self, channel_id: Optional[str] = None, chunk_size: Optional[int] = None):
        self.channel_id = channel_id or settings.CHANNEL_ID
        self.chunk_size = chunk_size or settings.MULTICAST_CHUNK_SIZE

    def _android(self) -> messaging.AndroidConfig:
        return messaging.AndroidConfig(
            priority="high",  # background delivery
            notification=messaging.AndroidNotification(sound="default", channel_id=self.channel_id),
        )

    @staticmethod
    def _apns() -> messaging.APNSConfig:
        return messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
        )

    def build_message(self, token: str, title: str, body: str,
                      data: Optional[Mapping[str, Any]] = None) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data=_stringify(data),
            android=self._android(),
            apns=self._apns(),
        )

    def build_multicast(self, tokens: List[str], title: str, body: str,
                        data: Optional[Mapping[str, Any]] = None) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data=_stringify(data),
            android=self._android(),
            apns=self._apns(),
        )

    def send_to_token(self, token: str, title: str, body: str,
                      data: Optional[Mapping[str, Any]] = None) -> str:
        """Send to exactly one token and return the provider message id.

        Raises TokenInvalid, NetworkError or DispatchError. On TokenInvalid the
        caller owns evicting the device record.
        """
        if not _ensure_firebase_initialized():
            reminders_dispatch_failed_total.inc()
            raise DispatchError("FCM is not configured", code="unconfigured")

        message = self.build_message(token, title, body, data)
        try:
            logger.info(f"🚀 [FCM] Sending to token={token[:12]}… title={title!r}")
            message_id = messaging.send(message)
        except Exception as e:
            reminders_dispatch_failed_total.inc()
            error = classify_send_error(e)
            logger.warning(f"❌ [FCM] Send failed token={token[:12]}… {error.__class__.__name__}: {error}")
            raise error from e
        reminders_dispatch_success_total.inc()
        logger.info(f"✅ [FCM] Sent message_id={message_id}")
        return message_id

    def send_broadcast(self, tokens: List[str], title: str, body: str,
                       data: Optional[Mapping[str, Any]] = None) -> BroadcastResult:
        """Fan out to every token. Partial failures never abort the batch."""
        result = BroadcastResult()
        tokens = [t for t in tokens if t]
        if not tokens:
            return result
        if not _ensure_firebase_initialized():
            reminders_dispatch_failed_total.inc(len(tokens))
            result.failure_count = len(tokens)
            return result

        for start in range(0, len(tokens), self.chunk_size):
            chunk = tokens[start:start + self.chunk_size]
            try:
                batch = messaging.send_each_for_multicast(self.build_multicast(chunk, title, body, data))
            except Exception as e:
                logger.error(f"❌ [FCM] Multicast chunk of {len(chunk)} failed: {e!r}")
                result.failure_count += len(chunk)
                reminders_dispatch_failed_total.inc(len(chunk))
                continue
            result.success_count += batch.success_count
            result.failure_count += batch.failure_count
            reminders_dispatch_success_total.inc(batch.success_count)
            reminders_dispatch_failed_total.inc(batch.failure_count)
            for token, response in zip(chunk, batch.responses):
                if response.success or response.exception is None:
                    continue
                if isinstance(classify_send_error(response.exception), TokenInvalid):
                    result.invalid_tokens.append(token)

        logger.info(
            f"📣 [FCM] Broadcast done sent={result.success_count} failed={result.failure_count} "
            f"invalid={len(result.invalid_tokens)}"
        )
        return result
