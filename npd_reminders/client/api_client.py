from typing import Any, Dict, Optional
import logging

import requests

from .config import settings as client_settings

logger = logging.getLogger(__name__)


def _drop_empty(body: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in body.items() if v not in (None, "")}


class FunctionsClient:
    """Thin client for the reminder HTTP surface.

    Every call is best-effort: a missing base URL, a non-2xx response or a
    transport error is logged and surfaces as ``None``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        push_token: Optional[str] = None,
        platform: str = "web",
        timeout: Optional[int] = None,
    ):
        base_url = base_url if base_url is not None else client_settings.FUNCTIONS_BASE_URL
        self.base_url = (base_url or "").rstrip("/")
        self.user_id = user_id
        self.push_token = push_token
        self.platform = platform
        self.timeout = timeout or client_settings.HTTP_TIMEOUT_SECONDS

    def _call(self, function_name: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.base_url:
            logger.warning(f"[FunctionsClient] No base URL configured. Skipping call to {function_name}")
            return None
        url = f"{self.base_url}/{function_name}"
        try:
            r = requests.post(url, json=_drop_empty(body), headers={"Content-Type": "application/json"},
                              timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[FunctionsClient] {function_name} network error: {e}")
            return None
        if not r.ok:
            logger.error(f"[FunctionsClient] {function_name} failed [{r.status_code}]: {r.text}")
            return None
        try:
            return r.json()
        except ValueError:
            return {}

    def register_device_token(self, token: str) -> Optional[Dict[str, Any]]:
        self.push_token = token
        return self._call("registerToken", {"token": token, "userId": self.user_id, "platform": self.platform})

    def remove_device_token(self) -> Optional[Dict[str, Any]]:
        if not self.push_token and not self.user_id:
            return None
        return self._call("removeToken", {"token": self.push_token, "userId": self.user_id})

    def schedule_reminder(
        self,
        title: str,
        scheduled_at: str,
        body: Optional[str] = None,
        data: Optional[Dict[str, str]] = None,
        repeat_type: Optional[str] = None,
    ) -> Optional[str]:
        result = self._call("scheduleReminder", {
            "userId": self.user_id,
            "token": self.push_token,
            "title": title,
            "body": body,
            "scheduledAt": scheduled_at,
            "data": data,
            "repeatType": repeat_type,
        })
        return (result or {}).get("reminderId")

    def cancel_reminder(
        self,
        reminder_id: Optional[str] = None,
        task_id: Optional[str] = None,
        note_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        return self._call("cancelReminder", {
            "reminderId": reminder_id,
            "taskId": task_id,
            "noteId": note_id,
            "userId": self.user_id,
        })

    def send_immediate_push(self, title: str, body: str, data: Optional[Dict[str, str]] = None) -> Optional[str]:
        result = self._call("sendPush", {
            "userId": self.user_id,
            "token": self.push_token,
            "title": title,
            "body": body,
            "data": data,
        })
        return (result or {}).get("messageId")
