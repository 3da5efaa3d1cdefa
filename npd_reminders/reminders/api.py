import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from npd_reminders.db.session import get_db
from . import repository
from .devices import DeviceRegistry
from .dispatcher import PushDispatcher
from .errors import NoTargetFound, NotFound, TokenInvalid, ValidationError
from .metrics import reminders_scheduled_total, reminders_cancelled_total
from .schemas import (
    RegisterTokenRequest, RemoveTokenRequest, ScheduleReminderRequest, CancelReminderRequest,
    SendPushRequest, SendBroadcastRequest, SuccessResponse, ScheduleReminderResponse,
    SendPushResponse, BroadcastResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry(db: Session = Depends(get_db)) -> DeviceRegistry:
    return DeviceRegistry(db)


def get_dispatcher(request: Request) -> PushDispatcher:
    # Constructed once in create_app and shared by every request
    return request.app.state.dispatcher


@router.post("/registerToken", response_model=SuccessResponse)
def register_token(payload: RegisterTokenRequest, registry: DeviceRegistry = Depends(get_registry)):
    device_id = DeviceRegistry.device_id(payload.user_id, payload.token)
    registry.upsert(device_id, payload.token, platform=payload.platform, owner_id=payload.user_id)
    return SuccessResponse()


@router.post("/removeToken", response_model=SuccessResponse)
def remove_token(payload: RemoveTokenRequest, registry: DeviceRegistry = Depends(get_registry)):
    device_id = DeviceRegistry.device_id(payload.user_id, payload.token)
    if not device_id:
        raise ValidationError("Token or userId is required")
    registry.remove(device_id)
    return SuccessResponse()


@router.post("/scheduleReminder", response_model=ScheduleReminderResponse)
def schedule_reminder(payload: ScheduleReminderRequest, db: Session = Depends(get_db)):
    reminder = repository.create_reminder(db, payload)
    reminders_scheduled_total.inc()
    logger.info(
        f"🗓️  [API] Scheduled reminder={reminder.id} at={reminder.scheduled_at} rule={reminder.repeat_rule}"
    )
    return ScheduleReminderResponse(reminderId=reminder.id)


@router.post("/cancelReminder", response_model=SuccessResponse)
def cancel_reminder(payload: CancelReminderRequest, db: Session = Depends(get_db)):
    if payload.reminder_id:
        try:
            repository.delete_reminder(db, payload.reminder_id)
            removed = 1
        except NotFound:
            removed = 0
    elif payload.task_id:
        removed = repository.delete_pending_by_source(db, "task", payload.task_id, owner_id=payload.user_id)
    elif payload.note_id:
        removed = repository.delete_pending_by_source(db, "note", payload.note_id, owner_id=payload.user_id)
    else:
        removed = 0
    reminders_cancelled_total.inc(removed)
    return SuccessResponse()


@router.post("/sendPush", response_model=SendPushResponse)
def send_push(
    payload: SendPushRequest,
    registry: DeviceRegistry = Depends(get_registry),
    dispatcher: PushDispatcher = Depends(get_dispatcher),
):
    token = payload.token or (registry.resolve(payload.user_id) if payload.user_id else None)
    if not token:
        raise NoTargetFound()
    try:
        message_id = dispatcher.send_to_token(token, payload.title, payload.body, payload.data)
    except TokenInvalid:
        registry.evict(payload.user_id or token)
        raise
    return SendPushResponse(messageId=message_id)


@router.post("/sendBroadcast", response_model=BroadcastResponse, response_model_exclude_none=True)
def send_broadcast(
    payload: SendBroadcastRequest,
    registry: DeviceRegistry = Depends(get_registry),
    dispatcher: PushDispatcher = Depends(get_dispatcher),
):
    tokens = registry.list_tokens()
    if not tokens:
        return BroadcastResponse(sent=0)
    result = dispatcher.send_broadcast(tokens, payload.title, payload.body or "", payload.data)
    for token in result.invalid_tokens:
        registry.evict_token(token)
    return BroadcastResponse(sent=result.success_count, failed=result.failure_count)


@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "reminders"}
