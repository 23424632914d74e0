"""Notification REST API endpoints."""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator

from countdown_push.api.deps import get_supervisor
from countdown_push.common.exceptions import SubscriptionNotFoundError
from countdown_push.configs import configs
from countdown_push.core.notification.events import get_countdown
from countdown_push.core.supervisor import SchedulerSupervisor
from countdown_push.models.subscription import SubscriptionCreate
from countdown_push.utils.time import is_valid_timezone, resolve_timezone

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


# --- Response / Request models -----------------------------------------------


class VapidPublicKeyResponse(BaseModel):
    publicKey: str


class SubscribeRequest(SubscriptionCreate):
    """Either a bare browser PushSubscription or ``{"subscription": {...}, ...schedule}``."""

    @model_validator(mode="before")
    @classmethod
    def _wrap_raw_subscription(cls, data: Any) -> Any:
        if isinstance(data, dict) and "subscription" not in data and "endpoint_descriptor" not in data:
            return {"subscription": data}
        return data


class SubscribeResponse(BaseModel):
    success: bool
    id: str


class UnsubscribeRequest(BaseModel):
    id: str | None = None
    endpoint: str | None = None
    subscription: dict[str, Any] | None = None

    @property
    def target_endpoint(self) -> str | None:
        if self.endpoint:
            return self.endpoint
        if self.subscription and isinstance(self.subscription.get("endpoint"), str):
            return self.subscription["endpoint"]
        return None


class ManualDispatchRequest(BaseModel):
    id: str | None = None


class SuccessResponse(BaseModel):
    success: bool
    removed: int = 0


class DispatchResponse(BaseModel):
    success: bool
    attempted: int
    delivered: int
    failed: int
    pruned: int


# --- Endpoints ----------------------------------------------------------------


@router.get("/vapidPublicKey", response_model=VapidPublicKeyResponse)
async def get_vapid_public_key() -> VapidPublicKeyResponse:
    """Public key the browser passes to ``pushManager.subscribe``."""
    return VapidPublicKeyResponse(publicKey=configs.Push.VapidPublicKey)


@router.get("/countdown")
async def get_countdown_info(tz: str | None = None) -> dict[str, Any]:
    """Days remaining until the configured launch, computed in *tz* (or the default zone)."""
    schedule = configs.Schedule
    if tz is not None and not is_valid_timezone(tz):
        raise HTTPException(status_code=400, detail=f"Invalid timezone: {tz}")

    zone = resolve_timezone(tz or schedule.DefaultTimezone)
    target: datetime | None = None
    if schedule.LaunchTime:
        target = datetime.fromisoformat(schedule.LaunchTime)
        if target.tzinfo is None:
            target = target.replace(tzinfo=resolve_timezone(schedule.DefaultTimezone))

    return get_countdown(target, datetime.now(timezone.utc), zone).to_dict()


@router.post("/subscribe", response_model=SubscribeResponse, status_code=201)
async def subscribe(
    body: SubscribeRequest,
    supervisor: SchedulerSupervisor = Depends(get_supervisor),
) -> SubscribeResponse:
    """Store a Web Push subscription and arm its launch and daily reminders."""
    record = supervisor.add_subscription(body)
    return SubscribeResponse(success=True, id=record.id)


@router.post("/unsubscribe", response_model=SuccessResponse)
async def unsubscribe(
    body: UnsubscribeRequest,
    supervisor: SchedulerSupervisor = Depends(get_supervisor),
) -> SuccessResponse:
    """Remove a subscription by id and/or endpoint. Unknown identifiers succeed."""
    endpoint = body.target_endpoint
    if not body.id and not endpoint:
        raise HTTPException(status_code=400, detail="Missing id or endpoint")

    removed = 0
    if body.id and supervisor.remove_subscription(body.id):
        removed += 1
    if endpoint:
        removed += supervisor.remove_by_endpoint(endpoint)
    return SuccessResponse(success=True, removed=removed)


@router.post("/test-notification", response_model=DispatchResponse)
async def send_test_notification(
    body: ManualDispatchRequest | None = None,
    supervisor: SchedulerSupervisor = Depends(get_supervisor),
) -> DispatchResponse:
    """Send an immediate notification to one subscription, or to everyone."""
    subscription_id = body.id if body else None
    try:
        summary = await supervisor.dispatch_now(subscription_id)
    except SubscriptionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return DispatchResponse(success=True, **summary.to_dict())


@router.get("/schedule")
async def get_schedule_status(
    supervisor: SchedulerSupervisor = Depends(get_supervisor),
) -> dict[str, Any]:
    """Armed triggers per subscription."""
    entries = supervisor.scheduler.status()
    return {
        "is_running": supervisor.scheduler.scheduler.running,
        "subscription_count": len(supervisor.store),
        "entries": entries,
    }
