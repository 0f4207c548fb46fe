import logging
from typing import Literal, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from .. import novu
from ..auth import AuthContext, get_auth_context
from ..notifications import (
    count_unread,
    delete_notification,
    delete_push_subscription,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    save_push_subscription,
)

router = APIRouter(prefix="/api", tags=["notifications"])
logger = logging.getLogger(__name__)


class MarkReadPayload(BaseModel):
    notification_id: Optional[int] = None
    mark_all_as_read: bool = False


class RegisterDevicePayload(BaseModel):
    fcm_token: str = Field(min_length=100)
    platform: Literal["ios", "android", "web"]


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscribePayload(BaseModel):
    endpoint: str
    keys: PushKeys


class PushUnsubscribePayload(BaseModel):
    endpoint: str


@router.get("/notifications")
async def list_notifications_endpoint(
    limit: int = Query(50, ge=1, le=100),
    unread_only: bool = False,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    return {
        "notifications": list_notifications(auth.user_id, limit=limit, unread_only=unread_only),
        "unread_count": count_unread(auth.user_id),
    }


@router.patch("/notifications")
async def mark_notifications_endpoint(
    payload: MarkReadPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    if payload.mark_all_as_read:
        updated = mark_all_as_read(auth.user_id)
        return {"success": True, "updated_count": updated}
    if payload.notification_id is None:
        raise HTTPException(status_code=400, detail="notification_id or mark_all_as_read is required")
    try:
        notification = mark_as_read(payload.notification_id, auth.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "notification": notification}


@router.delete("/notifications/{notification_id}")
async def delete_notification_endpoint(
    notification_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    try:
        delete_notification(notification_id, auth.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True}


@router.post("/notifications/register")
async def register_device_endpoint(
    payload: RegisterDevicePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    try:
        await novu.register_fcm_device(
            auth.stack_auth_id,
            payload.fcm_token,
            email=auth.user.email,
            display_name=auth.user.display_name,
        )
    except novu.NovuError as exc:
        status = 503 if exc.status_code == 503 else 502
        logger.warning(
            "device registration failed",
            extra={"user_id": auth.user_id, "platform": payload.platform, "error": str(exc)},
        )
        raise HTTPException(status_code=status, detail=str(exc)) from exc
    except httpx.HTTPError as exc:
        logger.warning(
            "device registration failed",
            extra={"user_id": auth.user_id, "platform": payload.platform, "error": str(exc)},
        )
        raise HTTPException(status_code=502, detail="Notification service unavailable") from exc
    logger.info("device registered", extra={"user_id": auth.user_id, "platform": payload.platform})
    return {"success": True, "subscriber_id": auth.stack_auth_id, "platform": payload.platform}


@router.post("/push/subscribe", status_code=201)
async def push_subscribe_endpoint(
    payload: PushSubscribePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    endpoint = payload.endpoint.strip()
    if not endpoint:
        raise HTTPException(status_code=400, detail="endpoint is required")
    subscription = save_push_subscription(
        user_id=auth.user_id,
        endpoint=endpoint,
        p256dh_key=payload.keys.p256dh,
        auth_key=payload.keys.auth,
    )
    return {"success": True, "subscription": subscription}


@router.delete("/push/subscribe")
async def push_unsubscribe_endpoint(
    payload: PushUnsubscribePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    if not delete_push_subscription(auth.user_id, payload.endpoint.strip()):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"success": True}
