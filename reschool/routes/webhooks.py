"""Stack Auth webhooks keeping the local ``users`` table in step with the identity provider."""
import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from ..config import CONFIG
from ..db import delete_user_by_stack_auth_id, sync_user

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


class StackAuthEvent(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


def _check_secret(provided: Optional[str]) -> None:
    if not CONFIG.webhook_secret:
        return
    if not provided or not hmac.compare_digest(provided, CONFIG.webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/stack-auth")
async def stack_auth_webhook(
    event: StackAuthEvent,
    x_webhook_secret: Optional[str] = Header(None),
) -> dict:
    _check_secret(x_webhook_secret)
    stack_auth_id = event.data.get("id")
    if not stack_auth_id:
        raise HTTPException(status_code=400, detail="Event data must include the user id")

    if event.type in ("user.created", "user.updated"):
        user = sync_user(
            stack_auth_id=str(stack_auth_id),
            email=event.data.get("primary_email"),
            display_name=event.data.get("display_name"),
            profile_image_url=event.data.get("profile_image_url"),
        )
        logger.info("user synced from webhook", extra={"event": event.type, "user_id": user.id})
        return {"success": True, "user_id": user.id}

    if event.type == "user.deleted":
        deleted = delete_user_by_stack_auth_id(str(stack_auth_id))
        logger.info("user deleted from webhook", extra={"stack_auth_id": stack_auth_id, "deleted": deleted})
        return {"success": True, "deleted": deleted}

    logger.info("ignored webhook event", extra={"event": event.type})
    return {"success": True, "ignored": True}
