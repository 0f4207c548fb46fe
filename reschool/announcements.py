"""Fan-out of push notifications to the other adults around a child."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from . import novu
from .access import can_view
from .children import get_child, get_relation, list_member_ids
from .db import list_users
from .schemas import AccessScope, ToolType, User

logger = logging.getLogger(__name__)


def display_name(user: User) -> str:
    return user.display_name or user.email.split("@")[0]


async def announce_entry(
    *,
    child_id: int,
    tool_type: ToolType,
    tool_id: int,
    tool_name: str,
    tool_created_by: int,
    tool_is_public: bool,
    recorder: User,
    submission: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """Tell every other member who can see the tool that a new entry was recorded."""

    child = get_child(child_id)
    subscriber_ids: List[str] = []
    for member in list_users(list_member_ids(child_id)):
        if member.id == recorder.id:
            continue
        visible = can_view(
            get_relation(member.id, child_id),
            scope=AccessScope(tool_type.value),
            row_id=tool_id,
            created_by=tool_created_by,
            is_public=tool_is_public,
        )
        if visible:
            subscriber_ids.append(member.stack_auth_id)
    if not subscriber_ids:
        return []

    results = await novu.notify_child_submission(
        subscriber_ids,
        child_name=child.name,
        tool_name=tool_name,
        tool_type=tool_type,
        submitted_by_name=display_name(recorder),
        submission=submission,
    )
    logger.info(
        "entry announced",
        extra={
            "child_id": child_id,
            "tool_type": tool_type.value,
            "recipients": len(subscriber_ids),
            "delivered": sum(1 for result in results if result.get("success")),
        },
    )
    return results


async def announce_new_member(
    *,
    child_id: int,
    new_member: User,
    relation_label: str,
    inviter_name: str,
) -> List[Dict[str, Any]]:
    child = get_child(child_id)
    subscriber_ids = [
        member.stack_auth_id
        for member in list_users(list_member_ids(child_id))
        if member.id != new_member.id
    ]
    if not subscriber_ids:
        return []
    return await novu.notify_adult_connected(
        subscriber_ids,
        adult_name=display_name(new_member),
        child_name=child.name,
        adult_relation=relation_label,
        inviter_name=inviter_name,
    )
