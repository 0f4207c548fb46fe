import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, StrictBool

from .. import announcements
from ..access import (
    can_view,
    list_access_users,
    require_admin,
    require_member,
    require_owner_or_admin,
    require_view,
    validate_access_user_ids,
)
from ..auth import AuthContext, get_auth_context
from ..dagens_smiley import (
    create_smiley,
    delete_all_entries,
    delete_entry,
    delete_smiley,
    get_entry,
    get_smiley,
    list_entries,
    list_smileys,
    record_entry,
    update_smiley,
)
from ..schemas import AccessScope, DagensSmiley, ToolType
from .barometers import parse_entry_date
from .children import load_child

router = APIRouter(prefix="/api", tags=["dagens-smiley"])
logger = logging.getLogger(__name__)


class CreateSmileyPayload(BaseModel):
    topic: str
    description: Optional[str] = None
    is_public: StrictBool = True
    accessible_user_ids: Optional[List[int]] = None


class UpdateSmileyPayload(BaseModel):
    topic: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[StrictBool] = None
    accessible_user_ids: Optional[List[int]] = None


class SmileyEntryPayload(BaseModel):
    selected_emoji: str
    reasoning: Optional[str] = None
    entry_date: Optional[str] = None


def load_smiley(smiley_id: int) -> DagensSmiley:
    try:
        return get_smiley(smiley_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _require_smiley_view(auth: AuthContext, smiley: DagensSmiley) -> None:
    require_view(
        auth.user_id,
        smiley.child_id,
        scope=AccessScope.DAGENS_SMILEY,
        row_id=smiley.id,
        created_by=smiley.created_by,
        is_public=smiley.is_public,
    )


@router.get("/children/{child_id}/dagens-smiley")
async def list_smileys_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    smileys = [
        smiley
        for smiley in list_smileys(child_id)
        if can_view(
            relation,
            scope=AccessScope.DAGENS_SMILEY,
            row_id=smiley.id,
            created_by=smiley.created_by,
            is_public=smiley.is_public,
        )
    ]
    return {"smileys": smileys}


@router.post("/children/{child_id}/dagens-smiley", status_code=201)
async def create_smiley_endpoint(
    child_id: int,
    payload: CreateSmileyPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can create dagens smiley")
    topic = payload.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="topic is required")
    access_ids = validate_access_user_ids(child_id, payload.accessible_user_ids)
    smiley = create_smiley(
        child_id=child_id,
        created_by=auth.user_id,
        topic=topic,
        description=payload.description,
        is_public=payload.is_public,
        accessible_user_ids=access_ids,
    )
    logger.info("dagens smiley created", extra={"smiley_id": smiley.id, "child_id": child_id})
    return {"smiley": smiley}


@router.put("/dagens-smiley/{smiley_id}")
async def update_smiley_endpoint(
    smiley_id: int,
    payload: UpdateSmileyPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    smiley = load_smiley(smiley_id)
    require_owner_or_admin(
        auth.user_id,
        smiley.child_id,
        smiley.created_by,
        detail="Only the creator or an administrator can edit this dagens smiley",
    )
    updates: dict = {}
    fields = payload.model_fields_set
    if "topic" in fields:
        topic = (payload.topic or "").strip()
        if not topic:
            raise HTTPException(status_code=400, detail="topic cannot be empty")
        updates["topic"] = topic
    if "description" in fields:
        updates["description"] = payload.description
    if "is_public" in fields and payload.is_public is not None:
        updates["is_public"] = payload.is_public
    access_ids = None
    if "accessible_user_ids" in fields:
        access_ids = validate_access_user_ids(smiley.child_id, payload.accessible_user_ids)
    return {"smiley": update_smiley(smiley_id, updates, accessible_user_ids=access_ids)}


@router.delete("/dagens-smiley/{smiley_id}")
async def delete_smiley_endpoint(smiley_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    smiley = load_smiley(smiley_id)
    require_admin(auth.user_id, smiley.child_id, detail="Only administrators can delete dagens smiley")
    delete_smiley(smiley_id)
    return {"success": True}


@router.get("/dagens-smiley/{smiley_id}/entries")
async def list_smiley_entries_endpoint(smiley_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    smiley = load_smiley(smiley_id)
    _require_smiley_view(auth, smiley)
    return {"entries": list_entries(smiley_id, limit=50)}


@router.post("/dagens-smiley/{smiley_id}/entries", status_code=201)
async def record_smiley_entry_endpoint(
    smiley_id: int,
    payload: SmileyEntryPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    smiley = load_smiley(smiley_id)
    _require_smiley_view(auth, smiley)
    emoji = payload.selected_emoji.strip()
    if not emoji:
        raise HTTPException(status_code=400, detail="selected_emoji is required")
    entry = record_entry(
        smiley_id=smiley_id,
        recorded_by=auth.user_id,
        selected_emoji=emoji,
        reasoning=(payload.reasoning or "").strip() or None,
        entry_date=parse_entry_date(payload.entry_date),
    )
    await announcements.announce_entry(
        child_id=smiley.child_id,
        tool_type=ToolType.DAGENS_SMILEY,
        tool_id=smiley.id,
        tool_name=smiley.topic,
        tool_created_by=smiley.created_by,
        tool_is_public=smiley.is_public,
        recorder=auth.user,
        submission={
            "selected_emoji": entry.selected_emoji,
            "reasoning": entry.reasoning,
            "entry_date": entry.entry_date.isoformat(),
        },
    )
    return {"entry": entry}


@router.delete("/dagens-smiley/{smiley_id}/entries")
async def delete_all_smiley_entries_endpoint(smiley_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    smiley = load_smiley(smiley_id)
    require_admin(auth.user_id, smiley.child_id, detail="Only administrators can delete all entries")
    return {"success": True, "deleted_count": delete_all_entries(smiley_id)}


@router.delete("/dagens-smiley/{smiley_id}/entries/{entry_id}")
async def delete_smiley_entry_endpoint(
    smiley_id: int,
    entry_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    smiley = load_smiley(smiley_id)
    try:
        entry = get_entry(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry.smiley_id != smiley_id:
        raise HTTPException(status_code=400, detail="Entry does not belong to this dagens smiley")
    require_owner_or_admin(
        auth.user_id,
        smiley.child_id,
        entry.recorded_by,
        detail="Only the person who recorded the entry or an administrator can delete it",
    )
    delete_entry(entry_id)
    return {"success": True}


@router.get("/dagens-smiley/{smiley_id}/access")
async def smiley_access_endpoint(smiley_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    smiley = load_smiley(smiley_id)
    _require_smiley_view(auth, smiley)
    return {
        "is_public": smiley.is_public,
        "access_users": list_access_users(AccessScope.DAGENS_SMILEY, smiley_id),
    }
