from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, StrictBool

from .. import announcements
from ..access import (
    can_view,
    require_admin,
    require_member,
    require_owner_or_admin,
    require_view,
    validate_access_user_ids,
)
from ..auth import AuthContext, get_auth_context
from ..schemas import AccessScope, Sengetider, SengetiderEntry, ToolType
from ..sengetider import (
    ENTRY_TIME_FIELDS,
    InvalidTimeError,
    create_sengetider,
    delete_entry,
    delete_sengetider,
    find_for_child,
    get_entry,
    get_sengetider,
    list_entries,
    list_for_child,
    normalize_time,
    record_entry,
    update_entry,
    update_sengetider,
)
from .barometers import parse_entry_date
from .children import load_child

router = APIRouter(prefix="/api", tags=["sengetider"])


class CreateSengetiderPayload(BaseModel):
    description: Optional[str] = None
    target_bedtime: Optional[str] = None
    is_public: StrictBool = True
    accessible_user_ids: Optional[List[int]] = None


class UpdateSengetiderPayload(BaseModel):
    description: Optional[str] = None
    target_bedtime: Optional[str] = None
    is_public: Optional[StrictBool] = None
    accessible_user_ids: Optional[List[int]] = None


class SengetiderEntryPayload(BaseModel):
    entry_date: str
    actual_bedtime: Optional[str] = None
    puttetid: Optional[str] = None
    sov_kl: Optional[str] = None
    vaagnede: Optional[str] = None
    notes: Optional[str] = None


class UpdateSengetiderEntryPayload(BaseModel):
    entry_date: Optional[str] = None
    actual_bedtime: Optional[str] = None
    puttetid: Optional[str] = None
    sov_kl: Optional[str] = None
    vaagnede: Optional[str] = None
    notes: Optional[str] = None


def _normalize_optional_time(value: Optional[str], label: str) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    try:
        return normalize_time(value)
    except InvalidTimeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}. Use HH:MM or HH:MM:SS") from exc


def load_sengetider(sengetider_id: int) -> Sengetider:
    try:
        return get_sengetider(sengetider_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _load_entry(sengetider_id: int, entry_id: int) -> SengetiderEntry:
    try:
        entry = get_entry(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry.sengetider_id != sengetider_id:
        raise HTTPException(status_code=400, detail="Entry does not belong to this sengetider")
    return entry


def _require_sengetider_view(auth: AuthContext, sengetider: Sengetider) -> None:
    require_view(
        auth.user_id,
        sengetider.child_id,
        scope=AccessScope.SENGETIDER,
        row_id=sengetider.id,
        created_by=sengetider.created_by,
        is_public=sengetider.is_public,
    )


@router.get("/children/{child_id}/sengetider")
async def list_sengetider_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    visible = [
        item
        for item in list_for_child(child_id)
        if can_view(
            relation,
            scope=AccessScope.SENGETIDER,
            row_id=item.id,
            created_by=item.created_by,
            is_public=item.is_public,
        )
    ]
    return {"sengetider": visible}


@router.post("/children/{child_id}/sengetider", status_code=201)
async def create_sengetider_endpoint(
    child_id: int,
    payload: CreateSengetiderPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can create sengetider")
    if find_for_child(child_id) is not None:
        raise HTTPException(status_code=400, detail="This child already has a sengetider tool")
    access_ids = validate_access_user_ids(child_id, payload.accessible_user_ids)
    sengetider = create_sengetider(
        child_id=child_id,
        created_by=auth.user_id,
        description=(payload.description or "").strip() or None,
        target_bedtime=_normalize_optional_time(payload.target_bedtime, "target_bedtime"),
        is_public=payload.is_public,
        accessible_user_ids=access_ids,
    )
    return {"sengetider": sengetider}


@router.put("/sengetider/{sengetider_id}")
async def update_sengetider_endpoint(
    sengetider_id: int,
    payload: UpdateSengetiderPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    sengetider = load_sengetider(sengetider_id)
    require_admin(auth.user_id, sengetider.child_id, detail="Only administrators can edit sengetider")
    fields = payload.model_fields_set
    updates: dict = {}
    if "description" in fields:
        updates["description"] = payload.description
    if "target_bedtime" in fields:
        updates["target_bedtime"] = _normalize_optional_time(payload.target_bedtime, "target_bedtime")
    if "is_public" in fields and payload.is_public is not None:
        updates["is_public"] = payload.is_public
    access_ids = None
    if "accessible_user_ids" in fields:
        access_ids = validate_access_user_ids(sengetider.child_id, payload.accessible_user_ids)
    return {"sengetider": update_sengetider(sengetider_id, updates, accessible_user_ids=access_ids)}


@router.delete("/sengetider/{sengetider_id}")
async def delete_sengetider_endpoint(sengetider_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    sengetider = load_sengetider(sengetider_id)
    require_admin(auth.user_id, sengetider.child_id, detail="Only administrators can delete sengetider")
    delete_sengetider(sengetider_id)
    return {"success": True}


@router.get("/sengetider/{sengetider_id}/entries")
async def list_sengetider_entries_endpoint(
    sengetider_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    sengetider = load_sengetider(sengetider_id)
    _require_sengetider_view(auth, sengetider)
    return {"entries": list_entries(sengetider_id, limit=50)}


@router.post("/sengetider/{sengetider_id}/entries", status_code=201)
async def record_sengetider_entry_endpoint(
    sengetider_id: int,
    payload: SengetiderEntryPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    sengetider = load_sengetider(sengetider_id)
    _require_sengetider_view(auth, sengetider)
    entry_date = parse_entry_date(payload.entry_date)
    if entry_date is None:
        raise HTTPException(status_code=400, detail="entry_date is required")
    times = {field: _normalize_optional_time(getattr(payload, field), field) for field in ENTRY_TIME_FIELDS}
    entry = record_entry(
        sengetider_id=sengetider_id,
        recorded_by=auth.user_id,
        entry_date=entry_date,
        notes=(payload.notes or "").strip() or None,
        **times,
    )
    await announcements.announce_entry(
        child_id=sengetider.child_id,
        tool_type=ToolType.SENGETIDER,
        tool_id=sengetider.id,
        tool_name=sengetider.description or "Sengetider",
        tool_created_by=sengetider.created_by,
        tool_is_public=sengetider.is_public,
        recorder=auth.user,
        submission={"entry_date": entry.entry_date.isoformat(), "notes": entry.notes, **times},
    )
    return {"entry": entry}


@router.put("/sengetider/{sengetider_id}/entries/{entry_id}")
async def update_sengetider_entry_endpoint(
    sengetider_id: int,
    entry_id: int,
    payload: UpdateSengetiderEntryPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    sengetider = load_sengetider(sengetider_id)
    entry = _load_entry(sengetider_id, entry_id)
    require_owner_or_admin(
        auth.user_id,
        sengetider.child_id,
        entry.recorded_by,
        detail="Only the person who recorded the entry or an administrator can edit it",
    )
    fields = payload.model_fields_set
    updates: dict = {}
    if "entry_date" in fields:
        entry_date = parse_entry_date(payload.entry_date)
        if entry_date is None:
            raise HTTPException(status_code=400, detail="entry_date cannot be empty")
        updates["entry_date"] = entry_date
    for field in ENTRY_TIME_FIELDS:
        if field in fields:
            updates[field] = _normalize_optional_time(getattr(payload, field), field)
    if "notes" in fields:
        updates["notes"] = (payload.notes or "").strip() or None
    return {"entry": update_entry(entry_id, updates)}


@router.delete("/sengetider/{sengetider_id}/entries/{entry_id}")
async def delete_sengetider_entry_endpoint(
    sengetider_id: int,
    entry_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    sengetider = load_sengetider(sengetider_id)
    entry = _load_entry(sengetider_id, entry_id)
    require_owner_or_admin(
        auth.user_id,
        sengetider.child_id,
        entry.recorded_by,
        detail="Only the person who recorded the entry or an administrator can delete it",
    )
    delete_entry(entry_id)
    return {"success": True}
