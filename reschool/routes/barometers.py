import logging
import re
from datetime import date
from typing import List, Optional, Tuple

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
from ..barometers import (
    create_barometer,
    delete_all_entries,
    delete_barometer,
    delete_entry,
    get_barometer,
    get_entry,
    list_barometers,
    list_entries,
    record_entry,
    update_barometer,
)
from ..schemas import AccessScope, Barometer, DisplayType, SmileyType, ToolType
from .children import load_child

router = APIRouter(prefix="/api", tags=["barometers"])
logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_entry_date(value: Optional[str]) -> Optional[date]:
    if value is None or value == "":
        return None
    if not _DATE_PATTERN.match(value):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from exc


def validate_scale(
    display_type: DisplayType,
    scale_min: Optional[int],
    scale_max: Optional[int],
) -> Tuple[int, int]:
    if display_type == DisplayType.PERCENTAGE:
        low = 0 if scale_min is None else scale_min
        high = 100 if scale_max is None else scale_max
        if low != 0 or high != 100:
            raise HTTPException(status_code=400, detail="Percentage barometers must use a 0-100 scale")
        return low, high
    low = 1 if scale_min is None else scale_min
    high = 5 if scale_max is None else scale_max
    if low >= high:
        raise HTTPException(status_code=400, detail="scale_min must be less than scale_max")
    if low < 1 or high > 100:
        raise HTTPException(status_code=400, detail="Scale must be within 1 and 100")
    return low, high


class CreateBarometerPayload(BaseModel):
    topic: str
    description: Optional[str] = None
    scale_min: Optional[int] = None
    scale_max: Optional[int] = None
    display_type: DisplayType = DisplayType.NUMBERS
    smiley_type: Optional[SmileyType] = None
    is_public: StrictBool = True
    accessible_user_ids: Optional[List[int]] = None


class UpdateBarometerPayload(BaseModel):
    topic: Optional[str] = None
    description: Optional[str] = None
    scale_min: Optional[int] = None
    scale_max: Optional[int] = None
    display_type: Optional[DisplayType] = None
    smiley_type: Optional[SmileyType] = None
    is_public: Optional[StrictBool] = None
    accessible_user_ids: Optional[List[int]] = None


class BarometerEntryPayload(BaseModel):
    rating: int
    comment: Optional[str] = None
    entry_date: Optional[str] = None


def load_barometer(barometer_id: int) -> Barometer:
    try:
        return get_barometer(barometer_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _require_barometer_view(auth: AuthContext, barometer: Barometer) -> None:
    require_view(
        auth.user_id,
        barometer.child_id,
        scope=AccessScope.BAROMETER,
        row_id=barometer.id,
        created_by=barometer.created_by,
        is_public=barometer.is_public,
    )


@router.get("/children/{child_id}/barometers")
async def list_barometers_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    barometers = [
        barometer
        for barometer in list_barometers(child_id)
        if can_view(
            relation,
            scope=AccessScope.BAROMETER,
            row_id=barometer.id,
            created_by=barometer.created_by,
            is_public=barometer.is_public,
        )
    ]
    return {"barometers": barometers}


@router.post("/children/{child_id}/barometers", status_code=201)
async def create_barometer_endpoint(
    child_id: int,
    payload: CreateBarometerPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can create barometers")
    topic = payload.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="topic is required")
    scale_min, scale_max = validate_scale(payload.display_type, payload.scale_min, payload.scale_max)
    smiley_type = payload.smiley_type
    if payload.display_type == DisplayType.SMILEYS and smiley_type is None:
        smiley_type = SmileyType.EMOJIS
    access_ids = validate_access_user_ids(child_id, payload.accessible_user_ids)
    barometer = create_barometer(
        child_id=child_id,
        created_by=auth.user_id,
        topic=topic,
        description=payload.description,
        scale_min=scale_min,
        scale_max=scale_max,
        display_type=payload.display_type,
        smiley_type=smiley_type,
        is_public=payload.is_public,
        accessible_user_ids=access_ids,
    )
    logger.info("barometer created", extra={"barometer_id": barometer.id, "child_id": child_id})
    return {"barometer": barometer}


@router.put("/barometers/{barometer_id}")
async def update_barometer_endpoint(
    barometer_id: int,
    payload: UpdateBarometerPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    barometer = load_barometer(barometer_id)
    require_owner_or_admin(
        auth.user_id,
        barometer.child_id,
        barometer.created_by,
        detail="Only the creator or an administrator can edit this barometer",
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
    if fields & {"display_type", "scale_min", "scale_max"}:
        display_type = payload.display_type or barometer.display_type
        scale_min = payload.scale_min if "scale_min" in fields else None
        scale_max = payload.scale_max if "scale_max" in fields else None
        if display_type == barometer.display_type:
            scale_min = barometer.scale_min if scale_min is None else scale_min
            scale_max = barometer.scale_max if scale_max is None else scale_max
        updates["display_type"] = display_type
        updates["scale_min"], updates["scale_max"] = validate_scale(display_type, scale_min, scale_max)
        if display_type == DisplayType.SMILEYS and not (payload.smiley_type or barometer.smiley_type):
            updates["smiley_type"] = SmileyType.EMOJIS
    if "smiley_type" in fields and payload.smiley_type is not None:
        updates["smiley_type"] = payload.smiley_type
    if "is_public" in fields and payload.is_public is not None:
        updates["is_public"] = payload.is_public
    access_ids = None
    if "accessible_user_ids" in fields:
        access_ids = validate_access_user_ids(barometer.child_id, payload.accessible_user_ids)
    updated = update_barometer(barometer_id, updates, accessible_user_ids=access_ids)
    return {"barometer": updated}


@router.delete("/barometers/{barometer_id}")
async def delete_barometer_endpoint(barometer_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    barometer = load_barometer(barometer_id)
    require_admin(auth.user_id, barometer.child_id, detail="Only administrators can delete barometers")
    delete_barometer(barometer_id)
    return {"success": True}


@router.get("/barometers/{barometer_id}/entries")
async def list_entries_endpoint(barometer_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    barometer = load_barometer(barometer_id)
    _require_barometer_view(auth, barometer)
    return {"entries": list_entries(barometer_id, limit=50)}


@router.post("/barometers/{barometer_id}/entries", status_code=201)
async def record_entry_endpoint(
    barometer_id: int,
    payload: BarometerEntryPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    barometer = load_barometer(barometer_id)
    _require_barometer_view(auth, barometer)
    if payload.rating < barometer.scale_min or payload.rating > barometer.scale_max:
        raise HTTPException(
            status_code=400,
            detail=f"Rating must be between {barometer.scale_min} and {barometer.scale_max}",
        )
    entry = record_entry(
        barometer_id=barometer_id,
        recorded_by=auth.user_id,
        rating=payload.rating,
        comment=(payload.comment or "").strip() or None,
        entry_date=parse_entry_date(payload.entry_date),
    )
    await announcements.announce_entry(
        child_id=barometer.child_id,
        tool_type=ToolType.BAROMETER,
        tool_id=barometer.id,
        tool_name=barometer.topic,
        tool_created_by=barometer.created_by,
        tool_is_public=barometer.is_public,
        recorder=auth.user,
        submission={
            "rating": entry.rating,
            "comment": entry.comment,
            "scale_min": barometer.scale_min,
            "scale_max": barometer.scale_max,
            "entry_date": entry.entry_date.isoformat(),
        },
    )
    return {"entry": entry}


@router.delete("/barometers/{barometer_id}/entries")
async def delete_all_entries_endpoint(barometer_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    barometer = load_barometer(barometer_id)
    require_admin(auth.user_id, barometer.child_id, detail="Only administrators can delete all entries")
    deleted = delete_all_entries(barometer_id)
    logger.info("barometer entries cleared", extra={"barometer_id": barometer_id, "count": deleted})
    return {"success": True, "deleted_count": deleted}


@router.delete("/barometers/{barometer_id}/entries/{entry_id}")
async def delete_entry_endpoint(
    barometer_id: int,
    entry_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    barometer = load_barometer(barometer_id)
    try:
        entry = get_entry(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry.barometer_id != barometer_id:
        raise HTTPException(status_code=400, detail="Entry does not belong to this barometer")
    require_owner_or_admin(
        auth.user_id,
        barometer.child_id,
        entry.recorded_by,
        detail="Only the person who recorded the entry or an administrator can delete it",
    )
    delete_entry(entry_id)
    return {"success": True}


@router.get("/barometers/{barometer_id}/access")
async def barometer_access_endpoint(barometer_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    barometer = load_barometer(barometer_id)
    _require_barometer_view(auth, barometer)
    return {
        "is_public": barometer.is_public,
        "access_users": list_access_users(AccessScope.BAROMETER, barometer_id),
    }
