import logging
from datetime import date, datetime, time, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, StrictBool

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
from ..indsatstrappe import (
    StepStateError,
    activate_step,
    add_custom_period,
    complete_step,
    create_plan,
    create_step,
    delete_plan,
    delete_step,
    entry_child_id,
    find_active_plan,
    get_plan,
    get_step,
    link_entry,
    list_periods,
    list_plans,
    list_steps,
    set_plan_access,
    uncomplete_step,
    update_plan,
    update_step,
)
from ..schemas import AccessScope, IndsatsStep, Indsatstrappe, ToolType
from .barometers import parse_entry_date
from .children import load_child

router = APIRouter(prefix="/api", tags=["indsatstrappe"])
logger = logging.getLogger(__name__)


class CreatePlanPayload(BaseModel):
    title: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    is_public: StrictBool = True
    accessible_user_ids: Optional[List[int]] = None


class UpdatePlanPayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    target_date: Optional[str] = None
    is_active: Optional[StrictBool] = None
    is_completed: Optional[StrictBool] = None
    is_public: Optional[StrictBool] = None
    accessible_user_ids: Optional[List[int]] = None


class PlanAccessPayload(BaseModel):
    is_public: Optional[StrictBool] = None
    user_ids: List[int]


class StepPayload(BaseModel):
    title: str
    description: Optional[str] = None
    goal: Optional[str] = None


class UpdateStepPayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    goal: Optional[str] = None


class PeriodPayload(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_custom_period: bool = False


class LinkEntryPayload(BaseModel):
    entry_type: ToolType
    entry_id: int
    notes: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def parse_period_datetime(value: str, *, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC.

    A bare date is the start of that day, or its last second when ``end_of_day``.
    """

    text = value.strip()
    try:
        if len(text) == 10:
            day = date.fromisoformat(text)
            parsed = datetime.combine(day, time(23, 59, 59) if end_of_day else time(0, 0))
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date '{value}'") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_plan(plan_id: int) -> Indsatstrappe:
    try:
        return get_plan(plan_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def load_step(step_id: int) -> IndsatsStep:
    try:
        return get_step(step_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _require_plan_view(auth: AuthContext, plan: Indsatstrappe) -> None:
    require_view(
        auth.user_id,
        plan.child_id,
        scope=AccessScope.INDSATSTRAPPE,
        row_id=plan.id,
        created_by=plan.created_by,
        is_public=plan.is_public,
    )


def _step_with_plan(step_id: int, auth: AuthContext):
    step = load_step(step_id)
    plan = load_plan(step.plan_id)
    _require_plan_view(auth, plan)
    return step, plan


@router.get("/children/{child_id}/indsatstrappe")
async def list_plans_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    plans = [
        plan
        for plan in list_plans(child_id)
        if can_view(
            relation,
            scope=AccessScope.INDSATSTRAPPE,
            row_id=plan.id,
            created_by=plan.created_by,
            is_public=plan.is_public,
        )
    ]
    return {"plans": plans}


@router.get("/children/{child_id}/indsatstrappe/active")
async def active_plan_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    plan = find_active_plan(child_id)
    visible = plan is not None and can_view(
        relation,
        scope=AccessScope.INDSATSTRAPPE,
        row_id=plan.id,
        created_by=plan.created_by,
        is_public=plan.is_public,
    )
    if not visible:
        raise HTTPException(status_code=404, detail="No active indsatstrappe for this child")
    return {"plan": plan}


@router.post("/children/{child_id}/indsatstrappe", status_code=201)
async def create_plan_endpoint(
    child_id: int,
    payload: CreatePlanPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can create an indsatstrappe")
    title = payload.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    access_ids = validate_access_user_ids(child_id, payload.accessible_user_ids)
    plan = create_plan(
        child_id=child_id,
        created_by=auth.user_id,
        title=title,
        description=_clean(payload.description),
        start_date=parse_entry_date(payload.start_date),
        target_date=parse_entry_date(payload.target_date),
        is_public=payload.is_public,
        accessible_user_ids=access_ids,
    )
    logger.info("indsatstrappe created", extra={"plan_id": plan.id, "child_id": child_id})
    return {"plan": plan}


# Step routes are declared before the plan routes so "steps" never parses as a plan id.
@router.put("/indsatstrappe/steps/{step_id}")
async def update_step_endpoint(
    step_id: int,
    payload: UpdateStepPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    step = load_step(step_id)
    plan = load_plan(step.plan_id)
    require_owner_or_admin(
        auth.user_id,
        plan.child_id,
        plan.created_by,
        detail="Only the creator or an administrator can edit steps",
    )
    fields = payload.model_fields_set
    updates: dict = {}
    if "title" in fields:
        title = (payload.title or "").strip()
        if not title:
            raise HTTPException(status_code=400, detail="title cannot be empty")
        updates["title"] = title
    if "description" in fields:
        updates["description"] = _clean(payload.description)
    if "goal" in fields:
        updates["goal"] = _clean(payload.goal)
    return {"step": update_step(step_id, updates)}


@router.delete("/indsatstrappe/steps/{step_id}")
async def delete_step_endpoint(step_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    step = load_step(step_id)
    plan = load_plan(step.plan_id)
    require_owner_or_admin(
        auth.user_id,
        plan.child_id,
        plan.created_by,
        detail="Only the creator or an administrator can delete steps",
    )
    delete_step(step_id)
    return {"success": True}


@router.post("/indsatstrappe/steps/{step_id}/complete")
async def complete_step_endpoint(step_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    _step_with_plan(step_id, auth)
    try:
        step = complete_step(step_id, auth.user_id)
    except StepStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"step": step}


@router.post("/indsatstrappe/steps/{step_id}/uncomplete")
async def uncomplete_step_endpoint(step_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    _step_with_plan(step_id, auth)
    try:
        step = uncomplete_step(step_id)
    except StepStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"step": step}


@router.post("/indsatstrappe/steps/{step_id}/link-entry", status_code=201)
async def link_entry_endpoint(
    step_id: int,
    payload: LinkEntryPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    _, plan = _step_with_plan(step_id, auth)
    owner_child_id = entry_child_id(payload.entry_type, payload.entry_id)
    if owner_child_id is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    if owner_child_id != plan.child_id:
        raise HTTPException(status_code=400, detail="Entry belongs to another child")
    linked = link_entry(
        step_id=step_id,
        entry_type=payload.entry_type,
        entry_id=payload.entry_id,
        notes=_clean(payload.notes),
    )
    return {"linked_entry": linked}


@router.put("/indsatstrappe/{plan_id}")
async def update_plan_endpoint(
    plan_id: int,
    payload: UpdatePlanPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    plan = load_plan(plan_id)
    require_admin(auth.user_id, plan.child_id, detail="Only administrators can edit an indsatstrappe")
    fields = payload.model_fields_set
    updates: dict = {}
    if "title" in fields:
        title = (payload.title or "").strip()
        if not title:
            raise HTTPException(status_code=400, detail="title cannot be empty")
        updates["title"] = title
    if "description" in fields:
        updates["description"] = _clean(payload.description)
    if "start_date" in fields:
        updates["start_date"] = parse_entry_date(payload.start_date)
    if "target_date" in fields:
        updates["target_date"] = parse_entry_date(payload.target_date)
    for flag in ("is_active", "is_completed", "is_public"):
        value = getattr(payload, flag)
        if flag in fields and value is not None:
            updates[flag] = value
    access_ids = None
    if "accessible_user_ids" in fields:
        access_ids = validate_access_user_ids(plan.child_id, payload.accessible_user_ids)
    return {"plan": update_plan(plan_id, updates, accessible_user_ids=access_ids)}


@router.delete("/indsatstrappe/{plan_id}")
async def delete_plan_endpoint(plan_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    plan = load_plan(plan_id)
    require_admin(auth.user_id, plan.child_id, detail="Only administrators can delete an indsatstrappe")
    delete_plan(plan_id)
    logger.info("indsatstrappe deleted", extra={"plan_id": plan_id, "child_id": plan.child_id})
    return {"success": True}


@router.get("/indsatstrappe/{plan_id}/access")
async def plan_access_endpoint(plan_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    plan = load_plan(plan_id)
    _require_plan_view(auth, plan)
    return {
        "plan_id": plan_id,
        "is_public": plan.is_public,
        "access_users": list_access_users(AccessScope.INDSATSTRAPPE, plan_id),
    }


@router.post("/indsatstrappe/{plan_id}/access")
async def set_plan_access_endpoint(
    plan_id: int,
    payload: PlanAccessPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    plan = load_plan(plan_id)
    require_owner_or_admin(
        auth.user_id,
        plan.child_id,
        plan.created_by,
        detail="Only the creator or an administrator can change access",
    )
    user_ids = validate_access_user_ids(plan.child_id, payload.user_ids)
    is_public = payload.is_public
    if is_public is None:
        is_public = plan.is_public and not user_ids
    updated = set_plan_access(plan_id, is_public=is_public, user_ids=user_ids)
    return {
        "plan_id": plan_id,
        "is_public": updated.is_public,
        "access_users": list_access_users(AccessScope.INDSATSTRAPPE, plan_id),
    }


@router.get("/indsatstrappe/{plan_id}/steps")
async def list_steps_endpoint(plan_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    plan = load_plan(plan_id)
    _require_plan_view(auth, plan)
    return {"steps": list_steps(plan_id)}


@router.post("/indsatstrappe/{plan_id}/steps", status_code=201)
async def create_step_endpoint(
    plan_id: int,
    payload: StepPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    plan = load_plan(plan_id)
    require_owner_or_admin(
        auth.user_id,
        plan.child_id,
        plan.created_by,
        detail="Only the creator or an administrator can add steps",
    )
    title = payload.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    step = create_step(
        plan_id=plan_id,
        title=title,
        description=_clean(payload.description),
        goal=_clean(payload.goal),
    )
    return {"step": step}


@router.get("/indsatstrappe/{plan_id}/steps/{step_id}/periods")
async def list_periods_endpoint(
    plan_id: int,
    step_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    step, _ = _step_with_plan(step_id, auth)
    if step.plan_id != plan_id:
        raise HTTPException(status_code=400, detail="Step does not belong to this indsatstrappe")
    return {"periods": list_periods(step_id)}


@router.post("/indsatstrappe/{plan_id}/steps/{step_id}/periods", status_code=201)
async def create_period_endpoint(
    plan_id: int,
    step_id: int,
    payload: PeriodPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    step, _ = _step_with_plan(step_id, auth)
    if step.plan_id != plan_id:
        raise HTTPException(status_code=400, detail="Step does not belong to this indsatstrappe")
    start = parse_period_datetime(payload.start_date) if payload.start_date else None
    end = parse_period_datetime(payload.end_date, end_of_day=True) if payload.end_date else None
    try:
        if payload.is_custom_period:
            if start is None:
                raise HTTPException(status_code=400, detail="start_date is required for a custom period")
            period = add_custom_period(step_id, auth.user_id, start=start, end=end)
        else:
            period = activate_step(step_id, auth.user_id, start=start)
    except StepStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(
        "step period recorded",
        extra={"step_id": step_id, "period_id": period.id, "custom": payload.is_custom_period},
    )
    return {"period": period}
