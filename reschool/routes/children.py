import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..access import require_admin, require_member
from ..auth import AuthContext, get_auth_context
from ..children import (
    add_user_to_child,
    create_child,
    delete_child,
    get_child,
    get_child_by_slug,
    get_relation,
    list_child_users,
    list_children_for_user,
)
from ..db import get_user
from ..invitations import list_pending_for_child
from ..schemas import Child, RelationType

router = APIRouter(prefix="/api", tags=["children"])
logger = logging.getLogger(__name__)


class CreateChildPayload(BaseModel):
    name: str
    relation: RelationType
    custom_relation_name: Optional[str] = None


class AddUserPayload(BaseModel):
    user_id: int
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False


def resolve_custom_relation_name(relation: RelationType, custom_relation_name: Optional[str]) -> Optional[str]:
    custom = (custom_relation_name or "").strip() or None
    if relation == RelationType.RESSOURCEPERSON and not custom:
        raise HTTPException(
            status_code=400,
            detail="custom_relation_name is required for Ressourceperson",
        )
    return custom


def load_child(child_id: int) -> Child:
    try:
        return get_child(child_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/children")
async def list_children_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    return {"children": list_children_for_user(auth.user_id)}


@router.post("/children", status_code=201)
async def create_child_endpoint(
    payload: CreateChildPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    custom = resolve_custom_relation_name(payload.relation, payload.custom_relation_name)
    child, relation = create_child(
        name=name,
        created_by=auth.user_id,
        relation=payload.relation,
        custom_relation_name=custom,
    )
    logger.info("child created", extra={"child_id": child.id, "user_id": auth.user_id})
    return {"child": child, "relation": relation}


@router.get("/children/slug/{slug}")
async def get_child_by_slug_endpoint(slug: str, auth: AuthContext = Depends(get_auth_context)) -> dict:
    try:
        child = get_child_by_slug(slug)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    relation = require_member(auth.user_id, child.id)
    return {
        "child": child,
        "users": list_child_users(child.id),
        "invitations": list_pending_for_child(child.id),
        "current_user_relation": relation,
    }


@router.get("/children/{child_id}")
async def get_child_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    child = load_child(child_id)
    relation = require_member(auth.user_id, child_id)
    return {"child": child, "users": list_child_users(child_id), "current_user_relation": relation}


@router.delete("/children/{child_id}")
async def delete_child_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can delete a child")
    delete_child(child_id)
    logger.info("child deleted", extra={"child_id": child_id, "user_id": auth.user_id})
    return {"success": True}


@router.post("/children/{child_id}/add-user", status_code=201)
async def add_user_endpoint(
    child_id: int,
    payload: AddUserPayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can add users")
    custom = resolve_custom_relation_name(payload.relation, payload.custom_relation_name)
    try:
        get_user(payload.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if get_relation(payload.user_id, child_id) is not None:
        raise HTTPException(status_code=400, detail="User already has a relation to this child")
    relation = add_user_to_child(
        user_id=payload.user_id,
        child_id=child_id,
        relation=payload.relation,
        custom_relation_name=custom,
        is_administrator=payload.is_administrator,
    )
    return {"relation": relation, "message": "User added to child"}
