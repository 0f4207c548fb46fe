import logging

from fastapi import APIRouter, Depends, HTTPException

from ..access import ensure_admin_remains, require_admin
from ..auth import AuthContext, get_auth_context
from ..children import get_relation, remove_user_from_child, set_administrator
from ..schemas import UserChildRelation
from .children import load_child

router = APIRouter(prefix="/api/children/{child_id}/users/{user_id}", tags=["members"])
logger = logging.getLogger(__name__)


def _target_relation(user_id: int, child_id: int) -> UserChildRelation:
    relation = get_relation(user_id, child_id)
    if relation is None:
        raise HTTPException(status_code=404, detail="User is not related to this child")
    return relation


@router.delete("")
async def remove_user_endpoint(
    child_id: int,
    user_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can remove users")
    target = _target_relation(user_id, child_id)
    ensure_admin_remains(child_id, target, "remove")
    remove_user_from_child(user_id, child_id)
    logger.info(
        "user removed from child",
        extra={"child_id": child_id, "user_id": user_id, "removed_by": auth.user_id},
    )
    return {"success": True}


@router.post("/promote")
async def promote_user_endpoint(
    child_id: int,
    user_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can promote users")
    target = _target_relation(user_id, child_id)
    if target.is_administrator:
        raise HTTPException(status_code=400, detail="User is already an administrator")
    return {"relation": set_administrator(user_id, child_id, True)}


@router.post("/demote")
async def demote_user_endpoint(
    child_id: int,
    user_id: int,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    load_child(child_id)
    require_admin(auth.user_id, child_id, detail="Only administrators can demote users")
    target = _target_relation(user_id, child_id)
    if not target.is_administrator:
        raise HTTPException(status_code=400, detail="User is not an administrator")
    ensure_admin_remains(child_id, target, "demote")
    return {"relation": set_administrator(user_id, child_id, False)}
