from fastapi import APIRouter, Depends, HTTPException

from ..auth import AuthContext, get_auth_context
from ..children import get_relation, list_children_for_user, slugify, users_share_child
from ..db import get_user

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/sync-user")
async def sync_user_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    # The auth dependency has already upserted the caller.
    user = auth.user
    user_slug = slugify(user.display_name or user.email.split("@")[0])
    return {"success": True, "user_slug": user_slug, "user": user}


@router.get("/users/{user_id}")
async def get_user_endpoint(user_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    try:
        user = get_user(user_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    children = list_children_for_user(user_id)
    if user_id != auth.user_id:
        if not users_share_child(auth.user_id, user_id):
            raise HTTPException(status_code=403, detail="Access denied")
        # Other people's profiles only list the children both users follow.
        children = [child for child in children if get_relation(auth.user_id, child.id) is not None]
    return {"user": user, "children": children}
