from fastapi import APIRouter, Depends, Query

from ..access import require_member
from ..auth import AuthContext, get_auth_context
from ..progress import build_child_progress, latest_registrations
from .children import load_child

router = APIRouter(prefix="/api", tags=["progress"])

MAX_LATEST = 50


@router.get("/children/{child_id}/progress")
async def child_progress_endpoint(child_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    load_child(child_id)
    require_member(auth.user_id, child_id)
    return build_child_progress(child_id, auth.user_id)


@router.get("/registrations/latest")
async def latest_registrations_endpoint(
    limit: int = Query(20, ge=1),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    return {"registrations": latest_registrations(auth.user_id, limit=min(limit, MAX_LATEST))}
