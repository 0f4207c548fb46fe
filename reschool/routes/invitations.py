import logging
import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .. import announcements, mailer
from ..access import require_admin
from ..auth import AuthContext, get_auth_context
from ..children import add_user_to_child, get_child, get_relation, list_member_ids, member_has_email
from ..config import CONFIG
from ..db import find_user_by_email, list_users
from ..invitations import (
    create_invitation,
    delete_invitation,
    get_invitation,
    get_invitation_by_token,
    is_expired,
    list_pending_for_email,
    mark_accepted,
    normalize_email,
    set_status,
)
from ..notifications import notify_child_added, notify_invitation_received, notify_user_joined_child
from ..schemas import InvitationDetails, InvitationStatus, RelationType
from .children import load_child, resolve_custom_relation_name

router = APIRouter(prefix="/api", tags=["invitations"])
logger = logging.getLogger(__name__)


class InvitePayload(BaseModel):
    email: str
    relation: RelationType
    custom_relation_name: Optional[str] = None
    is_administrator: bool = False


class DeclinePayload(BaseModel):
    invitation_id: int


def relation_label(relation: RelationType, custom_relation_name: Optional[str]) -> str:
    return custom_relation_name or relation.value


def invite_url(token: str) -> str:
    return f"{CONFIG.app_url.rstrip('/')}/invite/{token}"


def _load_open_invitation(token: str) -> InvitationDetails:
    invitation = get_invitation_by_token(token)
    if invitation is None:
        raise HTTPException(status_code=404, detail="Invitation not found")
    if invitation.status != InvitationStatus.PENDING:
        raise HTTPException(status_code=410, detail="Invitation is no longer valid")
    if is_expired(invitation):
        raise HTTPException(status_code=410, detail="Invitation has expired")
    return invitation


async def _accept_invitation(invitation: InvitationDetails, auth: AuthContext) -> dict:
    user = auth.user
    if normalize_email(user.email) != normalize_email(invitation.email):
        raise HTTPException(status_code=400, detail="Your email address does not match the invitation")
    if get_relation(user.id, invitation.child_id) is not None:
        raise HTTPException(status_code=400, detail="You already have access to this child")
    if not mark_accepted(invitation.id):
        raise HTTPException(status_code=410, detail="Invitation is no longer valid")

    try:
        relation = add_user_to_child(
            user_id=user.id,
            child_id=invitation.child_id,
            relation=invitation.relation,
            custom_relation_name=invitation.custom_relation_name,
            is_administrator=invitation.is_administrator,
        )
    except sqlite3.IntegrityError as exc:
        # A concurrent add-user created the relation first; the invitation goes back to pending.
        set_status(invitation.id, InvitationStatus.PENDING)
        logger.warning(
            "invitation accept lost relation race",
            extra={"invitation_id": invitation.id, "user_id": user.id},
        )
        raise HTTPException(status_code=400, detail="You already have access to this child") from exc
    child = get_child(invitation.child_id)
    member_name = announcements.display_name(user)
    notify_child_added(user_id=user.id, child_name=child.name, child_slug=child.slug)
    for member in list_users(list_member_ids(child.id)):
        if member.id == user.id:
            continue
        notify_user_joined_child(
            user_id=member.id,
            user_name=member_name,
            child_name=child.name,
            child_slug=child.slug,
        )
    await announcements.announce_new_member(
        child_id=child.id,
        new_member=user,
        relation_label=relation_label(invitation.relation, invitation.custom_relation_name),
        inviter_name=invitation.inviter_name or invitation.inviter_email or "",
    )
    logger.info(
        "invitation accepted",
        extra={"invitation_id": invitation.id, "child_id": child.id, "user_id": user.id},
    )
    return {
        "message": "Invitation accepted successfully",
        "child_slug": child.slug,
        "child_name": child.name,
        "relation": relation,
    }


@router.post("/children/{child_id}/invite", status_code=201)
async def invite_endpoint(
    child_id: int,
    payload: InvitePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    child = load_child(child_id)
    inviter_relation = require_admin(auth.user_id, child_id, detail="Only administrators can invite users")
    email = normalize_email(payload.email)
    if "@" not in email:
        raise HTTPException(status_code=400, detail="A valid email is required")
    custom = resolve_custom_relation_name(payload.relation, payload.custom_relation_name)
    if member_has_email(child_id, email):
        raise HTTPException(status_code=400, detail="This user already has access to the child")

    invitation = create_invitation(
        email=email,
        child_id=child_id,
        invited_by=auth.user_id,
        relation=payload.relation,
        custom_relation_name=custom,
        is_administrator=payload.is_administrator,
    )
    inviter_name = announcements.display_name(auth.user)
    existing = find_user_by_email(email)
    notify_invitation_received(
        user_id=existing.id if existing else None,
        email=email,
        child_name=child.name,
        inviter_name=inviter_name,
        token=invitation.token,
    )
    url = invite_url(invitation.token)
    result = await mailer.send_invitation_email(
        to=email,
        child_name=child.name,
        inviter_name=inviter_name,
        inviter_relation=relation_label(inviter_relation.relation, inviter_relation.custom_relation_name),
        recipient_relation=relation_label(payload.relation, custom),
        invite_url=url,
    )
    logger.info(
        "invitation created",
        extra={"invitation_id": invitation.id, "child_id": child_id, "email_sent": bool(result.get("success"))},
    )
    return {"invitation": invitation, "invite_url": url, "email_sent": bool(result.get("success"))}


@router.get("/invitations/pending")
async def pending_invitations_endpoint(auth: AuthContext = Depends(get_auth_context)) -> dict:
    return {"invitations": list_pending_for_email(auth.user.email)}


@router.post("/invitations/decline")
async def decline_invitation_endpoint(
    payload: DeclinePayload,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    try:
        invitation = get_invitation(payload.invitation_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if normalize_email(invitation.email) != normalize_email(auth.user.email):
        raise HTTPException(status_code=403, detail="This invitation was not sent to you")
    if invitation.status != InvitationStatus.PENDING:
        raise HTTPException(status_code=400, detail="Invitation is no longer pending")
    return {"invitation": set_status(invitation.id, InvitationStatus.DECLINED)}


@router.delete("/invitations/delete/{invitation_id}")
async def delete_invitation_endpoint(invitation_id: int, auth: AuthContext = Depends(get_auth_context)) -> dict:
    try:
        invitation = get_invitation(invitation_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    require_admin(auth.user_id, invitation.child_id, detail="Only administrators can delete invitations")
    delete_invitation(invitation_id)
    return {"success": True}


@router.get("/invitations/{token}")
async def get_invitation_endpoint(token: str) -> dict:
    return {"invitation": _load_open_invitation(token)}


@router.post("/invitations/{token}/accept")
async def accept_invitation_endpoint(token: str, auth: AuthContext = Depends(get_auth_context)) -> dict:
    return await _accept_invitation(_load_open_invitation(token), auth)


@router.post("/invitations/{token}/auto-accept")
async def auto_accept_invitation_endpoint(token: str, auth: AuthContext = Depends(get_auth_context)) -> dict:
    invitation = _load_open_invitation(token)
    if not (auth.user.display_name or "").strip():
        raise HTTPException(
            status_code=400,
            detail={"message": "A display name is required before joining", "requires_manual_accept": True},
        )
    return await _accept_invitation(invitation, auth)
