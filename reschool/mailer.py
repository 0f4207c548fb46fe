"""Invitation e-mails through the Resend HTTP API."""
from __future__ import annotations

import html
import logging
from typing import Any, Dict

import httpx

from .config import CONFIG

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def render_invitation_email(
    *,
    child_name: str,
    inviter_name: str,
    inviter_relation: str,
    recipient_relation: str,
    invite_url: str,
    ttl_days: int,
) -> str:
    child = html.escape(child_name)
    inviter = html.escape(inviter_name)
    url = html.escape(invite_url, quote=True)
    return f"""<!DOCTYPE html>
<html lang="da">
<head><meta charset="utf-8"><title>Invitation til ReSchool</title></head>
<body style="margin:0;padding:0;background-color:#f8f9fa;font-family:Inter,Arial,sans-serif;">
  <div style="max-width:600px;margin:32px auto;background:#ffffff;border-radius:12px;border:1px solid #e9ecef;">
    <div style="padding:32px 24px;text-align:center;border-bottom:1px solid #e9ecef;">
      <h1 style="color:#3d405b;margin:0 0 8px 0;">ReSchool</h1>
      <p style="color:#3d405b;font-weight:600;margin:0;">Du er inviteret!</p>
    </div>
    <div style="padding:32px;">
      <h2 style="color:#3d405b;text-align:center;">{child}</h2>
      <p style="color:#6c757d;line-height:1.6;">
        Du er blevet inviteret af <strong>{inviter}</strong> ({html.escape(inviter_relation)}) til at følge
        <strong>{child}</strong> på ReSchool som <strong>{html.escape(recipient_relation)}</strong>.
      </p>
      <p style="text-align:center;margin:32px 0;">
        <a href="{url}" style="background:#81b29a;color:#ffffff;text-decoration:none;border-radius:8px;padding:16px 32px;font-weight:600;">Acceptér invitation</a>
      </p>
      <p style="color:#6c757d;font-size:14px;">Problemer med knappen? Kopiér dette link: {url}</p>
    </div>
    <div style="background:#f8f9fa;border-top:1px solid #e9ecef;padding:24px 32px;text-align:center;font-size:12px;color:#6c757d;">
      Denne invitation udløber om {ttl_days} dage. Hvis du ikke ønsker at deltage, kan du trygt ignorere denne e-mail.
    </div>
  </div>
</body>
</html>"""


async def send_invitation_email(
    *,
    to: str,
    child_name: str,
    inviter_name: str,
    inviter_relation: str,
    recipient_relation: str,
    invite_url: str,
) -> Dict[str, Any]:
    """Send the invitation mail; failures are reported in the result, not raised."""

    if not CONFIG.resend_api_key:
        logger.info("resend not configured; skipping invitation email", extra={"to": to})
        return {"success": False, "skipped": True}

    body = {
        "from": CONFIG.email_from,
        "to": [to],
        "subject": f"Du er inviteret til at følge {child_name} på ReSchool",
        "html": render_invitation_email(
            child_name=child_name,
            inviter_name=inviter_name,
            inviter_relation=inviter_relation,
            recipient_relation=recipient_relation,
            invite_url=invite_url,
            ttl_days=CONFIG.invitation_ttl_days,
        ),
    }
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(
                RESEND_API_URL,
                json=body,
                headers={"Authorization": f"Bearer {CONFIG.resend_api_key}"},
            )
    except httpx.HTTPError as exc:
        logger.warning("invitation email failed", extra={"to": to, "error": str(exc)})
        return {"success": False, "error": str(exc)}

    if resp.status_code >= 400:
        logger.warning(
            "invitation email rejected",
            extra={"to": to, "status": resp.status_code, "body": resp.text},
        )
        return {"success": False, "error": f"status={resp.status_code}"}

    data = resp.json() if resp.content else {}
    logger.info("invitation email sent", extra={"to": to, "email_id": data.get("id")})
    return {"success": True, "id": data.get("id")}
