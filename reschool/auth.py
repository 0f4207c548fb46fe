from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx
import jwt
from fastapi import Header, HTTPException
from jwt import PyJWKClient

from .config import CONFIG
from .db import sync_user
from .notifications import activate_pending_notifications
from .schemas import User

logger = logging.getLogger(__name__)

_ASYMMETRIC_ALGORITHMS = ["RS256", "ES256"]


@lru_cache
def _jwks_client() -> PyJWKClient:
    jwks_url = CONFIG.resolved_jwks_url
    if not jwks_url:
        raise RuntimeError("Missing stack_project_id/stack_jwks_url for token verification.")
    return PyJWKClient(jwks_url)


def _parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization token.")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization token.")
    return parts[1]


def _token_algorithm(token: str) -> Optional[str]:
    try:
        return jwt.get_unverified_header(token).get("alg")
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid authorization token.") from exc


async def _fetch_current_user(token: str) -> Dict[str, Any]:
    if not CONFIG.stack_project_id or not CONFIG.stack_secret_server_key:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(
            f"{CONFIG.stack_api_url.rstrip('/')}/api/v1/users/me",
            headers={
                "x-stack-access-type": "server",
                "x-stack-project-id": CONFIG.stack_project_id,
                "x-stack-secret-server-key": CONFIG.stack_secret_server_key,
                "x-stack-access-token": token,
            },
        )
    if resp.status_code >= 400:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    data = resp.json() if resp.content else {}
    user_id = data.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return {
        "sub": user_id,
        "email": data.get("primary_email"),
        "name": data.get("display_name"),
        "picture": data.get("profile_image_url"),
    }


async def _verify_access_token(token: str) -> Dict[str, Any]:
    audience = CONFIG.stack_jwt_audience or CONFIG.stack_project_id
    options = {"verify_aud": bool(audience)}
    algorithm = _token_algorithm(token)

    if algorithm in _ASYMMETRIC_ALGORITHMS and CONFIG.resolved_jwks_url:
        try:
            signing_key = _jwks_client().get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=_ASYMMETRIC_ALGORITHMS,
                audience=audience if audience else None,
                options=options,
            )
        except jwt.PyJWTError as exc:
            logger.info("jwks verification failed", extra={"reason": str(exc)})

    secret = CONFIG.stack_jwt_secret
    if secret and algorithm == "HS256":
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                audience=audience if audience else None,
                options=options,
            )
        except jwt.PyJWTError as exc:
            raise HTTPException(status_code=401, detail="Invalid or expired token.") from exc

    return await _fetch_current_user(token)


@dataclass
class AuthContext:
    user: User
    stack_auth_id: str
    access_token: str

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def user_email(self) -> str:
        return self.user.email


async def get_auth_context(authorization: Optional[str] = Header(None)) -> AuthContext:
    """Verify the bearer token and reconcile the caller's local user row."""

    token = _parse_bearer_token(authorization)
    payload = await _verify_access_token(token)
    stack_auth_id = payload.get("sub") if isinstance(payload, dict) else None
    if not stack_auth_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    user = sync_user(
        stack_auth_id=str(stack_auth_id),
        email=payload.get("email"),
        display_name=payload.get("name"),
        profile_image_url=payload.get("picture"),
    )
    if user.email:
        activated = activate_pending_notifications(user.id, user.email)
        if activated:
            logger.info(
                "pending notifications activated",
                extra={"user_id": user.id, "count": activated},
            )
    return AuthContext(user=user, stack_auth_id=str(stack_auth_id), access_token=token)
