"""
Bearer-token verification for the storefront API.

The identity provider itself (sign-up, sign-in, session refresh) lives
outside this service. It hands the browser a signed token; this module
only issues tokens for trusted callers (tests, the admin CLI) and verifies
them on every request.

Token format: ``<base64url(json claims)>.<base64url(hmac-sha256)>``.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel

from . import settings


class CurrentUser(BaseModel):
    """Claims of an authenticated caller."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(payload: str) -> str:
    digest = hmac.new(
        settings.AUTH_SECRET.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
    ).digest()
    return _b64encode(digest)


def issue_token(
    user_id: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
    role: str = "customer",
    ttl_minutes: Optional[int] = None,
) -> str:
    """Issue a signed bearer token for a user.

    Args:
        user_id: Identity-provider user id.
        email: Email address carried in the claims.
        full_name: Display name carried in the claims.
        role: ``"customer"`` or ``"admin"``.
        ttl_minutes: Lifetime; defaults to ``AUTH_TOKEN_TTL_MINUTES``.

    Returns:
        The encoded token.
    """
    ttl = ttl_minutes if ttl_minutes is not None else settings.AUTH_TOKEN_TTL_MINUTES
    claims = {
        "sub": user_id,
        "email": email,
        "name": full_name,
        "role": role,
        "exp": int(time.time()) + ttl * 60,
    }
    payload = _b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    return f"{payload}.{_sign(payload)}"


def verify_token(token: str) -> Optional[CurrentUser]:
    """Return the caller for a valid token, or None if invalid or expired."""
    try:
        payload, signature = token.split(".", 1)
    except ValueError:
        return None
    if not hmac.compare_digest(_sign(payload), signature):
        return None
    try:
        claims = json.loads(_b64decode(payload))
    except (ValueError, json.JSONDecodeError):
        return None
    if claims.get("exp", 0) < time.time():
        return None
    return CurrentUser(
        id=claims["sub"],
        email=claims.get("email"),
        full_name=claims.get("name"),
        role=claims.get("role", "customer"),
    )


def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header or not header.lower().startswith("bearer "):
        return None
    return header[7:].strip()


async def get_optional_user(request: Request) -> Optional[CurrentUser]:
    """Dependency: the caller if a valid token was sent, else None."""
    token = _bearer(request)
    if token is None:
        return None
    return verify_token(token)


async def get_current_user(
    user: Optional[CurrentUser] = Depends(get_optional_user),
) -> CurrentUser:
    """Dependency: the caller, or 401."""
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_admin(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Dependency: an admin caller, or 403."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
