# -*- coding: utf-8 -*-
"""
Password hashing, verification tokens and the session cookie.

Session tokens are stateless HS256 JWTs: {"user": <sanitized user>, "iat", "exp"}.
Logout only deletes the cookie; a captured token stays valid until "exp".
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Response
from passlib.context import CryptContext

from app.config import Settings

_ALGORITHM = "HS256"

pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ---------- Password ----------

def hash_password(raw: str) -> str:
    return pwd_ctx.hash(raw)


def verify_password(raw: Optional[str], hashed: Optional[str]) -> bool:
    if not raw or not hashed:
        return False
    try:
        return pwd_ctx.verify(raw, hashed)
    except ValueError:
        # Stored value is not a recognizable hash
        return False


# ---------- Email verification ----------

def new_verification_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def verification_link(settings: Settings, user_id: str, token: str) -> str:
    return f"{settings.base_url.rstrip('/')}/user/{user_id}/verify/{token}"


# ---------- Session JWT ----------

def create_session_token(user: Dict[str, Any], settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user": {k: v for k, v in user.items() if k != "password"},
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.session_ttl_days)).timestamp()),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=_ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Raises jwt.PyJWTError on bad signature, malformed token or expiry."""
    return jwt.decode(token, settings.session_secret, algorithms=[_ALGORITHM])


# ---------- Cookie ----------

def set_session_cookie(response: Response, user: Dict[str, Any], settings: Settings) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user, settings),
        max_age=settings.session_ttl_days * 24 * 3600,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )
