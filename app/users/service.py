# -*- coding: utf-8 -*-
"""
User service — signup, email verification and login.

All functions are async. Uses SQLAlchemy AsyncSession.
Multi-row writes (user + token, verify + token delete, token rotation)
commit together or roll back together. Emails are sent after commit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from app.config import Settings
from app.db.models import User, VerificationToken, row_to_dict
from app.schemas import CreateUserRequest, LoginRequest
from app.users.email_sender import Mailer
from app.users.security import (
    hash_password,
    new_verification_token,
    verification_link,
    verify_password,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AuthOutcome:
    status_code:   int
    message:       str
    user:          Optional[Dict[str, Any]] = None
    issue_session: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def sanitize_user(row: User) -> Dict[str, Any]:
    """User row as a dict, password hash stripped."""
    return row_to_dict(row, exclude=("password",))


async def get_user_by_email(db, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


async def _send_link(mailer: Mailer, settings: Settings, user: User, token: str) -> None:
    link = verification_link(settings, user.id, token)
    await mailer.send_verification_email(user.email, user.name, link)


# ═══════════════════════════════════════════════════════════════════════════════
# SIGNUP
# ═══════════════════════════════════════════════════════════════════════════════


async def create_user(db, req: CreateUserRequest, settings: Settings, mailer: Mailer) -> AuthOutcome:
    """Create a user (and its verification token) or return the existing one.

    Step 1: Existing email → 200 "User already exists" (no session issued).
    Step 2: Insert user (+ token unless Google signup) in one transaction.
    Step 3: Email the verification link.
    """
    data = req.user
    email = str(data.email).lower()

    # Step 1: Existing user
    existing = await get_user_by_email(db, email)
    if existing:
        logger.info("Signup for existing user %s (type=%s)", email, req.type)
        return AuthOutcome(
            status_code=200,
            message="User already exists",
            user=sanitize_user(existing),
            issue_session=False,
        )

    if not req.is_google and not data.password:
        raise HTTPException(status_code=400, detail="Missing required fields")

    # Step 2: Insert user + token
    user = User(
        email=email,
        name=data.name.strip(),
        image_url=data.image_url,
        password=None if req.is_google else hash_password(data.password),
        verified=req.is_google,
    )
    raw_token = None
    try:
        db.add(user)
        await db.flush()
        if not req.is_google:
            raw_token = new_verification_token()
            db.add(VerificationToken(user_id=user.id, token=raw_token))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Concurrent signup for %s — email already taken", email)
        raise HTTPException(status_code=400, detail="User already exists")
    except Exception:
        await db.rollback()
        raise
    await db.refresh(user)

    if req.is_google:
        logger.info("Created Google user %s (%s)", user.id, email)
        return AuthOutcome(201, "User created with Google login.", sanitize_user(user), issue_session=True)

    # Step 3: Verification email
    await _send_link(mailer, settings, user, raw_token)
    logger.info("Created user %s (%s), verification pending", user.id, email)
    return AuthOutcome(201, "User created, verification email sent.", sanitize_user(user), issue_session=True)


# ═══════════════════════════════════════════════════════════════════════════════
# VERIFY
# ═══════════════════════════════════════════════════════════════════════════════


async def verify_user(db, user_id: str, token_value: str) -> AuthOutcome:
    """Consume a verification token. Wrong or used token leaves state unchanged."""
    user = await db.get(User, user_id)
    if not user:
        logger.info("Verification for unknown user %s", user_id)
        raise HTTPException(status_code=400, detail="Invalid Link - User not found")

    stmt = select(VerificationToken).where(
        VerificationToken.token == token_value,
        VerificationToken.user_id == user_id,
    )
    result = await db.execute(stmt)
    token = result.scalars().first()
    if not token:
        logger.info("Verification for user %s with unknown or consumed token", user_id)
        raise HTTPException(status_code=400, detail="Invalid Link - Token not found")

    try:
        user.verified = True
        await db.execute(
            delete(VerificationToken).where(
                VerificationToken.user_id == user_id,
                VerificationToken.token == token_value,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(user)

    logger.info("User %s verified", user_id)
    return AuthOutcome(200, "Email verified successfully", sanitize_user(user), issue_session=True)


# ═══════════════════════════════════════════════════════════════════════════════
# LOGIN
# ═══════════════════════════════════════════════════════════════════════════════


async def login_user(db, req: LoginRequest, settings: Settings, mailer: Mailer) -> AuthOutcome:
    """Credentials check; unverified accounts get a fresh link and a 401."""
    email = str(req.user.email).lower()
    user = await get_user_by_email(db, email)

    if not user:
        raise HTTPException(status_code=400, detail="Invalid email or password")

    # Passwordless Google login only for accounts created through Google
    google_ok = req.is_google and user.password is None
    if not google_ok and not verify_password(req.user.password, user.password):
        logger.info("Failed login for %s", email)
        raise HTTPException(status_code=400, detail="Invalid email or password")

    if not user.verified:
        # Rotate: purge old tokens, issue exactly one new token
        raw_token = new_verification_token()
        try:
            await db.execute(delete(VerificationToken).where(VerificationToken.user_id == user.id))
            db.add(VerificationToken(user_id=user.id, token=raw_token))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await _send_link(mailer, settings, user, raw_token)
        logger.info("Login for unverified user %s — link re-sent", email)
        return AuthOutcome(401, "Email not verified. Verification link resent.")

    logger.info("User %s logged in", email)
    return AuthOutcome(200, "Login successful", sanitize_user(user), issue_session=True)
