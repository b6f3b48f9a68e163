# -*- coding: utf-8 -*-
"""
FastAPI dependencies.

Adapters are built once in the lifespan (app.main) and kept on app.state;
routes reach them through these functions so tests can override any of them.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request

from app.agents.reconciler import Reconciler
from app.config import Settings
from app.scraping.scraper_api import ScrapeClient
from app.search.serp import SerpClient
from app.users.email_sender import Mailer
from app.users.security import decode_session_token
from app.utils.logger import get_logger

logger = get_logger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def get_scraper(request: Request) -> ScrapeClient:
    return request.app.state.scraper


def get_serp(request: Request) -> SerpClient:
    return request.app.state.serp


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_current_user(
    request:  Request,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """The user embedded in a valid session cookie, or 401."""
    token: Optional[str] = request.cookies.get(settings.session_cookie_name)
    if not token:
        logger.info("Unauthorized %s %s: no session cookie", request.method, request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = decode_session_token(token, settings)
    except jwt.PyJWTError as e:
        logger.info("Unauthorized %s %s: invalid token (%s)", request.method, request.url.path, e)
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = payload.get("user")
    if not isinstance(user, dict) or not user.get("id"):
        logger.info("Unauthorized %s %s: token has no user", request.method, request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
