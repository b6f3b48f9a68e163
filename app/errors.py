# -*- coding: utf-8 -*-
"""
Domain exceptions raised below the HTTP layer.

Adapters raise UpstreamError, the reconciler raises ExtractionError.
Both are mapped to a generic 500 by the handlers registered in app.main;
4xx outcomes are raised directly as fastapi.HTTPException by the services.
"""
from __future__ import annotations

from typing import Optional


class UpstreamError(Exception):
    """An external service (scraper, SerpAPI, Gemini) failed or timed out."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message
        self.status_code = status_code


class ExtractionError(Exception):
    """The LLM never produced JSON of the expected shape."""

    def __init__(self, reason: str, attempts: int = 1, source: Optional[str] = None):
        super().__init__(f"extraction failed after {attempts} attempt(s): {reason}")
        self.reason = reason
        self.attempts = attempts
        self.source = source


class UserNotFound(LookupError):
    """No users row for the given id."""

    def __init__(self, user_id: str):
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id
