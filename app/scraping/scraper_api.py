# -*- coding: utf-8 -*-
"""
ScrapeNinja (RapidAPI) client — fetches the rendered HTML of one product page.

Raises UpstreamError on transport failures, timeouts and non-2xx replies.
Callers that scrape several URLs decide whether a failure skips the item.
"""
from __future__ import annotations

import httpx

from app.config import Settings
from app.errors import UpstreamError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ScrapeClient:

    def __init__(self, settings: Settings):
        self.enabled  = bool(settings.scrapeninja_api_key)
        self._url     = settings.scrapeninja_url
        self._host    = settings.scrapeninja_host
        self._key     = settings.scrapeninja_api_key
        self._timeout = settings.scrape_timeout_seconds

    async def fetch_html(self, url: str) -> str:
        if not self.enabled:
            raise UpstreamError("scrapeninja", "SCRAPENINJA_API_KEY not configured")

        headers = {
            "Content-Type": "application/json",
            "x-rapidapi-key": self._key,
            "x-rapidapi-host": self._host,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json={"url": url}, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("ScrapeNinja timeout after %.0fs: %s", self._timeout, url[:80])
            raise UpstreamError("scrapeninja", "timeout") from e
        except httpx.HTTPError as e:
            logger.error("ScrapeNinja transport error for %s: %s", url[:80], str(e)[:120])
            raise UpstreamError("scrapeninja", str(e)[:200]) from e

        if response.status_code >= 400:
            logger.error("ScrapeNinja HTTP %d for %s: %s", response.status_code, url[:80], response.text[:120])
            raise UpstreamError("scrapeninja", f"HTTP {response.status_code}", response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("scrapeninja", "response is not JSON") from e
        if not isinstance(data, dict):
            raise UpstreamError("scrapeninja", "unexpected response shape")

        html = data.get("body") or data.get("html") or ""
        info = data.get("info") or {}
        logger.info(
            "ScrapeNinja: %d chars for %s (target status %s)",
            len(html), url[:80], info.get("statusCode", "?"),
        )
        return html
