# -*- coding: utf-8 -*-
"""
SerpAPI Google Shopping client.

Returns the raw result dicts (shopping_results, falling back to
organic_results for the plain "google" engine). Failures raise UpstreamError.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from app.config import Settings
from app.errors import UpstreamError
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Keys worth sending to the LLM; the rest of a SerpAPI item is tracking noise
_KEEP_KEYS = (
    "title", "price", "extracted_price", "old_price", "extracted_old_price",
    "rating", "reviews", "source", "link", "product_link", "thumbnail",
    "snippet", "extensions", "product_id", "delivery",
)


def slim_result(item: Dict[str, Any]) -> Dict[str, Any]:
    slim = {k: item[k] for k in _KEEP_KEYS if item.get(k) is not None}
    if "link" not in slim and "product_link" in slim:
        slim["link"] = slim["product_link"]
    return slim


class SerpClient:

    def __init__(self, settings: Settings):
        self.enabled  = bool(settings.serpapi_key.strip())
        self._key     = settings.serpapi_key.strip()
        self._engine  = settings.serpapi_engine
        self._gl      = settings.serpapi_gl
        self._hl      = settings.serpapi_hl
        self._num     = settings.serpapi_num
        self._timeout = settings.serpapi_timeout_seconds

    async def search(self, query: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            raise UpstreamError("serpapi", "SERPAPI_KEY not configured")

        from serpapi import GoogleSearch

        params = {
            "engine": self._engine,
            "q": query,
            "api_key": self._key,
            "gl": self._gl,
            "hl": self._hl,
            "num": self._num,
        }

        # Blocking client → thread pool, bounded by timeout
        loop = asyncio.get_running_loop()
        search = GoogleSearch(params)
        try:
            results = await asyncio.wait_for(
                loop.run_in_executor(None, search.get_dict),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("SerpAPI timeout after %.0fs for '%s'", self._timeout, query[:60])
            raise UpstreamError("serpapi", "timeout") from e
        except Exception as e:
            logger.error("SerpAPI fetch failed: %s", str(e)[:150])
            raise UpstreamError("serpapi", str(e)[:200]) from e

        if results.get("error"):
            # SerpAPI reports "no results" as an error string too
            if "hasn't returned any results" in str(results["error"]):
                logger.info("SerpAPI returned 0 results for: '%s'", query[:60])
                return []
            logger.error("SerpAPI error for '%s': %s", query[:60], results["error"])
            raise UpstreamError("serpapi", str(results["error"])[:200])

        items = results.get("shopping_results") or results.get("organic_results") or []
        items = items[: self._num]
        logger.info("SerpAPI: %d results for '%s'", len(items), query[:60])
        return items
