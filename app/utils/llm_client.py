from __future__ import annotations
import asyncio
from typing import Optional
from app.config import Settings
from app.errors import UpstreamError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class GeminiClient:
    """
    Narrow Gemini wrapper: generate(prompt) -> text.
    - No JSON handling here; the reconciler owns shape enforcement.
    - Every call is bounded by llm_timeout_seconds.
    - Semaphore caps concurrent calls (free-tier quota: 15 req/min).
    """

    def __init__(self, settings: Settings):
        self.enabled    = bool(settings.gemini_api_key)
        self.model      = settings.gemini_model
        self._api_key   = settings.gemini_api_key
        self._timeout   = settings.llm_timeout_seconds
        self._limit     = settings.llm_max_concurrent
        self._client    = None
        self._semaphore: Optional[asyncio.Semaphore] = None   # needs running event loop

        if self.enabled:
            logger.info(f"✓ Gemini LLM | model={self.model}")
        else:
            logger.warning("⚠ LLM disabled — set GEMINI_API_KEY in .env")

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._limit)
        return self._semaphore

    def _get_client(self):
        if not self._client:
            from google import genai
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str) -> str:
        if not self.enabled:
            raise UpstreamError("gemini", "GEMINI_API_KEY not configured")

        from google.genai import types

        async with self._get_semaphore():
            try:
                response = await asyncio.wait_for(
                    self._get_client().aio.models.generate_content(
                        model=self.model,
                        contents=prompt,
                        config=types.GenerateContentConfig(temperature=0.1),
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError as e:
                logger.error(f"Gemini [{self.model}]: timed out after {self._timeout}s")
                raise UpstreamError("gemini", "timeout") from e
            except Exception as e:
                logger.error(f"Gemini [{self.model}]: {str(e)[:120]}")
                raise UpstreamError("gemini", str(e)[:200]) from e

        text = response.text or ""
        logger.debug(f"Gemini [{self.model}] → {len(text)} chars")
        return text
