# -*- coding: utf-8 -*-
"""
Optional on-disk cache of scraped pages and their structured products.

Layout under SCRAPE_CACHE_DIR:
  raw/raw-<id>.html
  product-<id>.json
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from app.utils.logger import get_logger

logger = get_logger(__name__)


class ScrapeCache:

    def __init__(self, root: str):
        self.root = Path(root)

    def _write(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    async def _write_async(self, path: Path, text: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, text)
        except (OSError, UnicodeError) as e:
            logger.warning("Cache write failed for %s: %s", path, e)
            return None
        return path.name

    async def save_raw(self, file_id: str, html: str) -> Optional[str]:
        return await self._write_async(self.root / "raw" / f"raw-{file_id}.html", html)

    async def save_structured(self, file_id: str, product: Any) -> Optional[str]:
        text = json.dumps(product, ensure_ascii=False, indent=2, default=str)
        return await self._write_async(self.root / f"product-{file_id}.json", text)
