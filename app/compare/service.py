# -*- coding: utf-8 -*-
"""
Compare pipeline: scrape N product URLs → structure each → summarize → persist.

Per-URL work (scrape → BS4 pre-extraction → single-shot Gemini structuring)
runs concurrently under a semaphore. One URL failing never aborts its
siblings: the failure is logged with the URL and the item is skipped.
The summary step is a single unit (retry mode); if it fails nothing is saved.
Comparison, products and link rows are written in one transaction.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import HTTPException

from app.agents.llm_extractor import structure_product, summarize_comparison
from app.agents.reconciler import Reconciler
from app.db.models import CompareProduct, Comparison, User, row_to_dict
from app.db.products import product_from_record
from app.errors import ExtractionError, UpstreamError, UserNotFound
from app.scraping.cache import ScrapeCache
from app.scraping.product_page import extract_product_fields, is_valid_url, store_from_url
from app.scraping.scraper_api import ScrapeClient
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _ItemResult:
    url:        str
    product:    Optional[Dict[str, Any]] = None
    cache_raw:  Optional[str]            = None
    cache_json: Optional[str]            = None
    error:      Optional[str]            = None


@dataclass
class CompareSettings:
    max_concurrent: int = 3
    cache_dir:      str = ""


async def _scrape_one(
    url:        str,
    scraper:    ScrapeClient,
    reconciler: Reconciler,
    semaphore:  asyncio.Semaphore,
    cache:      Optional[ScrapeCache],
) -> _ItemResult:
    item = _ItemResult(url=url)
    file_id = str(uuid4())
    async with semaphore:
        logger.info("🔍 Scraping: %s", url[:100])
        try:
            html = await scraper.fetch_html(url)
            if cache:
                item.cache_raw = await cache.save_raw(file_id, html)

            fields = extract_product_fields(html, url)
            product = await structure_product(reconciler, fields, url)
        except (UpstreamError, ExtractionError) as e:
            logger.error("❌ Scraping failed for: %s — %s", url[:100], e)
            item.error = str(e)
            return item
        except Exception as e:
            logger.exception("❌ Unexpected error for: %s", url[:100])
            item.error = f"{type(e).__name__}: {e}"
            return item

    # The page URL is ground truth, whatever the model echoed back
    product["product_url"] = url
    if not product.get("store"):
        product["store"] = store_from_url(url)
    item.product = product

    if cache:
        item.cache_json = await cache.save_structured(file_id, product)
    return item


async def run_compare(
    db,
    scraper:    ScrapeClient,
    reconciler: Reconciler,
    options:    CompareSettings,
    user_id:    str,
    queries:    List[str],
) -> Dict[str, Any]:
    if not queries:
        raise HTTPException(status_code=400, detail="Missing product input")

    urls: List[str] = []
    for q in queries:
        if is_valid_url(q):
            urls.append(q)
        else:
            logger.warning("❌ Skipping non-URL input: %s", q[:100])
    urls = list(dict.fromkeys(urls))
    if not urls:
        raise HTTPException(status_code=400, detail="No valid product URLs")

    if not await db.get(User, user_id):
        raise UserNotFound(user_id)

    # Step 1: scrape + structure every URL (bounded parallelism)
    semaphore = asyncio.Semaphore(max(1, options.max_concurrent))
    cache = ScrapeCache(options.cache_dir) if options.cache_dir else None
    results = await asyncio.gather(
        *(_scrape_one(url, scraper, reconciler, semaphore, cache) for url in urls)
    )
    ok = [r for r in results if r.product is not None]
    logger.info("Compare: %d/%d URLs structured", len(ok), len(urls))

    if not ok:
        raise HTTPException(status_code=500, detail="No valid product data extracted")

    records = [r.product for r in ok]

    # Step 2: summary + insights (ExtractionError propagates → 500, nothing saved)
    summary = await summarize_comparison(reconciler, records)
    insights = summary.get("insights")
    title = summary.get("title") or " vs ".join(
        str(p.get("product_name") or p.get("store") or "Product") for p in records
    )

    # Step 3: comparison + products + links, all or nothing
    comparison = Comparison(
        user_id=user_id,
        title=str(title)[:255],
        product_url=[r.url for r in ok],
        summary=str(summary.get("summary") or "")[:2048],
        insights=insights if isinstance(insights, dict) else None,
    )
    try:
        db.add(comparison)
        await db.flush()
        products = [product_from_record(rec, compare_id=comparison.id) for rec in records]
        db.add_all(products)
        await db.flush()
        db.add_all([CompareProduct(compare_id=comparison.id, product_id=p.id) for p in products])
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Comparison %s saved with %d products", comparison.id, len(products))
    response: Dict[str, Any] = {
        "message": "Comparison completed",
        "comparison": row_to_dict(comparison),
        "products": [row_to_dict(p) for p in products],
        "skipped": [r.url for r in results if r.product is None],
    }
    if cache:
        response["cache"] = {
            "raw": [r.cache_raw for r in ok if r.cache_raw],
            "structured": [r.cache_json for r in ok if r.cache_json],
        }
    return response
