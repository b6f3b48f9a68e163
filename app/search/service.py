# -*- coding: utf-8 -*-
"""
Search pipeline: SerpAPI → Gemini (batched array reconcile) → searches + products.

Calls the steps sequentially:
  Step 1: Build the query string from query + filters
  Step 2: Fetch shopping results (SerpAPI)
  Step 3: Structure all results into product records (retrying per batch)
  Step 4: Persist search + products in one transaction
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.agents.llm_extractor import generate_form_fields, structure_products
from app.agents.reconciler import Reconciler
from app.db.models import Search, User, row_to_dict
from app.db.products import product_from_record
from app.errors import UserNotFound
from app.schemas import SearchFilters
from app.search.serp import SerpClient, slim_result
from app.utils.logger import get_logger

logger = get_logger(__name__)


def _money(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def build_search_query(query: str, filters: Optional[SearchFilters]) -> str:
    """ "laptop" + {category: "gaming", budget: {max: 1200}} → "laptop in gaming under $1200" """
    search_query = query.strip()
    if filters is None:
        return search_query
    if filters.category:
        search_query += f" in {filters.category.strip()}"
    if filters.budget and filters.budget.max:
        search_query += f" under ${_money(filters.budget.max)}"
    return search_query


async def run_search(
    db,
    serp:       SerpClient,
    reconciler: Reconciler,
    batch_size: int,
    user_id:    str,
    query:      str,
    filters:    Optional[SearchFilters] = None,
) -> Dict[str, Any]:
    if not await db.get(User, user_id):
        raise UserNotFound(user_id)

    # Step 1: query string
    search_query = build_search_query(query, filters)

    # Step 2: SerpAPI (UpstreamError propagates → 500)
    raw_items = await serp.search(search_query)
    items = [slim_result(item) for item in raw_items if isinstance(item, dict)]

    # Step 3: reconcile (ExtractionError propagates → 500, nothing persisted)
    structured: List[Any] = []
    if items:
        structured = await structure_products(reconciler, items, search_query, batch_size)
    records = [r for r in structured if isinstance(r, dict)]
    if len(records) != len(structured):
        logger.warning("Dropped %d non-object products for '%s'", len(structured) - len(records), search_query[:60])

    # Step 4: persist
    search = Search(user_id=user_id, query=search_query[:1024])
    try:
        db.add(search)
        await db.flush()
        products = [product_from_record(r, search_id=search.id) for r in records]
        db.add_all(products)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Search %s saved: '%s' → %d products", search.id, search_query[:60], len(products))
    return {
        "message": "Search completed",
        "query": search_query,
        "search": row_to_dict(search),
        "products": [row_to_dict(p) for p in products],
    }


async def generate_form(reconciler: Reconciler, query: str) -> List[Any]:
    fields = await generate_form_fields(reconciler, query.strip())
    logger.info("Generated %d form fields for '%s'", len(fields), query[:60])
    return fields
