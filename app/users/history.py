# -*- coding: utf-8 -*-
"""
Nested user history: user → searches → products, user → comparisons → products.

One query per level, never one per parent row:
  1. user by id
  2. searches by user_id
  3. products WHERE search_id IN (search ids)
  4. comparisons by user_id
  5. compare_products WHERE compare_id IN (comparison ids)
  6. products WHERE id IN (product ids from step 5)

Children keep the order storage returned them in. A join row pointing at a
product that no longer exists is skipped.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List

from sqlalchemy import select

from app.db.models import CompareProduct, Comparison, Product, Search, User, row_to_dict
from app.errors import UserNotFound
from app.users.service import sanitize_user
from app.utils.logger import get_logger

logger = get_logger(__name__)


async def _products_by_search(db, search_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    if not search_ids:
        return grouped
    result = await db.execute(select(Product).where(Product.search_id.in_(search_ids)))
    for product in result.scalars().all():
        grouped[product.search_id].append(row_to_dict(product))
    return grouped


async def _products_by_comparison(db, compare_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    if not compare_ids:
        return grouped

    links_result = await db.execute(
        select(CompareProduct).where(CompareProduct.compare_id.in_(compare_ids))
    )
    links = links_result.scalars().all()

    product_ids = list(dict.fromkeys(link.product_id for link in links))
    products: Dict[str, Dict[str, Any]] = {}
    if product_ids:
        result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {p.id: row_to_dict(p) for p in result.scalars().all()}

    missing = 0
    for link in links:
        product = products.get(link.product_id)
        if product is None:
            missing += 1
            continue
        grouped[link.compare_id].append(product)

    if missing:
        logger.debug("Skipped %d comparison links to deleted products", missing)
    return grouped


async def get_user_nested_data(db, user_id: str) -> Dict[str, Any]:
    user = await db.get(User, user_id)
    if not user:
        raise UserNotFound(user_id)

    searches_result = await db.execute(select(Search).where(Search.user_id == user_id))
    searches = searches_result.scalars().all()
    search_products = await _products_by_search(db, [s.id for s in searches])

    compares_result = await db.execute(select(Comparison).where(Comparison.user_id == user_id))
    comparisons = compares_result.scalars().all()
    compare_products = await _products_by_comparison(db, [c.id for c in comparisons])

    nested_searches = [
        {**row_to_dict(s), "products": search_products.get(s.id, [])} for s in searches
    ]
    nested_comparisons = [
        {**row_to_dict(c), "products": compare_products.get(c.id, [])} for c in comparisons
    ]

    logger.info(
        "Nested data for %s: %d searches, %d comparisons",
        user_id, len(nested_searches), len(nested_comparisons),
    )
    return {
        "user": {
            **sanitize_user(user),
            "searches": nested_searches,
            "comparisons": nested_comparisons,
        }
    }
