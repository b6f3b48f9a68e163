# -*- coding: utf-8 -*-
"""
LLM record → Product row.

Schema-on-read: every field is optional. A missing or mistyped value is
stored as NULL instead of failing the insert; strings are cut to the column
length so Postgres never rejects an over-long value.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from app.db.models import Product

_STR_LIMITS = {
    "product_name": 255,
    "brand": 255,
    "model": 255,
    "price": 50,
    "original_price": 50,
    "savings": 50,
    "image": 1024,
    "product_url": 1024,
    "store": 255,
    "asin": 50,
    "category": 1024,
    "description": 2048,
}

# Alternate keys models sometimes emit instead of the schema names
_ALIASES = {
    "product_name": ("name", "title", "productName"),
    "original_price": ("originalPrice", "old_price"),
    "product_url": ("url", "link", "productUrl"),
    "feature_bullets": ("featureBullets", "features"),
    "product_info": ("productInfo", "specs"),
}

_NUMBER = re.compile(r"-?\d+(?:[.,]\d+)*")


def _pick(record: Dict[str, Any], key: str) -> Any:
    value = record.get(key)
    if value is None:
        for alias in _ALIASES.get(key, ()):
            if record.get(alias) is not None:
                return record[alias]
    return value


def _as_str(value: Any, limit: int) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text[:limit] or None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        m = _NUMBER.search(value)
        if m:
            try:
                return float(m.group(0).replace(",", ""))
            except ValueError:
                return None
    return None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return int(number) if number is not None else None


def _as_str_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [str(v) for v in value if v is not None and not isinstance(v, (dict, list))]


def _as_str_map(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        return None
    return {str(k): str(v) for k, v in value.items() if v is not None}


def product_from_record(
    record: Dict[str, Any],
    search_id: Optional[str] = None,
    compare_id: Optional[str] = None,
) -> Product:
    fields: Dict[str, Any] = {
        name: _as_str(_pick(record, name), limit) for name, limit in _STR_LIMITS.items()
    }
    fields.update(
        rating=_as_float(record.get("rating")),
        reviews=_as_int(record.get("reviews")),
        images=_as_str_list(record.get("images")),
        product_info=_as_str_map(_pick(record, "product_info")),
        feature_bullets=_as_str_list(_pick(record, "feature_bullets")),
        pros=_as_str_list(record.get("pros")),
        cons=_as_str_list(record.get("cons")),
    )
    return Product(search_id=search_id, compare_id=compare_id, **fields)
