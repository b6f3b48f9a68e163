from __future__ import annotations
import json
from typing import Any, Dict, List
from app.agents.reconciler import Reconciler, Shape
from app.utils.logger import get_logger

logger = get_logger(__name__)

_PRODUCT_SCHEMA = """\
{
  "product_name": string,
  "brand": string | null,
  "model": string | null,
  "price": string | null,            (current price with currency symbol, e.g. "$199.99")
  "original_price": string | null,   (list/strikethrough price, same format)
  "savings": string | null,          (original_price minus price, same format)
  "image": string | null,            (main image URL)
  "images": [string] | null,
  "rating": number | null,           (out of 5)
  "reviews": integer | null,         (number of ratings/reviews)
  "product_url": string | null,
  "store": string | null,            (e.g. Amazon, Flipkart, Best Buy)
  "asin": string | null,
  "category": string | null,
  "description": string | null,      (1-3 sentences)
  "product_info": {string: string} | null,   (key specifications)
  "feature_bullets": [string] | null,
  "pros": [string] | null,
  "cons": [string] | null
}"""

_PRODUCT_PROMPT = """\
You are an AI that extracts product information from a web page.

From the following raw product data, produce ONE product in strict JSON matching this schema:

{schema}

RULES:
- Use null for anything you cannot determine. Never invent prices or URLs.
- Keep URLs exactly as given.
- Respond only with valid JSON, no explanations or markdown.

---START OF CONTENT---
{content}
---END OF CONTENT---"""

_PRODUCTS_PROMPT = """\
You are an AI that normalizes shopping search results into product records.

Convert EVERY item below into a product matching this schema, and return a JSON ARRAY of products
in the same order as the input ({count} items in, {count} items out):

{schema}

RULES:
- Use null for anything you cannot determine. Never invent prices or URLs.
- product_url must be the item's link, unchanged.
- pros/cons: at most 3 short phrases each, inferred from the title, snippet and extensions.
- Respond only with a valid JSON array, no explanations or markdown.

Search query: {query}

---START OF RESULTS---
{content}
---END OF RESULTS---"""

_FORM_PROMPT = """\
You are helping a shopper narrow down a product search.

For the search "{query}", design a short form (3 to 6 fields) asking for the preferences that matter
most when buying this kind of product (budget, size, brand, use case, ...).

Return a JSON ARRAY where every element has this shape:
{{
  "name": string,           (snake_case key)
  "label": string,          (question shown to the user)
  "type": "text" | "number" | "select" | "multiselect" | "range" | "checkbox",
  "options": [string] | null,   (required for select / multiselect)
  "min": number | null,         (range / number only)
  "max": number | null,
  "placeholder": string | null,
  "required": boolean
}}

Respond only with a valid JSON array, no explanations or markdown."""

_COMPARISON_PROMPT = """\
You are a product comparison expert. Compare the products below (indexed from 0) for a shopper.

Return ONE JSON object with this shape:
{{
  "title": string,        (short title for this comparison, e.g. "iPhone 15 vs Galaxy S24")
  "summary": string,      (3-5 sentences covering price, quality and value)
  "insights": {{
    "best_index": integer,   (index of the product you recommend)
    "title": string,         (name of the recommended product)
    "reasons": [string]      (2-4 short reasons)
  }}
}}

Respond only with valid JSON, no explanations or markdown.

---PRODUCTS---
{content}
---END OF PRODUCTS---"""


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=1, default=str)


def _chunks(items: List[Any], size: int) -> List[List[Any]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


async def structure_product(reconciler: Reconciler, raw: Dict[str, Any], source_url: str) -> Dict:
    """Single-item mode — one generation, any bad output raises ExtractionError."""
    prompt = _PRODUCT_PROMPT.format(schema=_PRODUCT_SCHEMA, content=_dump(raw))
    product = await reconciler.reconcile_once(prompt, Shape.OBJECT, source=source_url)
    logger.debug(f"LLM product [{source_url[:60]}] → {str(product.get('product_name', ''))[:40]}")
    return product


async def structure_products(
    reconciler: Reconciler,
    items:      List[Dict[str, Any]],
    query:      str,
    batch_size: int,
) -> List[Any]:
    """Batch mode — one prompt per chunk; each chunk retries as a unit.

    A chunk that exhausts its attempts raises ExtractionError and aborts the
    whole query: no partial result set is returned.
    """
    products: List[Any] = []
    batches = _chunks(items, batch_size)
    for n, batch in enumerate(batches, start=1):
        prompt = _PRODUCTS_PROMPT.format(
            schema=_PRODUCT_SCHEMA,
            count=len(batch),
            query=query,
            content=_dump(batch),
        )
        structured = await reconciler.reconcile(prompt, Shape.ARRAY, source=f"search:{query} batch {n}/{len(batches)}")
        if len(structured) != len(batch):
            logger.warning(
                "Batch %d/%d for '%s': %d items in, %d products out",
                n, len(batches), query[:60], len(batch), len(structured),
            )
        products.extend(structured)
    return products


async def generate_form_fields(reconciler: Reconciler, query: str) -> List[Any]:
    return await reconciler.reconcile(_FORM_PROMPT.format(query=query), Shape.ARRAY, source=f"form:{query}")


async def summarize_comparison(reconciler: Reconciler, products: List[Dict[str, Any]]) -> Dict:
    """Title + summary + insights for a set of already-structured products."""
    compact = [
        {
            "index": i,
            "product_name": p.get("product_name"),
            "brand": p.get("brand"),
            "price": p.get("price"),
            "rating": p.get("rating"),
            "reviews": p.get("reviews"),
            "store": p.get("store"),
            "pros": p.get("pros"),
            "cons": p.get("cons"),
        }
        for i, p in enumerate(products)
    ]
    return await reconciler.reconcile(
        _COMPARISON_PROMPT.format(content=_dump(compact)),
        Shape.OBJECT,
        source=f"compare:{len(products)} products",
    )
