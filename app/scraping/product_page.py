# -*- coding: utf-8 -*-
"""
Product page pre-extraction — BeautifulSoup over scraped HTML.

Pulls the handful of fields the LLM needs (title, price, image, rating,
reviews, store) using selector fallbacks, so the prompt carries a few hundred
characters instead of the whole page. Missing fields stay None.
"""
from __future__ import annotations

from typing import Dict, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from app.utils.logger import get_logger

logger = get_logger(__name__)

# ── Selectors (most specific first) ──────────────────────────────────────────

_TITLE_SELECTORS = [
    "#productTitle",
    "span#productTitle",
    "span.VU-ZEz",
    "h1.yhB1nd",
    "h1[itemprop='name']",
    "h1",
]

_PRICE_SELECTORS = [
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#priceblock_saleprice",
    "#corePriceDisplay_desktop_feature_div .a-offscreen",
    "span.a-price > span.a-offscreen",
    "div.Nx9bqj",
    "[itemprop='price']",
    "[data-asin-price]",
]

_IMAGE_SELECTORS = [
    ("#landingImage", "src"),
    ("#imgTagWrapperId img", "data-old-hires"),
    ("#imgTagWrapperId img", "src"),
    ("meta[property='og:image']", "content"),
    ("img", "src"),
]

_RATING_SELECTORS = [
    "#acrPopover span.a-icon-alt",
    "span.a-icon-alt",
    "div.XQDdHH",
]

_REVIEW_SELECTORS = [
    "#acrCustomerReviewText",
    "span.Wphh3N",
]

_STORES = [
    ("amazon", "Amazon"),
    ("flipkart", "Flipkart"),
    ("bestbuy", "Best Buy"),
    ("apple", "Apple Store"),
    ("walmart", "Walmart"),
]


# ── Helper functions ─────────────────────────────────────────────────────────

def _text(el) -> str:
    return el.get_text(" ", strip=True) if el else ""

def _first_text(soup: BeautifulSoup, selectors) -> Optional[str]:
    for sel in selectors:
        text = _text(soup.select_one(sel))
        if text:
            return text
    return None

def _first_attr(soup: BeautifulSoup, pairs) -> Optional[str]:
    for sel, attr in pairs:
        el = soup.select_one(sel)
        if el and el.get(attr):
            return el[attr].strip()
    return None


def store_from_url(url: Optional[str]) -> str:
    """Human store name from a product URL host ("Unknown" if unparseable)."""
    if not url:
        return "Unknown"
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return "Unknown"
    if not hostname:
        return "Unknown"
    for needle, name in _STORES:
        if needle in hostname:
            return name
    return hostname.replace("www.", "").split(".")[0]


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_product_fields(html: str, url: str) -> Dict[str, Optional[str]]:
    soup = BeautifulSoup(html or "", "lxml")

    title = _first_text(soup, _TITLE_SELECTORS) or _text(soup.title) or None
    price = _first_text(soup, _PRICE_SELECTORS)

    image = _first_attr(soup, _IMAGE_SELECTORS)
    if image:
        image = urljoin(url, image)

    rating = _first_text(soup, _RATING_SELECTORS)
    if not rating:
        el = soup.select_one("[aria-label*='out of 5 stars']")
        rating = el.get("aria-label") if el else None

    reviews = _first_text(soup, _REVIEW_SELECTORS)
    if not reviews:
        for el in soup.select("span.a-size-base"):
            if "ratings" in _text(el):
                reviews = _text(el)
                break

    fields = {
        "title": title,
        "price": price,
        "image": image,
        "rating": rating,
        "reviews": reviews,
        "store": store_from_url(url),
        "url": url,
    }
    logger.info(
        "Extracted fields for %s: title=%s price=%s rating=%s",
        url[:60], (title or "")[:40], price, rating,
    )
    return fields
