"""
agent_pulse/services/feeds.py
Product feed discovery. Candidates come from four independent sources
(platform-native endpoints, robots.txt Sitemap lines, <link>/<a> tags,
well-known paths), are fetched concurrently, classified, deduplicated by
absolute URL and ranked.
"""
import asyncio
import json
import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup

from ..models import FeedDiscovery, FeedInfo, FeedSource, FeedType
from .http_client import HttpClient

logger = logging.getLogger(__name__)

NATIVE_FEED_PATHS: Dict[str, Tuple[str, ...]] = {
    "Shopify": ("/products.json",),
    "WooCommerce": ("/wp-json/wc/store/v1/products",),
}

COMMON_FEED_PATHS = (
    "/products.xml",
    "/feed/products",
    "/feed.xml",
    "/google-shopping.xml",
    "/google-merchant.xml",
    "/product-feed.xml",
)

_ROBOTS_SITEMAP_RE = re.compile(r"^\s*sitemap:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
_ROBOTS_FEED_HINT = re.compile(r"product|feed|merchant|shopping|catalog", re.IGNORECASE)

# href patterns that mark a <link>/<a> as a feed candidate
HTML_FEED_PATTERNS: Tuple[Tuple[str, "re.Pattern"], ...] = (
    ("products.json", re.compile(r"products\.json", re.I)),
    ("feed xml", re.compile(r"feed[^\"'\s]*\.xml", re.I)),
    ("products xml", re.compile(r"products[^\"'\s]*\.xml", re.I)),
)
FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")

SOURCE_PRIORITY = (
    FeedSource.NATIVE, FeedSource.HTML, FeedSource.ROBOTS,
    FeedSource.SITEMAP, FeedSource.COMMON_PATH, FeedSource.GUESSED,
)

_XML_ITEM_PATTERNS = (
    re.compile(r"<item[\s>]", re.I),
    re.compile(r"<product[\s>]", re.I),
    re.compile(r"<entry[\s>]", re.I),
)


# ── Classification ─────────────────────────────────────────────────────────────

def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:100].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def classify_feed(url: str, source: FeedSource, content_type: str, text: str) -> FeedInfo:
    """Type, product count and required-field coverage of a fetched feed body."""
    content_type = (content_type or "").lower()
    stripped = text.strip()

    if "json" in content_type or stripped.startswith(("{", "[")):
        feed_type = FeedType.JSON
    elif "xml" in content_type or "<?xml" in text[:500]:
        feed_type = FeedType.XML
    elif "csv" in content_type:
        feed_type = FeedType.CSV
    else:
        feed_type = FeedType.UNKNOWN

    count = 0
    missing: List[str] = []
    has_required = False

    if feed_type == FeedType.JSON:
        try:
            data = json.loads(stripped)
        except (ValueError, RecursionError):
            data = None
        if isinstance(data, dict):
            products = data.get("products") or data.get("items") or []
        else:
            products = data if isinstance(data, list) else []
        products = products if isinstance(products, list) else []
        count = len(products)
        if products and isinstance(products[0], dict):
            sample = products[0]
            has_title = bool(sample.get("title") or sample.get("name"))
            variants = sample.get("variants")
            has_price = "price" in sample or (
                isinstance(variants, list) and bool(variants)
                and isinstance(variants[0], dict) and "price" in variants[0]
            )
            has_required = has_title and has_price
            if not has_title:
                missing.append("title/name")
            if not has_price:
                missing.append("price")

    elif feed_type == FeedType.XML:
        count = max(len(p.findall(text)) for p in _XML_ITEM_PATTERNS)
        has_required = "<g:price" in text or "<price" in text
        if not has_required:
            missing.append("price")

    elif feed_type == FeedType.CSV:
        rows = [row for row in stripped.splitlines() if row.strip()]
        count = max(len(rows) - 1, 0)
        header = rows[0].lower() if rows else ""
        has_title = "title" in header or "name" in header
        has_price = "price" in header
        has_required = has_title and has_price
        if not has_title:
            missing.append("title/name")
        if not has_price:
            missing.append("price")

    return FeedInfo(
        url=url,
        type=feed_type,
        source=source,
        accessible=True,
        product_count=count,
        has_required_fields=has_required,
        missing_fields=missing,
        is_empty=count == 0,
    )


async def check_feed_url(
    client: HttpClient,
    url: str,
    source: FeedSource,
    timeout: float = 5,
    log: Optional[logging.Logger] = None,
) -> FeedInfo:
    log = log or logger
    unreachable = FeedInfo(url=url, source=source, accessible=False)
    try:
        resp = await client.get(url, timeout=timeout)
    except (asyncio.TimeoutError, aiohttp.ClientError) as e:
        log.debug(f"[feeds] {url} unreachable: {type(e).__name__}")
        return unreachable
    if not resp.ok:
        return unreachable

    content_type = resp.header("content-type")
    if _looks_like_html(resp.text):
        # Soft 404: storefront page served where a feed should be
        return unreachable
    return classify_feed(url, source, content_type, resp.text)


# ── Candidate gathering ────────────────────────────────────────────────────────

def _robots_candidates(robots_txt: Optional[str], origin: str) -> List[str]:
    if not robots_txt:
        return []
    found: List[str] = []
    for match in _ROBOTS_SITEMAP_RE.finditer(robots_txt):
        if not _ROBOTS_FEED_HINT.search(match.group(1)):
            continue
        try:
            found.append(urljoin(origin + "/", match.group(1)))
        except ValueError:
            continue
    return found


def _html_candidates(html: str, origin: str) -> List[str]:
    found: List[str] = []
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["link", "a"], href=True):
        href = tag["href"].strip()
        if not href or href.startswith(("#", "javascript:", "mailto:")):
            continue
        link_type = (tag.get("type") or "").lower()
        if link_type in FEED_LINK_TYPES or any(p.search(href) for _, p in HTML_FEED_PATTERNS):
            try:
                found.append(urljoin(origin + "/", href))
            except ValueError:
                continue
    return found


def rank_feeds(feeds: List[FeedInfo]) -> List[FeedInfo]:
    """accessible > not, non-empty > empty, more products > fewer, native > discovered."""
    def key(feed: FeedInfo):
        return (
            not feed.accessible,
            feed.is_empty,
            -(feed.product_count or 0),
            SOURCE_PRIORITY.index(feed.source),
        )
    return sorted(feeds, key=key)


def pick_primary_feed(ranked: List[FeedInfo]) -> Optional[FeedInfo]:
    for feed in ranked:
        if feed.accessible and not feed.is_empty:
            return feed
    return ranked[0] if ranked else None


async def discover_feeds(
    client: HttpClient,
    origin: str,
    html: str,
    robots_txt: Optional[str],
    platform: str,
    timeout: float = 5,
    log: Optional[logging.Logger] = None,
) -> FeedDiscovery:
    log = log or logger
    origin = origin.rstrip("/")

    candidates: List[Tuple[str, FeedSource]] = []
    seen = set()

    def _add(url: str, source: FeedSource) -> None:
        if url not in seen:
            seen.add(url)
            candidates.append((url, source))

    for path in NATIVE_FEED_PATHS.get(platform, ()):
        _add(origin + path, FeedSource.NATIVE)
    for url in _robots_candidates(robots_txt, origin):
        _add(url, FeedSource.ROBOTS)
    for url in _html_candidates(html, origin):
        _add(url, FeedSource.HTML)
    for path in COMMON_FEED_PATHS:
        _add(origin + path, FeedSource.COMMON_PATH)

    results = await asyncio.gather(*(
        check_feed_url(client, url, source, timeout=timeout, log=log)
        for url, source in candidates
    ))

    # A guessed path that is not there is not a feed; a referenced one is a broken feed
    feeds = [
        f for f in results
        if f.accessible or f.source != FeedSource.COMMON_PATH
    ]
    ranked = rank_feeds(feeds)
    primary = pick_primary_feed(ranked)
    log.info(f"[feeds] {len(ranked)} feed(s) on {origin}, primary: {primary.url if primary else None}")
    return FeedDiscovery(feeds=ranked, primary_feed=primary)
