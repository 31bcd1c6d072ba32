"""
agent_pulse/services/fetcher.py
Content acquisition: plain GET first, render service only when the static
HTML looks like it cannot carry the page's data.
"""
import asyncio
import logging
import re
from typing import Optional, Tuple

import aiohttp

from ..exceptions import (
    ContentAcquisitionError, FetchError, FetchNetworkError, FetchTimeoutError, RenderError,
)
from ..models import FetchResult, SmartFetchResult
from .http_client import HttpClient
from .renderer import Renderer

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

_BODY_RE = re.compile(r"<body[^>]*>(.*?)</body>", re.IGNORECASE | re.DOTALL)

_FRAMEWORK_ROOTS = ('id="__next"', 'id="root"', 'id="app"')
_JS_REQUIRED = ("enable javascript", "javascript is required")
_COMMERCE_WORDS = ("add to cart", "add-to-cart", "buy now", "price")
_PRODUCT_MARKERS = ('"@type":"product"', '"@type": "product"', "'@type':'product'")


async def fetch(client: HttpClient, url: str, timeout: float = 10) -> FetchResult:
    """
    Plain GET. Raises FetchTimeoutError / FetchNetworkError; an HTTP error
    status is *not* an exception here, the caller decides what it means.
    """
    try:
        resp = await client.get(url, headers=BROWSER_HEADERS, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise FetchTimeoutError(url, timeout) from e
    except aiohttp.ClientError as e:
        raise FetchNetworkError(url, f"Network error ({type(e).__name__})") from e

    return FetchResult(
        html=resp.text,
        status_code=resp.status,
        content_type=resp.header("content-type") or None,
        final_url=resp.url or url,
        redirected=bool(resp.url) and resp.url.rstrip("/") != url.rstrip("/"),
    )


def needs_rendering(html: str) -> Tuple[bool, str]:
    """Decide whether static HTML is too thin to analyze. First matching rule wins."""
    if len(html) < 500:
        return True, "Response too short (likely JS-only)"

    lower = html.lower()
    match = _BODY_RE.search(html)
    body = match.group(1).strip() if match else ""

    if len(body) < 200 and any(marker in lower for marker in _FRAMEWORK_ROOTS):
        return True, "JS framework detected with empty body"

    if any(text in lower for text in _JS_REQUIRED):
        return True, "JavaScript required warning detected"

    has_commerce = any(word in lower for word in _COMMERCE_WORDS)
    has_product_marker = any(marker in lower for marker in _PRODUCT_MARKERS)
    if has_commerce and not has_product_marker and len(body) < 5000:
        return True, "E-commerce signals but no schema in static HTML"

    return False, "Static HTML appears sufficient"


async def smart_fetch(
    client: HttpClient,
    url: str,
    renderer: Optional[Renderer] = None,
    timeout: float = 10,
    log: Optional[logging.Logger] = None,
) -> SmartFetchResult:
    """
    Plain fetch, escalating to the render service when the fetch fails or the
    HTML needs rendering. When rendering fails but the plain fetch produced
    HTML, that HTML is used. Raises ContentAcquisitionError when nothing usable
    came back.
    """
    log = log or logger
    plain: Optional[FetchResult] = None
    reason = None

    try:
        plain = await fetch(client, url, timeout=timeout)
        if plain.status_code >= 400:
            reason = f"HTTP {plain.status_code} from static fetch"
        else:
            needed, reason = needs_rendering(plain.html)
            if not needed:
                log.info(f"[fetch] {url}: static HTML used ({reason})")
                return SmartFetchResult(
                    html=plain.html,
                    url=url,
                    status_code=plain.status_code,
                    content_type=plain.content_type,
                    final_url=plain.final_url,
                    redirected=plain.redirected,
                )
    except FetchError as e:
        reason = str(e)
        log.warning(f"[fetch] static fetch failed for {url}: {e}")

    if renderer is not None:
        log.info(f"[fetch] {url}: falling back to render service ({reason})")
        try:
            rendered = await renderer.render(url)
            return SmartFetchResult(
                html=rendered.html,
                url=url,
                render_used=True,
                render_reason=reason,
                status_code=plain.status_code if plain else None,
                content_type=plain.content_type if plain else None,
                final_url=plain.final_url if plain else url,
                redirected=plain.redirected if plain else False,
                page_metadata=rendered.model_dump(exclude={"html"}),
            )
        except RenderError as e:
            log.warning(f"[fetch] render service failed for {url}: {e}")

    if plain is not None and plain.status_code < 400 and plain.html:
        return SmartFetchResult(
            html=plain.html,
            url=url,
            render_reason=reason,
            status_code=plain.status_code,
            content_type=plain.content_type,
            final_url=plain.final_url,
            redirected=plain.redirected,
        )

    raise ContentAcquisitionError(f"Failed to fetch page content: {reason}")
