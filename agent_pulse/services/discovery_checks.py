"""
agent_pulse/services/discovery_checks.py
Discovery-layer checks: can AI agents reach the catalog, and is the product
data machine-readable once they do.

Network checks are total: every timeout, transport error or bad status is
turned into a scored result, never raised.
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp

from ..models import Check, CheckStatus, ExtractedSchema, ValidationResult
from ..rubric import CHECKS, CRITICAL_AI_BOTS, build_check, fraction
from .http_client import HttpClient
from .schema_extract import find_faq_schema, find_website_schema
from .schema_validate import validate_faq_schema, validate_website_schema

logger = logging.getLogger(__name__)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml")
LLMS_TXT_PATHS = ("/llms.txt", "/LLMs.txt", "/llms-full.txt")

_LOC_RE = re.compile(r"<loc>", re.IGNORECASE)


def site_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


# ── Bot access ─────────────────────────────────────────────────────────────────

@dataclass
class BotStatus:
    allowed: bool = True
    explicit: bool = False


@dataclass
class BotAccessResult:
    check: Check
    robots_txt: Optional[str] = None
    bot_statuses: Dict[str, BotStatus] = field(default_factory=dict)


async def fetch_robots_txt(
    client: HttpClient, url: str, timeout: float = 5, log: Optional[logging.Logger] = None
) -> Optional[str]:
    log = log or logger
    robots_url = f"{site_origin(url)}/robots.txt"
    try:
        resp = await client.get(robots_url, timeout=timeout)
    except (asyncio.TimeoutError, aiohttp.ClientError) as e:
        log.debug(f"[robots] {robots_url} unreachable: {type(e).__name__}")
        return None
    if not resp.ok:
        log.debug(f"[robots] {robots_url} returned HTTP {resp.status}")
        return None
    return resp.text


def is_bot_allowed(robots_txt: str, bot_name: str) -> BotStatus:
    """
    Whether `bot_name` may fetch `/`.

    Only rules for the root path ("/" or an empty value) count. Inside the
    bot's own group the last root rule wins and marks the verdict explicit.
    A wildcard (*) group is consulted only while no bot-specific root rule has
    been seen: once one has, later wildcard rules cannot change the verdict,
    while a later bot-specific rule still can.
    Consecutive User-agent lines form one group.
    """
    bot = bot_name.lower()
    status = BotStatus()
    in_bot_group = in_wildcard_group = False
    reading_agents = False

    for raw_line in robots_txt.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        key = key.lower()

        if key == "user-agent":
            if not reading_agents:
                in_bot_group = in_wildcard_group = False
            reading_agents = True
            agent = value.lower()
            if agent == bot:
                in_bot_group = True
            elif agent == "*":
                in_wildcard_group = True
            continue

        reading_agents = False
        if key not in ("allow", "disallow") or value not in ("", "/"):
            continue
        if not (in_bot_group or in_wildcard_group):
            continue

        allows = key == "allow"
        if in_bot_group:
            status.allowed = allows
            status.explicit = True
        elif not status.explicit:
            status.allowed = allows

    return status


async def check_bot_access(
    client: HttpClient,
    url: str,
    timeout: float = 5,
    robots_txt: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> BotAccessResult:
    """D1: share of critical AI crawlers allowed to fetch the site root."""
    log = log or logger
    max_score = CHECKS["D1"].max_score
    if robots_txt is None:
        robots_txt = await fetch_robots_txt(client, url, timeout=timeout, log=log)

    statuses = {
        bot: is_bot_allowed(robots_txt, bot) if robots_txt else BotStatus()
        for bot in CRITICAL_AI_BOTS
    }
    total = len(CRITICAL_AI_BOTS)
    blocked = [bot for bot in CRITICAL_AI_BOTS if not statuses[bot].allowed]
    allowed = total - len(blocked)

    if allowed == total:
        status, score = CheckStatus.PASS, max_score
        details = (
            f"All {total} AI bots allowed" if robots_txt
            else "No robots.txt found, all bots allowed by default"
        )
    elif allowed >= total * 0.7:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.7)
        details = f"{allowed}/{total} bots allowed. Blocked: {', '.join(blocked[:3])}"
    elif allowed > 0:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.4)
        details = f"Only {allowed}/{total} bots allowed. Major blocks: {', '.join(blocked[:3])}"
    else:
        status, score = CheckStatus.FAIL, 0
        details = "All AI shopping bots are blocked in robots.txt"

    log.info(f"[D1] {allowed}/{total} AI bots allowed, score {score}/{max_score}")
    check = build_check("D1", status, score, details, {
        "robots_txt_found": robots_txt is not None,
        "allowed_count": allowed,
        "total_bots": total,
        "blocked_bots": blocked,
        "bot_statuses": {b: {"allowed": s.allowed, "explicit": s.explicit} for b, s in statuses.items()},
    })
    return BotAccessResult(check=check, robots_txt=robots_txt, bot_statuses=statuses)


# ── Sitemap ────────────────────────────────────────────────────────────────────

async def check_sitemap(
    client: HttpClient, url: str, timeout: float = 8, log: Optional[logging.Logger] = None
) -> Check:
    """D3: first of the well-known sitemap locations that serves real sitemap XML."""
    log = log or logger
    origin = site_origin(url)
    checked: List[str] = []

    for path in SITEMAP_PATHS:
        sitemap_url = origin + path
        checked.append(sitemap_url)
        try:
            resp = await client.get(sitemap_url, timeout=timeout)
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            log.debug(f"[D3] {sitemap_url} unreachable: {type(e).__name__}")
            continue
        if resp.status == 200 and ("<urlset" in resp.text or "<sitemapindex" in resp.text):
            url_count = len(_LOC_RE.findall(resp.text))
            log.info(f"[D3] sitemap found at {sitemap_url} ({url_count} URLs)")
            return build_check(
                "D3", CheckStatus.PASS, CHECKS["D3"].max_score,
                f"Valid XML sitemap found ({url_count} URLs indexed)",
                {"sitemap_url": sitemap_url, "url_count": url_count},
            )

    return build_check(
        "D3", CheckStatus.FAIL, 0,
        "No XML sitemap found, agents can't efficiently crawl your catalog",
        {"checked": checked},
    )


# ── Server response time ───────────────────────────────────────────────────────

UNREACHABLE_TTFB_MS = 9999


async def measure_ttfb(
    client: HttpClient, url: str, timeout: float = 10, log: Optional[logging.Logger] = None
) -> int:
    """Milliseconds until a HEAD request to `url` answers; UNREACHABLE_TTFB_MS on any failure."""
    log = log or logger
    start = time.monotonic()
    try:
        await client.head(url, timeout=timeout)
    except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
        log.debug(f"[D7] {url} unreachable: {type(e).__name__}")
        return UNREACHABLE_TTFB_MS
    return int((time.monotonic() - start) * 1000)


def check_server_response_time(ttfb_ms: int) -> Check:
    """D7: agents skip slow servers."""
    if ttfb_ms < 400:
        status, score, threshold = CheckStatus.PASS, CHECKS["D7"].max_score, "optimal"
        details = f"TTFB {ttfb_ms}ms, optimal for AI agent crawling (<400ms)"
    elif ttfb_ms < 800:
        status, score, threshold = CheckStatus.PARTIAL, 2, "acceptable"
        details = f"TTFB {ttfb_ms}ms, acceptable but slower agents may skip (400-800ms)"
    elif ttfb_ms < 1200:
        status, score, threshold = CheckStatus.PARTIAL, 1, "at_risk"
        details = f"TTFB {ttfb_ms}ms, at risk of being skipped by AI agents (800-1200ms)"
    else:
        status, score, threshold = CheckStatus.FAIL, 0, "too_slow"
        details = f"TTFB {ttfb_ms}ms, too slow, agents likely bounce (>1200ms)"

    logger.info(f"[D7] TTFB {ttfb_ms}ms ({threshold}), score {score}")
    return build_check("D7", status, score, details, {"ttfb_ms": ttfb_ms, "threshold": threshold})


# ── llms.txt ───────────────────────────────────────────────────────────────────

def _looks_like_llms_txt(body: str) -> bool:
    head = body.lstrip()[:200].lower()
    if head.startswith("<!doctype") or head.startswith("<html"):
        return False
    return len(body.strip()) >= 10


async def check_llms_txt(
    client: HttpClient, url: str, timeout: float = 5, log: Optional[logging.Logger] = None
) -> Check:
    """D4: an llms.txt summary for language models. HTML soft-404s do not count."""
    log = log or logger
    origin = site_origin(url)

    for path in LLMS_TXT_PATHS:
        llms_url = origin + path
        try:
            resp = await client.get(llms_url, timeout=timeout)
        except (asyncio.TimeoutError, aiohttp.ClientError):
            continue
        if resp.ok and _looks_like_llms_txt(resp.text):
            lines = [ln for ln in resp.text.splitlines() if ln.strip()]
            return build_check(
                "D4", CheckStatus.PASS, CHECKS["D4"].max_score,
                f"llms.txt found at {path} ({len(lines)} lines)",
                {"url": llms_url, "line_count": len(lines), "size": len(resp.text)},
            )

    log.debug(f"[D4] no llms.txt on {origin}")
    return build_check(
        "D4", CheckStatus.FAIL, 0,
        "No llms.txt found, LLMs have no curated summary of your store",
        {"checked": [origin + p for p in LLMS_TXT_PATHS]},
    )


# ── Schema-based discovery checks ──────────────────────────────────────────────

def check_product_schema(validation: ValidationResult) -> Check:
    """D2: Product schema completeness, from the smart-extraction validation."""
    max_score = CHECKS["D2"].max_score

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No Product schema found, AI agents cannot read your product data"
    elif validation.valid and not validation.warnings:
        status, score = CheckStatus.PASS, max_score
        details = "Complete, valid Product schema with all recommended fields"
    elif validation.valid:
        status, score = CheckStatus.PASS, fraction(max_score, 0.85)
        details = f"Valid Product schema. Minor improvements: {', '.join(validation.warnings[:2])}"
    elif len(validation.missing_fields) <= 2:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.55)
        problems = validation.missing_fields + validation.invalid_fields
        details = f"Product schema found but incomplete: {', '.join(problems)}"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.3)
        details = f"Incomplete Product schema. Missing {len(validation.missing_fields)} required fields"

    return build_check("D2", status, score, details, {
        "found": validation.found,
        "valid": validation.valid,
        "missing_fields": validation.missing_fields,
        "invalid_fields": validation.invalid_fields,
        "warnings": validation.warnings,
        "identifier_type": validation.identifier_type,
    })


def check_website_schema(schemas: List[ExtractedSchema]) -> Tuple[Check, ValidationResult]:
    """D5: WebSite entity, ideally with a SearchAction agents can call."""
    max_score = CHECKS["D5"].max_score
    validation = validate_website_schema(find_website_schema(schemas))

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No WebSite schema, search engines may not understand your site structure"
    elif validation.valid and validation.has_search_action:
        status, score = CheckStatus.PASS, max_score
        details = "WebSite schema with SearchAction enables site search for agents"
    elif validation.valid:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.6)
        details = "WebSite schema found but missing SearchAction for site search"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.4)
        details = f"Incomplete WebSite schema. Missing: {', '.join(validation.missing_fields)}"

    check = build_check("D5", status, score, details, {
        "found": validation.found,
        "has_search_action": bool(validation.has_search_action),
        "warnings": validation.warnings,
    })
    return check, validation


def check_faq_schema(schemas: List[ExtractedSchema]) -> Tuple[Check, ValidationResult]:
    """D6: FAQPage entity with enough answered questions to be citable."""
    max_score = CHECKS["D6"].max_score
    validation = validate_faq_schema(find_faq_schema(schemas))
    count = validation.question_count or 0

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No FAQ structured data found, AI agents cannot match questions to your answers"
    elif count >= 5 and validation.valid:
        status, score = CheckStatus.PASS, max_score
        details = f"{count} FAQ questions with structured data"
    elif count >= 3:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.6)
        details = f"{count} FAQ questions found, add more to improve citation coverage"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.4)
        details = f"Only {count} FAQ question{'' if count == 1 else 's'} found, aim for 5+"

    check = build_check("D6", status, score, details, {
        "found": validation.found,
        "question_count": count,
        "warnings": validation.warnings[:5],
    })
    return check, validation
