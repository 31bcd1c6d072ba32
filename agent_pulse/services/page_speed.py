"""
agent_pulse/services/page_speed.py
Mobile performance via Google PageSpeed Insights, cache-first: a recent
analysis of the same domain that holds a real measurement is reused instead
of spending another (slow) API call.

get_page_speed_metrics never raises. An unmeasured page yields a metrics
object whose fields are all None, which scores as a skipped check.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import aiohttp

from ..models import CheckStatus, PageSpeedMetrics
from ..rubric import CHECKS, build_check, fraction
from .http_client import HttpClient

logger = logging.getLogger(__name__)

PAGESPEED_API_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

# Lighthouse audit id → metrics field
AUDIT_FIELDS = {
    "largest-contentful-paint": "lcp",
    "max-potential-fid": "fid",
    "cumulative-layout-shift": "cls",
    "interactive": "tti",
    "speed-index": "speed_index",
}


def _cached_metrics(analysis: Optional[Dict[str, Any]], now: datetime) -> Optional[PageSpeedMetrics]:
    if not analysis:
        return None
    n1 = next((c for c in analysis.get("checks") or [] if c.get("id") == "N1"), None)
    if n1 is None or n1.get("status") == CheckStatus.SKIPPED.value:
        return None
    raw = (n1.get("data") or {}).get("metrics")
    if not isinstance(raw, dict) or raw.get("performance_score") is None:
        return None

    age_hours = None
    created_at = analysis.get("created_at")
    if created_at:
        try:
            created = datetime.fromisoformat(created_at)
        except ValueError:
            created = None
        if created is not None:
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            age_hours = round((now - created).total_seconds() / 3600, 1)

    fields = {k: raw.get(k) for k in ("performance_score", *AUDIT_FIELDS.values())}
    return PageSpeedMetrics(**fields, cached=True, cache_age_hours=age_hours)


def parse_lighthouse(payload: Any) -> Optional[PageSpeedMetrics]:
    """Metrics from a PageSpeed Insights v5 response body, or None when it carries no Lighthouse result."""
    if not isinstance(payload, dict):
        return None
    lighthouse = payload.get("lighthouseResult")
    if not isinstance(lighthouse, dict):
        return None

    performance = (lighthouse.get("categories") or {}).get("performance") or {}
    score = performance.get("score")
    audits = lighthouse.get("audits") or {}

    values = {}
    for audit_id, field_name in AUDIT_FIELDS.items():
        audit = audits.get(audit_id)
        value = audit.get("numericValue") if isinstance(audit, dict) else None
        values[field_name] = value if isinstance(value, (int, float)) and value else None

    return PageSpeedMetrics(
        performance_score=round((score if isinstance(score, (int, float)) else 0) * 100),
        **values,
    )


async def get_page_speed_metrics(
    client: HttpClient,
    url: str,
    domain: str,
    api_key: Optional[str] = None,
    store=None,
    cache_hours: int = 24,
    timeout: float = 30,
    log: Optional[logging.Logger] = None,
) -> PageSpeedMetrics:
    log = log or logger
    now = datetime.now(timezone.utc)

    if store is not None:
        since = (now - timedelta(hours=cache_hours)).isoformat()
        try:
            recent = await store.query_recent_analysis_by_domain(domain, since)
        except Exception as e:
            log.warning(f"[N1] cache lookup failed for {domain}: {e}")
            recent = None
        cached = _cached_metrics(recent, now)
        if cached is not None:
            log.info(f"[N1] using cached PageSpeed for {domain} ({cached.cache_age_hours}h old)")
            return cached

    if not api_key:
        log.warning("[N1] GOOGLE_PAGESPEED_API_KEY not configured")
        return PageSpeedMetrics()

    params = {"url": url, "key": api_key, "category": "performance", "strategy": "mobile"}
    try:
        resp = await client.get(PAGESPEED_API_URL, params=params, timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"[N1] PageSpeed request timed out for {url}")
        return PageSpeedMetrics()
    except aiohttp.ClientError as e:
        log.warning(f"[N1] PageSpeed fetch failed for {url}: {e}")
        return PageSpeedMetrics()

    if not resp.ok:
        log.warning(f"[N1] PageSpeed API error for {url}: HTTP {resp.status}")
        return PageSpeedMetrics()
    try:
        payload = resp.json()
    except (ValueError, RecursionError):
        log.warning(f"[N1] PageSpeed returned malformed JSON for {url}")
        return PageSpeedMetrics()

    metrics = parse_lighthouse(payload)
    if metrics is None:
        log.warning(f"[N1] no Lighthouse data in PageSpeed response for {url}")
        return PageSpeedMetrics()
    log.info(f"[N1] PageSpeed {metrics.performance_score}/100 for {url}")
    return metrics


def _seconds(ms: Optional[float]) -> str:
    return f"{ms / 1000:.1f}s" if ms else "N/A"


def check_page_speed(metrics: PageSpeedMetrics):
    """N1. An unmeasured page is skipped with score and max_score both 0."""
    max_score = CHECKS["N1"].max_score
    perf = metrics.performance_score
    data = {"metrics": metrics.model_dump()}

    if perf is None:
        return build_check(
            "N1", CheckStatus.SKIPPED, 0,
            "Could not measure, PageSpeed API unavailable (excluded from score)",
            data, max_score=0,
        )

    if perf >= 90:
        status, score = CheckStatus.PASS, max_score
        details = f"Excellent performance ({perf}/100). LCP: {_seconds(metrics.lcp)}"
    elif perf >= 70:
        status, score = CheckStatus.PASS, fraction(max_score, 0.8)
        details = f"Good performance ({perf}/100). LCP: {_seconds(metrics.lcp)}"
    elif perf >= 50:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.5)
        details = f"Moderate performance ({perf}/100). Agents may time out."
    else:
        status, score = CheckStatus.FAIL, fraction(max_score, 0.2)
        details = f"Poor performance ({perf}/100). Agents will likely abandon."

    if metrics.cached:
        details += " (cached)"
    return build_check("N1", status, score, details, data)
