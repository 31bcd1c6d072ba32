"""
agent_pulse/services/distribution_checks.py
Distribution signals: which commerce platform runs the store, which payment
rails and commerce APIs the page exposes, whether agent-commerce manifests
(UCP / MCP) are published, and the aggregate protocol readiness built from
all of it. Also produces the display-only legacy distribution checks P1–P7.
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Tuple

import aiohttp

from ..models import (
    Check, CheckStatus, Confidence, FeedDiscovery, FeedSource, ManifestProbe,
    PlatformDetection, ProtocolReadiness, ProtocolSignal, ProtocolStatus, QualityLevel,
    SchemaQuality,
)
from ..rubric import LEGACY_DISTRIBUTION_WEIGHTS, build_check
from .http_client import HttpClient

logger = logging.getLogger(__name__)


# ── Platform fingerprint ───────────────────────────────────────────────────────

# Ordered: first platform with any marker present wins
PLATFORM_SIGNATURES: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    ("Shopify", ("cdn.shopify.com", "shopify.com/s/", "myshopify.com", "shopify-section"),
     "Shopify CDN/assets"),
    ("WooCommerce", ("woocommerce", "wc-block", "/wp-content/plugins/woocommerce"),
     "WooCommerce markers"),
    ("Magento", ("mage/", "magento", "varien", "/static/frontend/"), "Magento markers"),
    ("BigCommerce", ("bigcommerce", "cdn11.bigcommerce", "stencil-utils"), "BigCommerce markers"),
    ("Salesforce Commerce Cloud", ("demandware", "dwanalytics", "salesforce-commerce-cloud", "sfcc"),
     "SFCC markers"),
    ("SAP Commerce", ("hybris", "/yacceleratorstorefront", "sap-commerce", "/occ/v2/"),
     "SAP Commerce markers"),
    ("Shopware", ("shopware",), "Shopware markers"),
    ("PrestaShop", ("prestashop",), "PrestaShop markers"),
    ("Squarespace", ("squarespace",), "Squarespace markers"),
    ("Wix", ("wix.com", "wixsite.com", "parastorage.com"), "Wix markers"),
)

ECOMMERCE_MARKERS = ("add-to-cart", "add to cart", "product-price", "buy-now", "checkout")


def detect_platform(html: str, domain: str = "") -> PlatformDetection:
    lower_html = html.lower()
    lower_domain = domain.lower()

    for platform, markers, indicator in PLATFORM_SIGNATURES:
        if any(m in lower_html for m in markers) or (
            platform == "Squarespace" and "squarespace" in lower_domain
        ):
            return PlatformDetection(
                detected=True, platform=platform, confidence=Confidence.HIGH, indicators=[indicator],
            )

    if any(m in lower_html for m in ECOMMERCE_MARKERS):
        return PlatformDetection(
            detected=True, platform="Custom", confidence=Confidence.MEDIUM,
            indicators=["E-commerce patterns detected"],
        )
    return PlatformDetection()


# ── Payment rails / API patterns ───────────────────────────────────────────────

PAYMENT_RAIL_PATTERNS: Tuple[Tuple[str, "re.Pattern"], ...] = (
    ("stripe", re.compile(r"stripe\.js|js\.stripe\.com|stripe-button|stripe\.com/v3", re.I)),
    ("shopify_checkout", re.compile(r"checkout\.shopify\.com|shopify.*checkout|shopify_pay", re.I)),
    ("paypal", re.compile(r"paypal\.com/sdk|paypalobjects\.com|braintree", re.I)),
    ("klarna", re.compile(r"klarna.*payments|x\.klarnacdn\.net|klarna-checkout", re.I)),
    ("google_pay", re.compile(r"pay\.google\.com|gpay|google-pay", re.I)),
    ("apple_pay", re.compile(r"apple-pay-button|applepaysession|apple\.com/apple-pay", re.I)),
)

PAYMENT_RAIL_LABELS: Dict[str, str] = {
    "stripe": "Stripe",
    "shopify_checkout": "Shopify Checkout",
    "paypal": "PayPal",
    "klarna": "Klarna",
    "google_pay": "Google Pay",
    "apple_pay": "Apple Pay",
}

API_PATTERNS: Tuple[Tuple[str, "re.Pattern"], ...] = (
    ("graphql", re.compile(r"graphql", re.I)),
    ("rest", re.compile(r"/api/v\d|/rest/v\d", re.I)),
    ("headless", re.compile(r"headless|storefront-api|commerce-api", re.I)),
)


def detect_payment_rails(html: str) -> List[str]:
    return [name for name, pattern in PAYMENT_RAIL_PATTERNS if pattern.search(html)]


def detect_api_patterns(html: str) -> List[str]:
    return [name for name, pattern in API_PATTERNS if pattern.search(html)]


def format_rails(rails: List[str]) -> str:
    return ", ".join(PAYMENT_RAIL_LABELS.get(r, r) for r in rails)


# ── Manifest probes ────────────────────────────────────────────────────────────

UCP_MANIFEST_PATHS = ("/.well-known/ucp.json", "/.well-known/commerce.json", "/api/commerce/manifest")
MCP_MANIFEST_PATHS = ("/.well-known/mcp.json", "/mcp/capabilities", "/.well-known/ai-plugin.json")
SAP_COMMERCE_INDICATORS = ("/occ/v2/", "/rest/v2/", "sap-commerce", "spartacus")


async def _probe(client: HttpClient, url: str, timeout: float, log: logging.Logger):
    try:
        resp = await client.get(url, timeout=timeout)
    except (asyncio.TimeoutError, aiohttp.ClientError) as e:
        log.debug(f"[manifest] {url} unreachable: {type(e).__name__}")
        return None
    return resp if resp.ok else None


async def check_ucp_manifest(
    client: HttpClient, origin: str, timeout: float = 3, log: Optional[logging.Logger] = None
) -> ManifestProbe:
    """First well-known UCP path that answers 200 with a JSON object."""
    log = log or logger
    origin = origin.rstrip("/")
    for path in UCP_MANIFEST_PATHS:
        url = origin + path
        resp = await _probe(client, url, timeout, log)
        if resp is None:
            continue
        try:
            manifest = resp.json()
        except (ValueError, RecursionError):
            log.debug(f"[manifest] {url} is not JSON")
            continue
        if not isinstance(manifest, dict):
            continue
        capabilities = manifest.get("capabilities")
        version = manifest.get("version")
        return ManifestProbe(
            found=True,
            url=url,
            type="ucp",
            version=str(version) if version is not None else None,
            capabilities=[str(c) for c in capabilities] if isinstance(capabilities, list) else [],
        )
    return ManifestProbe()


async def check_mcp_server(
    client: HttpClient,
    origin: str,
    html: str,
    timeout: float = 3,
    log: Optional[logging.Logger] = None,
) -> ManifestProbe:
    log = log or logger
    lower_html = html.lower()
    # SAP Commerce OCC APIs count as an equivalent integration; no probing needed
    if any(ind in lower_html for ind in SAP_COMMERCE_INDICATORS):
        return ManifestProbe(found=True, type="sap-commerce")

    origin = origin.rstrip("/")
    for path in MCP_MANIFEST_PATHS:
        url = origin + path
        if await _probe(client, url, timeout, log) is not None:
            return ManifestProbe(
                found=True, url=url, type="openai-plugin" if "ai-plugin" in path else "mcp",
            )
    return ManifestProbe()


# ── Protocol readiness ─────────────────────────────────────────────────────────

def _gtin_coverage(has_gtin: bool, has_required_fields: bool) -> float:
    if has_gtin:
        return 0.9
    return 0.5 if has_required_fields else 0.0


def build_protocol_readiness(
    has_feed: bool,
    has_required_fields: bool,
    has_product: bool,
    has_offer: bool,
    has_gtin: bool,
    payment_rails: List[str],
    api_patterns: List[str],
    ucp: ManifestProbe,
    mcp: ManifestProbe,
) -> ProtocolReadiness:
    """Pure decision tables over already-computed signals."""
    ready, partial, not_ready = ProtocolStatus.READY, ProtocolStatus.PARTIAL, ProtocolStatus.NOT_READY
    coverage = _gtin_coverage(has_gtin, has_required_fields)
    has_stripe = "stripe" in payment_rails

    if has_feed and has_required_fields and has_gtin:
        google = ProtocolSignal(status=ready, reason="Feed with required fields + GTIN")
    elif has_feed and has_required_fields:
        google = ProtocolSignal(status=partial, reason="Feed valid but missing GTIN")
    elif has_feed:
        google = ProtocolSignal(status=partial, reason="Feed missing required fields")
    else:
        google = ProtocolSignal(status=not_ready, reason="No product feed detected")

    if has_feed and coverage >= 0.8:
        klarna = ProtocolSignal(status=ready, reason="Feed + GTIN identifiers present")
    elif has_feed and coverage >= 0.5:
        klarna = ProtocolSignal(status=partial, reason="Feed found, GTIN coverage <80%")
    elif has_feed:
        klarna = ProtocolSignal(status=partial, reason="Feed exists but missing GTIN/SKU")
    else:
        klarna = ProtocolSignal(status=not_ready, reason="No feed or product identifiers")

    if has_product and has_offer:
        answer = ProtocolSignal(status=ready, reason="Complete Product + Offer schema")
    elif has_product:
        answer = ProtocolSignal(status=partial, reason="Product schema but no Offer")
    else:
        answer = ProtocolSignal(status=not_ready, reason="No structured data detected")

    if ucp.found:
        ucp_signal = ProtocolSignal(status=ready, reason=f"UCP manifest v{ucp.version or '?'} detected")
    elif api_patterns:
        ucp_signal = ProtocolSignal(status=partial, reason=f"Commerce API patterns: {', '.join(api_patterns)}")
    else:
        ucp_signal = ProtocolSignal(status=not_ready, reason="No UCP manifest detected")

    if has_stripe and mcp.type == "openai-plugin":
        acp = ProtocolSignal(status=ready, reason="Stripe + OpenAI plugin detected")
    elif has_stripe:
        acp = ProtocolSignal(status=partial, reason="Stripe detected, no AI plugin")
    elif payment_rails:
        acp = ProtocolSignal(status=partial, reason="Payment rails detected, needs Stripe")
    else:
        acp = ProtocolSignal(status=not_ready, reason="No Stripe or payment integration")

    if mcp.found and mcp.type != "openai-plugin":
        mcp_signal = ProtocolSignal(status=ready, reason=f"MCP server detected ({mcp.type})")
    elif "headless" in api_patterns or "graphql" in api_patterns:
        mcp_signal = ProtocolSignal(status=partial, reason="Headless commerce patterns detected")
    else:
        mcp_signal = ProtocolSignal(status=not_ready, reason="No MCP server detected")

    signals = (google, klarna, answer, ucp_signal, acp, mcp_signal)
    return ProtocolReadiness(
        google_shopping=google,
        klarna_app=klarna,
        answer_engines=answer,
        ucp=ucp_signal,
        acp=acp,
        mcp=mcp_signal,
        payment_rails=list(payment_rails),
        api_patterns=list(api_patterns),
        ready_count=sum(1 for s in signals if s.status == ready),
        partial_count=sum(1 for s in signals if s.status == partial),
    )


async def calculate_protocol_readiness(
    client: HttpClient,
    origin: str,
    html: str,
    has_feed: bool,
    has_required_fields: bool,
    has_product: bool,
    has_offer: bool,
    has_gtin: bool,
    timeout: float = 3,
    log: Optional[logging.Logger] = None,
) -> ProtocolReadiness:
    log = log or logger
    ucp, mcp = await asyncio.gather(
        check_ucp_manifest(client, origin, timeout=timeout, log=log),
        check_mcp_server(client, origin, html, timeout=timeout, log=log),
    )
    readiness = build_protocol_readiness(
        has_feed, has_required_fields, has_product, has_offer, has_gtin,
        detect_payment_rails(html), detect_api_patterns(html), ucp, mcp,
    )
    log.info(
        f"[protocols] {origin}: {readiness.ready_count} ready, {readiness.partial_count} partial"
        f" (ucp={ucp.found}, mcp={mcp.type if mcp.found else None})"
    )
    return readiness


# ── Legacy distribution checks (P1–P7) ─────────────────────────────────────────

_LEGACY_RATIO = {CheckStatus.PASS: 1.0, CheckStatus.PARTIAL: 0.5, CheckStatus.FAIL: 0.0}


def _legacy(check_id: str, status: CheckStatus, details: str, data: Optional[Dict] = None) -> Check:
    weight = LEGACY_DISTRIBUTION_WEIGHTS[check_id]
    payload = dict(data or {})
    payload["legacy_max_score"] = weight
    payload["legacy_score"] = int(weight * _LEGACY_RATIO[status] + 0.5)
    return build_check(check_id, status, 0, details, payload)


def build_legacy_distribution_checks(
    platform: PlatformDetection,
    quality: SchemaQuality,
    feeds: FeedDiscovery,
    readiness: ProtocolReadiness,
) -> List[Check]:
    """Zero-weight checks kept for display next to the scored rubric."""
    checks: List[Check] = []

    if platform.detected:
        checks.append(_legacy("P1", CheckStatus.PASS, f"{platform.platform} detected",
                              {"platform": platform.platform, "confidence": platform.confidence.value}))
    else:
        checks.append(_legacy("P1", CheckStatus.FAIL, "No e-commerce platform detected"))

    if quality.level == QualityLevel.FULL:
        checks.append(_legacy("P2", CheckStatus.PASS, "Product structured data is complete"))
    elif quality.level == QualityLevel.PARTIAL:
        checks.append(_legacy("P2", CheckStatus.PARTIAL, "Product structured data is partial"))
    else:
        checks.append(_legacy("P2", CheckStatus.FAIL, "No product structured data"))

    accessible = [f for f in feeds.feeds if f.accessible]
    if any(not f.is_empty for f in accessible):
        checks.append(_legacy("P3", CheckStatus.PASS, f"{len(accessible)} accessible product feed(s)",
                              {"feed_count": len(accessible)}))
    elif accessible:
        checks.append(_legacy("P3", CheckStatus.PARTIAL, "Product feed found but it lists no products"))
    else:
        checks.append(_legacy("P3", CheckStatus.FAIL, "No product feed found"))

    primary = feeds.primary_feed
    if primary is None:
        checks.append(_legacy("P4", CheckStatus.FAIL, "No feed is referenced anywhere agents look"))
    elif primary.source == FeedSource.COMMON_PATH:
        checks.append(_legacy("P4", CheckStatus.PARTIAL, "Feed only found at a guessed path",
                              {"source": primary.source.value}))
    else:
        checks.append(_legacy("P4", CheckStatus.PASS, f"Feed discoverable via {primary.source.value}",
                              {"source": primary.source.value}))

    if primary is not None and primary.accessible and primary.has_required_fields:
        checks.append(_legacy("P5", CheckStatus.PASS, "Primary feed is accessible with required fields",
                              {"url": primary.url}))
    elif primary is not None and primary.accessible:
        checks.append(_legacy("P5", CheckStatus.PARTIAL,
                              f"Primary feed accessible but missing: {', '.join(primary.missing_fields)}",
                              {"url": primary.url}))
    else:
        checks.append(_legacy("P5", CheckStatus.FAIL, "No accessible product feed"))

    rails, apis = readiness.payment_rails, readiness.api_patterns
    if rails and apis:
        checks.append(_legacy("P6", CheckStatus.PASS,
                              f"Payment rails ({format_rails(rails)}) and APIs ({', '.join(apis)})",
                              {"payment_rails": rails, "api_patterns": apis}))
    elif rails or apis:
        found = format_rails(rails) if rails else ", ".join(apis)
        checks.append(_legacy("P6", CheckStatus.PARTIAL, f"Some commerce infrastructure detected: {found}",
                              {"payment_rails": rails, "api_patterns": apis}))
    else:
        checks.append(_legacy("P6", CheckStatus.FAIL, "No payment rails or commerce APIs detected"))

    ucp, mcp = readiness.ucp.status, readiness.mcp.status
    if ProtocolStatus.READY in (ucp, mcp):
        checks.append(_legacy("P7", CheckStatus.PASS, "Agent commerce manifest published"))
    elif ProtocolStatus.PARTIAL in (ucp, mcp):
        checks.append(_legacy("P7", CheckStatus.PARTIAL, "Commerce APIs present but no manifest"))
    else:
        checks.append(_legacy("P7", CheckStatus.FAIL, "No UCP or MCP manifest found"))

    return checks
