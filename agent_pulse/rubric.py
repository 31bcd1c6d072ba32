"""
agent_pulse/rubric.py
Fixed scoring rubric: check definitions, grade bands and the shared vocabularies
(AI crawlers, currencies, availability states) the checks score against.
"""
from typing import Any, Dict, NamedTuple, Optional

from .models import Check, CheckCategory, CheckStatus


class CheckDefinition(NamedTuple):
    id: str
    name: str
    category: CheckCategory
    max_score: int


_D = CheckCategory.DISCOVERY
_N = CheckCategory.PERFORMANCE
_T = CheckCategory.TRANSACTION
_R = CheckCategory.TRUST
_P = CheckCategory.DISTRIBUTION

CHECKS: Dict[str, CheckDefinition] = {
    "D1": CheckDefinition("D1", "AI Bot Access", _D, 12),
    "D2": CheckDefinition("D2", "Product Schema", _D, 13),
    "D3": CheckDefinition("D3", "Sitemap", _D, 10),
    "D4": CheckDefinition("D4", "llms.txt", _D, 2),
    "D5": CheckDefinition("D5", "WebSite Schema", _D, 3),
    "D6": CheckDefinition("D6", "FAQ Schema", _D, 3),
    "D7": CheckDefinition("D7", "Server Response Time", _D, 3),
    "N1": CheckDefinition("N1", "Page Speed", _N, 15),
    "T1": CheckDefinition("T1", "Offer Schema", _T, 15),
    "T2": CheckDefinition("T2", "HTTPS", _T, 5),
    "T3": CheckDefinition("T3", "UCP Compliance", _T, 10),
    "T4": CheckDefinition("T4", "Payment Methods", _T, 5),
    "R1": CheckDefinition("R1", "Organization Schema", _R, 10),
    "R2": CheckDefinition("R2", "Return Policy", _R, 5),
    "R3": CheckDefinition("R3", "Trust Signals", _R, 7),
    # Legacy distribution checks: displayed, never weighted
    "P1": CheckDefinition("P1", "Platform Detected", _P, 0),
    "P2": CheckDefinition("P2", "Structured Data Complete", _P, 0),
    "P3": CheckDefinition("P3", "Product Feed Exists", _P, 0),
    "P4": CheckDefinition("P4", "Feed Discoverable", _P, 0),
    "P5": CheckDefinition("P5", "Feed Accessible", _P, 0),
    "P6": CheckDefinition("P6", "Commerce API Indicators", _P, 0),
    "P7": CheckDefinition("P7", "Protocol Manifest", _P, 0),
}

# Historical weights of the distribution checks, kept in Check.data for display
LEGACY_DISTRIBUTION_WEIGHTS: Dict[str, int] = {
    "P1": 1, "P2": 3, "P3": 3, "P4": 2, "P5": 2, "P6": 2, "P7": 2,
}

# Ordered high → low; first band whose floor the normalized score reaches wins
GRADES = (
    (85, "Agent-Native"),
    (70, "Optimized"),
    (50, "Needs Work"),
    (0, "Invisible"),
)

CRITICAL_AI_BOTS = (
    "GPTBot",
    "OAI-SearchBot",
    "ChatGPT-User",
    "ClaudeBot",
    "Anthropic-AI",
    "PerplexityBot",
    "Google-Extended",
    "Amazonbot",
    "Applebot-Extended",
    "Bytespider",
)

ISO_4217_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "CNY", "AUD", "CAD", "CHF", "HKD", "SGD",
    "SEK", "KRW", "NOK", "NZD", "INR", "MXN", "TWD", "ZAR", "BRL", "DKK",
    "PLN", "CZK", "HUF", "RON", "TRY", "RUB", "ILS", "AED", "SAR", "THB",
})

AVAILABILITY_STATES = frozenset({
    "InStock", "OutOfStock", "PreOrder", "BackOrder", "Discontinued",
    "InStoreOnly", "OnlineOnly", "LimitedAvailability", "SoldOut",
})


def fraction(max_score: int, ratio: float) -> int:
    """Round a share of max_score half-up, matching how the rubric tiers are quoted."""
    return int(max_score * ratio + 0.5)


def build_check(
    check_id: str,
    status: CheckStatus,
    score: int,
    details: str,
    data: Optional[Dict[str, Any]] = None,
    max_score: Optional[int] = None,
) -> Check:
    defn = CHECKS[check_id]
    return Check(
        id=defn.id,
        name=defn.name,
        category=defn.category,
        status=status,
        score=score,
        max_score=defn.max_score if max_score is None else max_score,
        details=details,
        data=data or {},
    )
