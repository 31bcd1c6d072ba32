"""
agent_pulse/services/transaction_checks.py
Transaction-layer checks: can an agent see a price, reach the store over a
secure channel, assemble a checkout (offer + shipping + region) and pay.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..models import Check, CheckStatus, ExtractedSchema, PlatformDetection, ValidationResult
from ..rubric import CHECKS, build_check, fraction
from .distribution_checks import detect_payment_rails, format_rails
from .schema_extract import (
    find_offer_schema, find_product_schema, find_return_policy_schema, find_shipping_schema,
)
from .schema_validate import validate_offer_schema, validate_shipping_schema

logger = logging.getLogger(__name__)


def _price_of(offer: Optional[Dict[str, Any]]) -> Any:
    if not offer:
        return None
    return offer.get("price") or offer.get("lowPrice")


def check_https(url: str) -> Check:
    is_https = urlparse(url).scheme.lower() == "https"
    if is_https:
        return build_check("T2", CheckStatus.PASS, CHECKS["T2"].max_score,
                           "Site uses HTTPS, secure for transactions", {"is_https": True})
    return build_check("T2", CheckStatus.FAIL, 0,
                       "Site does not use HTTPS, agents won't transact", {"is_https": False})


def check_offer_schema(
    schemas: List[ExtractedSchema],
    product: Optional[Dict[str, Any]] = None,
    log: Optional[logging.Logger] = None,
) -> Tuple[Check, ValidationResult]:
    """T1: price, currency and availability an agent can quote."""
    log = log or logger
    max_score = CHECKS["T1"].max_score
    product = product if product is not None else find_product_schema(schemas)
    offer = find_offer_schema(schemas, product)
    validation = validate_offer_schema(offer)
    issues = validation.missing_fields + validation.invalid_fields

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No Offer schema found, agents cannot see pricing or availability"
    elif validation.valid:
        status, score = CheckStatus.PASS, max_score
        details = f"Valid Offer schema with pricing ({offer.get('priceCurrency')} {_price_of(offer)})"
    elif len(validation.missing_fields) == 1 and not validation.invalid_fields:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.65)
        details = f"Offer schema present but missing: {validation.missing_fields[0]}"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.35)
        details = f"Incomplete Offer schema. Issues: {', '.join(issues)}"

    log.info(f"[T1] offer found={validation.found} valid={validation.valid}, score {score}/{max_score}")
    check = build_check("T1", status, score, details, {
        "found": validation.found,
        "valid": validation.valid,
        "price": _price_of(offer),
        "currency": offer.get("priceCurrency") if offer else None,
        "availability": offer.get("availability") if offer else None,
        "issues": issues,
    })
    return check, validation


def check_ucp_compliance(
    schemas: List[ExtractedSchema],
    product: Optional[Dict[str, Any]] = None,
    log: Optional[logging.Logger] = None,
) -> Tuple[Check, ValidationResult]:
    """
    T3: whether the page carries the data an agent needs to check out.

    Sub-scores: offer 6 (valid) / 4 (one field missing) / 2 (found),
    shipping details 2 (valid) / 1 (found), return-policy region 2.
    """
    log = log or logger
    max_score = CHECKS["T3"].max_score
    product = product if product is not None else find_product_schema(schemas)
    offer = find_offer_schema(schemas, product)
    validation = validate_offer_schema(offer)

    if not validation.found:
        offer_score = 0
    elif validation.valid:
        offer_score = 6
    elif len(validation.missing_fields) == 1 and not validation.invalid_fields:
        offer_score = 4
    else:
        offer_score = 2

    shipping = validate_shipping_schema(find_shipping_schema(schemas))
    if shipping.valid:
        shipping_score = 2
    elif shipping.found:
        shipping_score = 1
    else:
        shipping_score = 0

    policy = find_return_policy_schema(schemas)
    country = policy.get("applicableCountry") if policy else None
    country_score = 2 if country else 0

    score = offer_score + shipping_score + country_score
    if score >= max_score * 0.8:
        status = CheckStatus.PASS
        parts = []
        if offer_score == 6:
            parts.append("pricing & availability")
        if shipping_score:
            parts.append("shipping details")
        if country_score:
            parts.append("return policy region")
        details = f"Complete checkout data for AI agents: {', '.join(parts)}"
    elif score > 0:
        status = CheckStatus.PARTIAL
        missing = []
        if offer_score == 0:
            missing.append("product pricing")
        elif offer_score < 6:
            missing.append("incomplete pricing data")
        if shipping_score == 0:
            missing.append("shipping details")
        if not country_score:
            missing.append("return policy region")
        details = f"Missing {' and '.join(missing)} for AI checkout"
    else:
        status = CheckStatus.FAIL
        details = "No product pricing data found for AI checkout"

    log.info(f"[T3] offer={offer_score} shipping={shipping_score} country={country_score}, score {score}/{max_score}")
    check = build_check("T3", status, score, details, {
        "offer_found": validation.found,
        "offer_valid": validation.valid,
        "offer_score": offer_score,
        "shipping_found": shipping.found,
        "shipping_valid": shipping.valid,
        "shipping_score": shipping_score,
        "applicable_country": country,
        "country_score": country_score,
        "issues": validation.missing_fields + validation.invalid_fields,
    })
    return check, validation


def check_payment_methods(html: str, platform: PlatformDetection) -> Check:
    """T4: payment rails visible in the page markup."""
    max_score = CHECKS["T4"].max_score
    rails = detect_payment_rails(html)
    count = len(rails)

    if count >= 3:
        status, score = CheckStatus.PASS, max_score
        details = f"{count} payment methods detected: {format_rails(rails)}"
    elif count >= 1:
        status, score = CheckStatus.PARTIAL, 3
        details = f"{count} payment method(s): {format_rails(rails)}"
    elif platform.detected and platform.platform != "Unknown":
        status, score = CheckStatus.PARTIAL, 1
        details = f"{platform.platform} platform detected but no payment scripts found"
    else:
        status, score = CheckStatus.FAIL, 0
        details = "No payment methods or e-commerce platform detected"

    return build_check("T4", status, score, details, {
        "platform": platform.platform,
        "confidence": platform.confidence.value,
        "payment_rails": rails,
        "payment_count": count,
    })
