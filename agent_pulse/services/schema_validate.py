"""
agent_pulse/services/schema_validate.py
Per-entity validators. Each takes a raw (nullable) JSON-LD object, decodes it
into its typed view and returns a ValidationResult:

  missing_fields  → required data absent       (blocks validity)
  invalid_fields  → data present but malformed (blocks validity)
  warnings        → recommended data absent    (never blocks validity)
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from ..models import ValidationResult
from ..rubric import AVAILABILITY_STATES, ISO_4217_CURRENCIES
from ..schema_types import (
    FAQPageEntity, OfferEntity, OrganizationEntity, ProductEntity, ReturnPolicyEntity,
    ShippingDetailsEntity, WebSiteEntity, is_blank,
)
from .schema_extract import normalize_type

_GTIN_TYPES = {8: "GTIN-8", 12: "UPC-A (GTIN-12)", 13: "EAN-13 (GTIN-13)", 14: "GTIN-14"}


def _result(
    schema: Optional[Dict[str, Any]],
    missing: List[str],
    invalid: List[str],
    warnings: List[str],
    **derived,
) -> ValidationResult:
    return ValidationResult(
        found=True,
        valid=not missing and not invalid,
        schema_data=schema,
        missing_fields=missing,
        invalid_fields=invalid,
        warnings=warnings,
        **derived,
    )


def validate_gtin(value: Any) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    GS1 mod-10 check-digit validation.
    Returns (valid, gtin_type, error). Weights alternate 3,1,3,… starting from
    the digit immediately left of the check digit.
    """
    if isinstance(value, bool) or value is None:
        return False, None, "GTIN is empty"
    clean = re.sub(r"[\s-]", "", str(value))
    if not clean:
        return False, None, "GTIN is empty"
    if not clean.isdigit():
        return False, None, "GTIN contains non-numeric characters"

    gtin_type = _GTIN_TYPES.get(len(clean))
    if gtin_type is None:
        return False, None, f"Invalid GTIN length: {len(clean)} (expected 8, 12, 13, or 14)"

    digits = [int(c) for c in clean]
    body, check = digits[:-1], digits[-1]
    total = sum(d * (3 if i % 2 == 0 else 1) for i, d in enumerate(reversed(body)))
    expected = (10 - total % 10) % 10
    if expected != check:
        return False, gtin_type, f"Invalid check digit: expected {expected}, got {check}"
    return True, gtin_type, None


def _image_url(image: Any) -> Optional[str]:
    url = image.get("url") if isinstance(image, dict) else image
    return url if isinstance(url, str) else None


def validate_product_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    product = ProductEntity.decode(schema)
    if product is None:
        return ValidationResult()

    missing, invalid, warnings = [], [], []
    for field in ("name", "description", "image"):
        if is_blank(getattr(product, field)):
            missing.append(field)
    for field in ("brand", "sku", "gtin", "offers"):
        if is_blank(getattr(product, field)):
            warnings.append(f"Missing recommended field: {field}")

    if isinstance(product.name, str) and product.name.strip():
        length = len(product.name.strip())
        if length < 3:
            invalid.append("name (too short)")
        elif length > 300:
            invalid.append("name (longer than 300 chars)")

    if isinstance(product.description, str) and 0 < len(product.description.strip()) < 10:
        warnings.append("description is very short")

    if not is_blank(product.image):
        images = product.image if isinstance(product.image, list) else [product.image]
        urls = [_image_url(img) for img in images]
        if not any(u and u.startswith(("http://", "https://")) for u in urls):
            invalid.append("image (invalid URL)")

    if not is_blank(product.brand):
        brand_name = product.brand.get("name") if isinstance(product.brand, dict) else product.brand
        if is_blank(brand_name):
            warnings.append("brand missing name")

    identifier_type = None
    gtins = product.gtin_fields()
    if gtins:
        field, value = next(iter(gtins.items()))
        ok, gtin_type, error = validate_gtin(value)
        if ok:
            identifier_type = gtin_type
        else:
            invalid.append(f"{field} ({error})")
    elif not is_blank(product.sku):
        identifier_type = "SKU"
    elif not is_blank(product.mpn):
        identifier_type = "MPN"
    elif not is_blank(product.isbn):
        identifier_type = "ISBN"
    else:
        warnings.append("No product identifier (GTIN/SKU/MPN)")

    return _result(schema, missing, invalid, warnings, identifier_type=identifier_type)


def _parse_price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", ""))
    except ValueError:
        return None


def validate_offer_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    offer = OfferEntity.decode(schema)
    if offer is None:
        return ValidationResult()

    missing, invalid, warnings = [], [], []
    if all(is_blank(v) for v in (offer.price, offer.low_price, offer.high_price)):
        missing.append("price")
    elif not is_blank(offer.price):
        price = _parse_price(offer.price)
        if price is None or price < 0:
            invalid.append("price (invalid number)")

    if is_blank(offer.price_currency):
        missing.append("priceCurrency")
    elif str(offer.price_currency).strip() not in ISO_4217_CURRENCIES:
        invalid.append(f"priceCurrency ({offer.price_currency} not valid ISO 4217)")

    if is_blank(offer.availability):
        warnings.append("Missing availability")
    else:
        availability = normalize_type(str(offer.availability))
        if availability.lower() not in {a.lower() for a in AVAILABILITY_STATES}:
            warnings.append(f"Unknown availability value: {availability}")

    if is_blank(offer.seller):
        warnings.append("Missing seller information")

    return _result(schema, missing, invalid, warnings)


def validate_organization_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    org = OrganizationEntity.decode(schema)
    if org is None:
        return ValidationResult()

    missing = ["name"] if is_blank(org.name) else []
    warnings = []
    if is_blank(org.url):
        warnings.append("Missing url")
    if is_blank(org.logo):
        warnings.append("Missing logo")
    if all(is_blank(v) for v in (org.contact_point, org.telephone, org.email)):
        warnings.append("No contact information")
    if is_blank(org.address):
        warnings.append("Missing address")
    if is_blank(org.same_as):
        warnings.append("No social profiles (sameAs)")

    return _result(schema, missing, [], warnings)


def validate_return_policy_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    # No field is hard-required for a return policy: every gap is a warning
    policy = ReturnPolicyEntity.decode(schema)
    if policy is None:
        return ValidationResult()

    warnings = []
    if is_blank(policy.merchant_return_days) and is_blank(policy.return_policy_category):
        warnings.append("Missing return window information")
    if is_blank(policy.return_method):
        warnings.append("Missing return method")
    if is_blank(policy.return_fees):
        warnings.append("Missing return fees information")
    if is_blank(policy.applicable_country):
        warnings.append("Missing applicable country")

    return _result(schema, [], [], warnings)


def validate_shipping_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    shipping = ShippingDetailsEntity.decode(schema)
    if shipping is None:
        return ValidationResult()

    missing, warnings = [], []
    if is_blank(shipping.shipping_destination):
        missing.append("shippingDestination")
    if is_blank(shipping.delivery_time):
        missing.append("deliveryTime")
    elif isinstance(shipping.delivery_time, dict) and not (
        shipping.delivery_time.get("transitTime") or shipping.delivery_time.get("handlingTime")
    ):
        warnings.append("deliveryTime missing transitTime/handlingTime detail")
    if is_blank(shipping.shipping_rate):
        warnings.append("Missing shippingRate")

    return _result(schema, missing, [], warnings)


def validate_website_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    site = WebSiteEntity.decode(schema)
    if site is None:
        return ValidationResult(has_search_action=False)

    missing = ["name"] if is_blank(site.name) else []
    warnings = ["Missing url"] if is_blank(site.url) else []

    actions = site.potential_action if isinstance(site.potential_action, list) else [site.potential_action]
    search = next(
        (a for a in actions if isinstance(a, dict) and normalize_type(a.get("@type")) == "SearchAction"),
        None,
    )
    if search is None:
        warnings.append("No SearchAction defined (enables site search in Google)")
    else:
        if is_blank(search.get("target")):
            warnings.append("SearchAction missing target URL template")
        if is_blank(search.get("query-input")) and is_blank(search.get("queryInput")):
            warnings.append("SearchAction missing query-input")

    return _result(schema, missing, [], warnings, has_search_action=search is not None)


def validate_faq_schema(schema: Optional[Dict[str, Any]]) -> ValidationResult:
    """
    A FAQPage is valid with at least two answerable questions. Entries that
    are not usable questions are reported as warnings and not counted.
    """
    faq = FAQPageEntity.decode(schema)
    if faq is None:
        return ValidationResult(question_count=0)

    entries = faq.main_entity
    if isinstance(entries, dict):
        entries = [entries]
    if not isinstance(entries, list) or not entries:
        return _result(schema, ["mainEntity"], [], [], question_count=0)

    warnings = []
    count = 0
    for i, item in enumerate(entries, start=1):
        if not isinstance(item, dict) or normalize_type(item.get("@type")) != "Question":
            warnings.append(f"Q{i} is not a Question")
            continue
        answer = item.get("acceptedAnswer")
        answer_text = answer.get("text") if isinstance(answer, dict) else answer
        if is_blank(item.get("name")):
            warnings.append(f"Q{i} missing question text")
            continue
        if not isinstance(answer_text, str) or not answer_text.strip():
            warnings.append(f"Q{i} missing answer")
            continue
        if len(answer_text.strip()) < 10:
            warnings.append(f"Q{i} answer is very short ({len(answer_text.strip())} chars)")
            continue
        if len(answer_text.strip()) < 50:
            warnings.append(f"Q{i} answer is thin")
        count += 1

    missing = [] if count >= 2 else ["mainEntity (fewer than 2 answered questions)"]
    return _result(schema, missing, [], warnings, question_count=count)
