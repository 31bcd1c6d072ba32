"""
agent_pulse/services/schema_extract.py
JSON-LD extraction plus the typed finders, quality assessment and page
classification built on top of it.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..models import Confidence, ExtractedSchema, PageType, QualityLevel, SchemaQuality

logger = logging.getLogger(__name__)

_SCHEMA_PREFIXES = ("https://schema.org/", "http://schema.org/")

ORGANIZATION_TYPES = ("Organization", "LocalBusiness", "Store", "OnlineStore", "Corporation")

IDENTIFIER_FIELDS = ("gtin", "gtin8", "gtin12", "gtin13", "gtin14", "sku", "mpn", "isbn")

# ── Page classification vocabularies ───────────────────────────────────────────
CATEGORY_URL_PATTERNS = (
    "/c/", "/category/", "/categories/", "/collection/", "/collections/",
    "/shop/", "/products/", "/catalog/", "/browse/", "/department/",
)
PRODUCT_URL_PATTERNS = ("/p/", "/product/", "/item/", "/pd/", "/dp/", "/-p-", "-i.")
ADD_TO_CART_MARKERS = ("add to cart", "add-to-cart", "addtocart")
PRODUCT_GRID_MARKERS = ("product-grid", "product-list", "product-card")

# Ordered: the first pattern yielding an acceptable link wins
PRODUCT_LINK_PATTERNS: Tuple[Tuple[str, "re.Pattern"], ...] = (
    ("/p/", re.compile(r"""href=["']([^"']*/p/[^"'#?\s]+)""", re.I)),
    ("/product/", re.compile(r"""href=["']([^"']*/product/[^"'#?\s]+)""", re.I)),
    ("/products/", re.compile(r"""href=["']([^"']*/products/[^"'#?\s]+)""", re.I)),
    ("/item/", re.compile(r"""href=["']([^"']*/item/[^"'#?\s]+)""", re.I)),
    ("/pd/", re.compile(r"""href=["']([^"']*/pd/[^"'#?\s]+)""", re.I)),
    ("-i<id>", re.compile(r"""href=["']([^"'\s]*-i\d+[^"'\s]*)""", re.I)),
    ("-p-<id>", re.compile(r"""href=["']([^"'\s]*-p-\d+[^"'\s]*)""", re.I)),
    ("-<id>.html", re.compile(r"""href=["']([^"'\s]*-\d{5,}\.html[^"'\s]*)""", re.I)),
    ("/dp/<asin>", re.compile(r"""href=["']([^"'\s]*/dp/[A-Z0-9]+[^"'\s]*)""", re.I)),
)
NON_PRODUCT_LINK_MARKERS = ("/c/", "/category/", "/collection/", "/collections/", "/shop/", "/catalog/")


# ── Extraction ─────────────────────────────────────────────────────────────────

def normalize_type(raw_type: Any) -> str:
    if isinstance(raw_type, list):
        raw_type = raw_type[0] if raw_type else None
    if not isinstance(raw_type, str) or not raw_type:
        return "Unknown"
    for prefix in _SCHEMA_PREFIXES:
        if raw_type.startswith(prefix):
            return raw_type[len(prefix):]
    return raw_type


def _is_json_ld(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() == "application/ld+json"


def extract_json_ld(html: str) -> List[ExtractedSchema]:
    """
    Every typed entity from the page's JSON-LD blocks, in document order.
    `@graph` and top-level arrays are flattened; malformed blocks are skipped.
    """
    schemas: List[ExtractedSchema] = []
    soup = BeautifulSoup(html, "lxml")

    for script in soup.find_all("script", attrs={"type": _is_json_ld}):
        content = (script.string or script.get_text() or "").strip()
        if not content:
            continue
        try:
            parsed = json.loads(content)
        except (ValueError, RecursionError):
            logger.debug("Skipping malformed JSON-LD block")
            continue

        if isinstance(parsed, dict) and isinstance(parsed.get("@graph"), list):
            items = parsed["@graph"]
        elif isinstance(parsed, list):
            items = parsed
        else:
            items = [parsed]

        for item in items:
            if isinstance(item, dict) and item.get("@type"):
                schemas.append(ExtractedSchema(type=normalize_type(item["@type"]), data=item))

    return schemas


def find_schemas_by_type(schemas: List[ExtractedSchema], schema_type: str) -> List[ExtractedSchema]:
    wanted = schema_type.lower()
    return [s for s in schemas if s.type.lower() == wanted]


def _first_of_type(schemas: List[ExtractedSchema], schema_type: str) -> Optional[Dict[str, Any]]:
    found = find_schemas_by_type(schemas, schema_type)
    return found[0].data if found else None


def _is_type(obj: Any, schema_type: str) -> bool:
    return isinstance(obj, dict) and normalize_type(obj.get("@type")).lower() == schema_type.lower()


def _first_dict(value: Any) -> Optional[Dict[str, Any]]:
    """A JSON-LD property may hold an object or a list of objects."""
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


# ── Typed finders ──────────────────────────────────────────────────────────────

def find_product_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    direct = _first_of_type(schemas, "Product")
    if direct is not None:
        return direct

    for schema in schemas:
        main_entity = schema.data.get("mainEntity")
        if _is_type(main_entity, "Product"):
            return main_entity
        offers = schema.data.get("offers")
        if isinstance(offers, dict) and _is_type(offers.get("itemOffered"), "Product"):
            return offers["itemOffered"]
    return None


def find_organization_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    for org_type in ORGANIZATION_TYPES:
        found = _first_of_type(schemas, org_type)
        if found is not None:
            return found
    return None


def find_offer_schema(
    schemas: List[ExtractedSchema],
    product: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """The product's own offer wins over standalone Offer / AggregateOffer entities."""
    if product is not None:
        own = _first_dict(product.get("offers"))
        if own is not None:
            return own

    for offer_type in ("Offer", "AggregateOffer"):
        found = _first_of_type(schemas, offer_type)
        if found is not None:
            return found
    return None


def find_return_policy_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    standalone = _first_of_type(schemas, "MerchantReturnPolicy")
    if standalone is not None:
        return standalone

    for schema in schemas:
        linked = _first_dict(schema.data.get("hasMerchantReturnPolicy"))
        if linked is not None:
            return linked
        offer = _first_dict(schema.data.get("offers"))
        if offer is not None:
            linked = _first_dict(offer.get("hasMerchantReturnPolicy"))
            if linked is not None:
                return linked
    return None


def find_shipping_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    standalone = _first_of_type(schemas, "OfferShippingDetails")
    if standalone is not None:
        return standalone

    for schema in schemas:
        offer = schema.data if schema.type.lower() == "offer" else _first_dict(schema.data.get("offers"))
        if offer is not None:
            details = _first_dict(offer.get("shippingDetails"))
            if details is not None:
                return details
    return None


def find_website_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    return _first_of_type(schemas, "WebSite")


def find_faq_schema(schemas: List[ExtractedSchema]) -> Optional[Dict[str, Any]]:
    return _first_of_type(schemas, "FAQPage")


def has_identifier(product: Optional[Dict[str, Any]]) -> bool:
    if not product:
        return False
    return any(product.get(field) not in (None, "", []) for field in IDENTIFIER_FIELDS)


# ── Quality / classification ───────────────────────────────────────────────────

def _item_count(item_list: Dict[str, Any]) -> Optional[int]:
    declared = item_list.get("numberOfItems")
    try:
        if declared is not None:
            return int(declared)
    except (TypeError, ValueError):
        pass
    elements = item_list.get("itemListElement")
    return len(elements) if isinstance(elements, list) else None


def assess_schema_quality(schemas: List[ExtractedSchema]) -> SchemaQuality:
    product = find_product_schema(schemas)
    has_product = product is not None
    has_offer = find_offer_schema(schemas, product) is not None
    has_gtin = has_identifier(product)
    has_aggregate_offer = bool(find_schemas_by_type(schemas, "AggregateOffer"))
    item_lists = find_schemas_by_type(schemas, "ItemList")

    if has_product and has_offer and has_gtin:
        level = QualityLevel.FULL
    elif has_product or has_aggregate_offer or item_lists:
        level = QualityLevel.PARTIAL
    else:
        level = QualityLevel.NONE

    return SchemaQuality(
        level=level,
        has_product=has_product,
        has_offer=has_offer,
        has_gtin=has_gtin,
        has_aggregate_offer=has_aggregate_offer,
        has_item_list=bool(item_lists),
        product_count=_item_count(item_lists[0].data) if item_lists else None,
    )


def detect_page_type(
    url: str,
    html: str,
    schemas: Optional[List[ExtractedSchema]] = None,
) -> PageType:
    """
    Classify the page from URL, schema and content signals.
    The ladder below is ordered: agreement between two signal kinds gives high
    confidence, a lone weak signal gives medium.
    """
    url_lower = url.lower()
    html_lower = html.lower()
    if schemas is None:
        schemas = extract_json_ld(html)
    signals: List[str] = []

    product_url = any(p in url_lower for p in PRODUCT_URL_PATTERNS)
    category_url = any(p in url_lower for p in CATEGORY_URL_PATTERNS)
    product_schema = find_product_schema(schemas) is not None
    collection_schema = bool(
        find_schemas_by_type(schemas, "CollectionPage") or find_schemas_by_type(schemas, "ItemList")
    )
    add_to_cart = any(m in html_lower for m in ADD_TO_CART_MARKERS)
    product_grid = any(m in html_lower for m in PRODUCT_GRID_MARKERS)

    for flag, label in (
        (product_url, "product URL pattern"),
        (category_url, "category URL pattern"),
        (product_schema, "Product schema"),
        (collection_schema, "Collection/ItemList schema"),
        (add_to_cart, "Add to cart button"),
        (product_grid, "Product grid"),
    ):
        if flag:
            signals.append(label)

    is_root = urlparse(url).path in ("", "/")
    if is_root:
        signals.append("Root path")

    page = PageType(signals=signals)
    if is_root:
        page.is_homepage, page.confidence = True, Confidence.HIGH
    elif product_schema and add_to_cart:
        page.is_product, page.confidence = True, Confidence.HIGH
    elif product_url and product_schema:
        page.is_product, page.confidence = True, Confidence.HIGH
    elif collection_schema or (category_url and product_grid):
        page.is_category, page.confidence = True, Confidence.HIGH
    elif product_url:
        page.is_product, page.confidence = True, Confidence.MEDIUM
    elif category_url:
        page.is_category, page.confidence = True, Confidence.MEDIUM
    elif add_to_cart and not product_grid:
        page.is_product, page.confidence = True, Confidence.MEDIUM
    elif product_grid:
        page.is_category, page.confidence = True, Confidence.MEDIUM
    return page


def find_product_link_on_page(html: str, base_url: str) -> Optional[str]:
    """First same-host link that looks like a product page, by pattern priority."""
    base = urlparse(base_url)
    origin = f"{base.scheme}://{base.netloc}"

    for label, pattern in PRODUCT_LINK_PATTERNS:
        for match in pattern.finditer(html):
            href = match.group(1)
            if href == base_url or any(m in href for m in NON_PRODUCT_LINK_MARKERS):
                continue
            try:
                absolute = urljoin(origin + "/", href)
                host = urlparse(absolute).hostname
            except ValueError:
                continue
            if absolute.rstrip("/") == base_url.rstrip("/"):
                continue
            if host == base.hostname:
                logger.debug(f"Product link found via {label}: {absolute}")
                return absolute
    return None
