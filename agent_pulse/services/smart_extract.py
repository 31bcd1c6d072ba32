"""
agent_pulse/services/smart_extract.py
Decides whether the submitted page's structured data is good enough or
whether one product page should be fetched to find better data.
"""
import logging
from typing import Awaitable, Callable, Optional

from ..models import QualityLevel, SmartSchemaResult
from .schema_extract import (
    assess_schema_quality, detect_page_type, extract_json_ld, find_product_link_on_page,
    find_product_schema,
)
from .schema_validate import validate_product_schema

logger = logging.getLogger(__name__)

ProductPageFetcher = Callable[[str], Awaitable[Optional[str]]]


async def extract_smartly(
    html: str,
    url: str,
    fetch_product_page: Optional[ProductPageFetcher] = None,
    log: Optional[logging.Logger] = None,
) -> SmartSchemaResult:
    """
    Policy, top to bottom:
      1. full quality on the submitted page → use it
      2. category page, partial quality → use it (no follow-up fetch)
      3. category page, no schema → follow one product link, adopt its schemas
         if they are anything above `none`
      4. anything else → use what the page has
    At most one extra fetch is made, and only in case 3.
    """
    log = log or logger
    schemas = extract_json_ld(html)
    page_type = detect_page_type(url, html, schemas)
    quality = assess_schema_quality(schemas)

    def _own_result(checked_product_page: bool, message: str) -> SmartSchemaResult:
        return SmartSchemaResult(
            schemas=schemas,
            schema_quality=quality,
            product_validation=validate_product_schema(find_product_schema(schemas)),
            source_url=url,
            page_type=page_type,
            checked_product_page=checked_product_page,
            message=message,
        )

    log.info(
        f"[extract] {url}: page={'category' if page_type.is_category else 'product' if page_type.is_product else 'other'}"
        f" quality={quality.level.value} schemas={len(schemas)}"
    )

    if quality.level == QualityLevel.FULL:
        return _own_result(False, "Product schema found on submitted page")

    if not page_type.is_category:
        if quality.level == QualityLevel.NONE:
            return _own_result(False, "No structured product data found")
        return _own_result(False, "Partial schema found on page")

    if quality.level == QualityLevel.PARTIAL:
        return _own_result(False, "Using partial schema from category page (conserving render credits)")

    if fetch_product_page is not None:
        product_link = find_product_link_on_page(html, url)
        if product_link:
            log.info(f"[extract] category page without schema, following {product_link}")
            try:
                product_html = await fetch_product_page(product_link)
            except Exception as e:
                log.warning(f"[extract] product page fetch failed for {product_link}: {e}")
                product_html = None

            if product_html:
                product_schemas = extract_json_ld(product_html)
                product_quality = assess_schema_quality(product_schemas)
                if product_quality.level != QualityLevel.NONE:
                    return SmartSchemaResult(
                        schemas=product_schemas,
                        schema_quality=product_quality,
                        product_validation=validate_product_schema(find_product_schema(product_schemas)),
                        source_url=product_link,
                        page_type=page_type,
                        checked_product_page=True,
                        product_page_url=product_link,
                        category_page_schemas=schemas,
                        message=(
                            "Product schema found on product pages"
                            if product_quality.level == QualityLevel.FULL
                            else "Partial Product schema found on product pages"
                        ),
                    )

    return _own_result(True, "No structured data found on category or product pages")
