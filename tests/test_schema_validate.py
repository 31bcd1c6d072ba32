"""
Entity validators: required vs. recommended fields, GTIN check digits,
currency and availability vocabularies.
"""
import pytest

from agent_pulse.services.schema_validate import (
    validate_faq_schema, validate_gtin, validate_offer_schema, validate_organization_schema,
    validate_product_schema, validate_return_policy_schema, validate_shipping_schema,
    validate_website_schema,
)


def _product(**overrides):
    product = {
        "@type": "Product",
        "name": "Blue Widget",
        "description": "A sturdy blue widget for everyday use.",
        "image": "https://cdn.example.com/img/widget.jpg",
        "brand": {"@type": "Brand", "name": "Acme"},
        "sku": "W-1",
        "gtin": "4006381333931",
        "offers": {"@type": "Offer", "price": "19.99", "priceCurrency": "USD"},
    }
    product.update(overrides)
    return {k: v for k, v in product.items() if v is not None}


class TestGtin:

    @pytest.mark.parametrize("value,gtin_type", [
        ("4006381333931", "EAN-13 (GTIN-13)"),
        ("036000291452", "UPC-A (GTIN-12)"),
        ("96385074", "GTIN-8"),
        ("10614141000415", "GTIN-14"),
    ])
    def test_valid_check_digits(self, value, gtin_type):
        assert validate_gtin(value) == (True, gtin_type, None)

    def test_wrong_check_digit(self):
        ok, gtin_type, error = validate_gtin("4006381333932")
        assert ok is False
        assert gtin_type == "EAN-13 (GTIN-13)"
        assert "expected 1, got 2" in error

    def test_non_numeric_and_bad_length(self):
        assert validate_gtin("40063813A3931")[0] is False
        assert "length" in validate_gtin("12345")[2]

    def test_separators_are_ignored(self):
        assert validate_gtin("400-638 1333931")[0] is True


class TestProduct:

    def test_absent_product(self):
        result = validate_product_schema(None)
        assert result.found is False
        assert result.valid is False

    def test_complete_product_has_no_warnings(self):
        result = validate_product_schema(_product())
        assert result.valid is True
        assert result.warnings == []
        assert result.identifier_type == "EAN-13 (GTIN-13)"

    def test_missing_required_fields(self):
        result = validate_product_schema(_product(description=None, image=None))
        assert result.valid is False
        assert result.missing_fields == ["description", "image"]

    def test_name_length_bounds(self):
        assert "name (too short)" in validate_product_schema(_product(name="ab")).invalid_fields
        assert validate_product_schema(_product(name="x" * 301)).valid is False
        assert validate_product_schema(_product(name="x" * 300)).valid is True

    def test_invalid_gtin_blocks_validity(self):
        result = validate_product_schema(_product(gtin="4006381333932"))
        assert result.valid is False
        assert result.invalid_fields[0].startswith("gtin (Invalid check digit")

    def test_sku_only_identifier(self):
        result = validate_product_schema(_product(gtin=None))
        assert result.identifier_type == "SKU"
        assert "Missing recommended field: gtin" in result.warnings

    def test_relative_image_is_invalid(self):
        result = validate_product_schema(_product(image=["/img/widget.jpg"]))
        assert "image (invalid URL)" in result.invalid_fields


class TestOffer:

    def test_valid_offer(self):
        result = validate_offer_schema({
            "@type": "Offer", "price": 19.99, "priceCurrency": "EUR",
            "availability": "https://schema.org/InStock", "seller": {"name": "Shop"},
        })
        assert result.valid is True
        assert result.warnings == []

    def test_aggregate_price_range_counts_as_price(self):
        result = validate_offer_schema({"@type": "AggregateOffer", "lowPrice": "5", "priceCurrency": "USD"})
        assert "price" not in result.missing_fields

    def test_bad_currency_and_negative_price(self):
        result = validate_offer_schema({"@type": "Offer", "price": "-1", "priceCurrency": "XYZ"})
        assert "price (invalid number)" in result.invalid_fields
        assert any(f.startswith("priceCurrency") for f in result.invalid_fields)

    def test_unknown_availability_is_a_warning(self):
        result = validate_offer_schema({
            "@type": "Offer", "price": "1", "priceCurrency": "USD", "availability": "Maybe",
        })
        assert result.valid is True
        assert "Unknown availability value: Maybe" in result.warnings


class TestTrustEntities:

    def test_organization_requires_name_only(self):
        result = validate_organization_schema({"@type": "Organization", "name": "Shop"})
        assert result.valid is True
        assert "Missing logo" in result.warnings
        assert validate_organization_schema({"@type": "Organization"}).missing_fields == ["name"]

    def test_return_policy_never_invalid(self):
        result = validate_return_policy_schema({"@type": "MerchantReturnPolicy"})
        assert result.found is True
        assert result.valid is True
        assert len(result.warnings) == 4

    def test_shipping_requires_destination_and_delivery_time(self):
        result = validate_shipping_schema({"@type": "OfferShippingDetails", "shippingRate": {"value": 0}})
        assert result.missing_fields == ["shippingDestination", "deliveryTime"]


class TestWebSiteAndFaq:

    def test_website_search_action(self):
        result = validate_website_schema({
            "@type": "WebSite", "name": "Shop", "url": "https://shop.example.com",
            "potentialAction": {
                "@type": "SearchAction",
                "target": "https://shop.example.com/search?q={q}",
                "query-input": "required name=q",
            },
        })
        assert result.valid is True
        assert result.has_search_action is True
        assert result.warnings == []

    def test_website_without_search_action(self):
        result = validate_website_schema({"@type": "WebSite", "name": "Shop"})
        assert result.has_search_action is False
        assert len(result.warnings) == 2

    def test_faq_counts_answered_questions(self):
        faq = {"@type": "FAQPage", "mainEntity": [
            {"@type": "Question", "name": "Q1?", "acceptedAnswer": {"text": "A complete answer to the first question."}},
            {"@type": "Question", "name": "Q2?", "acceptedAnswer": {"text": "Another complete answer here."}},
            {"@type": "Question", "name": "Q3?"},
            {"@type": "Answer"},
        ]}
        result = validate_faq_schema(faq)
        assert result.question_count == 2
        assert result.valid is True
        assert "Q3 missing answer" in result.warnings
        assert "Q4 is not a Question" in result.warnings

    def test_faq_with_one_question_is_invalid(self):
        faq = {"@type": "FAQPage", "mainEntity": {
            "@type": "Question", "name": "Q?", "acceptedAnswer": {"text": "Only one answer given here."},
        }}
        result = validate_faq_schema(faq)
        assert result.question_count == 1
        assert result.valid is False
