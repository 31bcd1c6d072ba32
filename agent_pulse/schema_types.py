"""
agent_pulse/schema_types.py
Typed views over raw JSON-LD objects, one per schema.org kind we validate.

Decoding is permissive: unknown keys are kept, missing keys become None and
no value is coerced, so a validator can still report *why* a field is wrong.
"""
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

E = TypeVar("E", bound="SchemaEntity")


def is_blank(value: Any) -> bool:
    """True for values JSON-LD authors use to mean 'not provided'."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


class SchemaEntity(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Any = Field(None, alias="@type")

    @classmethod
    def decode(cls: Type[E], raw: Optional[Dict[str, Any]]) -> Optional[E]:
        if not isinstance(raw, dict):
            return None
        return cls.model_validate(raw)


class ProductEntity(SchemaEntity):
    name: Any = None
    description: Any = None
    image: Any = None
    brand: Any = None
    sku: Any = None
    mpn: Any = None
    isbn: Any = None
    gtin: Any = None
    gtin8: Any = None
    gtin12: Any = None
    gtin13: Any = None
    gtin14: Any = None
    offers: Any = None
    has_merchant_return_policy: Any = Field(None, alias="hasMerchantReturnPolicy")

    def gtin_fields(self) -> Dict[str, Any]:
        """GTIN-family values actually present, in validation order."""
        candidates = (
            ("gtin", self.gtin), ("gtin13", self.gtin13), ("gtin14", self.gtin14),
            ("gtin12", self.gtin12), ("gtin8", self.gtin8),
        )
        return {k: v for k, v in candidates if not is_blank(v)}


class OfferEntity(SchemaEntity):
    price: Any = None
    low_price: Any = Field(None, alias="lowPrice")
    high_price: Any = Field(None, alias="highPrice")
    price_currency: Any = Field(None, alias="priceCurrency")
    availability: Any = None
    seller: Any = None
    item_offered: Any = Field(None, alias="itemOffered")
    shipping_details: Any = Field(None, alias="shippingDetails")
    has_merchant_return_policy: Any = Field(None, alias="hasMerchantReturnPolicy")


class OrganizationEntity(SchemaEntity):
    name: Any = None
    url: Any = None
    logo: Any = None
    contact_point: Any = Field(None, alias="contactPoint")
    telephone: Any = None
    email: Any = None
    address: Any = None
    same_as: Any = Field(None, alias="sameAs")


class ReturnPolicyEntity(SchemaEntity):
    merchant_return_days: Any = Field(None, alias="merchantReturnDays")
    return_policy_category: Any = Field(None, alias="returnPolicyCategory")
    return_method: Any = Field(None, alias="returnMethod")
    return_fees: Any = Field(None, alias="returnFees")
    applicable_country: Any = Field(None, alias="applicableCountry")


class ShippingDetailsEntity(SchemaEntity):
    shipping_destination: Any = Field(None, alias="shippingDestination")
    delivery_time: Any = Field(None, alias="deliveryTime")
    shipping_rate: Any = Field(None, alias="shippingRate")


class WebSiteEntity(SchemaEntity):
    name: Any = None
    url: Any = None
    potential_action: Any = Field(None, alias="potentialAction")


class FAQPageEntity(SchemaEntity):
    main_entity: Any = Field(None, alias="mainEntity")
