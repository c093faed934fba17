"""
Order System data model.

Parsed from Vendure Admin API GraphQL payloads. Field aliases follow the
GraphQL (camelCase) names so raw responses validate directly.
"""
import math
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OrderState(str, Enum):
    """Vendure order lifecycle states."""
    CREATED = "Created"
    ADDING_ITEMS = "AddingItems"
    ARRANGING_PAYMENT = "ArrangingPayment"
    PAYMENT_AUTHORIZED = "PaymentAuthorized"
    PAYMENT_SETTLED = "PaymentSettled"
    PARTIALLY_FULFILLED = "PartiallyFulfilled"
    FULFILLED = "Fulfilled"
    PARTIALLY_SHIPPED = "PartiallyShipped"
    SHIPPED = "Shipped"
    PARTIALLY_DELIVERED = "PartiallyDelivered"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class FulfillmentState(str, Enum):
    """Vendure fulfillment states. Forward-progressing only."""
    CREATED = "Created"
    PENDING = "Pending"
    FULFILLED = "Fulfilled"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


def coerce_quantity(value: Any) -> int:
    """
    Coerce a remote quantity to a non-negative int.

    Non-numeric and non-finite values become 0, as do negatives.
    """
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(number)


class VendureModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProductVariantRef(VendureModel):
    id: str
    sku: Optional[str] = None
    name: str = ""

    @field_validator("sku", mode="before")
    @classmethod
    def blank_sku_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class OrderLine(VendureModel):
    """
    Order line with the quantity already attached to fulfillments.

    Invariant: 0 <= fulfilled_quantity <= quantity.
    """
    id: str
    quantity: int = 0
    product_variant: ProductVariantRef = Field(alias="productVariant")
    fulfilled_quantity: int = Field(0, alias="fulfilledQuantity")

    @model_validator(mode="before")
    @classmethod
    def sum_fulfillment_lines(cls, data):
        # Raw GraphQL lines carry fulfillmentLines[] instead of a total
        if isinstance(data, dict) and "fulfillmentLines" in data:
            data = dict(data)
            lines = data.pop("fulfillmentLines") or []
            data.setdefault(
                "fulfilledQuantity",
                sum(coerce_quantity((item or {}).get("quantity")) for item in lines),
            )
        return data

    @field_validator("quantity", "fulfilled_quantity", mode="before")
    @classmethod
    def coerce_quantities(cls, v):
        return coerce_quantity(v)

    @model_validator(mode="after")
    def clamp_fulfilled(self):
        if self.fulfilled_quantity > self.quantity:
            self.fulfilled_quantity = self.quantity
        return self


class FulfillmentSummary(VendureModel):
    id: str
    state: str
    method: Optional[str] = None
    tracking_code: Optional[str] = Field(None, alias="trackingCode")


class ShippingAddress(VendureModel):
    full_name: Optional[str] = Field(None, alias="fullName")
    company: Optional[str] = None
    street_line1: Optional[str] = Field(None, alias="streetLine1")
    street_line2: Optional[str] = Field(None, alias="streetLine2")
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country_code: Optional[str] = Field(None, alias="countryCode")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class Customer(VendureModel):
    email_address: Optional[str] = Field(None, alias="emailAddress")


class Order(VendureModel):
    id: str
    code: str
    # Custom states some deployments add are kept as plain strings
    state: str
    created_at: Optional[str] = Field(None, alias="createdAt")
    lines: List[OrderLine] = []
    fulfillments: List[FulfillmentSummary] = []
    shipping_address: Optional[ShippingAddress] = Field(None, alias="shippingAddress")
    customer: Optional[Customer] = None

    @field_validator("lines", "fulfillments", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []

    @property
    def order_state(self) -> Optional[OrderState]:
        try:
            return OrderState(self.state)
        except ValueError:
            return None

    @property
    def latest_fulfillment(self) -> Optional[FulfillmentSummary]:
        """Most recently created fulfillment (last in Vendure's ordering)."""
        return self.fulfillments[-1] if self.fulfillments else None


class OutstandingLine(BaseModel):
    """Order line quantity not yet attached to any fulfillment."""
    order_line_id: str
    quantity: int
    sku: Optional[str] = None
    variant_name: str = ""

    @property
    def lookup_keys(self) -> List[str]:
        """Mapping keys to try, SKU first then variant name."""
        keys = []
        for key in (self.sku, self.variant_name):
            if key and key not in keys:
                keys.append(key)
        return keys

    @property
    def display_key(self) -> str:
        return self.sku or self.variant_name


# ==================== PRODUCTS ====================

class ProductAsset(VendureModel):
    preview: Optional[str] = None
    source: Optional[str] = None
    type: Optional[str] = None


class ProductVariantSummary(VendureModel):
    id: str
    sku: Optional[str] = None
    name: str = ""
    price: float = 0
    price_with_tax: float = Field(0, alias="priceWithTax")
    currency_code: str = Field("USD", alias="currencyCode")

    @field_validator("price", "price_with_tax", mode="before")
    @classmethod
    def none_as_zero(cls, v):
        return 0 if v is None else v

    @field_validator("currency_code", mode="before")
    @classmethod
    def default_currency(cls, v):
        return v or "USD"


class ProductSummary(VendureModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    assets: List[ProductAsset] = []
    variants: List[ProductVariantSummary] = []

    @field_validator("assets", "variants", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [item for item in (v or []) if item]

    @property
    def asset_urls(self) -> List[str]:
        urls = []
        for asset in self.assets:
            url = asset.preview or asset.source
            if url:
                urls.append(url)
        return urls
