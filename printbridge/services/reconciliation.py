"""
Order-to-Printify reconciliation.

Pure functions, no I/O:
- outstanding_lines: quantities not yet attached to any fulfillment
- build_partner_request: Printify order for the outstanding lines
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from printbridge.core.exceptions import MissingMappingError
from printbridge.schemas.order import Order, OutstandingLine, ShippingAddress, coerce_quantity
from printbridge.services.printify_service import PrintifyAddress, PrintifyLineItem, PrintifyOrderRequest
from printbridge.services.product_mapping import ProductMapping

PLACEHOLDER_EMAIL = "unknown@example.com"
DEFAULT_COUNTRY = "US"


@dataclass(frozen=True)
class ShippingOptions:
    """Partner shipping settings applied to every created order."""
    shipping_method: Optional[int] = None
    send_shipping_notification: bool = False


def outstanding_lines(order: Order) -> List[OutstandingLine]:
    """
    Lines of the order that still need fulfillment.

    Outstanding = quantity - fulfilled quantity, lines with nothing left are
    dropped and order is preserved. Never raises.
    """
    result = []
    for line in order.lines:
        outstanding = coerce_quantity(line.quantity) - coerce_quantity(line.fulfilled_quantity)
        if outstanding <= 0:
            continue
        result.append(OutstandingLine(
            order_line_id=line.id,
            quantity=outstanding,
            sku=line.product_variant.sku,
            variant_name=line.product_variant.name,
        ))
    return result


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    """Split a full name into (first, last); empty names become ('Customer', '')."""
    parts = (full_name or "").split()
    if not parts:
        return "Customer", ""
    return parts[0], " ".join(parts[1:])


def build_address(order: Order) -> PrintifyAddress:
    """Translate the Vendure shipping address field by field, best effort."""
    address = order.shipping_address or ShippingAddress()
    first, last = split_name(address.full_name)
    email = order.customer.email_address if order.customer else None

    return PrintifyAddress(
        first_name=first,
        last_name=last,
        email=email or PLACEHOLDER_EMAIL,
        phone=address.phone_number or "",
        country=address.country_code or DEFAULT_COUNTRY,
        region=address.province or "",
        address1=address.street_line1 or "",
        address2=address.street_line2 or "",
        city=address.city or "",
        zip=address.postal_code or "",
    )


def build_line_items(outstanding: List[OutstandingLine], mapping: ProductMapping) -> List[PrintifyLineItem]:
    """
    Map outstanding lines to Printify line items.

    Raises MissingMappingError listing every unmapped SKU.
    """
    items = []
    missing = []
    for line in outstanding:
        resolved = mapping.resolve(line.lookup_keys)
        if resolved is None:
            missing.append(line.display_key)
            continue
        _, entry = resolved
        items.append(PrintifyLineItem(
            product_id=entry.product_id,
            variant_id=entry.variant_id,
            quantity=line.quantity,
            metadata={
                "vendure_order_line_id": line.order_line_id,
                "sku": line.sku,
                "variant_name": line.variant_name,
            },
        ))

    if missing:
        raise MissingMappingError(missing)
    return items


def build_partner_request(
    order: Order,
    outstanding: List[OutstandingLine],
    mapping: ProductMapping,
    shipping_options: Optional[ShippingOptions] = None,
) -> PrintifyOrderRequest:
    """Build the Printify order for an order's outstanding lines."""
    options = shipping_options or ShippingOptions()

    return PrintifyOrderRequest(
        external_id=order.code,
        label=f"Order {order.code}",
        line_items=build_line_items(outstanding, mapping),
        address_to=build_address(order),
        shipping_method=options.shipping_method,
        send_shipping_notification=options.send_shipping_notification,
        metadata={
            "vendure_order_id": order.id,
            "vendure_order_code": order.code,
        },
    )
