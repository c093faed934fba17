"""
Fulfillment Job

Pulls paid Vendure orders and fulfills their outstanding lines:
1. Create a Printify order for the outstanding lines (when Printify is enabled)
2. Create a Vendure fulfillment for the same lines

Orders are processed one after another. A failing order is reported and
recorded in the run summary; the remaining orders are still processed.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from printbridge.config import Settings
from printbridge.schemas.order import Order
from printbridge.services.fulfillment_protocol import FulfillmentLineInput, FulfillmentRequest
from printbridge.services.printify_service import PrintifyService
from printbridge.services.product_mapping import ProductMapping
from printbridge.services.reconciliation import ShippingOptions, build_partner_request, outstanding_lines
from printbridge.services.telegram_service import TelegramReporter
from printbridge.services.vendure_client import VendureClient

logger = logging.getLogger(__name__)

MANUAL_METHOD = "Manual"


@dataclass
class FailureRecord:
    code: str
    reason: str


@dataclass
class FulfillmentRunSummary:
    updated_orders: int = 0
    skipped_orders: int = 0
    failures: List[FailureRecord] = field(default_factory=list)
    dry_run: bool = False
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_orders": self.updated_orders,
            "skipped_orders": self.skipped_orders,
            "failures": [{"code": f.code, "reason": f.reason} for f in self.failures],
            "dry_run": self.dry_run,
            "notes": list(self.notes),
        }

    def report(self) -> str:
        lines = [f"Successful fulfillments: {self.updated_orders}", f"Skipped: {self.skipped_orders}"]
        if self.failures:
            lines.append(f"Failures: {len(self.failures)}")
            lines.extend(f"• {f.code}: {f.reason}" for f in self.failures)
        if self.notes:
            lines.extend(self.notes)
        return "\n".join(lines)


class OrderFulfillmentError(Exception):
    """Vendure rejected the fulfillment for one order."""


async def fulfill_order(
    order: Order,
    settings: Settings,
    vendure: VendureClient,
    printify: Optional[PrintifyService],
    reporter: TelegramReporter,
    mapping: ProductMapping,
    summary: FulfillmentRunSummary,
) -> None:
    """Fulfill the outstanding lines of a single order."""
    outstanding = outstanding_lines(order)
    if not outstanding:
        summary.skipped_orders += 1
        await reporter.notify(f"Skip order {order.code}", "No outstanding lines to fulfill")
        return

    partner_request = None
    if printify is not None:
        # Raises MissingMappingError before anything is created
        partner_request = build_partner_request(
            order,
            outstanding,
            mapping,
            ShippingOptions(
                shipping_method=settings.PRINTIFY_SHIPPING_METHOD,
                send_shipping_notification=settings.PRINTIFY_SEND_SHIPPING_NOTIFICATION,
            ),
        )

    if summary.dry_run:
        note = f"Order {order.code} would fulfill {len(outstanding)} line(s)"
        if partner_request is not None:
            note += f" via Printify ({len(partner_request.line_items)} item(s))"
        summary.notes.append(note + ".")
        await reporter.notify(f"Dry-run: would fulfill {order.code}", note)
        return

    method = MANUAL_METHOD
    if partner_request is not None:
        await reporter.notify(f"Create Printify order for {order.code}")
        created = await printify.create_order(partner_request)
        method = settings.FULFILLMENT_METHOD
        await reporter.notify(
            f"Printify order created for {order.code}",
            f"Printify ID: {created.id} ({created.status})",
        )

    request = FulfillmentRequest(
        order_id=order.id,
        lines=[FulfillmentLineInput(line.order_line_id, line.quantity) for line in outstanding],
        handler_code=settings.FULFILLMENT_HANDLER_CODE,
        method=method,
    )
    result = await vendure.create_fulfillment(request)

    if not result.success:
        raise OrderFulfillmentError(f"Vendure fulfillment failed: {result.message}")

    summary.updated_orders += 1
    logger.info(f"Order {order.code} fulfilled: {result.fulfillment_id} ({result.state})")
    await reporter.notify(
        f"Vendure fulfillment created for {order.code}",
        f"Fulfillment ID: {result.fulfillment_id}, state: {result.state}",
    )


async def run_fulfill_orders(
    settings: Settings,
    vendure: VendureClient,
    printify: Optional[PrintifyService],
    reporter: TelegramReporter,
    mapping: ProductMapping,
    dry_run: Optional[bool] = None,
) -> FulfillmentRunSummary:
    """
    Run one fulfillment batch.

    Authentication, order listing and capability detection failures abort
    the run and propagate. Per-order failures are collected in the summary.
    """
    summary = FulfillmentRunSummary(dry_run=settings.FULFILLMENT_DRY_RUN if dry_run is None else dry_run)

    logger.info(f"Starting fulfillment job (dry_run={summary.dry_run})...")
    await reporter.notify("Fulfillment job starting")

    try:
        await vendure.login(settings.VENDURE_ADMIN_EMAIL, settings.VENDURE_ADMIN_PASSWORD)
        # Raises UnsupportedBackendError before any partner order exists
        await vendure.detect_mutation_shape()
        orders = await vendure.fetch_orders(settings.order_states, settings.FULFILLMENT_MAX_ORDERS)
    except Exception as e:
        logger.error(f"Fulfillment job failed: {e}")
        await reporter.notify("Fulfillment job failed", str(e))
        raise

    logger.info(f"Found {len(orders)} eligible orders")

    for order in orders:
        try:
            await fulfill_order(order, settings, vendure, printify, reporter, mapping, summary)
        except Exception as e:
            logger.exception(f"Error fulfilling order {order.code}")
            summary.failures.append(FailureRecord(code=order.code, reason=str(e)))
            await reporter.notify(f"Order {order.code} failed", str(e))

    step = "Fulfillment job completed (dry-run)" if summary.dry_run else "Fulfillment job completed"
    await reporter.notify(step, summary.report())

    logger.info(
        f"Fulfillment job completed: {summary.updated_orders} updated, "
        f"{summary.skipped_orders} skipped, {len(summary.failures)} failed"
    )

    return summary
