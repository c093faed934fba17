"""
Printify webhook reconciliation.

Applies Printify order events to the latest Vendure fulfillment of the
matching order:
- order:sent-to-production -> Fulfilled
- order:shipment:created   -> Shipped (tracking updated first)
- order:shipment:delivered -> Delivered

Unknown events are acknowledged and ignored.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from printbridge.core.exceptions import MalformedEventError, NoFulfillmentError, OrderNotFoundError
from printbridge.schemas.order import FulfillmentState
from printbridge.services.telegram_service import TelegramReporter
from printbridge.services.vendure_client import VendureClient

logger = logging.getLogger(__name__)


PRINTIFY_EVENT_MAP: Dict[str, FulfillmentState] = {
    "order:sent-to-production": FulfillmentState.FULFILLED,
    "order:shipment:created": FulfillmentState.SHIPPED,
    "order:shipment:delivered": FulfillmentState.DELIVERED,
}

# Checked in order, first match wins
STATUS_RULES = [
    ("delivered", FulfillmentState.DELIVERED),
    ("shipped", FulfillmentState.SHIPPED),
    ("fulfilled", FulfillmentState.FULFILLED),
]


@dataclass
class Shipment:
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None

    @property
    def has_tracking(self) -> bool:
        return bool(self.carrier or self.tracking_number)


@dataclass
class PrintifyEvent:
    """Webhook event reduced to the fields reconciliation needs."""
    event: str = ""
    status: str = ""
    external_id: Optional[str] = None
    shipments: List[Shipment] = field(default_factory=list)

    @property
    def first_shipment(self) -> Optional[Shipment]:
        return self.shipments[0] if self.shipments else None


@dataclass
class WebhookOutcome:
    success: bool = True
    ignored: bool = False
    dry_run: bool = False
    bypass: bool = False
    order_code: Optional[str] = None
    fulfillment_id: Optional[str] = None
    target_state: Optional[str] = None
    tracking_updated: bool = False


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_shipments(raw: Any) -> List[Shipment]:
    if not isinstance(raw, list):
        return []
    shipments = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        shipments.append(Shipment(
            carrier=_as_text(item.get("carrier")) or None,
            tracking_number=_as_text(item.get("tracking_number")) or None,
        ))
    return shipments


def normalize_event(payload: Any) -> PrintifyEvent:
    """
    Normalize a webhook body into a PrintifyEvent.

    Accepts the documented shape {event, data: {external_id, status, shipments}}
    and the flat shape {type, status, external_id, shipments}.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook payload must be a JSON object")

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    external_id = data.get("external_id") or payload.get("external_id")
    if external_id is not None and not isinstance(external_id, str):
        external_id = str(external_id)

    return PrintifyEvent(
        event=_as_text(payload.get("event")) or _as_text(payload.get("type")),
        status=_as_text(data.get("status")) or _as_text(payload.get("status")),
        external_id=(external_id or "").strip() or None,
        shipments=_parse_shipments(data.get("shipments") if "shipments" in data else payload.get("shipments")),
    )


def map_event_to_state(event: PrintifyEvent) -> Optional[FulfillmentState]:
    """Target fulfillment state for an event, None when it is not recognized."""
    name = event.event.lower()
    status = event.status.lower()

    if name in PRINTIFY_EVENT_MAP:
        return PRINTIFY_EVENT_MAP[name]

    for keyword, state in STATUS_RULES:
        if keyword in name or status == keyword:
            return state

    return None


class PrintifyWebhookService:
    """
    Reconciles Printify webhook events against Vendure fulfillments.

    Usage:
        service = PrintifyWebhookService(vendure, reporter, credentials=(email, password))
        outcome = await service.reconcile(normalize_event(payload))
    """

    def __init__(
        self,
        vendure: VendureClient,
        reporter: TelegramReporter,
        dry_run: bool = False,
        credentials: Optional[Tuple[str, str]] = None,
    ):
        self.vendure = vendure
        self.reporter = reporter
        self.dry_run = dry_run
        self.credentials = credentials

    async def reconcile(self, event: PrintifyEvent, bypass: bool = False) -> WebhookOutcome:
        if not event.external_id:
            await self.reporter.notify("Printify webhook rejected", "Missing external_id")
            raise MalformedEventError("Missing external_id in Printify webhook")

        target_state = map_event_to_state(event)
        if target_state is None:
            logger.info(f"Ignoring Printify event '{event.event or event.status}' for {event.external_id}")
            return WebhookOutcome(ignored=True, bypass=bypass, order_code=event.external_id)

        if self.credentials:
            await self.vendure.login(*self.credentials)

        order = await self.vendure.fetch_order_by_code(event.external_id)
        if order is None:
            await self.reporter.notify("Printify webhook skipped", f"Order {event.external_id} not found")
            raise OrderNotFoundError(event.external_id)

        fulfillment = order.latest_fulfillment
        if fulfillment is None:
            await self.reporter.notify("Printify webhook skipped", f"No fulfillment to update for order {order.code}")
            raise NoFulfillmentError(order.code)

        outcome = WebhookOutcome(
            dry_run=self.dry_run,
            bypass=bypass,
            order_code=order.code,
            fulfillment_id=fulfillment.id,
            target_state=target_state.value,
        )

        shipment = event.first_shipment
        wants_tracking = target_state == FulfillmentState.SHIPPED and shipment is not None and shipment.has_tracking

        if self.dry_run:
            details = f"order={order.code}, fulfillment={fulfillment.id}, state={target_state.value}"
            if wants_tracking:
                details += f", tracking={shipment.tracking_number}"
            await self.reporter.notify("Dry-run: would update fulfillment", details)
            return outcome

        if wants_tracking:
            await self.vendure.update_fulfillment_tracking(
                fulfillment.id,
                tracking_code=shipment.tracking_number,
                method=shipment.carrier,
            )
            outcome.tracking_updated = True
            await self.reporter.notify(
                "Fulfillment tracking updated",
                f"order={order.code}, carrier={shipment.carrier}, tracking={shipment.tracking_number}",
            )

        await self.vendure.transition_fulfillment_to_state(fulfillment.id, target_state.value)
        logger.info(f"Order {order.code}: fulfillment {fulfillment.id} -> {target_state.value}")

        step = "Printify webhook processed (signature bypassed)" if bypass else "Printify webhook processed"
        await self.reporter.notify(step, f"Order {order.code} -> fulfillment {fulfillment.id} transitioned to {target_state.value}")

        return outcome
