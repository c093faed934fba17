# tests/factories.py
import copy
from typing import Any, Dict, List, Optional

from printbridge.config import Settings
from printbridge.core.exceptions import UnsupportedBackendError
from printbridge.schemas.order import FulfillmentSummary, Order
from printbridge.services.fulfillment_protocol import (
    FulfillmentCreated,
    FulfillmentRequest,
    MutationShape,
)
from printbridge.services.printify_service import PrintifyOrderRequest, PrintifyOrderResponse
from printbridge.services.telegram_service import TelegramReporter


def make_settings(**overrides) -> Settings:
    values = {
        "VENDURE_ADMIN_API_URL": "https://vendure.test/admin-api",
        "VENDURE_ADMIN_EMAIL": "superadmin",
        "VENDURE_ADMIN_PASSWORD": "superadmin",
        "VENDURE_SHOP_API_URL": "https://vendure.test/shop-api",
        "TELEGRAM_BOT_TOKEN": "",
        "TELEGRAM_CHAT_ID": "",
        "PRINTIFY_API_TOKEN": "",
        "PRINTIFY_SHOP_ID": "",
        "PRINTIFY_API_MOCK": False,
        "PRINTIFY_WEBHOOK_SECRET": None,
        "AUTOMATION_JOB_SECRET": None,
        "FULFILLMENT_DRY_RUN": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def order_payload(
    code: str = "ORD123",
    lines: Optional[List[Dict[str, Any]]] = None,
    fulfillments: Optional[List[Dict[str, Any]]] = None,
    state: str = "PaymentSettled",
    **extra,
) -> Dict[str, Any]:
    """Raw Vendure Admin API order as returned by ORDER_FIELDS."""
    payload = {
        "id": f"id-{code}",
        "code": code,
        "state": state,
        "createdAt": "2024-05-01T10:00:00.000Z",
        "lines": lines if lines is not None else [
            {
                "id": "L1",
                "quantity": 2,
                "productVariant": {"id": "V1", "sku": "TEE-M", "name": "Classic Tee / M"},
                "fulfillmentLines": [],
            },
        ],
        "fulfillments": fulfillments or [],
        "shippingAddress": {
            "fullName": "Nguyen Van An",
            "streetLine1": "12 Le Loi",
            "streetLine2": None,
            "city": "Ho Chi Minh City",
            "province": "HCM",
            "postalCode": "700000",
            "countryCode": "VN",
            "phoneNumber": "+84900000000",
        },
        "customer": {"emailAddress": "an@example.com"},
    }
    payload.update(extra)
    return payload


def make_order(**kwargs) -> Order:
    return Order.model_validate(order_payload(**kwargs))


class RecordingReporter(TelegramReporter):
    """Reporter that records notifications instead of sending them."""

    def __init__(self, dry_run: bool = False):
        super().__init__(enabled=False, dry_run=dry_run)
        self.messages: List[tuple] = []

    async def notify(self, step: str, details: Optional[str] = None) -> bool:
        self.messages.append((step, details))
        return False

    @property
    def steps(self) -> List[str]:
        return [step for step, _ in self.messages]


class FakeVendure:
    """In-memory stand-in for VendureClient recording every call."""

    def __init__(
        self,
        orders: Optional[List[Dict[str, Any]]] = None,
        shape: Optional[MutationShape] = MutationShape.MODERN,
        results: Optional[Dict[str, Any]] = None,
    ):
        self.orders = [copy.deepcopy(o) for o in (orders or [])]
        self.shape = shape
        # order id -> FulfillmentResult or Exception
        self.results = results or {}
        self.calls: List[tuple] = []

    async def login(self, username, password):
        self.calls.append(("login", username))

    async def detect_mutation_shape(self):
        self.calls.append(("detect_mutation_shape",))
        if self.shape is None:
            raise UnsupportedBackendError()
        return self.shape

    async def fetch_orders(self, states, take):
        self.calls.append(("fetch_orders", tuple(states), take))
        orders = [Order.model_validate(o) for o in self.orders]
        return [o for o in orders if o.state in states][:take]

    async def fetch_order_by_code(self, code):
        self.calls.append(("fetch_order_by_code", code))
        for raw in self.orders:
            if raw["code"] == code:
                return Order.model_validate(raw)
        return None

    async def create_fulfillment(self, request: FulfillmentRequest):
        self.calls.append(("create_fulfillment", request))
        result = self.results.get(request.order_id)
        if isinstance(result, Exception):
            raise result
        if result is not None:
            return result
        return FulfillmentCreated(fulfillment_id=f"F-{request.order_id}", state="Pending", method=request.method)

    async def update_fulfillment_tracking(self, fulfillment_id, tracking_code=None, method=None):
        self.calls.append(("update_fulfillment_tracking", fulfillment_id, tracking_code, method))
        return FulfillmentSummary(id=fulfillment_id, state="Pending", method=method, tracking_code=tracking_code)

    async def transition_fulfillment_to_state(self, fulfillment_id, state):
        self.calls.append(("transition_fulfillment_to_state", fulfillment_id, state))
        if isinstance(self.results.get("transition"), Exception):
            raise self.results["transition"]
        return FulfillmentSummary(id=fulfillment_id, state=state)

    @property
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    @property
    def mutations(self) -> List[tuple]:
        names = {"create_fulfillment", "update_fulfillment_tracking", "transition_fulfillment_to_state"}
        return [call for call in self.calls if call[0] in names]


class FakePrintify:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.orders: List[PrintifyOrderRequest] = []

    async def create_order(self, order: PrintifyOrderRequest) -> PrintifyOrderResponse:
        if self.error is not None:
            raise self.error
        self.orders.append(order)
        return PrintifyOrderResponse(id=f"pfy-{order.external_id}", status="on-hold", external_id=order.external_id)



class FakeShop:
    """In-memory stand-in for VendureShopClient."""

    def __init__(self, source=None, items=None, candidates=None, variants_product=None):
        self.source = source
        self.items = items or []
        # product id -> candidate dict or Exception
        self.candidates = candidates or {}
        self.variants_product = variants_product
        self.searches: List[Dict[str, Any]] = []

    async def fetch_upsell_source(self, slug):
        return self.source

    async def fetch_product_variants(self, slug):
        return self.variants_product

    async def search(self, take, facet_value_ids=None, collection_ids=None):
        self.searches.append({"take": take, "facet_value_ids": facet_value_ids, "collection_ids": collection_ids})
        return self.items

    async def fetch_candidate(self, product_id):
        candidate = self.candidates.get(product_id)
        if isinstance(candidate, Exception):
            raise candidate
        return candidate


VARIANTS_PRODUCT = {
    "id": "P1",
    "variants": [
        {"id": "V1", "name": "Tee / M", "priceWithTax": 1500, "stockLevel": "IN_STOCK"},
        {"id": "V2", "name": "Tee / L", "priceWithTax": 1500, "stockLevel": "OUT_OF_STOCK"},
    ],
}
