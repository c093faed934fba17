import json

import httpx
import pytest

from printbridge.core.exceptions import UnsupportedBackendError
from printbridge.services.fulfillment_protocol import (
    FulfillmentCreated,
    FulfillmentFailed,
    FulfillmentLineInput,
    FulfillmentRequest,
)
from printbridge.services.vendure_client import VendureAPIError, VendureAuthenticationError, VendureClient
from tests.factories import order_payload

API_URL = "https://vendure.test/admin-api"


class GraphQLServer:
    """Routes GraphQL operations by field name and records requests."""

    def __init__(self, mutations=("createFulfillment",)):
        self.mutations = list(mutations)
        self.requests = []
        self.fulfillment_results = []
        self.handlers = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request, body))
        query = body["query"]

        if "login(" in query:
            return httpx.Response(
                200,
                headers=[("set-cookie", "session=abc; Path=/; HttpOnly"), ("set-cookie", "session.sig=xyz; Path=/")],
                json={"data": {"login": {"__typename": "CurrentUser", "id": "1", "identifier": "superadmin"}}},
            )
        if "__schema" in query:
            fields = [{"name": name} for name in ["login"] + self.mutations]
            return httpx.Response(200, json={"data": {"__schema": {"mutationType": {"fields": fields}}}})
        if "createFulfillment(" in query or "addFulfillmentToOrder(" in query:
            key = "createFulfillment" if "createFulfillment(" in query else "addFulfillmentToOrder"
            return httpx.Response(200, json={"data": {key: self.fulfillment_results.pop(0)}})
        for marker, handler in self.handlers.items():
            if marker in query:
                return handler(body)
        return httpx.Response(200, json={"errors": [{"message": "Unexpected query"}]})

    def operations(self, marker):
        return [body for _, body in self.requests if marker in body["query"]]


@pytest.fixture
def server():
    return GraphQLServer()


@pytest.fixture
def client(server):
    return VendureClient(API_URL, transport=httpx.MockTransport(server))


def _request(handler_code="printify"):
    return FulfillmentRequest(order_id="1", lines=[FulfillmentLineInput("L1", 2)], handler_code=handler_code, method="Printify")


@pytest.mark.asyncio
async def test_login_cookie_is_replayed(client, server):
    server.handlers["orderByCode"] = lambda body: httpx.Response(200, json={"data": {"orderByCode": None}})

    await client.login("superadmin", "superadmin")
    await client.fetch_order_by_code("ORD123")

    request, _ = server.requests[-1]
    assert request.headers["cookie"] == "session=abc; session.sig=xyz"


@pytest.mark.asyncio
async def test_login_rejected():
    def handler(request):
        return httpx.Response(200, json={"data": {"login": {
            "__typename": "InvalidCredentialsError",
            "errorCode": "INVALID_CREDENTIALS_ERROR",
            "message": "The provided credentials are invalid",
        }}})

    client = VendureClient(API_URL, transport=httpx.MockTransport(handler))

    with pytest.raises(VendureAuthenticationError, match="credentials are invalid"):
        await client.login("superadmin", "wrong")


@pytest.mark.asyncio
async def test_graphql_errors_are_joined(client):
    with pytest.raises(VendureAPIError, match="Unexpected query"):
        await client.graphql("query { nothing }")


@pytest.mark.asyncio
async def test_http_error_carries_status_and_body():
    client = VendureClient(API_URL, transport=httpx.MockTransport(lambda r: httpx.Response(502, text="Bad Gateway")))

    with pytest.raises(VendureAPIError) as exc_info:
        await client.graphql("query { orders { items { id } } }")

    assert exc_info.value.status_code == 502
    assert exc_info.value.body == "Bad Gateway"


@pytest.mark.asyncio
async def test_fetch_orders_filters_states(client, server):
    items = [
        order_payload("A", state="PaymentSettled"),
        order_payload("B", state="Delivered"),
        order_payload("C", state="PartiallyFulfilled"),
    ]
    server.handlers["OrdersToFulfill"] = lambda body: httpx.Response(200, json={"data": {"orders": {
        "totalItems": len(items), "items": items,
    }}})

    orders = await client.fetch_orders(["PaymentSettled", "PartiallyFulfilled"], take=20)

    assert [o.code for o in orders] == ["A", "C"]
    assert server.operations("OrdersToFulfill")[0]["variables"] == {"take": 20, "skip": 0}


def _paged_orders(items):
    def handler(body):
        skip, take = body["variables"]["skip"], body["variables"]["take"]
        return httpx.Response(200, json={"data": {"orders": {
            "totalItems": len(items), "items": items[skip:skip + take],
        }}})
    return handler


@pytest.mark.asyncio
async def test_fetch_orders_pages_past_completed_orders(client, server):
    server.handlers["OrdersToFulfill"] = _paged_orders([
        order_payload("OLD1", state="Delivered"),
        order_payload("OLD2", state="Cancelled"),
        order_payload("NEW1", state="PaymentSettled"),
    ])

    orders = await client.fetch_orders(["PaymentSettled"], take=2)

    assert [o.code for o in orders] == ["NEW1"]
    assert [op["variables"]["skip"] for op in server.operations("OrdersToFulfill")] == [0, 2]


@pytest.mark.asyncio
async def test_fetch_orders_stops_once_batch_is_full(client, server):
    server.handlers["OrdersToFulfill"] = _paged_orders([
        order_payload("OLD1", state="Delivered"),
        order_payload("NEW1", state="PaymentSettled"),
        order_payload("NEW2", state="PaymentSettled"),
        order_payload("NEW3", state="PaymentSettled"),
        order_payload("NEW4", state="PaymentSettled"),
    ])

    orders = await client.fetch_orders(["PaymentSettled"], take=2)

    assert [o.code for o in orders] == ["NEW1", "NEW2"]
    assert len(server.operations("OrdersToFulfill")) == 2


@pytest.mark.asyncio
async def test_mutation_shape_is_probed_once(client, server):
    server.fulfillment_results = [
        {"__typename": "Fulfillment", "id": "F1", "state": "Pending", "method": "Printify"},
        {"__typename": "Fulfillment", "id": "F2", "state": "Pending", "method": "Printify"},
    ]

    await client.create_fulfillment(_request())
    await client.create_fulfillment(_request())

    assert len(server.operations("__schema")) == 1


@pytest.mark.asyncio
async def test_unsupported_backend(server):
    server.mutations = []
    client = VendureClient(API_URL, transport=httpx.MockTransport(server))

    with pytest.raises(UnsupportedBackendError):
        await client.create_fulfillment(_request())


@pytest.mark.asyncio
async def test_invalid_handler_is_retried_once_with_manual(client, server):
    server.fulfillment_results = [
        {"__typename": "InvalidFulfillmentHandlerError", "errorCode": "INVALID_FULFILLMENT_HANDLER_ERROR",
         "message": "The fulfillment handler is invalid"},
        {"__typename": "Fulfillment", "id": "F1", "state": "Pending", "method": "Printify"},
    ]

    result = await client.create_fulfillment(_request("printify"))

    assert isinstance(result, FulfillmentCreated)
    attempts = server.operations("createFulfillment(")
    assert [a["variables"]["input"]["handlerCode"] for a in attempts] == ["printify", "manual-fulfillment"]
    assert attempts[0]["variables"]["input"]["lines"] == attempts[1]["variables"]["input"]["lines"]


@pytest.mark.asyncio
async def test_retry_failure_is_returned(client, server):
    invalid = {"__typename": "InvalidFulfillmentHandlerError", "errorCode": "INVALID_FULFILLMENT_HANDLER_ERROR",
               "message": "The fulfillment handler is invalid"}
    server.fulfillment_results = [dict(invalid), dict(invalid)]

    result = await client.create_fulfillment(_request("printify"))

    assert isinstance(result, FulfillmentFailed)
    assert len(server.operations("createFulfillment(")) == 2


@pytest.mark.asyncio
async def test_unrelated_error_is_not_retried(client, server):
    server.fulfillment_results = [
        {"__typename": "ItemsAlreadyFulfilledError", "errorCode": "ITEMS_ALREADY_FULFILLED_ERROR",
         "message": "Items already fulfilled"},
    ]

    result = await client.create_fulfillment(_request("printify"))

    assert result.success is False
    assert result.message == "Items already fulfilled"
    assert len(server.operations("createFulfillment(")) == 1


@pytest.mark.asyncio
async def test_no_retry_when_already_manual(client, server):
    server.fulfillment_results = [
        {"__typename": "InvalidFulfillmentHandlerError", "errorCode": "INVALID_FULFILLMENT_HANDLER_ERROR",
         "message": "The fulfillment handler is invalid"},
    ]

    result = await client.create_fulfillment(_request("manual-fulfillment"))

    assert result.success is False
    assert len(server.operations("createFulfillment(")) == 1


@pytest.mark.asyncio
async def test_legacy_shape_payload(server):
    server.mutations = ["addFulfillmentToOrder"]
    server.fulfillment_results = [{"__typename": "Fulfillment", "id": "F1", "state": "Pending"}]
    client = VendureClient(API_URL, transport=httpx.MockTransport(server))

    result = await client.create_fulfillment(_request())

    assert result.success is True
    sent = server.operations("addFulfillmentToOrder(")[0]["variables"]["input"]
    assert "orderId" not in sent
    assert sent["handler"]["code"] == "printify"


@pytest.mark.asyncio
async def test_transition_error_raises(client, server):
    server.handlers["transitionFulfillmentToState"] = lambda body: httpx.Response(200, json={"data": {
        "transitionFulfillmentToState": {
            "__typename": "FulfillmentStateTransitionError",
            "errorCode": "FULFILLMENT_STATE_TRANSITION_ERROR",
            "message": "Cannot transition Fulfillment",
            "transitionError": "Cannot transition from Pending to Delivered",
        },
    }})

    with pytest.raises(VendureAPIError, match="Cannot transition Fulfillment — Cannot transition from Pending"):
        await client.transition_fulfillment_to_state("F1", "Delivered")


@pytest.mark.asyncio
async def test_update_tracking_payload(client, server):
    server.handlers["updateFulfillment"] = lambda body: httpx.Response(200, json={"data": {
        "updateFulfillment": {"__typename": "Fulfillment", "id": "F1", "state": "Pending",
                              "method": "DHL", "trackingCode": "T1"},
    }})

    summary = await client.update_fulfillment_tracking("F1", tracking_code="T1", method="DHL")

    assert summary.tracking_code == "T1"
    assert server.operations("updateFulfillment")[0]["variables"] == {
        "input": {"id": "F1", "trackingCode": "T1", "method": "DHL"},
    }
