import httpx
import pytest

from printbridge.core.exceptions import UnsupportedBackendError
from printbridge.jobs.fulfill_orders import run_fulfill_orders
from printbridge.services.fulfillment_protocol import FulfillmentFailed
from printbridge.services.printify_service import PrintifyAPIError
from printbridge.services.telegram_service import TelegramReporter
from printbridge.services.vendure_client import VendureAPIError
from tests.factories import FakePrintify, FakeVendure, order_payload


def _unmapped_line():
    return {
        "id": "L9",
        "quantity": 1,
        "productVariant": {"id": "V9", "sku": "X", "name": "Unknown thing"},
        "fulfillmentLines": [],
    }


def _fully_fulfilled_line():
    return {
        "id": "L5",
        "quantity": 2,
        "productVariant": {"id": "V5", "sku": "TEE-M", "name": "Classic Tee / M"},
        "fulfillmentLines": [{"quantity": 2}],
    }


@pytest.mark.asyncio
async def test_orders_are_fulfilled_through_printify(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A"), order_payload("B")])
    printify = FakePrintify()

    summary = await run_fulfill_orders(settings, vendure, printify, reporter, mapping)

    assert summary.updated_orders == 2
    assert summary.failures == []
    assert [o.external_id for o in printify.orders] == ["A", "B"]
    created = [call[1] for call in vendure.calls if call[0] == "create_fulfillment"]
    assert [r.method for r in created] == ["Printify", "Printify"]
    assert created[0].handler_code == "manual-fulfillment"
    assert [(l.order_line_id, l.quantity) for l in created[0].lines] == [("L1", 2)]
    assert reporter.steps[0] == "Fulfillment job starting"
    assert reporter.steps[-1] == "Fulfillment job completed"


@pytest.mark.asyncio
async def test_manual_method_without_printify(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A")])

    summary = await run_fulfill_orders(settings, vendure, None, reporter, mapping)

    assert summary.updated_orders == 1
    request = [call[1] for call in vendure.calls if call[0] == "create_fulfillment"][0]
    assert request.method == "Manual"


@pytest.mark.asyncio
async def test_orders_in_other_states_are_ignored(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A", state="Delivered"), order_payload("B")])

    summary = await run_fulfill_orders(settings, vendure, FakePrintify(), reporter, mapping)

    assert summary.updated_orders == 1
    fetch = [call for call in vendure.calls if call[0] == "fetch_orders"][0]
    assert fetch == ("fetch_orders", ("PaymentSettled", "PartiallyFulfilled"), 20)


@pytest.mark.asyncio
async def test_nothing_outstanding_is_skipped(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A", lines=[_fully_fulfilled_line()])])
    printify = FakePrintify()

    summary = await run_fulfill_orders(settings, vendure, printify, reporter, mapping)

    assert summary.skipped_orders == 1
    assert summary.updated_orders == 0
    assert printify.orders == []
    assert vendure.mutations == []


@pytest.mark.asyncio
async def test_missing_mapping_fails_only_that_order(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A", lines=[_unmapped_line()]), order_payload("B")])
    printify = FakePrintify()

    summary = await run_fulfill_orders(settings, vendure, printify, reporter, mapping)

    assert summary.updated_orders == 1
    assert [(f.code, f.reason) for f in summary.failures] == [("A", "No Printify mapping found for SKU 'X'")]
    assert [o.external_id for o in printify.orders] == ["B"]
    assert "Order A failed" in reporter.steps


@pytest.mark.asyncio
async def test_printify_error_skips_vendure_fulfillment(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A")])
    printify = FakePrintify(error=PrintifyAPIError(400, "Invalid address"))

    summary = await run_fulfill_orders(settings, vendure, printify, reporter, mapping)

    assert summary.updated_orders == 0
    assert "Invalid address" in summary.failures[0].reason
    assert vendure.mutations == []


@pytest.mark.asyncio
async def test_error_result_and_transport_error_are_failures(settings, reporter, mapping):
    vendure = FakeVendure(
        orders=[order_payload("A"), order_payload("B"), order_payload("C")],
        results={
            "id-A": FulfillmentFailed("Items already fulfilled", error_code="ITEMS_ALREADY_FULFILLED_ERROR"),
            "id-B": VendureAPIError("Vendure request failed with status 502: Bad Gateway", status_code=502),
        },
    )

    summary = await run_fulfill_orders(settings, vendure, None, reporter, mapping)

    assert summary.updated_orders == 1
    assert summary.to_dict()["failures"] == [
        {"code": "A", "reason": "Vendure fulfillment failed: Items already fulfilled"},
        {"code": "B", "reason": "Vendure request failed with status 502: Bad Gateway"},
    ]


@pytest.mark.asyncio
async def test_dry_run_builds_requests_without_mutating(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A"), order_payload("B", lines=[_unmapped_line()])])
    printify = FakePrintify()

    summary = await run_fulfill_orders(settings, vendure, printify, reporter, mapping, dry_run=True)

    assert summary.dry_run is True
    assert summary.notes == ["Order A would fulfill 1 line(s) via Printify (1 item(s))."]
    assert [f.code for f in summary.failures] == ["B"]
    assert printify.orders == []
    assert vendure.mutations == []


@pytest.mark.asyncio
async def test_unsupported_backend_aborts_before_partner_orders(settings, reporter, mapping):
    vendure = FakeVendure(orders=[order_payload("A")], shape=None)
    printify = FakePrintify()

    with pytest.raises(UnsupportedBackendError):
        await run_fulfill_orders(settings, vendure, printify, reporter, mapping)

    assert printify.orders == []
    assert "fetch_orders" not in vendure.call_names
    assert reporter.steps[-1] == "Fulfillment job failed"


@pytest.mark.asyncio
async def test_notification_failures_do_not_change_outcome(settings, mapping):
    def broken_telegram(request):
        raise httpx.ConnectError("telegram is down")

    reporter = TelegramReporter(
        bot_token="token",
        chat_id="chat",
        enabled=True,
        transport=httpx.MockTransport(broken_telegram),
    )
    vendure = FakeVendure(orders=[order_payload("A")])

    summary = await run_fulfill_orders(settings, vendure, FakePrintify(), reporter, mapping)

    assert summary.updated_orders == 1
    assert summary.failures == []
