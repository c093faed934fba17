from printbridge.services import vendure_queries
from printbridge.services.fulfillment_protocol import (
    FulfillmentCreated,
    FulfillmentFailed,
    FulfillmentLineInput,
    FulfillmentRequest,
    MutationShape,
    UNKNOWN_ERROR_MESSAGE,
    build_legacy_input,
    build_modern_input,
    build_mutation,
    parse_fulfillment_result,
)


def _request(**kwargs):
    values = {
        "order_id": "1",
        "lines": [FulfillmentLineInput("L1", 2)],
        "handler_code": "printify",
        "method": "Printify",
    }
    values.update(kwargs)
    return FulfillmentRequest(**values)


def test_shape_detection_prefers_modern():
    assert MutationShape.from_mutation_names(["addFulfillmentToOrder", "createFulfillment"]) == MutationShape.MODERN
    assert MutationShape.from_mutation_names(["addFulfillmentToOrder"]) == MutationShape.LEGACY
    assert MutationShape.from_mutation_names(["login"]) is None


def test_modern_input():
    payload = build_modern_input(_request(tracking_code="T1"), "printify")

    assert payload == {
        "orderId": "1",
        "lines": [{"orderLineId": "L1", "quantity": 2}],
        "handlerCode": "printify",
        "method": "Printify",
        "trackingCode": "T1",
    }


def test_legacy_input_uses_handler_arguments():
    payload = build_legacy_input(_request(tracking_code="T1"), "manual-fulfillment")

    assert "orderId" not in payload
    assert payload["handler"] == {
        "code": "manual-fulfillment",
        "arguments": [
            {"name": "method", "value": "Printify"},
            {"name": "trackingCode", "value": "T1"},
        ],
    }


def test_build_mutation_selects_document():
    document, variables = build_mutation(MutationShape.LEGACY, _request(), "printify")

    assert document == vendure_queries.ADD_FULFILLMENT_TO_ORDER_MUTATION
    assert variables["input"]["handler"]["code"] == "printify"


def test_parse_success():
    result = parse_fulfillment_result({"__typename": "Fulfillment", "id": "7", "state": "Pending", "method": "Printify"})

    assert isinstance(result, FulfillmentCreated)
    assert result.success is True
    assert result.to_dict() == {"success": True, "fulfillmentId": "7", "state": "Pending", "method": "Printify"}


def test_parse_error_joins_message_and_transition_error():
    result = parse_fulfillment_result({
        "__typename": "CreateFulfillmentError",
        "errorCode": "CREATE_FULFILLMENT_ERROR",
        "message": "Could not create",
        "transitionError": "Cannot transition",
    })

    assert isinstance(result, FulfillmentFailed)
    assert result.success is False
    assert result.message == "Could not create — Cannot transition"
    assert result.is_invalid_handler is False


def test_parse_empty_error():
    result = parse_fulfillment_result(None)

    assert result.to_dict() == {"success": False, "message": UNKNOWN_ERROR_MESSAGE}


def test_invalid_handler_detection_is_case_insensitive():
    assert FulfillmentFailed("x", error_code="invalid_fulfillment_handler_error").is_invalid_handler
    assert FulfillmentFailed("x", typename="InvalidFulfillmentHandlerError").is_invalid_handler
    assert FulfillmentFailed("Got INVALID_FULFILLMENT_HANDLER here").is_invalid_handler
    assert not FulfillmentFailed("x", error_code="ITEMS_ALREADY_FULFILLED_ERROR").is_invalid_handler
