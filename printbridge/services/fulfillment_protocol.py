"""
Vendure fulfillment creation protocol.

Vendure exposes one of two fulfillment mutations depending on version:
- MODERN: createFulfillment(input: {orderId, lines, handlerCode, ...})
- LEGACY: addFulfillmentToOrder(input: {lines, handler: {code, arguments}})

The shape is detected once per client session. Results are parsed into
FulfillmentCreated / FulfillmentFailed. A failure caused by an unregistered
handler code is retried exactly once with FALLBACK_HANDLER_CODE.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from printbridge.services import vendure_queries

FALLBACK_HANDLER_CODE = "manual-fulfillment"
UNKNOWN_ERROR_MESSAGE = "Unknown fulfillment error"
MESSAGE_SEPARATOR = " — "

_INVALID_HANDLER_PATTERN = re.compile(r"INVALID_FULFILLMENT_HANDLER|InvalidFulfillmentHandler", re.IGNORECASE)


class MutationShape(str, Enum):
    """Fulfillment mutation exposed by the Admin API."""
    MODERN = "createFulfillment"
    LEGACY = "addFulfillmentToOrder"

    @classmethod
    def from_mutation_names(cls, names: List[str]) -> Optional["MutationShape"]:
        """Pick the shape from introspected mutation names; MODERN wins."""
        if cls.MODERN.value in names:
            return cls.MODERN
        if cls.LEGACY.value in names:
            return cls.LEGACY
        return None


@dataclass
class FulfillmentLineInput:
    order_line_id: str
    quantity: int

    def to_payload(self) -> Dict[str, Any]:
        return {"orderLineId": self.order_line_id, "quantity": self.quantity}


@dataclass
class FulfillmentRequest:
    """Everything needed to create one fulfillment."""
    order_id: str
    lines: List[FulfillmentLineInput]
    handler_code: str
    method: Optional[str] = None
    tracking_code: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None


@dataclass
class FulfillmentCreated:
    fulfillment_id: str
    state: str
    method: Optional[str] = None
    success: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "fulfillmentId": self.fulfillment_id,
            "state": self.state,
            "method": self.method,
        }


@dataclass
class FulfillmentFailed:
    message: str
    error_code: Optional[str] = None
    transition_error: Optional[str] = None
    typename: Optional[str] = None
    success: bool = field(default=False, init=False)

    @property
    def is_invalid_handler(self) -> bool:
        return any(
            _INVALID_HANDLER_PATTERN.search(value)
            for value in (self.error_code, self.message, self.typename)
            if value
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


FulfillmentResult = Union[FulfillmentCreated, FulfillmentFailed]


# ==================== PAYLOAD BUILDERS ====================

def build_modern_input(request: FulfillmentRequest, handler_code: str) -> Dict[str, Any]:
    payload = {
        "orderId": request.order_id,
        "lines": [line.to_payload() for line in request.lines],
        "handlerCode": handler_code,
    }
    if request.method:
        payload["method"] = request.method
    if request.tracking_code:
        payload["trackingCode"] = request.tracking_code
    if request.custom_fields:
        payload["customFields"] = request.custom_fields
    return payload


def build_legacy_input(request: FulfillmentRequest, handler_code: str) -> Dict[str, Any]:
    # FulfillOrderInput has no orderId; method/trackingCode travel as handler arguments
    arguments = []
    if request.method:
        arguments.append({"name": "method", "value": str(request.method)})
    if request.tracking_code:
        arguments.append({"name": "trackingCode", "value": str(request.tracking_code)})

    payload = {
        "lines": [line.to_payload() for line in request.lines],
        "handler": {"code": handler_code, "arguments": arguments},
    }
    if request.custom_fields:
        payload["customFields"] = request.custom_fields
    return payload


_MUTATIONS = {
    MutationShape.MODERN: (vendure_queries.CREATE_FULFILLMENT_MUTATION, build_modern_input),
    MutationShape.LEGACY: (vendure_queries.ADD_FULFILLMENT_TO_ORDER_MUTATION, build_legacy_input),
}


def build_mutation(shape: MutationShape, request: FulfillmentRequest, handler_code: str):
    """Return (document, variables) for the given shape."""
    document, builder = _MUTATIONS[shape]
    return document, {"input": builder(request, handler_code)}


# ==================== RESULT PARSING ====================

def join_error_message(*parts: Optional[str]) -> str:
    return MESSAGE_SEPARATOR.join(part for part in parts if part) or UNKNOWN_ERROR_MESSAGE


def parse_fulfillment_result(result: Optional[Dict[str, Any]]) -> FulfillmentResult:
    """Parse the Fulfillment | ErrorResult union returned by Vendure."""
    result = result or {}
    if result.get("__typename") == "Fulfillment":
        return FulfillmentCreated(
            fulfillment_id=str(result.get("id")),
            state=str(result.get("state", "")),
            method=result.get("method"),
        )

    return FulfillmentFailed(
        message=join_error_message(result.get("message"), result.get("transitionError")),
        error_code=result.get("errorCode"),
        transition_error=result.get("transitionError"),
        typename=result.get("__typename"),
    )
