"""
Domain exceptions shared by services, jobs and endpoints.

Every exception carries the HTTP status the API layer should answer with,
so endpoints never translate error classes by hand.
"""
from typing import Dict, List, Optional


class PrintbridgeError(Exception):
    """Base exception for fulfillment automation errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(PrintbridgeError):
    """Missing or malformed configuration. Fatal for the invocation."""


class UnauthorizedError(PrintbridgeError):
    """Invalid job secret or webhook signature."""
    status_code = 401


class InvalidRequestError(PrintbridgeError):
    """Request body or parameters cannot be processed."""
    status_code = 400


class MalformedEventError(InvalidRequestError):
    """Partner webhook event without a correlation id."""


class MissingMappingError(PrintbridgeError):
    """One or more outstanding lines have no partner product mapping."""
    status_code = 422

    def __init__(self, skus: List[str]):
        self.skus = list(skus)
        self.sku = self.skus[0] if self.skus else ""
        quoted = ", ".join(f"'{sku}'" for sku in self.skus)
        super().__init__(f"No Printify mapping found for SKU {quoted}", {"skus": self.skus})


class OrderNotFoundError(PrintbridgeError):
    status_code = 404

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Order not found: {code}", {"code": code})


class NoFulfillmentError(PrintbridgeError):
    """Order exists but has no fulfillment to transition."""
    status_code = 409

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"No fulfillment found for order {code}", {"code": code})


class ProductNotFoundError(PrintbridgeError):
    status_code = 404


class OutOfStockError(PrintbridgeError):
    status_code = 409


class UnsupportedBackendError(PrintbridgeError):
    """Vendure Admin API exposes neither fulfillment mutation."""

    def __init__(self, message: str = "Vendure Admin API does not support fulfillment mutations"):
        super().__init__(message)
