"""
Printify Integration Service.

Handles Printify API interactions:
- Order creation (draft orders keyed by the Vendure order code)
- Mock mode for environments without Printify credentials

API Docs: https://developers.printify.com/
"""
import httpx
import logging
import time
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field

from printbridge.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class PrintifyAddress:
    """Address structure for Printify API (address_to)."""
    first_name: str
    last_name: str
    email: str
    country: str
    address1: str
    city: str
    zip: str
    phone: str = ""
    region: str = ""
    address2: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
            "region": self.region,
            "address1": self.address1,
            "address2": self.address2,
            "city": self.city,
            "zip": self.zip,
        }


@dataclass
class PrintifyLineItem:
    """Line item structure for Printify API."""
    product_id: int
    variant_id: int
    quantity: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
        }
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass
class PrintifyOrderRequest:
    """Order creation request for Printify."""
    external_id: str
    line_items: List[PrintifyLineItem]
    address_to: PrintifyAddress
    label: str = ""
    shipping_method: Optional[int] = None
    send_shipping_notification: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "external_id": self.external_id,
            "label": self.label,
            "line_items": [item.to_payload() for item in self.line_items],
            "send_shipping_notification": self.send_shipping_notification,
            "address_to": self.address_to.to_payload(),
        }

        # Add optional fields
        if self.shipping_method is not None:
            payload["shipping_method"] = self.shipping_method
        if self.metadata:
            payload["metadata"] = self.metadata

        return payload


@dataclass
class PrintifyOrderResponse:
    """Order as returned by Printify."""
    id: str
    status: str
    external_id: Optional[str] = None
    shipments: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "PrintifyOrderResponse":
        return cls(
            id=str(data.get("id", "")),
            status=str(data.get("status", "")),
            external_id=data.get("external_id"),
            shipments=data.get("shipments") or [],
            metadata=data.get("metadata") or {},
        )


class PrintifyAPIError(Exception):
    """Printify API error."""

    def __init__(self, status_code: int, message: str, body: str = ""):
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(f"Printify request failed with status {status_code}: {message}")


class PrintifyService:
    """
    Service for Printify API integration.

    Usage:
        service = PrintifyService.from_settings(settings)

        # Create order
        order = await service.create_order(order_request)
    """

    DEFAULT_BASE_URL = "https://api.printify.com/v1"

    def __init__(
        self,
        api_token: str,
        shop_id: str,
        base_url: Optional[str] = None,
        mock: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token
        self.shop_id = shop_id
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.mock = mock
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PrintifyService":
        return cls(
            api_token=settings.PRINTIFY_API_TOKEN,
            shop_id=settings.PRINTIFY_SHOP_ID,
            base_url=settings.PRINTIFY_API_BASE_URL,
            mock=settings.PRINTIFY_API_MOCK,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def _request(self, method: str, endpoint: str, data: Optional[Dict] = None) -> Dict:
        """Make authenticated request to Printify API."""
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.request(method.upper(), url, headers=headers, json=data)

            # Handle errors
            if response.status_code >= 400:
                logger.error(f"Printify API error: {response.status_code} - {response.text}")
                message = response.text
                try:
                    error_data = response.json()
                    if isinstance(error_data, dict):
                        message = error_data.get("message") or error_data.get("error") or message
                except ValueError:
                    pass
                raise PrintifyAPIError(
                    status_code=response.status_code,
                    message=str(message),
                    body=response.text,
                )

            return response.json() if response.text else {}

    # ==================== ORDER MANAGEMENT ====================

    async def create_order(self, order: PrintifyOrderRequest) -> PrintifyOrderResponse:
        """
        Create a new order in Printify.

        In mock mode no request is made and a synthetic id is returned.
        """
        if self.mock:
            mock_id = f"mock-{int(time.time() * 1000)}"
            logger.info(f"Printify mock order {mock_id} for {order.external_id}")
            return PrintifyOrderResponse(
                id=mock_id,
                status="mocked",
                external_id=order.external_id,
                metadata={**order.metadata, "mock": True},
            )

        result = await self._request(
            "POST",
            f"/shops/{self.shop_id}/orders.json",
            data=order.to_payload(),
        )

        created = PrintifyOrderResponse.from_payload(result)
        logger.info(f"Printify order created: {created.id} for {order.external_id} ({created.status})")

        return created
