"""
Vendure GraphQL clients.

VendureClient talks to the Admin API:
- Authentication (session cookie kept on the client instance)
- Order queries (batch listing, lookup by code)
- Fulfillment creation, state transitions and tracking updates
- Product lookups by id or slug

VendureShopClient talks to the public Shop API (no authentication).
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from printbridge.config import Settings
from printbridge.core.exceptions import UnsupportedBackendError
from printbridge.schemas.order import FulfillmentSummary, Order, ProductSummary
from printbridge.services import vendure_queries
from printbridge.services.fulfillment_protocol import (
    FALLBACK_HANDLER_CODE,
    FulfillmentFailed,
    FulfillmentRequest,
    FulfillmentResult,
    MutationShape,
    build_mutation,
    join_error_message,
    parse_fulfillment_result,
)

logger = logging.getLogger(__name__)


class VendureAPIError(Exception):
    """Vendure transport or GraphQL error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class VendureAuthenticationError(VendureAPIError):
    """Admin credentials rejected."""


class VendureGraphQLClient:
    """Minimal GraphQL-over-HTTP client with cookie session handling."""

    def __init__(
        self,
        api_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport
        self._cookie: Optional[str] = None

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._cookie:
            headers["Cookie"] = self._cookie
        return headers

    def _update_cookies(self, response: httpx.Response) -> None:
        cookies = [
            entry.split(";")[0].strip()
            for entry in response.headers.get_list("set-cookie")
        ]
        cookies = [cookie for cookie in cookies if cookie]
        if cookies:
            self._cookie = "; ".join(cookies)

    async def _post(self, query: str, variables: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(
                self.api_url,
                headers=self._build_headers(),
                json={"query": query, "variables": variables or {}},
            )
        self._update_cookies(response)
        return response

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL document and return its data payload.

        Raises VendureAPIError on HTTP errors, GraphQL errors or a missing
        data payload.
        """
        response = await self._post(query, variables)

        if response.status_code >= 400:
            logger.error(f"Vendure API error: {response.status_code} - {response.text}")
            raise VendureAPIError(
                f"Vendure request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError:
            raise VendureAPIError("Vendure response is not valid JSON", response.status_code, response.text)

        errors = payload.get("errors") or []
        if errors:
            message = "; ".join(str(err.get("message", err)) for err in errors)
            raise VendureAPIError(message, response.status_code, response.text)

        data = payload.get("data")
        if data is None:
            raise VendureAPIError("Vendure response did not include a data payload.", response.status_code, response.text)

        return data


class VendureClient(VendureGraphQLClient):
    """
    Vendure Admin API client.

    Usage:
        vendure = VendureClient.from_settings(settings)
        await vendure.login(settings.VENDURE_ADMIN_EMAIL, settings.VENDURE_ADMIN_PASSWORD)

        orders = await vendure.fetch_orders(["PaymentSettled"], take=20)
        result = await vendure.create_fulfillment(request)
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._mutation_shape: Optional[MutationShape] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "VendureClient":
        return cls(settings.VENDURE_ADMIN_API_URL, timeout=settings.HTTP_TIMEOUT_SECONDS, **kwargs)

    # ==================== AUTHENTICATION ====================

    async def login(self, username: str, password: str) -> None:
        """Authenticate and keep the session cookie for later requests."""
        response = await self._post(
            vendure_queries.LOGIN_MUTATION,
            {"username": username, "password": password},
        )

        if response.status_code >= 400:
            raise VendureAuthenticationError(
                f"Vendure login failed: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError:
            raise VendureAuthenticationError("Vendure login returned invalid JSON", response.status_code, response.text)

        result = (payload.get("data") or {}).get("login") or {}
        if result.get("__typename") != "CurrentUser":
            raise VendureAuthenticationError(
                result.get("message") or "Invalid Vendure admin credentials.",
                status_code=response.status_code,
            )

        logger.info(f"Logged in to Vendure Admin API as {result.get('identifier', username)}")

    # ==================== ORDERS ====================

    async def fetch_orders(self, states: List[str], take: int) -> List[Order]:
        """
        Oldest orders in `states` first, at most `take` of them.

        State filtering is done client side to avoid schema enum issues on
        some deployments, so pages of `take` orders are read until enough
        eligible orders are found or the order list is exhausted.
        """
        wanted = set(states)
        eligible: List[Order] = []
        skip = 0

        while len(eligible) < take:
            data = await self.graphql(vendure_queries.ORDERS_TO_FULFILL_QUERY, {"take": take, "skip": skip})
            page = data.get("orders") or {}
            items = page.get("items") or []

            for item in items:
                order = Order.model_validate(item)
                if order.state in wanted:
                    eligible.append(order)

            skip += len(items)
            total = page.get("totalItems")
            if len(items) < take or (total is not None and skip >= total):
                break

        logger.info(f"Scanned {skip} orders, {len(eligible)} in states {sorted(wanted)}")
        return eligible[:take]

    async def fetch_order_by_code(self, code: str) -> Optional[Order]:
        data = await self.graphql(vendure_queries.ORDER_BY_CODE_QUERY, {"code": code})
        raw = data.get("orderByCode")
        if not raw:
            return None
        return Order.model_validate(raw)

    # ==================== PRODUCTS ====================

    async def fetch_product_by_id(self, product_id: str) -> Optional[ProductSummary]:
        data = await self.graphql(vendure_queries.PRODUCT_BY_ID_QUERY, {"id": product_id})
        raw = data.get("product")
        return ProductSummary.model_validate(raw) if raw else None

    async def fetch_product_by_slug(self, slug: str) -> Optional[ProductSummary]:
        data = await self.graphql(vendure_queries.PRODUCT_BY_SLUG_QUERY, {"slug": slug})
        raw = data.get("productBySlug")
        return ProductSummary.model_validate(raw) if raw else None

    # ==================== FULFILLMENTS ====================

    async def detect_mutation_shape(self) -> MutationShape:
        """
        Find which fulfillment mutation this Admin API exposes.

        The probe runs once per client; the result is not persisted.
        Raises UnsupportedBackendError if neither mutation exists.
        """
        if self._mutation_shape is not None:
            return self._mutation_shape

        data = await self.graphql(vendure_queries.INTROSPECT_MUTATIONS_QUERY)
        fields = (((data.get("__schema") or {}).get("mutationType") or {}).get("fields")) or []
        names = [f.get("name") for f in fields if f]

        shape = MutationShape.from_mutation_names(names)
        if shape is None:
            raise UnsupportedBackendError()

        logger.info(f"Vendure fulfillment mutation: {shape.value}")
        self._mutation_shape = shape
        return shape

    async def _attempt_fulfillment(
        self, shape: MutationShape, request: FulfillmentRequest, handler_code: str
    ) -> FulfillmentResult:
        document, variables = build_mutation(shape, request, handler_code)
        data = await self.graphql(document, variables)
        return parse_fulfillment_result(data.get(shape.value))

    async def create_fulfillment(self, request: FulfillmentRequest) -> FulfillmentResult:
        """
        Create a fulfillment, retrying once with the fallback handler.

        Only an invalid/unregistered handler error triggers the retry; any
        other error result is returned as is. Transport errors propagate.
        """
        shape = await self.detect_mutation_shape()

        result = await self._attempt_fulfillment(shape, request, request.handler_code)
        if result.success:
            return result

        if isinstance(result, FulfillmentFailed) and result.is_invalid_handler \
                and request.handler_code != FALLBACK_HANDLER_CODE:
            logger.warning(
                f"Fulfillment handler '{request.handler_code}' rejected for order {request.order_id}, "
                f"retrying with '{FALLBACK_HANDLER_CODE}'"
            )
            return await self._attempt_fulfillment(shape, request, FALLBACK_HANDLER_CODE)

        return result

    async def transition_fulfillment_to_state(self, fulfillment_id: str, state: str) -> FulfillmentSummary:
        data = await self.graphql(
            vendure_queries.TRANSITION_FULFILLMENT_TO_STATE_MUTATION,
            {"id": fulfillment_id, "state": state},
        )
        result = data.get("transitionFulfillmentToState") or {}
        if result.get("__typename") != "Fulfillment":
            message = join_error_message(result.get("message"), result.get("transitionError"))
            raise VendureAPIError(f"Failed to transition fulfillment {fulfillment_id} to {state}: {message}")
        return FulfillmentSummary.model_validate(result)

    async def update_fulfillment_tracking(
        self,
        fulfillment_id: str,
        tracking_code: Optional[str] = None,
        method: Optional[str] = None,
    ) -> FulfillmentSummary:
        update: Dict[str, Any] = {"id": fulfillment_id}
        if tracking_code:
            update["trackingCode"] = tracking_code
        if method:
            update["method"] = method

        data = await self.graphql(vendure_queries.UPDATE_FULFILLMENT_TRACKING_MUTATION, {"input": update})
        result = data.get("updateFulfillment") or {}
        if result.get("__typename") != "Fulfillment":
            message = result.get("message") or "Failed to update fulfillment tracking"
            raise VendureAPIError(f"Failed to update fulfillment {fulfillment_id}: {message}")
        return FulfillmentSummary.model_validate(result)


class VendureShopClient(VendureGraphQLClient):
    """Vendure Shop API client used by storefront-facing endpoints."""

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "VendureShopClient":
        return cls(settings.VENDURE_SHOP_API_URL, timeout=settings.HTTP_TIMEOUT_SECONDS, **kwargs)

    async def fetch_product_variants(self, slug: str) -> Optional[Dict[str, Any]]:
        data = await self.graphql(vendure_queries.SHOP_PRODUCT_VARIANTS_QUERY, {"slug": slug})
        return data.get("product")

    async def fetch_upsell_source(self, slug: str) -> Optional[Dict[str, Any]]:
        data = await self.graphql(vendure_queries.SHOP_UPSELL_SOURCE_QUERY, {"slug": slug})
        return data.get("product")

    async def search(
        self,
        take: int,
        facet_value_ids: Optional[List[str]] = None,
        collection_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        data = await self.graphql(vendure_queries.SHOP_SEARCH_QUERY, {
            "facetValueIds": facet_value_ids or None,
            "collectionIds": collection_ids or None,
            "take": take,
        })
        items = (data.get("search") or {}).get("items")
        return items if isinstance(items, list) else []

    async def fetch_candidate(self, product_id: str) -> Optional[Dict[str, Any]]:
        data = await self.graphql(vendure_queries.SHOP_CANDIDATE_QUERY, {"id": product_id})
        return data.get("product")
