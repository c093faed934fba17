"""
Google Merchant Center Integration Service.

Pushes Vendure products to the Content API for Shopping:
- OAuth access token from a stored refresh token
- products.insert for a single product

API Docs: https://developers.google.com/shopping-content/reference/rest/v2.1/products/insert
"""
import httpx
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from printbridge.config import Settings
from printbridge.schemas.order import ProductSummary

logger = logging.getLogger(__name__)

FALLBACK_STOREFRONT_URL = "https://example.com"


class GoogleMerchantError(Exception):
    """Google OAuth or Content API error."""

    def __init__(self, status_code: int, message: str, body: str = ""):
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(f"Google Merchant request failed with status {status_code}: {message}")


@dataclass
class GmcPrice:
    value: str
    currency: str

    def to_payload(self) -> Dict[str, str]:
        return {"value": self.value, "currency": self.currency}


@dataclass
class GmcProduct:
    """Product resource for the Content API."""
    offer_id: str
    title: str
    description: str
    link: str
    image_link: str
    price: GmcPrice
    availability: str = "in stock"
    condition: str = "new"
    brand: Optional[str] = None
    content_language: str = "vi"
    target_country: str = "VN"
    channel: str = "online"
    additional_image_links: List[str] = field(default_factory=list)
    mpn: Optional[str] = None
    gtin: Optional[str] = None
    google_product_category: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "offerId": self.offer_id,
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "imageLink": self.image_link,
            "contentLanguage": self.content_language,
            "targetCountry": self.target_country,
            "channel": self.channel,
            "availability": self.availability,
            "condition": self.condition,
            "price": self.price.to_payload(),
        }

        # Add optional fields
        if self.brand:
            payload["brand"] = self.brand
        if self.additional_image_links:
            payload["additionalImageLinks"] = self.additional_image_links
        if self.mpn:
            payload["mpn"] = self.mpn
        if self.gtin:
            payload["gtin"] = self.gtin
        if self.google_product_category:
            payload["googleProductCategory"] = self.google_product_category

        return payload


def format_price(minor_units: float) -> str:
    """Vendure prices are in minor units; GMC wants a decimal string."""
    return f"{(minor_units or 0) / 100:.2f}"


def build_gmc_product(
    product: ProductSummary,
    settings: Settings,
    link_override: Optional[str] = None,
    brand: Optional[str] = None,
) -> GmcProduct:
    """Map a Vendure product (first variant) to a GMC product resource."""
    variant = product.variants[0] if product.variants else None
    price_value = 0.0
    currency = "USD"
    if variant is not None:
        price_value = variant.price_with_tax or variant.price
        currency = variant.currency_code

    images = product.asset_urls
    base_url = (settings.STOREFRONT_BASE_URL or FALLBACK_STOREFRONT_URL).rstrip("/")

    return GmcProduct(
        offer_id=product.slug or product.id,
        title=product.name,
        description=product.description or "",
        link=link_override or f"{base_url}/product/{product.slug}",
        image_link=images[0] if images else "",
        additional_image_links=images[1:],
        price=GmcPrice(value=format_price(price_value), currency=currency),
        brand=brand or settings.DEFAULT_BRAND,
        content_language=settings.CONTENT_LANGUAGE,
        target_country=settings.TARGET_COUNTRY,
        mpn=variant.sku if variant is not None and variant.sku else None,
        google_product_category=settings.GMC_PRODUCT_CATEGORY,
    )


class GoogleMerchantService:
    """
    Service for Google Merchant Center product sync.

    Usage:
        service = GoogleMerchantService.from_settings(settings)
        result = await service.insert_product(build_gmc_product(product, settings))
    """

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    CONTENT_API_URL = "https://shoppingcontent.googleapis.com/content/v2.1"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        merchant_id: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.merchant_id = merchant_id
        self.timeout = timeout
        self._transport = transport
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GoogleMerchantService":
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            refresh_token=settings.GOOGLE_REFRESH_TOKEN,
            merchant_id=settings.GMC_MERCHANT_ID,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def _get_access_token(self) -> str:
        """Get access token using refresh token."""
        if self._access_token and self._token_expiry and datetime.now(timezone.utc) < self._token_expiry:
            return self._access_token

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(
                self.TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code >= 400:
            logger.error(f"Google OAuth error: {response.status_code} - {response.text}")
            raise GoogleMerchantError(response.status_code, "OAuth token error", response.text)

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expiry = datetime.now(timezone.utc) + timedelta(seconds=data.get("expires_in", 3600) - 60)

        return self._access_token

    # ==================== PRODUCTS ====================

    async def insert_product(self, product: GmcProduct) -> Dict[str, Any]:
        """
        Insert (or overwrite) a product in Merchant Center.

        Returns the created resource; raises GoogleMerchantError on failure.
        """
        access_token = await self._get_access_token()
        url = f"{self.CONTENT_API_URL}/{quote(self.merchant_id, safe='')}/products"

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                json=product.to_payload(),
            )

        if response.status_code >= 400:
            logger.error(f"Google Content API error: {response.status_code} - {response.text}")
            raise GoogleMerchantError(response.status_code, response.text, response.text)

        result = response.json() if response.text else {}
        logger.info(f"GMC product inserted: {result.get('id', product.offer_id)}")
        return result
