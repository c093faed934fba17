"""
Catalog API endpoints.

- Google Merchant Center product sync (secret protected)
- Upsell recommendations and variant verification (public, Shop API only)
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from printbridge.api.deps import AppSettings, GoogleMerchant, Reporter, Vendure, VendureShop, verify_job_secret
from printbridge.core.exceptions import ConfigurationError, InvalidRequestError, ProductNotFoundError
from printbridge.services.gmc_service import build_gmc_product
from printbridge.services.upsell_service import (
    DEFAULT_FACET_CODES,
    DEFAULT_MIN_PRICE_FACTOR,
    DEFAULT_TAKE,
    UpsellParams,
    UpsellService,
    parse_list_param,
    parse_weights_param,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


# ==================== SCHEMAS ====================

class GmcSyncRequest(BaseModel):
    """Product to push to Merchant Center, by id or slug."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    slug: Optional[str] = None
    link_override: Optional[str] = Field(None, alias="linkOverride", description="Storefront link override")
    brand: Optional[str] = Field(None, description="Brand override")


class GmcSyncResponse(BaseModel):
    ok: bool = True
    dry_run: bool = False
    offer_id: str
    id: Optional[str] = None
    product: Optional[Dict[str, Any]] = None


class UpsellVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_slug: Optional[str] = Field(None, alias="productSlug")
    product_variant_id: Optional[str] = Field(None, alias="productVariantId")
    quantity: int = 1


class VerifiedVariant(BaseModel):
    id: str
    name: str
    price: float


class UpsellVerifyResponse(BaseModel):
    ok: bool = True
    variant: VerifiedVariant


class UpsellItem(BaseModel):
    product_id: str
    slug: str
    name: str
    price: float
    image: Optional[str] = None
    score: float


class UpsellResponse(BaseModel):
    source: str
    product: Dict[str, Any]
    upsells: List[UpsellItem]
    params: Dict[str, Any]


# ==================== GOOGLE MERCHANT CENTER ====================

@router.post(
    "/gmc/sync",
    response_model=GmcSyncResponse,
    summary="Sync a product to Google Merchant Center",
    dependencies=[Depends(verify_job_secret)],
)
async def sync_product_to_gmc(
    data: GmcSyncRequest,
    settings: AppSettings,
    vendure: Vendure,
    reporter: Reporter,
    gmc: GoogleMerchant,
):
    if not data.id and not data.slug:
        await reporter.notify("GMC sync rejected", "Missing product id or slug")
        raise InvalidRequestError("Missing product id or slug")

    source = f"id {data.id}" if data.id else f"slug {data.slug}"
    await reporter.notify("GMC sync starting", f"Source: {source}")

    if not settings.FULFILLMENT_DRY_RUN and not settings.gmc_configured:
        raise ConfigurationError("Google Merchant Center credentials are not configured")

    await vendure.login(settings.VENDURE_ADMIN_EMAIL, settings.VENDURE_ADMIN_PASSWORD)
    if data.id:
        product = await vendure.fetch_product_by_id(data.id)
    else:
        product = await vendure.fetch_product_by_slug(data.slug)

    if product is None:
        await reporter.notify("GMC sync failed", f"Product not found: {source}")
        raise ProductNotFoundError(f"Product not found: {source}")

    gmc_product = build_gmc_product(product, settings, link_override=data.link_override, brand=data.brand)
    payload = gmc_product.to_payload()

    if settings.FULFILLMENT_DRY_RUN:
        await reporter.notify("Dry-run: would sync product to GMC", f"offerId={gmc_product.offer_id}")
        return GmcSyncResponse(dry_run=True, offer_id=gmc_product.offer_id, product=payload)

    try:
        result = await gmc.insert_product(gmc_product)
    except Exception as e:
        await reporter.notify("GMC sync failed", str(e))
        raise

    await reporter.notify("GMC sync success", f"OfferId: {gmc_product.offer_id}")
    return GmcSyncResponse(offer_id=gmc_product.offer_id, id=result.get("id") or gmc_product.offer_id)


# ==================== UPSELL ====================

@router.get(
    "/upsell",
    response_model=UpsellResponse,
    summary="Upsell recommendations for a product",
)
async def get_upsells(
    shop: VendureShop,
    slug: Optional[str] = Query(None, description="Source product slug"),
    take: Optional[int] = Query(None, description="Number of recommendations"),
    limit: Optional[int] = Query(None, description="Alias of take"),
    include_facets: Optional[str] = Query(None, alias="includeFacets", description="Comma-separated facet codes"),
    exclude_product_type: Optional[str] = Query(None, alias="excludeProductType"),
    weights: Optional[str] = Query(None, description="Code:weight pairs, e.g. Style:2,Color:0.5"),
    min_price_factor: float = Query(DEFAULT_MIN_PRICE_FACTOR, alias="minPriceFactor"),
):
    if not slug:
        raise InvalidRequestError("Missing slug query param")

    count = take or limit or DEFAULT_TAKE
    if count <= 0:
        raise InvalidRequestError("take must be a positive number")

    params = UpsellParams(
        slug=slug,
        take=count,
        facet_codes=parse_list_param(include_facets) or list(DEFAULT_FACET_CODES),
        exclude_product_type=exclude_product_type or None,
        weights=parse_weights_param(weights),
        min_price_factor=min_price_factor,
    )
    return await UpsellService(shop).recommend(params)


@router.post(
    "/upsell/verify",
    response_model=UpsellVerifyResponse,
    summary="Verify an upsell variant can be added to the cart",
)
async def verify_upsell(data: UpsellVerifyRequest, shop: VendureShop):
    if not data.product_slug or not data.product_variant_id:
        raise InvalidRequestError("Missing productSlug or productVariantId")

    return await UpsellService(shop).verify_variant(
        data.product_slug,
        data.product_variant_id,
        quantity=data.quantity,
    )
