from functools import lru_cache
from typing import Annotated, Optional
import logging

from fastapi import Depends, Header, Query

from printbridge.config import Settings, get_settings
from printbridge.core.exceptions import UnauthorizedError
from printbridge.core.security import secret_matches
from printbridge.services.gmc_service import GoogleMerchantService
from printbridge.services.printify_service import PrintifyService
from printbridge.services.product_mapping import ProductMapping, load_product_mapping
from printbridge.services.telegram_service import TelegramReporter
from printbridge.services.vendure_client import VendureClient, VendureShopClient


logger = logging.getLogger(__name__)


AppSettings = Annotated[Settings, Depends(get_settings)]


@lru_cache()
def get_product_mapping() -> ProductMapping:
    """SKU mapping, loaded once per process."""
    return load_product_mapping(get_settings())


def get_fulfillment_mapping(settings: AppSettings) -> ProductMapping:
    """Mapping for the fulfillment job; empty when Printify is not in play."""
    if not settings.printify_enabled:
        return ProductMapping()
    return get_product_mapping()


def get_vendure_client(settings: AppSettings) -> VendureClient:
    """New Admin API client (and session) per request."""
    return VendureClient.from_settings(settings)


def get_shop_client(settings: AppSettings) -> VendureShopClient:
    return VendureShopClient.from_settings(settings)


def get_printify_service(settings: AppSettings) -> Optional[PrintifyService]:
    """Printify client, or None when Printify is not configured."""
    if not settings.printify_enabled:
        return None
    return PrintifyService.from_settings(settings)


def get_reporter(settings: AppSettings) -> TelegramReporter:
    return TelegramReporter.from_settings(settings)


def get_gmc_service(settings: AppSettings) -> GoogleMerchantService:
    return GoogleMerchantService.from_settings(settings)


async def verify_job_secret(
    settings: AppSettings,
    secret: Optional[str] = Query(None, description="Automation job secret"),
    x_automation_secret: Optional[str] = Header(None),
) -> None:
    """
    Dependency protecting job trigger endpoints.

    Open when AUTOMATION_JOB_SECRET is not configured.
    """
    expected = settings.AUTOMATION_JOB_SECRET
    if not expected:
        return

    if not (secret_matches(secret, expected) or secret_matches(x_automation_secret, expected)):
        logger.warning("Rejected job trigger: invalid or missing automation secret")
        raise UnauthorizedError("Invalid or missing automation secret.")


JobMapping = Annotated[ProductMapping, Depends(get_fulfillment_mapping)]
Vendure = Annotated[VendureClient, Depends(get_vendure_client)]
VendureShop = Annotated[VendureShopClient, Depends(get_shop_client)]
Printify = Annotated[Optional[PrintifyService], Depends(get_printify_service)]
Reporter = Annotated[TelegramReporter, Depends(get_reporter)]
GoogleMerchant = Annotated[GoogleMerchantService, Depends(get_gmc_service)]
