from fastapi import APIRouter

from printbridge.api.v1.endpoints import (
    # Fulfillment automation
    fulfillment,
    webhooks,
    # Catalog (GMC sync, upsell)
    catalog,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Fulfillment Job ====================
api_router.include_router(
    fulfillment.router,
    prefix="/fulfillment",
    tags=["Fulfillment"]
)

# ==================== Partner Webhooks ====================
api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"]
)

# ==================== Catalog ====================
api_router.include_router(
    catalog.router,
    tags=["Catalog"]
)
