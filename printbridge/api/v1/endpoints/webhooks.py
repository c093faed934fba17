"""
Printify webhook endpoint.

Verifies the HMAC signature (or the automation secret bypass), then applies
the event to the latest Vendure fulfillment of the referenced order.

Configure the webhook URL in Printify:
https://your-domain.com/api/v1/webhooks/printify
"""
import json
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Header, Request
from pydantic import BaseModel

from printbridge.api.deps import AppSettings, Reporter, Vendure
from printbridge.core.exceptions import InvalidRequestError, PrintbridgeError, UnauthorizedError
from printbridge.core.security import secret_matches, verify_webhook_signature
from printbridge.services.webhook_service import PrintifyWebhookService, normalize_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


# ==================== SCHEMAS ====================

class WebhookResponse(BaseModel):
    success: bool = True
    ignored: bool = False
    dry_run: bool = False
    bypass: bool = False
    order_code: Optional[str] = None
    fulfillment_id: Optional[str] = None
    target_state: Optional[str] = None
    tracking_updated: bool = False


# ==================== WEBHOOK HANDLER ====================

@router.post(
    "/printify",
    response_model=WebhookResponse,
    summary="Printify webhook handler",
    description="Receives order status events from Printify.",
)
async def printify_webhook(
    request: Request,
    settings: AppSettings,
    vendure: Vendure,
    reporter: Reporter,
    x_printify_signature: Optional[str] = Header(None),
    printify_signature: Optional[str] = Header(None),
    x_automation_secret: Optional[str] = Header(None),
):
    """
    Handle Printify webhook events.

    Printify sends webhooks for:
    - Order sent to production
    - Shipment created (carrier + tracking number)
    - Shipment delivered
    """
    body = await request.body()

    bypass = secret_matches(x_automation_secret, settings.AUTOMATION_JOB_SECRET)
    if not bypass and not verify_webhook_signature(
        body,
        settings.PRINTIFY_WEBHOOK_SECRET,
        x_printify_signature or printify_signature,
        allow_unsigned=settings.PRINTIFY_WEBHOOK_ALLOW_UNSIGNED,
    ):
        await reporter.notify("Printify webhook rejected", "Invalid signature")
        raise UnauthorizedError("Invalid signature")

    try:
        payload = json.loads(body or b"null")
    except ValueError:
        logger.error("Invalid JSON in Printify webhook")
        raise InvalidRequestError("Invalid JSON payload")

    event = normalize_event(payload)
    logger.info(f"Printify webhook: event={event.event}, status={event.status}, external_id={event.external_id}")

    service = PrintifyWebhookService(
        vendure,
        reporter,
        dry_run=settings.FULFILLMENT_DRY_RUN,
        credentials=(settings.VENDURE_ADMIN_EMAIL, settings.VENDURE_ADMIN_PASSWORD),
    )

    try:
        outcome = await service.reconcile(event, bypass=bypass)
    except PrintbridgeError:
        raise
    except Exception as e:
        logger.error(f"Printify webhook processing failed: {e}")
        await reporter.notify("Printify webhook processing failed", str(e))
        raise

    return WebhookResponse(**asdict(outcome))
