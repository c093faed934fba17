"""
Fulfillment job trigger.

POST /fulfillment/run runs one batch: Printify order creation plus Vendure
fulfillment for every eligible order.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from printbridge.api.deps import AppSettings, JobMapping, Printify, Reporter, Vendure, verify_job_secret
from printbridge.jobs.fulfill_orders import run_fulfill_orders

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Fulfillment"])


# ==================== SCHEMAS ====================

class FailureResponse(BaseModel):
    code: str
    reason: str


class FulfillmentRunResponse(BaseModel):
    """Summary of one fulfillment batch."""
    updated_orders: int = Field(0, description="Orders that received a new fulfillment")
    skipped_orders: int = Field(0, description="Orders with nothing outstanding")
    failures: List[FailureResponse] = []
    dry_run: bool = False
    notes: List[str] = []


# ==================== ENDPOINTS ====================

@router.post(
    "/run",
    response_model=FulfillmentRunResponse,
    summary="Run the fulfillment job",
    description="Fulfills outstanding lines of paid orders. Requires the automation secret when configured.",
    dependencies=[Depends(verify_job_secret)],
)
async def run_fulfillment(
    settings: AppSettings,
    vendure: Vendure,
    printify: Printify,
    reporter: Reporter,
    mapping: JobMapping,
):
    summary = await run_fulfill_orders(
        settings=settings,
        vendure=vendure,
        printify=printify,
        reporter=reporter,
        mapping=mapping,
    )
    return summary.to_dict()
