"""
Jobs Module

Invocation-scoped batch jobs (no in-process scheduler):
- Order fulfillment (Printify order + Vendure fulfillment)
"""

from printbridge.jobs.fulfill_orders import FulfillmentRunSummary, run_fulfill_orders

__all__ = [
    "FulfillmentRunSummary",
    "run_fulfill_orders",
]
