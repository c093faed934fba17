"""
Upsell recommendations and add-to-cart verification.

Reads the public Vendure Shop API only. Candidates come from a search on the
source product's facet values (or its collections when no facet matches) and
are scored by:
- facet overlap per facet code, weighted
- UpsellRank facet value (numeric name) times its weight
- price ratio above the source product's cheapest variant (PriceDelta)

Candidates cheaper than min_price_factor x the base price are dropped.
"""
import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import httpx

from printbridge.core.exceptions import InvalidRequestError, OutOfStockError, ProductNotFoundError
from printbridge.services.vendure_client import VendureAPIError, VendureShopClient

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "Collection": 1.2,
    "Style": 1,
    "Color": 0.3,
    "UpsellRank": 1,
    "PriceDelta": 1.5,
}
DEFAULT_FACET_CODES = ["Collection", "Style"]
DEFAULT_TAKE = 8
DEFAULT_MIN_PRICE_FACTOR = 1.2
# Score keys that are not facet codes
BOOST_KEYS = {"UpsellRank", "PriceDelta"}
OUT_OF_STOCK = "OUT_OF_STOCK"

_NUMBER_PATTERN = re.compile(r"[-+]?[0-9]*\.?[0-9]+")


# ==================== PARAMETER PARSING ====================

def parse_list_param(value: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_weights_param(value: Optional[str]) -> Dict[str, float]:
    """
    Parse 'Code:weight' pairs over DEFAULT_WEIGHTS.

    Pairs without a code or with a non-finite weight are ignored.
    """
    weights = dict(DEFAULT_WEIGHTS)
    for pair in parse_list_param(value):
        code, _, raw_weight = pair.partition(":")
        code = code.strip()
        try:
            weight = float(raw_weight.strip())
        except ValueError:
            continue
        if code and math.isfinite(weight):
            weights[code] = weight
    return weights


def parse_numeric(value: Any) -> float:
    """First number found in value, 0 if none."""
    match = _NUMBER_PATTERN.search(str(value or ""))
    return float(match.group(0)) if match else 0.0


def to_facet_map(facet_values: Optional[List[Dict[str, Any]]]) -> Dict[str, Set[str]]:
    """Group facet value ids by facet code."""
    facets: Dict[str, Set[str]] = {}
    for fv in facet_values or []:
        if not isinstance(fv, dict):
            continue
        code = (fv.get("facet") or {}).get("code") or fv.get("code")
        fv_id = fv.get("id")
        if not code or not fv_id:
            continue
        facets.setdefault(code, set()).add(str(fv_id))
    return facets


def _facet_value_name(facet_values: Optional[List[Dict[str, Any]]], facet_code: str) -> str:
    for fv in facet_values or []:
        if isinstance(fv, dict) and (fv.get("facet") or {}).get("code") == facet_code:
            return fv.get("name") or ""
    return ""


def _to_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    return price if math.isfinite(price) else 0.0


@dataclass
class UpsellParams:
    slug: str
    take: int = DEFAULT_TAKE
    facet_codes: List[str] = field(default_factory=lambda: list(DEFAULT_FACET_CODES))
    exclude_product_type: Optional[str] = None
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    min_price_factor: float = DEFAULT_MIN_PRICE_FACTOR


@dataclass
class ScoredCandidate:
    product_id: str
    slug: str
    name: str
    price_with_tax: float
    image: Optional[str]
    score: float


def score_candidate(
    item: Dict[str, Any],
    candidate: Dict[str, Any],
    source_facets: Dict[str, Set[str]],
    base_min_price: float,
    params: UpsellParams,
) -> Optional[float]:
    """
    Score one search hit against the source product.

    Returns None when the candidate is excluded (product type or price floor).
    """
    candidate_facet_values = candidate.get("facetValues") or []

    candidate_type = _facet_value_name(candidate_facet_values, "ProductType")
    if params.exclude_product_type and candidate_type and candidate_type == params.exclude_product_type:
        return None

    weights = params.weights
    candidate_facets = to_facet_map(candidate_facet_values)
    score = 0.0

    for code, weight in weights.items():
        if code in BOOST_KEYS:
            continue
        source_ids = source_facets.get(code)
        candidate_ids = candidate_facets.get(code)
        if source_ids and candidate_ids and source_ids & candidate_ids:
            score += weight or 0

    rank_weight = weights.get("UpsellRank")
    if rank_weight:
        rank_name = _facet_value_name(candidate_facet_values, "UpsellRank")
        if rank_name:
            score += rank_weight * parse_numeric(rank_name)

    price_weight = weights.get("PriceDelta")
    if base_min_price > 0 and price_weight:
        factor = _to_price(item.get("priceWithTax")) / base_min_price
        if params.min_price_factor > 0 and factor < params.min_price_factor:
            return None
        if factor > 1:
            score += price_weight * (factor - 1)

    return score


class UpsellService:
    """
    Upsell recommendations backed by the Vendure Shop API.

    Usage:
        service = UpsellService(VendureShopClient.from_settings(settings))
        result = await service.recommend(UpsellParams(slug="classic-tee"))
    """

    def __init__(self, shop: VendureShopClient):
        self.shop = shop

    async def _fetch_candidate(self, product_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.shop.fetch_candidate(product_id)
        except (VendureAPIError, httpx.HTTPError) as e:
            logger.warning(f"Skipping upsell candidate {product_id}: {e}")
            return None

    async def recommend(self, params: UpsellParams) -> Dict[str, Any]:
        product = await self.shop.fetch_upsell_source(params.slug)
        if not product:
            raise ProductNotFoundError(f"Product not found: {params.slug}")

        facet_values = product.get("facetValues") or []
        source_facets = to_facet_map(facet_values)
        product_type = _facet_value_name(facet_values, "ProductType")

        collection_ids = [str(c["id"]) for c in product.get("collections") or [] if c and c.get("id")]
        facet_value_ids = [
            str(fv["id"]) for fv in facet_values
            if isinstance(fv, dict) and fv.get("id") and (fv.get("facet") or {}).get("code") in params.facet_codes
        ]

        prices = [_to_price((v or {}).get("priceWithTax")) for v in product.get("variants") or []]
        base_min_price = min(prices) if prices else 0.0

        items = await self.shop.search(
            take=params.take + 12,
            facet_value_ids=facet_value_ids,
            collection_ids=collection_ids if not facet_value_ids else None,
        )
        items = [item for item in items if str(item.get("productId")) != str(product.get("id"))]

        pool = items[:min(len(items), max(params.take + 8, 16))]
        candidates = await asyncio.gather(*(self._fetch_candidate(item.get("productId")) for item in pool))

        fallback_image = (product.get("featuredAsset") or {}).get("preview")
        scored: List[ScoredCandidate] = []
        for item, candidate in zip(pool, candidates):
            if not candidate:
                continue
            score = score_candidate(item, candidate, source_facets, base_min_price, params)
            if score is None:
                continue
            candidate_assets = [a for a in candidate.get("assets") or [] if a]
            image = item.get("preview") or (candidate_assets[0].get("preview") if candidate_assets else None)
            scored.append(ScoredCandidate(
                product_id=str(item.get("productId")),
                slug=item.get("slug") or candidate.get("slug") or "",
                name=item.get("productName") or candidate.get("name") or "",
                price_with_tax=_to_price(item.get("priceWithTax")),
                image=image or fallback_image,
                score=score,
            ))

        scored.sort(key=lambda c: (-c.score, c.price_with_tax))

        return {
            "source": "facets-search" if facet_value_ids else "collections-search",
            "product": {
                "id": str(product.get("id")),
                "slug": product.get("slug"),
                "product_type": product_type or None,
                "base_min_price": base_min_price or None,
            },
            "upsells": [
                {
                    "product_id": c.product_id,
                    "slug": c.slug,
                    "name": c.name,
                    "price": c.price_with_tax / 100,
                    "image": c.image,
                    "score": c.score,
                }
                for c in scored[:params.take]
            ],
            "params": {
                "take": params.take,
                "sort": "score",
                "facet_codes": params.facet_codes,
                "exclude_product_type": params.exclude_product_type,
                "weights": params.weights,
                "min_price_factor": params.min_price_factor,
            },
        }

    async def verify_variant(self, product_slug: str, variant_id: str, quantity: int = 1) -> Dict[str, Any]:
        """
        Check that a variant of a product can be added to the cart.

        Raises ProductNotFoundError, InvalidRequestError or OutOfStockError.
        """
        product = await self.shop.fetch_product_variants(product_slug)
        if not product:
            raise ProductNotFoundError(f"Product not found: {product_slug}")

        variant = next(
            (v for v in product.get("variants") or [] if v and str(v.get("id")) == str(variant_id)),
            None,
        )
        if variant is None:
            raise InvalidRequestError("Variant not found on product")

        if variant.get("stockLevel") == OUT_OF_STOCK:
            raise OutOfStockError("Variant out of stock", {"variant_id": str(variant_id)})

        if quantity <= 0:
            raise InvalidRequestError("Quantity must be >= 1")

        return {
            "ok": True,
            "variant": {
                "id": str(variant.get("id")),
                "name": variant.get("name") or "",
                "price": _to_price(variant.get("priceWithTax")) / 100,
            },
        }
