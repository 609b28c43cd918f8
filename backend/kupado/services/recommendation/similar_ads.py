"""
Similar-ads lookup.

Same cache lifecycle as the AI answer cache, but the "compute" step is a
filter query instead of a generation call:
- cache table ``similar_search_cache`` keyed by source ad, 7-day expiry
- candidates: active ads in the same category, priced within +/-30% of the
  source, never the source itself
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from kupado.core.database import Store, get_store
from kupado.core.errors import InvalidRequestError, NotFoundError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_cache_hit, record_cache_miss

logger = get_logger(__name__)

SIMILAR_CACHE_TABLE = "similar_search_cache"
SIMILAR_CACHE_TTL = timedelta(days=7)
PRICE_BAND = (0.7, 1.3)
MATCHING_FEATURES = ["category", "price_range", "location"]


@dataclass
class SimilarAdsResult:
    ads: List[Dict[str, Any]] = field(default_factory=list)
    cached: bool = False


def price_band(price: float) -> tuple[float, float]:
    low, high = PRICE_BAND
    return price * low, price * high


class SimilarAdsService:
    def __init__(
        self,
        store: Store,
        cache_ttl: timedelta = SIMILAR_CACHE_TTL,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.cache_ttl = cache_ttl
        self._clock = clock

    async def find_similar(self, ad_id: Optional[str], limit: int = 6) -> SimilarAdsResult:
        if not ad_id:
            raise InvalidRequestError("adId is required")

        source = await self.store.select_one("ads", eq={"id": ad_id})
        if source is None:
            raise NotFoundError("Ad not found")

        now = self._clock()
        cached = await self.store.select_one(
            SIMILAR_CACHE_TABLE,
            eq={"source_ad_id": ad_id},
            gt={"expires_at": now.isoformat()},
        )
        if cached is not None:
            record_cache_hit("similar_ads")
            ads = await self.store.select(
                "ads",
                in_={"id": cached.get("similar_ad_ids") or []},
                eq={"status": "active"},
                limit=limit,
            )
            return SimilarAdsResult(ads=ads, cached=True)

        record_cache_miss("similar_ads")
        ads = await self.store.select("ads", **self.candidate_filters(source), limit=limit)

        if ads:
            await self._store_similar(ad_id, [ad["id"] for ad in ads], now)

        logger.info("similar_ads_computed", ad_id=ad_id, results_count=len(ads))
        return SimilarAdsResult(ads=ads, cached=False)

    @staticmethod
    def candidate_filters(source: Dict[str, Any]) -> Dict[str, Any]:
        """Store filters selecting candidates similar to ``source``."""
        eq: Dict[str, Any] = {"status": "active"}
        if source.get("category_id"):
            eq["category_id"] = source["category_id"]

        filters: Dict[str, Any] = {"eq": eq, "neq": {"id": source["id"]}}

        price = source.get("price") or 0
        if price > 0:
            low, high = price_band(float(price))
            filters["gte"] = {"price": low}
            filters["lte"] = {"price": high}
        return filters

    async def _store_similar(self, ad_id: str, similar_ids: List[str], now: datetime) -> None:
        values = {
            "similar_ad_ids": similar_ids,
            "matching_features": MATCHING_FEATURES,
            "expires_at": (now + self.cache_ttl).isoformat(),
        }
        existing = await self.store.select_one(SIMILAR_CACHE_TABLE, "id", eq={"source_ad_id": ad_id})
        if existing:
            await self.store.update(SIMILAR_CACHE_TABLE, values, eq={"id": existing["id"]})
        else:
            await self.store.insert(SIMILAR_CACHE_TABLE, {"source_ad_id": ad_id, **values})


def get_similar_ads_service() -> SimilarAdsService:
    return SimilarAdsService(store=get_store())
