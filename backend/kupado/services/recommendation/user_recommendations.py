"""
Per-user ad recommendations.

Unexpired rows in ``ai_recommendations`` are served as-is. Otherwise the
``generate_user_recommendations`` RPC scores candidates in the database and
the rows it returns are stored for reuse.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from kupado.core.database import Store, get_store
from kupado.core.errors import InvalidRequestError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_cache_hit, record_cache_miss

logger = get_logger(__name__)

RECOMMENDATIONS_TABLE = "ai_recommendations"
RECOMMENDATIONS_TTL = timedelta(days=7)


@dataclass
class RecommendationsResult:
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    cached: bool = False


class UserRecommendationService:
    def __init__(
        self,
        store: Store,
        ttl: timedelta = RECOMMENDATIONS_TTL,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.ttl = ttl
        self._clock = clock

    async def get_recommendations(self, user_id: Optional[str], limit: int = 10) -> RecommendationsResult:
        if not user_id:
            raise InvalidRequestError("userId is required")

        now = self._clock()
        existing = await self.store.select(
            RECOMMENDATIONS_TABLE,
            "*, ads(*)",
            eq={"user_id": user_id},
            gt={"expires_at": now.isoformat()},
            order_by="score",
            descending=True,
            limit=limit,
        )
        if existing:
            record_cache_hit("recommendations")
            return RecommendationsResult(recommendations=existing, cached=True)

        record_cache_miss("recommendations")
        generated = await self.store.rpc(
            "generate_user_recommendations",
            {"user_id_param": user_id, "limit_count": limit},
        )
        if not generated:
            logger.info("recommendations_empty", user_id=user_id)
            return RecommendationsResult()

        expires_at = (now + self.ttl).isoformat()
        rows = [
            {
                "user_id": user_id,
                "recommended_ad_id": rec["ad_id"],
                "recommendation_type": rec.get("recommendation_type"),
                "score": rec.get("score"),
                "reasoning": rec.get("reasoning"),
                "expires_at": expires_at,
            }
            for rec in generated
        ]
        await self.store.insert(RECOMMENDATIONS_TABLE, rows)

        stored = await self.store.select(
            RECOMMENDATIONS_TABLE,
            "*, ads(*)",
            eq={"user_id": user_id},
            in_={"recommended_ad_id": [row["recommended_ad_id"] for row in rows]},
            order_by="score",
            descending=True,
        )
        logger.info("recommendations_generated", user_id=user_id, results_count=len(rows))
        return RecommendationsResult(recommendations=stored or rows, cached=False)

    async def record_interaction(self, recommendation_id: Optional[str], interacted: bool) -> None:
        if not recommendation_id:
            raise InvalidRequestError("recommendationId is required")
        await self.store.update(
            RECOMMENDATIONS_TABLE,
            {"user_interacted": interacted},
            eq={"id": recommendation_id},
        )


def get_user_recommendation_service() -> UserRecommendationService:
    return UserRecommendationService(store=get_store())
