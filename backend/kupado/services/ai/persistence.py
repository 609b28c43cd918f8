"""
Feature result records.

Every AI feature that keeps a record of its output describes it with a
``ResultSink``: the table, how a row is built from (request, result), when a
row is written at all, and whether the table holds a single current row per
ad (``upsert_key``) or an append-only history.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from kupado.core.database import Store
from kupado.core.logging import get_logger
from kupado.services.ai.schema import GenerationRequest

logger = get_logger(__name__)

RowBuilder = Callable[[GenerationRequest, Dict[str, Any], int], Dict[str, Any]]


def _always(request: GenerationRequest) -> bool:
    return True


def _has_ad_id(request: GenerationRequest) -> bool:
    return bool(request.ad_id)


def _has_user_id(request: GenerationRequest) -> bool:
    return bool(request.user_id)


@dataclass(frozen=True)
class ResultSink:
    table: str
    build_row: RowBuilder
    applies: Callable[[GenerationRequest], bool] = _always
    upsert_key: Optional[str] = None
    touch_on_update: bool = False

    async def write(
        self,
        store: Store,
        request: GenerationRequest,
        result: Dict[str, Any],
        generation_time_ms: int,
    ) -> Optional[str]:
        """
        Persist one result.

        Returns:
            "inserted", "updated", or None when the sink does not apply to
            this request (e.g. tags generated for an ad that is not saved yet).
        """
        if not self.applies(request):
            return None

        row = self.build_row(request, result, generation_time_ms)

        if self.upsert_key:
            key_value = row[self.upsert_key]
            existing = await store.select_one(self.table, "id", eq={self.upsert_key: key_value})
            if existing:
                values = {k: v for k, v in row.items() if k != self.upsert_key}
                if self.touch_on_update:
                    values["updated_at"] = datetime.now(timezone.utc).isoformat()
                await store.update(self.table, values, eq={self.upsert_key: key_value})
                logger.debug("feature_result_updated", table=self.table, key=key_value)
                return "updated"

        await store.insert(self.table, row)
        logger.debug("feature_result_inserted", table=self.table)
        return "inserted"


def is_flagged_for_review(risk_level: str) -> bool:
    return risk_level in ("high", "critical")


def description_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    return {
        "user_id": request.user_id,
        "content_type": "description",
        "generated_text": result["description"],
        "input_data": request.payload.get("productInfo"),
        "generation_time_ms": generation_time_ms,
    }


def title_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    return {
        "user_id": request.user_id,
        "content_type": "title",
        "generated_text": json.dumps(result["titles"], ensure_ascii=False),
        "input_data": request.payload.get("productInfo"),
        "generation_time_ms": generation_time_ms,
    }


def tags_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    return {
        "ad_id": request.ad_id,
        "generated_tags": result["tags"],
        "category_keywords": result["categoryKeywords"],
        "search_keywords": result["searchKeywords"],
        "confidence_scores": result["confidenceScores"],
    }


def comparison_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    products = request.payload.get("products") or []
    return {
        "user_id": request.user_id,
        "ad_ids": [product.get("id") for product in products if isinstance(product, dict)],
        "category": request.category or "general",
        "comparison_data": result,
        "summary": result["summary"],
        "best_choice": result["recommendation"]["bestChoice"],
        "recommendation_reasoning": result["recommendation"]["reasoning"],
    }


def price_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    similar = request.payload.get("similarProducts") or []
    return {
        "ad_id": request.ad_id,
        "user_id": request.user_id,
        "category": request.category or "general",
        "recommended_price": result["recommendedPrice"],
        "price_range_min": result["priceRange"]["min"],
        "price_range_max": result["priceRange"]["max"],
        "market_analysis": result["marketAnalysis"],
        "reasoning": result["reasoning"],
        "competitiveness": result["competitiveness"],
        "similar_products_analyzed": len(similar),
    }


def fraud_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    flagged = is_flagged_for_review(result["riskLevel"])
    return {
        "ad_id": request.ad_id,
        "risk_score": result["riskScore"],
        "risk_level": result["riskLevel"],
        "detected_patterns": result["detectedPatterns"],
        "suspicious_indicators": result["suspiciousIndicators"],
        "flagged_for_review": flagged,
        "review_status": "pending" if flagged else "approved",
    }


def image_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    return {
        "ad_id": request.ad_id,
        "image_url": request.payload.get("imageUrl"),
        "quality_score": result["qualityScore"],
        "resolution_score": result["resolutionScore"],
        "lighting_score": result["lightingScore"],
        "composition_score": result["compositionScore"],
        "detected_objects": result["detectedObjects"],
        "suggested_improvements": result["suggestedImprovements"],
        "is_appropriate": result["isAppropriate"],
    }


def quality_row(request: GenerationRequest, result: Dict[str, Any], generation_time_ms: int) -> Dict[str, Any]:
    breakdown = result["breakdown"]
    return {
        "ad_id": request.ad_id,
        "user_id": request.user_id,
        "total_score": result["totalScore"],
        "description_score": breakdown["description"],
        "photos_score": breakdown["photos"],
        "specifications_score": breakdown["specifications"],
        "pricing_score": breakdown["pricing"],
        "suggestions": result["suggestions"],
        "strengths": result["strengths"],
        "weaknesses": result["weaknesses"],
    }


GENERATED_CONTENT_DESCRIPTION = ResultSink("ai_generated_content", description_row)
GENERATED_CONTENT_TITLE = ResultSink("ai_generated_content", title_row)
AUTO_TAGS = ResultSink("ai_auto_tags", tags_row, applies=_has_ad_id, upsert_key="ad_id")
COMPARISONS = ResultSink("ai_comparisons", comparison_row)
PRICE_ANALYSIS = ResultSink("price_analysis", price_row, applies=_has_user_id)
FRAUD_DETECTION = ResultSink("ai_fraud_detection", fraud_row, applies=_has_ad_id)
IMAGE_ANALYSIS = ResultSink("ai_image_analysis", image_row, applies=_has_ad_id)
QUALITY_SCORES = ResultSink(
    "ad_quality_scores",
    quality_row,
    applies=_has_ad_id,
    upsert_key="ad_id",
    touch_on_update=True,
)
