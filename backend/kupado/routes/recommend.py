"""
Similar-ads and per-user recommendation endpoints.

GET  /api/ai/similar-ads?adId={id}&limit={int}
GET  /api/ai/recommendations?userId={id}&limit={int}
POST /api/ai/recommendations
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from kupado.core.logging import get_logger, set_user_id
from kupado.models.requests import InteractionRequest
from kupado.models.responses import RecommendationsResponse, SimilarAdsResponse, SuccessResponse
from kupado.services.recommendation.similar_ads import SimilarAdsService, get_similar_ads_service
from kupado.services.recommendation.user_recommendations import (
    UserRecommendationService,
    get_user_recommendation_service,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/similar-ads", response_model=SimilarAdsResponse)
async def similar_ads(
    ad_id: Optional[str] = Query(None, alias="adId", description="Source ad ID"),
    limit: int = Query(6, ge=1, le=50, description="Number of similar ads to return"),
    service: SimilarAdsService = Depends(get_similar_ads_service),
):
    result = await service.find_similar(ad_id, limit=limit)
    return SimilarAdsResponse(similar_ads=result.ads, cached=result.cached)


@router.get("/recommendations", response_model=RecommendationsResponse)
async def recommendations(
    user_id: Optional[str] = Query(None, alias="userId", description="User ID"),
    limit: int = Query(10, ge=1, le=100, description="Number of recommendations to return"),
    service: UserRecommendationService = Depends(get_user_recommendation_service),
):
    if user_id:
        set_user_id(user_id)
    result = await service.get_recommendations(user_id, limit=limit)
    return RecommendationsResponse(recommendations=result.recommendations, cached=result.cached)


@router.post("/recommendations", response_model=SuccessResponse)
async def record_interaction(
    body: InteractionRequest,
    service: UserRecommendationService = Depends(get_user_recommendation_service),
):
    await service.record_interaction(body.recommendation_id, body.interacted)
    return SuccessResponse(success=True)
