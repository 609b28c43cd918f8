"""
AI feature endpoints.

POST /api/ai/generate-description
POST /api/ai/generate-title
POST /api/ai/generate-tags
POST /api/ai/compare-products
POST /api/ai/detect-fraud
POST /api/ai/recommend-price
POST /api/ai/analyze-image
POST /api/ai/suggest-alternatives
POST /api/ai/evaluate-quality
POST /api/ai/semantic-search
POST /api/ai/chat

Every handler lifts the identifiers out of its body and hands the rest to
the orchestrator (or the chat service); required-field checks happen there.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from kupado.core.database import Store, get_store
from kupado.core.logging import get_logger, set_user_id
from kupado.models.requests import (
    AlternativesRequest,
    ChatRequest,
    CompareRequest,
    DescriptionRequest,
    FraudRequest,
    ImageRequest,
    PriceRequest,
    QualityRequest,
    RequestBody,
    SearchRequest,
    TagsRequest,
    TitleRequest,
)
from kupado.models.responses import ChatResponse, GenerationResponse, SearchResponse
from kupado.services.ai.chat import ChatService, get_chat_service
from kupado.services.ai.features import FeatureType
from kupado.services.ai.orchestration import AIOrchestrationService, get_ai_orchestration_service
from kupado.services.ai.schema import GenerationRequest, OrchestrationResult
from kupado.services.ai.search import record_search_query, search_ads

logger = get_logger(__name__)

router = APIRouter()


async def _run(
    service: AIOrchestrationService,
    feature: FeatureType,
    body: RequestBody,
    user_id: Optional[str] = None,
    ad_id: Optional[str] = None,
    category: Optional[str] = None,
) -> OrchestrationResult:
    if user_id:
        set_user_id(user_id)
    request = GenerationRequest(
        payload=body.model_dump(by_alias=True, exclude_none=True),
        user_id=user_id,
        ad_id=ad_id,
        category=category,
    )
    return await service.invoke(feature, request)


def _response(outcome: OrchestrationResult) -> GenerationResponse:
    return GenerationResponse(
        result=outcome.result,
        generation_time=outcome.generation_time_ms,
        cached=outcome.cached,
    )


@router.post("/generate-description", response_model=GenerationResponse)
async def generate_description(
    body: DescriptionRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(service, FeatureType.DESCRIPTION, body, user_id=body.user_id, ad_id=body.ad_id)
    return _response(outcome)


@router.post("/generate-title", response_model=GenerationResponse)
async def generate_title(
    body: TitleRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(service, FeatureType.TITLE, body, user_id=body.user_id, ad_id=body.ad_id)
    return _response(outcome)


@router.post("/generate-tags", response_model=GenerationResponse)
async def generate_tags(
    body: TagsRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(service, FeatureType.TAGS, body, user_id=body.user_id, ad_id=body.ad_id)
    return _response(outcome)


@router.post("/compare-products", response_model=GenerationResponse)
async def compare_products(
    body: CompareRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(
        service, FeatureType.COMPARISON, body, user_id=body.user_id, category=body.category
    )
    return _response(outcome)


@router.post("/detect-fraud", response_model=GenerationResponse)
async def detect_fraud(
    body: FraudRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    # Moderation calls usually omit userId; the ad owner is the subject.
    owner = (body.ad_data or {}).get("user_id")
    user_id = body.user_id or (str(owner) if owner not in (None, "") else None)
    outcome = await _run(service, FeatureType.FRAUD_CHECK, body, user_id=user_id, ad_id=body.ad_id)
    return _response(outcome)


@router.post("/recommend-price", response_model=GenerationResponse)
async def recommend_price(
    body: PriceRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    category = body.category or (body.product_info or {}).get("category")
    outcome = await _run(
        service,
        FeatureType.PRICE_RECOMMENDATION,
        body,
        user_id=body.user_id,
        ad_id=body.ad_id,
        category=category if isinstance(category, str) else None,
    )
    return _response(outcome)


@router.post("/analyze-image", response_model=GenerationResponse)
async def analyze_image(
    body: ImageRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(service, FeatureType.IMAGE_ANALYSIS, body, user_id=body.user_id, ad_id=body.ad_id)
    return _response(outcome)


@router.post("/suggest-alternatives", response_model=GenerationResponse)
async def suggest_alternatives(
    body: AlternativesRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(
        service, FeatureType.ALTERNATIVES, body, user_id=body.user_id, category=body.category
    )
    return _response(outcome)


@router.post("/evaluate-quality", response_model=GenerationResponse)
async def evaluate_quality(
    body: QualityRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
):
    outcome = await _run(
        service, FeatureType.QUALITY_EVALUATION, body, user_id=body.user_id, ad_id=body.ad_id
    )
    return _response(outcome)


@router.post("/semantic-search", response_model=SearchResponse)
async def semantic_search(
    body: SearchRequest,
    service: AIOrchestrationService = Depends(get_ai_orchestration_service),
    store: Store = Depends(get_store),
):
    """
    Interpret a free-text query, then fetch matching active ads.

    Returns the query analysis alongside up to 50 ads and records the search.
    """
    outcome = await _run(service, FeatureType.SEARCH_ANALYSIS, body, user_id=body.user_id)
    ads = await search_ads(store, outcome.result)
    await record_search_query(store, body.query, body.user_id, outcome.result, len(ads))
    return SearchResponse(
        result=outcome.result,
        ads=ads,
        generation_time=outcome.generation_time_ms,
        cached=outcome.cached,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Chat assistant reply; shopping requests also return matching ads."""
    if body.user_id:
        set_user_id(body.user_id)
    reply = await service.reply(
        body.message,
        body.user_id,
        conversation_id=body.conversation_id,
        context_type=body.context_type,
    )
    return ChatResponse(
        response=reply.response,
        conversation_id=reply.conversation_id,
        timestamp=reply.timestamp,
        search_results=reply.search_results,
    )
