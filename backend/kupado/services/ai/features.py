"""
AI feature registry.

Each marketplace AI feature is one ``FeatureDefinition``: which provider
answers it, the prompt, the example output shape embedded in that prompt,
the pydantic model validating the answer, which request fields are required,
whether (and on what input) answers are cached, and where results are kept.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from kupado.core.errors import InvalidRequestError
from kupado.services.ai import persistence, prompts
from kupado.services.ai.schema import (
    AlternativesOutput,
    ComparisonOutput,
    DescriptionOutput,
    FraudAnalysisOutput,
    GenerationRequest,
    ImageAnalysisOutput,
    PriceRecommendationOutput,
    QualityEvaluationOutput,
    SearchAnalysisOutput,
    TagsOutput,
    TitleOutput,
)


class FeatureType(str, Enum):
    DESCRIPTION = "description"
    TITLE = "title"
    TAGS = "tags"
    COMPARISON = "comparison"
    PRICE_RECOMMENDATION = "price_recommendation"
    FRAUD_CHECK = "fraud_check"
    IMAGE_ANALYSIS = "image_analysis"
    ALTERNATIVES = "alternatives"
    QUALITY_EVALUATION = "quality_evaluation"
    SEARCH_ANALYSIS = "search_analysis"


Validator = Callable[[GenerationRequest], None]


def _is_object(value: Any) -> bool:
    return isinstance(value, dict)


def require(*objects: str, user: bool = False) -> Validator:
    """Validator for features that need JSON-object fields and, optionally, a user."""

    def check(request: GenerationRequest) -> None:
        missing = [name for name in objects if not _is_object(request.payload.get(name))]
        if user and not request.user_id:
            missing.append("userId")
        if missing:
            verb = "is" if len(missing) == 1 else "are"
            raise InvalidRequestError(f"{' and '.join(missing)} {verb} required")

    return check


def _validate_comparison(request: GenerationRequest) -> None:
    products = request.payload.get("products")
    if not isinstance(products, list) or len(products) < 2:
        raise InvalidRequestError("At least 2 products are required for comparison")


def _validate_image(request: GenerationRequest) -> None:
    if not (request.payload.get("image") or request.payload.get("imageUrl")):
        raise InvalidRequestError("image or imageUrl is required")


def _validate_alternatives(request: GenerationRequest) -> None:
    if not _is_object(request.payload.get("product")) or not request.category:
        raise InvalidRequestError("product and category are required")


def _validate_search(request: GenerationRequest) -> None:
    query = request.payload.get("query")
    if not isinstance(query, str) or not query.strip():
        raise InvalidRequestError("query is required")


@dataclass(frozen=True)
class FeatureDefinition:
    feature: FeatureType
    provider: str
    usage_label: str
    output_model: Type[BaseModel]
    output_schema: Dict[str, Any]
    build_prompt: Callable[[GenerationRequest], str]
    validate: Validator
    sink: Optional[persistence.ResultSink] = None
    cache_input: Optional[Callable[[GenerationRequest], Any]] = None
    cache_label: Optional[str] = None
    images: Callable[[GenerationRequest], List[str]] = field(default=lambda request: [])
    usage_metadata: Callable[[GenerationRequest], Optional[Dict[str, Any]]] = field(default=lambda request: None)

    @property
    def is_cacheable(self) -> bool:
        return self.cache_input is not None


FEATURES: Dict[FeatureType, FeatureDefinition] = {
    FeatureType.DESCRIPTION: FeatureDefinition(
        feature=FeatureType.DESCRIPTION,
        provider="gemini",
        usage_label="generate_description",
        output_model=DescriptionOutput,
        output_schema={"description": "string"},
        build_prompt=lambda r: prompts.ad_description(r.payload["productInfo"]),
        validate=require("productInfo", user=True),
        sink=persistence.GENERATED_CONTENT_DESCRIPTION,
    ),
    FeatureType.TITLE: FeatureDefinition(
        feature=FeatureType.TITLE,
        provider="gemini",
        usage_label="generate_title",
        output_model=TitleOutput,
        output_schema={"titles": ["string", "string", "string"]},
        build_prompt=lambda r: prompts.ad_titles(r.payload["productInfo"]),
        validate=require("productInfo", user=True),
        sink=persistence.GENERATED_CONTENT_TITLE,
    ),
    FeatureType.TAGS: FeatureDefinition(
        feature=FeatureType.TAGS,
        provider="gemini",
        usage_label="auto_tagging",
        output_model=TagsOutput,
        output_schema={
            "tags": ["tag1", "tag2"],
            "categoryKeywords": ["keyword1", "keyword2"],
            "searchKeywords": ["search1", "search2"],
            "confidenceScores": {"tag1": 0.95, "tag2": 0.87},
        },
        build_prompt=lambda r: prompts.ad_tags(r.payload["adData"]),
        validate=require("adData"),
        sink=persistence.AUTO_TAGS,
    ),
    FeatureType.COMPARISON: FeatureDefinition(
        feature=FeatureType.COMPARISON,
        provider="gemini",
        usage_label="compare_products",
        output_model=ComparisonOutput,
        output_schema={
            "summary": "string",
            "comparison": {"specifications": "string", "priceValue": "string", "condition": "string"},
            "recommendation": {"bestChoice": 0, "reasoning": "string"},
            "suitability": [{"productIndex": 0, "suitableFor": "string"}],
        },
        build_prompt=lambda r: prompts.product_comparison(r.payload["products"]),
        validate=_validate_comparison,
        sink=persistence.COMPARISONS,
        cache_input=lambda r: r.payload["products"],
        cache_label="compare_products",
        usage_metadata=lambda r: {"product_count": len(r.payload["products"])},
    ),
    FeatureType.PRICE_RECOMMENDATION: FeatureDefinition(
        feature=FeatureType.PRICE_RECOMMENDATION,
        provider="claude",
        usage_label="recommend_price",
        output_model=PriceRecommendationOutput,
        output_schema={
            "recommendedPrice": 0,
            "priceRange": {"min": 0, "max": 0},
            "marketAnalysis": "string",
            "reasoning": "string",
            "competitiveness": "medium",
        },
        build_prompt=lambda r: prompts.price_recommendation(
            r.payload["productInfo"], r.payload.get("similarProducts") or []
        ),
        validate=require("productInfo"),
        sink=persistence.PRICE_ANALYSIS,
    ),
    FeatureType.FRAUD_CHECK: FeatureDefinition(
        feature=FeatureType.FRAUD_CHECK,
        provider="gemini",
        usage_label="fraud_detection",
        output_model=FraudAnalysisOutput,
        output_schema={
            "riskScore": 0,
            "riskLevel": "low",
            "detectedPatterns": ["pattern1"],
            "suspiciousIndicators": ["indicator1"],
            "reasoning": "string",
            "recommendations": ["recommendation1"],
        },
        build_prompt=lambda r: prompts.fraud_check(r.payload["adData"]),
        validate=require("adData"),
        sink=persistence.FRAUD_DETECTION,
    ),
    FeatureType.IMAGE_ANALYSIS: FeatureDefinition(
        feature=FeatureType.IMAGE_ANALYSIS,
        provider="claude",
        usage_label="image_analysis",
        output_model=ImageAnalysisOutput,
        output_schema={
            "description": "string",
            "category": "string",
            "characteristics": ["string"],
            "keywords": ["string"],
            "qualityScore": 80,
            "resolutionScore": 85,
            "lightingScore": 80,
            "compositionScore": 75,
            "detectedObjects": ["string"],
            "suggestedImprovements": ["string"],
            "isAppropriate": True,
        },
        build_prompt=lambda r: prompts.image_analysis(),
        validate=_validate_image,
        sink=persistence.IMAGE_ANALYSIS,
        images=lambda r: [r.payload.get("image") or r.payload["imageUrl"]],
    ),
    FeatureType.ALTERNATIVES: FeatureDefinition(
        feature=FeatureType.ALTERNATIVES,
        provider="gemini",
        usage_label="suggest_alternatives",
        output_model=AlternativesOutput,
        output_schema={
            "alternatives": [
                {
                    "brand": "string",
                    "model": "string",
                    "differences": "string",
                    "why": "string",
                    "priceRange": "string",
                }
            ]
        },
        build_prompt=lambda r: prompts.alternatives(r.payload["product"], r.category or ""),
        validate=_validate_alternatives,
    ),
    FeatureType.QUALITY_EVALUATION: FeatureDefinition(
        feature=FeatureType.QUALITY_EVALUATION,
        provider="gemini",
        usage_label="evaluate_quality",
        output_model=QualityEvaluationOutput,
        output_schema={
            "totalScore": 85,
            "breakdown": {"description": 25, "photos": 20, "specifications": 22, "pricing": 18},
            "suggestions": ["string"],
            "strengths": ["string"],
            "weaknesses": ["string"],
        },
        build_prompt=lambda r: prompts.quality_evaluation(r.payload["adData"]),
        validate=require("adData", user=True),
        sink=persistence.QUALITY_SCORES,
    ),
    FeatureType.SEARCH_ANALYSIS: FeatureDefinition(
        feature=FeatureType.SEARCH_ANALYSIS,
        provider="claude",
        usage_label="semantic_search",
        output_model=SearchAnalysisOutput,
        output_schema={
            "processedQuery": "string",
            "extractedFilters": {
                "category": "string",
                "priceMin": 0,
                "priceMax": 10000,
                "location": "string",
                "condition": "string",
                "brand": "string",
            },
            "suggestedTerms": ["string"],
            "semanticExpansion": ["string"],
            "intent": "buy",
        },
        build_prompt=lambda r: prompts.search_analysis(r.payload["query"].strip()),
        validate=_validate_search,
    ),
}
