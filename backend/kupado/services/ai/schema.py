"""
Pydantic models for AI feature outputs and orchestrator envelopes.

Provider JSON uses camelCase keys (that is also what the web client reads),
so every output model is declared in snake_case with a camelCase alias and
dumped ``by_alias``.
"""
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DescriptionOutput(CamelModel):
    description: str = Field(..., min_length=1)


class TitleOutput(CamelModel):
    titles: List[str] = Field(..., min_length=1)


class TagsOutput(CamelModel):
    tags: List[str]
    category_keywords: List[str] = Field(default_factory=list)
    search_keywords: List[str] = Field(default_factory=list)
    confidence_scores: Dict[str, float] = Field(default_factory=dict)


class ComparisonDetails(CamelModel):
    specifications: str
    price_value: str
    condition: str


class ComparisonRecommendation(CamelModel):
    best_choice: int = Field(..., ge=0, description="Index into the compared products")
    reasoning: str


class ProductSuitability(CamelModel):
    product_index: int = Field(..., ge=0)
    suitable_for: str


class ComparisonOutput(CamelModel):
    summary: str
    comparison: ComparisonDetails
    recommendation: ComparisonRecommendation
    suitability: List[ProductSuitability] = Field(default_factory=list)


class PriceRange(CamelModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)


class PriceRecommendationOutput(CamelModel):
    recommended_price: float = Field(..., ge=0)
    price_range: PriceRange
    market_analysis: str
    reasoning: str
    competitiveness: Literal["low", "medium", "high"]

    @field_validator("competitiveness", mode="before")
    @classmethod
    def normalize_competitiveness(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class FraudAnalysisOutput(CamelModel):
    """
    Fraud assessment of a single ad.

    riskScore is 0-100 where 100 is the highest risk.
    """

    risk_score: float = Field(..., ge=0, le=100)
    risk_level: Literal["low", "medium", "high", "critical"]
    detected_patterns: List[str] = Field(default_factory=list)
    suspicious_indicators: List[str] = Field(default_factory=list)
    reasoning: str = ""
    recommendations: List[str] = Field(default_factory=list)

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class ImageAnalysisOutput(CamelModel):
    description: str
    category: str = ""
    characteristics: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    quality_score: int = Field(..., ge=0, le=100)
    resolution_score: int = Field(..., ge=0, le=100)
    lighting_score: int = Field(..., ge=0, le=100)
    composition_score: int = Field(..., ge=0, le=100)
    detected_objects: List[str] = Field(default_factory=list)
    suggested_improvements: List[str] = Field(default_factory=list)
    is_appropriate: bool = True


class Alternative(CamelModel):
    brand: str
    model: str
    differences: str
    why: str
    price_range: str


class AlternativesOutput(CamelModel):
    alternatives: List[Alternative]


class QualityBreakdown(CamelModel):
    description: int = Field(..., ge=0, le=30)
    photos: int = Field(..., ge=0, le=25)
    specifications: int = Field(..., ge=0, le=25)
    pricing: int = Field(..., ge=0, le=20)


class QualityEvaluationOutput(CamelModel):
    total_score: int = Field(..., ge=0, le=100)
    breakdown: QualityBreakdown
    suggestions: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class ExtractedFilters(CamelModel):
    category: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    location: Optional[str] = None
    condition: Optional[str] = None
    brand: Optional[str] = None


class SearchAnalysisOutput(CamelModel):
    processed_query: str
    extracted_filters: ExtractedFilters = Field(default_factory=ExtractedFilters)
    suggested_terms: List[str] = Field(default_factory=list)
    semantic_expansion: List[str] = Field(default_factory=list)
    intent: Literal["buy", "sell", "compare", "research"] = "buy"


class GenerationRequest(BaseModel):
    """
    Input to one orchestrator invocation.

    ``payload`` holds the request body as the client sent it (camelCase
    keys); the identifiers are lifted out so sinks and usage logs do not
    have to know each route's body shape.
    """

    payload: Dict[str, Any] = Field(default_factory=dict)
    ad_id: Optional[str] = None
    user_id: Optional[str] = None
    category: Optional[str] = None


class OrchestrationResult(BaseModel):
    feature: str
    result: Dict[str, Any]
    generation_time_ms: int = 0
    cached: bool = False


class SchemaValidationError(Exception):
    """Raised when provider (or cached) output fails schema validation."""

    def __init__(self, feature: str, message: str, raw_output: Optional[Any] = None):
        super().__init__(message)
        self.feature = feature
        self.raw_output = raw_output


def validate_output(feature: str, model: Type[BaseModel], payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a provider payload and return it normalized.

    Raises:
        SchemaValidationError if the payload does not match ``model``.
    """
    try:
        return model.model_validate(payload).model_dump(by_alias=True)
    except ValidationError as exc:
        raise SchemaValidationError(
            feature=feature,
            message=f"Invalid {feature} payload: {exc}",
            raw_output=payload,
        ) from exc
