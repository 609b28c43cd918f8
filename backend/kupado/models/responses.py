"""
Response models for API endpoints.

These models define the structure of API responses. Keys are camelCase on
the wire.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ResponseBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationResponse(ResponseBody):
    """Result of one AI feature invocation."""
    result: Dict[str, Any]
    generation_time: int = 0
    cached: bool = False


class SearchResponse(GenerationResponse):
    ads: List[Dict[str, Any]] = []


class ChatResponse(ResponseBody):
    response: str
    conversation_id: Optional[str] = None
    timestamp: str
    search_results: Optional[List[Dict[str, Any]]] = None


class SimilarAdsResponse(ResponseBody):
    similar_ads: List[Dict[str, Any]]
    cached: bool = False


class RecommendationsResponse(ResponseBody):
    recommendations: List[Dict[str, Any]]
    cached: bool = False


class SuccessResponse(ResponseBody):
    success: bool = True


class CheckoutResponse(ResponseBody):
    session_id: str
