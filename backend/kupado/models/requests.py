"""
Request bodies for the API endpoints.

Fields are optional at the pydantic layer: required-field checks belong to
the services so a missing field is a 400 with a specific message rather than
a generic validation error.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class DescriptionRequest(RequestBody):
    product_info: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    ad_id: Optional[str] = None


class TitleRequest(RequestBody):
    product_info: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    ad_id: Optional[str] = None


class TagsRequest(RequestBody):
    ad_data: Optional[Dict[str, Any]] = None
    ad_id: Optional[str] = None
    user_id: Optional[str] = None


class CompareRequest(RequestBody):
    products: Optional[List[Dict[str, Any]]] = None
    user_id: Optional[str] = None
    category: Optional[str] = None


class FraudRequest(RequestBody):
    ad_data: Optional[Dict[str, Any]] = None
    ad_id: Optional[str] = None
    user_id: Optional[str] = None


class PriceRequest(RequestBody):
    product_info: Optional[Dict[str, Any]] = None
    similar_products: Optional[List[Dict[str, Any]]] = None
    category: Optional[str] = None
    user_id: Optional[str] = None
    ad_id: Optional[str] = None


class ImageRequest(RequestBody):
    image: Optional[str] = None
    image_url: Optional[str] = None
    ad_id: Optional[str] = None
    user_id: Optional[str] = None


class AlternativesRequest(RequestBody):
    product: Optional[Dict[str, Any]] = None
    category: Optional[str] = None
    user_id: Optional[str] = None


class QualityRequest(RequestBody):
    ad_data: Optional[Dict[str, Any]] = None
    ad_id: Optional[str] = None
    user_id: Optional[str] = None


class SearchRequest(RequestBody):
    query: Optional[str] = None
    user_id: Optional[str] = None


class ChatRequest(RequestBody):
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    context_type: str = "general"


class InteractionRequest(RequestBody):
    recommendation_id: Optional[str] = None
    interacted: bool = True


class CheckoutRequest(RequestBody):
    package_id: Optional[str] = None
    user_id: Optional[str] = None
    coins: Optional[int] = None
    bonus_coins: Optional[int] = 0
    price: Optional[float] = None
