"""
Ad lookup driven by a search_analysis result.

The LLM only interprets the query; matching ads are fetched with plain store
filters, and every search is recorded in ``ai_search_queries``.
"""
from typing import Any, Dict, List, Optional

from kupado.core.database import Store
from kupado.core.logging import get_logger

logger = get_logger(__name__)

SEARCH_QUERIES_TABLE = "ai_search_queries"
SEARCH_RESULT_LIMIT = 50


async def search_ads(store: Store, analysis: Dict[str, Any], limit: int = SEARCH_RESULT_LIMIT) -> List[Dict[str, Any]]:
    """Active ads matching the processed query, price bounds and location."""
    filters = analysis.get("extractedFilters") or {}
    gte: Dict[str, Any] = {}
    lte: Dict[str, Any] = {}
    if filters.get("priceMin") is not None:
        gte["price"] = filters["priceMin"]
    if filters.get("priceMax") is not None:
        lte["price"] = filters["priceMax"]

    location = filters.get("location")
    ilike = {"location": location.strip()} if isinstance(location, str) and location.strip() else None

    term = (analysis.get("processedQuery") or "").strip()
    ads = await store.select(
        "ads",
        eq={"status": "active"},
        gte=gte or None,
        lte=lte or None,
        ilike_any=(["title", "description"], term) if term else None,
        ilike=ilike,
        limit=limit,
    )
    logger.info("semantic_search_ads_found", query=term, results_count=len(ads))
    return ads


async def record_search_query(
    store: Store,
    query: str,
    user_id: Optional[str],
    analysis: Dict[str, Any],
    results_count: int,
) -> None:
    await store.insert(
        SEARCH_QUERIES_TABLE,
        {
            "user_id": user_id or None,
            "original_query": query,
            "processed_query": analysis.get("processedQuery"),
            "extracted_filters": analysis.get("extractedFilters") or {},
            "suggested_terms": analysis.get("suggestedTerms") or [],
            "semantic_expansion": analysis.get("semanticExpansion") or [],
            "results_count": results_count,
        },
    )
