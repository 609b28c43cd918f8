"""
Unit tests for UserRecommendationService.
"""
from datetime import timedelta

import pytest

from conftest import FIXED_NOW, InMemoryStore
from kupado.core.errors import InvalidRequestError
from kupado.services.recommendation.user_recommendations import (
    RECOMMENDATIONS_TABLE,
    UserRecommendationService,
)


def make_service(store):
    return UserRecommendationService(store, clock=lambda: FIXED_NOW)


@pytest.mark.asyncio
async def test_unexpired_rows_are_returned_by_score():
    future = (FIXED_NOW + timedelta(days=2)).isoformat()
    store = InMemoryStore(
        {
            RECOMMENDATIONS_TABLE: [
                {"id": "r1", "user_id": "u1", "recommended_ad_id": "a1", "score": 0.4, "expires_at": future},
                {"id": "r2", "user_id": "u1", "recommended_ad_id": "a2", "score": 0.9, "expires_at": future},
                {"id": "r3", "user_id": "u2", "recommended_ad_id": "a3", "score": 1.0, "expires_at": future},
            ]
        }
    )

    result = await make_service(store).get_recommendations("u1", limit=10)

    assert result.cached is True
    assert [r["id"] for r in result.recommendations] == ["r2", "r1"]
    assert store.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_generates_and_stores_when_nothing_is_fresh():
    store = InMemoryStore(
        {
            RECOMMENDATIONS_TABLE: [
                {
                    "id": "stale",
                    "user_id": "u1",
                    "recommended_ad_id": "a0",
                    "score": 0.99,
                    "expires_at": (FIXED_NOW - timedelta(hours=1)).isoformat(),
                }
            ]
        }
    )
    store.rpc_handlers["generate_user_recommendations"] = lambda params: [
        {"ad_id": "a1", "recommendation_type": "category", "score": 0.5, "reasoning": "Same category"},
        {"ad_id": "a2", "recommendation_type": "price", "score": 0.8, "reasoning": "Similar price"},
    ]

    result = await make_service(store).get_recommendations("u1", limit=5)

    assert result.cached is False
    assert [r["recommended_ad_id"] for r in result.recommendations] == ["a2", "a1"]
    assert store.calls_to("rpc") == [
        ("rpc", "generate_user_recommendations", {"user_id_param": "u1", "limit_count": 5})
    ]
    inserted = store.calls_to("insert", RECOMMENDATIONS_TABLE)[0][2]
    assert all(row["expires_at"] == (FIXED_NOW + timedelta(days=7)).isoformat() for row in inserted)
    assert all(row["user_id"] == "u1" for row in inserted)


@pytest.mark.asyncio
async def test_empty_generation_returns_nothing(store):
    store.rpc_handlers["generate_user_recommendations"] = lambda params: []

    result = await make_service(store).get_recommendations("u1")

    assert result.recommendations == []
    assert store.calls_to("insert") == []


@pytest.mark.asyncio
async def test_missing_user_is_invalid(store):
    with pytest.raises(InvalidRequestError):
        await make_service(store).get_recommendations("")
    assert store.calls == []


@pytest.mark.asyncio
async def test_record_interaction_updates_row():
    store = InMemoryStore({RECOMMENDATIONS_TABLE: [{"id": "r1", "user_interacted": False}]})

    await make_service(store).record_interaction("r1", True)

    assert store.rows(RECOMMENDATIONS_TABLE)[0]["user_interacted"] is True


@pytest.mark.asyncio
async def test_record_interaction_requires_id(store):
    with pytest.raises(InvalidRequestError):
        await make_service(store).record_interaction(None, True)
