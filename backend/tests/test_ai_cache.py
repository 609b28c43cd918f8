"""
Unit tests for the ai_cache helpers.
"""
from datetime import timedelta

import pytest

from conftest import FIXED_NOW
from kupado.core.errors import StoreError
from kupado.services.ai.cache import (
    AI_CACHE_TABLE,
    canonical_json,
    compute_cache_key,
    get_cached_response,
    store_cached_response,
)


def test_cache_key_ignores_dict_key_order():
    a = [{"title": "Bike", "price": 100, "specs": {"gears": 21, "frame": "alu"}}]
    b = [{"specs": {"frame": "alu", "gears": 21}, "price": 100, "title": "Bike"}]

    assert canonical_json(a) == canonical_json(b)
    assert compute_cache_key(a) == compute_cache_key(b)


def test_cache_key_depends_on_list_order_and_values():
    first = [{"id": "1"}, {"id": "2"}]

    assert compute_cache_key(first) != compute_cache_key(list(reversed(first)))
    assert compute_cache_key(first) != compute_cache_key([{"id": "1"}, {"id": "3"}])
    assert len(compute_cache_key(first)) == 32


@pytest.mark.asyncio
async def test_unexpired_entry_is_a_hit_and_bumps_counter(store):
    store.rows(AI_CACHE_TABLE).append(
        {
            "id": "c1",
            "cache_key": "k1",
            "feature_type": "compare_products",
            "cached_response": {"summary": "cached"},
            "expires_at": (FIXED_NOW + timedelta(hours=1)).isoformat(),
        }
    )

    result = await get_cached_response(store, "k1", "compare_products", FIXED_NOW)

    assert result == {"summary": "cached"}
    assert store.calls_to("rpc") == [("rpc", "increment_cache_hit", {"cache_key_param": "k1"})]


@pytest.mark.asyncio
async def test_expired_or_foreign_entries_are_misses(store):
    store.rows(AI_CACHE_TABLE).extend(
        [
            {
                "id": "expired",
                "cache_key": "k1",
                "feature_type": "compare_products",
                "cached_response": {"summary": "old"},
                "expires_at": FIXED_NOW.isoformat(),
            },
            {
                "id": "other-feature",
                "cache_key": "k1",
                "feature_type": "similar_ads",
                "cached_response": {"summary": "other"},
                "expires_at": (FIXED_NOW + timedelta(days=1)).isoformat(),
            },
        ]
    )

    assert await get_cached_response(store, "k1", "compare_products", FIXED_NOW) is None
    assert store.calls_to("rpc") == []


@pytest.mark.asyncio
async def test_hit_survives_counter_failure(store):
    store.rows(AI_CACHE_TABLE).append(
        {
            "id": "c1",
            "cache_key": "k1",
            "feature_type": "compare_products",
            "cached_response": {"summary": "cached"},
            "expires_at": (FIXED_NOW + timedelta(hours=1)).isoformat(),
        }
    )
    store.fail_on[("rpc", "increment_cache_hit")] = StoreError("rpc missing")

    assert await get_cached_response(store, "k1", "compare_products", FIXED_NOW) == {"summary": "cached"}


@pytest.mark.asyncio
async def test_store_inserts_then_refreshes_in_place(store):
    await store_cached_response(store, "k1", "compare_products", {"v": 1}, FIXED_NOW)

    rows = store.rows(AI_CACHE_TABLE)
    assert len(rows) == 1
    assert rows[0]["input_hash"] == "k1"
    assert rows[0]["hit_count"] == 0
    assert rows[0]["expires_at"] == (FIXED_NOW + timedelta(days=7)).isoformat()

    rows[0]["hit_count"] = 5
    later = FIXED_NOW + timedelta(days=10)
    await store_cached_response(store, "k1", "compare_products", {"v": 2}, later, ttl=timedelta(days=1))

    rows = store.rows(AI_CACHE_TABLE)
    assert len(rows) == 1
    assert rows[0]["cached_response"] == {"v": 2}
    assert rows[0]["hit_count"] == 0
    assert rows[0]["expires_at"] == (later + timedelta(days=1)).isoformat()
