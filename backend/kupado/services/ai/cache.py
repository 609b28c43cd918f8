"""
Content-addressed cache for AI answers.

Entries live in the ``ai_cache`` table:
- cache_key / input_hash: MD5 of the canonical JSON of the relevant input
- feature_type: cache namespace (e.g. ``compare_products``)
- cached_response: the validated provider answer
- hit_count: bumped through the ``increment_cache_hit`` RPC
- expires_at: entries are valid while ``expires_at > now``

An expired entry is refreshed in place, so there is at most one row per
(cache_key, feature_type).
"""
import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from kupado.core.database import Store
from kupado.core.errors import StoreError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_cache_hit, record_cache_miss

logger = get_logger(__name__)

AI_CACHE_TABLE = "ai_cache"
DEFAULT_CACHE_TTL = timedelta(days=7)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_cache_key(value: Any) -> str:
    """Stable key for ``value``; dict key order does not change the key."""
    return hashlib.md5(canonical_json(value).encode("utf-8")).hexdigest()


async def get_cached_response(
    store: Store,
    cache_key: str,
    feature_type: str,
    now: datetime,
) -> Optional[Dict[str, Any]]:
    """
    Return the cached answer for ``cache_key`` if an unexpired entry exists.

    A hit also bumps the entry's hit counter; failing to bump it is logged
    and does not turn the hit into a miss.
    """
    entry = await store.select_one(
        AI_CACHE_TABLE,
        "id, cached_response",
        eq={"cache_key": cache_key, "feature_type": feature_type},
        gt={"expires_at": now.isoformat()},
    )
    if entry is None or entry.get("cached_response") is None:
        record_cache_miss(feature_type)
        logger.debug("ai_cache_miss", feature_type=feature_type, cache_key=cache_key)
        return None

    record_cache_hit(feature_type)
    logger.debug("ai_cache_hit", feature_type=feature_type, cache_key=cache_key)

    try:
        await store.rpc("increment_cache_hit", {"cache_key_param": cache_key})
    except StoreError as e:
        logger.warning("ai_cache_hit_count_failed", cache_key=cache_key, error=str(e))

    return entry["cached_response"]


async def store_cached_response(
    store: Store,
    cache_key: str,
    feature_type: str,
    response: Dict[str, Any],
    now: datetime,
    ttl: timedelta = DEFAULT_CACHE_TTL,
) -> None:
    """Insert or refresh the entry for (cache_key, feature_type)."""
    expires_at = (now + ttl).isoformat()
    existing = await store.select_one(
        AI_CACHE_TABLE,
        "id",
        eq={"cache_key": cache_key, "feature_type": feature_type},
    )
    if existing:
        await store.update(
            AI_CACHE_TABLE,
            {"cached_response": response, "expires_at": expires_at, "hit_count": 0},
            eq={"id": existing["id"]},
        )
        logger.debug("ai_cache_refreshed", feature_type=feature_type, cache_key=cache_key)
        return

    await store.insert(
        AI_CACHE_TABLE,
        {
            "cache_key": cache_key,
            "feature_type": feature_type,
            "input_hash": cache_key,
            "cached_response": response,
            "hit_count": 0,
            "expires_at": expires_at,
        },
    )
    logger.debug("ai_cache_stored", feature_type=feature_type, cache_key=cache_key)
