"""Store reports built from aggregation pipelines.

Tag frequency:
1. Unwind tags (one row per store per tag)
2. Group by tag, counting rows
3. Sort by count DESC, then tag ASC (deterministic ties)

Top stores:
1. Lookup reviews where review.store_id == store.id
2. Keep stores whose second review exists (>= 2 reviews)
3. Project photo, name, reviews, slug and the average rating
4. Sort by average rating DESC, then slug ASC
5. Limit to 10

Both reports are read-only. When a ReportCache is supplied, results are served
from Redis until the TTL expires or a write invalidates them.
"""

import logging

from redis.exceptions import RedisError

from storefront.schemas import TagCount, TopStore
from storefront.services.pipeline import (
    ASC,
    DESC,
    Avg,
    Count,
    Exists,
    FieldRef,
    Group,
    Limit,
    Lookup,
    Match,
    Project,
    Sort,
    Unwind,
)
from storefront.stores.collection import DocumentCollection
from storefront.stores.redis import KEY_TAGS, KEY_TOP_STORES, ReportCache

logger = logging.getLogger("uvicorn.error")

TOP_STORES_LIMIT = 10

TAGS_PIPELINE = (
    Unwind("tags"),
    Group(by="tags", key_as="tag", accumulators={"count": Count()}),
    Sort(keys=(("count", DESC), ("tag", ASC))),
)

TOP_STORES_PIPELINE = (
    Lookup(from_collection="reviews", local_field="id", foreign_field="store_id", as_field="reviews"),
    Match({"reviews.1": Exists()}),
    Project(
        {
            "photo": FieldRef("photo"),
            "name": FieldRef("name"),
            "reviews": FieldRef("reviews"),
            "slug": FieldRef("slug"),
            "average_rating": Avg("reviews.rating"),
        }
    ),
    Sort(keys=(("average_rating", DESC), ("slug", ASC))),
    Limit(TOP_STORES_LIMIT),
)


async def get_tags_list(
    collection: DocumentCollection,
    cache: ReportCache | None = None,
) -> list[TagCount]:
    """Count how many stores carry each tag, most used first."""
    cached = await _try_get_cached(cache, KEY_TAGS)
    if cached is not None:
        return [TagCount.model_validate(row) for row in cached]

    rows = await collection.aggregate(TAGS_PIPELINE)
    tags = [TagCount.model_validate(row) for row in rows]

    await _try_set_cached(cache, KEY_TAGS, [t.model_dump(mode="json") for t in tags])
    return tags


async def get_top_stores(
    collection: DocumentCollection,
    cache: ReportCache | None = None,
) -> list[TopStore]:
    """Best-rated stores with at least two reviews (at most 10)."""
    cached = await _try_get_cached(cache, KEY_TOP_STORES)
    if cached is not None:
        return [TopStore.model_validate(row) for row in cached]

    rows = await collection.aggregate(TOP_STORES_PIPELINE)
    stores = [TopStore.model_validate(row) for row in rows]

    await _try_set_cached(cache, KEY_TOP_STORES, [s.model_dump(mode="json") for s in stores])
    return stores


async def invalidate_reports(cache: ReportCache | None) -> None:
    """Drop cached reports after a write that changes their inputs."""
    if cache is None:
        return
    try:
        await cache.invalidate()
    except (RedisError, OSError, ValueError):
        logger.warning("Report cache invalidation failed", exc_info=True)


async def _try_get_cached(cache: ReportCache | None, key: str) -> list[dict] | None:
    if cache is None:
        return None
    try:
        payload = await cache.get_json(key)
    except (RedisError, OSError, ValueError):
        # Redis may be unavailable; fall back to storage.
        logger.warning(f"Report cache read failed for {key}", exc_info=True)
        return None
    if not isinstance(payload, list):
        return None
    return payload


async def _try_set_cached(cache: ReportCache | None, key: str, payload: list[dict]) -> None:
    if cache is None:
        return
    try:
        await cache.set_json(key, payload)
    except (RedisError, OSError, ValueError):
        logger.warning(f"Report cache write failed for {key}", exc_info=True)
