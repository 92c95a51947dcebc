"""Store lifecycle service.

Create/update run the slug hook immediately before the store is flushed:
- create: name is always "modified"
- update: name is modified only if a different (trimmed) name was sent

A unique-index conflict on the slug (concurrent save with the same base)
re-runs the whole unit from fresh state with a higher suffix, up to
settings.slug_max_attempts times.

All read paths return stores with reviews attached.
"""

import logging
import math
from typing import Any

from storefront.models import Review, Store
from storefront.schemas import ReviewCreate, StoreCreate, StoreUpdate
from storefront.services.reports import invalidate_reports
from storefront.services.slugs import SlugConflictError, assign_slug
from storefront.settings import get_settings
from storefront.stores.redis import ReportCache
from storefront.stores.store_repository import StoreRepository

logger = logging.getLogger("uvicorn.error")

SEARCH_LIMIT = 5
NEAR_MAX_DISTANCE_M = 10_000
NEAR_LIMIT = 10


class StoreNotFoundError(LookupError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Store {key} not found")
        self.key = key


def _build_store(data: StoreCreate) -> Store:
    lng, lat = data.location.coordinates
    return Store(
        name=data.name,
        description=data.description,
        tags=list(data.tags),
        location_type=data.location.type,
        longitude=lng,
        latitude=lat,
        address=data.location.address,
        photo=data.photo,
        author_id=data.author_id,
    )


def _apply_changes(store: Store, changes: dict[str, Any]) -> bool:
    """Apply update fields to a store. Returns whether the name changed."""
    name_modified = False

    name = changes.get("name")
    if name is not None and name != store.name:
        store.name = name
        name_modified = True

    if "description" in changes:
        store.description = changes["description"]
    if changes.get("tags") is not None:
        store.tags = list(changes["tags"])
    if "photo" in changes:
        store.photo = changes["photo"]

    location = changes.get("location")
    if location is not None:
        store.longitude, store.latitude = location["coordinates"]
        store.address = location["address"]
        store.location_type = location.get("type", "Point")

    return name_modified


def _max_attempts(max_attempts: int | None) -> int:
    return max_attempts if max_attempts is not None else get_settings().slug_max_attempts


async def create_store(
    repo: StoreRepository,
    data: StoreCreate,
    *,
    cache: ReportCache | None = None,
    max_attempts: int | None = None,
) -> Store:
    """Create a store with a unique slug.

    Raises:
        SlugConflictError: Every attempt lost the race for the slug.
    """
    attempts = _max_attempts(max_attempts)
    for attempt in range(attempts):
        try:
            async with repo.savepoint():
                store = _build_store(data)
                await assign_slug(store, name_modified=True, collection=repo, attempt=attempt)
                await repo.save(store)
        except SlugConflictError:
            if attempt + 1 >= attempts:
                raise
            continue
        break

    await repo.populate_reviews([store])
    await invalidate_reports(cache)
    logger.info(f"Store created: {store.slug} ({store.id})")
    return store


async def update_store(
    repo: StoreRepository,
    store_id: str,
    data: StoreUpdate,
    *,
    cache: ReportCache | None = None,
    max_attempts: int | None = None,
) -> Store:
    """Apply the fields that were sent. The slug changes only with the name.

    Raises:
        StoreNotFoundError: No store with this id.
        SlugConflictError: Every attempt lost the race for the slug.
    """
    changes = data.model_dump(exclude_unset=True)
    attempts = _max_attempts(max_attempts)
    for attempt in range(attempts):
        try:
            async with repo.savepoint():
                store = await repo.get(store_id)
                if store is None:
                    raise StoreNotFoundError(store_id)

                name_modified = _apply_changes(store, changes)
                await assign_slug(store, name_modified=name_modified, collection=repo, attempt=attempt)
                await repo.save(store)
        except SlugConflictError:
            if attempt + 1 >= attempts:
                raise
            continue
        break

    await invalidate_reports(cache)
    logger.info(f"Store updated: {store.slug} ({store.id})")
    return store


async def get_store(repo: StoreRepository, store_id: str) -> Store:
    store = await repo.get(store_id)
    if store is None:
        raise StoreNotFoundError(store_id)
    return store


async def get_store_by_slug(repo: StoreRepository, slug: str) -> Store:
    store = await repo.get_by_slug(slug)
    if store is None:
        raise StoreNotFoundError(slug)
    return store


async def list_stores(repo: StoreRepository, *, page: int = 1, per_page: int = 6) -> tuple[list[Store], int, int]:
    """One page of the newest stores.

    Returns:
        (stores, total store count, page count)
    """
    total = await repo.count()
    stores = await repo.list_newest(limit=per_page, offset=(page - 1) * per_page)
    pages = math.ceil(total / per_page) if total else 0
    return stores, total, pages


async def search_stores(repo: StoreRepository, query: str, *, limit: int = SEARCH_LIMIT) -> list[Store]:
    if not query.strip():
        return []
    return await repo.search(query, limit=limit)


async def stores_near(
    repo: StoreRepository,
    lng: float,
    lat: float,
    *,
    max_distance_m: float = NEAR_MAX_DISTANCE_M,
    limit: int = NEAR_LIMIT,
) -> list[tuple[Store, float]]:
    """Stores within max_distance_m of (lng, lat), closest first."""
    return await repo.near(lng, lat, max_distance_m=max_distance_m, limit=limit)


async def add_review(
    repo: StoreRepository,
    store_id: str,
    data: ReviewCreate,
    *,
    cache: ReportCache | None = None,
) -> Review:
    store = await get_store(repo, store_id)
    review = Review(
        store_id=store.id,
        author_id=data.author_id,
        rating=data.rating,
        text=data.text,
    )
    await repo.add_review(review)
    await invalidate_reports(cache)
    logger.info(f"Review added to {store.slug}: {review.rating}")
    return review
