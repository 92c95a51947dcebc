"""Store repository over an async SQLAlchemy session.

Implements the DocumentCollection query capability (find / aggregate) used by
slug assignment and reports, plus the read paths used by the API. Every read
path attaches reviews with one extra query (populate_reviews), so callers
always receive stores with `reviews` loaded.
"""

from collections import defaultdict
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
import logging
import re
from typing import Any

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from storefront.models import Review, Store
from storefront.services.geo import bounding_box, haversine_m
from storefront.services.pipeline import (
    Exists,
    Ne,
    PipelineError,
    Record,
    Stage,
    required_collections,
    run_pipeline,
)
from storefront.services.slugs import SlugConflictError

logger = logging.getLogger("uvicorn.error")

# Collections a pipeline Lookup may join against
COLLECTION_MODELS: dict[str, type[Store] | type[Review]] = {
    "stores": Store,
    "reviews": Review,
}

# Document paths that differ from column names
DOCUMENT_COLUMNS = {
    "location.address": Store.address,
    "location.type": Store.location_type,
}


def _column(path: str) -> Any:
    if path in DOCUMENT_COLUMNS:
        return DOCUMENT_COLUMNS[path]
    column = Store.__table__.columns.get(path)
    if column is None:
        raise ValueError(f"Unsupported filter path: {path}")
    return getattr(Store, path)


def _clause(path: str, condition: Any) -> ColumnElement[bool]:
    """Translate one filter condition into SQL.

    Case-insensitive patterns compare against lower(column), so their literal
    parts must be lowercase (slug patterns always are).
    """
    column = _column(path)
    if isinstance(condition, re.Pattern):
        if condition.flags & re.IGNORECASE:
            return func.lower(column).regexp_match(condition.pattern)
        return column.regexp_match(condition.pattern)
    if isinstance(condition, Ne):
        return or_(column != condition.value, column.is_(None))
    if isinstance(condition, Exists):
        return column.is_not(None) if condition.flag else column.is_(None)
    return column == condition


class StoreRepository:
    """Data access for stores and their reviews within one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ============================================================
    # Query capability (DocumentCollection)
    # ============================================================

    async def find(self, conditions: Mapping[str, Any]) -> list[Record]:
        query = select(Store)
        for path, condition in conditions.items():
            query = query.where(_clause(path, condition))
        result = await self.session.execute(query)
        return [store.to_document() for store in result.scalars().all()]

    async def aggregate(self, stages: Sequence[Stage]) -> list[Record]:
        """Run a pipeline over all stores.

        Stores and every collection named by a Lookup stage are loaded, then
        the stages are evaluated in process.
        """
        result = await self.session.execute(select(Store))
        records = [store.to_document() for store in result.scalars().all()]

        collections: dict[str, list[Record]] = {}
        for name in required_collections(stages):
            model = COLLECTION_MODELS.get(name)
            if model is None:
                raise PipelineError(f"Unknown collection: {name}")
            rows = await self.session.execute(select(model))
            collections[name] = [row.to_document() for row in rows.scalars().all()]

        return run_pipeline(records, stages, collections)

    # ============================================================
    # Writes
    # ============================================================

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Scope one save attempt.

        Everything done inside (loads, changes, the flush in save) is rolled
        back to the savepoint on error, leaving the outer transaction usable.
        begin_nested() flushes pending state first, so enter this before
        touching the store.
        """
        async with self.session.begin_nested():
            yield

    async def save(self, store: Store) -> Store:
        """Flush a new or modified store.

        Raises:
            SlugConflictError: Another store committed the same slug first.
        """
        # A failed flush expires persistent stores; read the slug first
        slug = store.slug
        self.session.add(store)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            if "slug" in str(exc.orig).lower():
                logger.warning(f"Slug conflict on save: {slug}")
                raise SlugConflictError(slug) from exc
            raise
        return store

    async def add_review(self, review: Review) -> Review:
        self.session.add(review)
        await self.session.flush()
        return review

    # ============================================================
    # Reads (reviews always populated)
    # ============================================================

    async def populate_reviews(self, stores: Sequence[Store]) -> None:
        """Attach each store's reviews (matched by Review.store_id)."""
        if not stores:
            return
        ids = [store.id for store in stores]
        result = await self.session.execute(
            select(Review).where(Review.store_id.in_(ids)).order_by(Review.created_at)
        )
        by_store: dict[str, list[Review]] = defaultdict(list)
        for review in result.scalars().all():
            by_store[review.store_id].append(review)
        for store in stores:
            set_committed_value(store, "reviews", by_store.get(store.id, []))

    async def _fetch(self, query: Any) -> list[Store]:
        result = await self.session.execute(query.execution_options(populate_existing=True))
        stores = list(result.scalars().all())
        await self.populate_reviews(stores)
        return stores

    async def get(self, store_id: str) -> Store | None:
        stores = await self._fetch(select(Store).where(Store.id == store_id))
        return stores[0] if stores else None

    async def get_by_slug(self, slug: str) -> Store | None:
        stores = await self._fetch(select(Store).where(Store.slug == slug))
        return stores[0] if stores else None

    async def list_newest(self, *, limit: int, offset: int = 0) -> list[Store]:
        """Newest stores first."""
        query = (
            select(Store)
            .order_by(Store.created_at.desc(), Store.slug.asc())
            .offset(offset)
            .limit(limit)
        )
        return await self._fetch(query)

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Store.id)))
        return result.scalar() or 0

    async def search(self, text: str, *, limit: int) -> list[Store]:
        """Case-insensitive substring match on name or description."""
        needle = f"%{text.strip()}%"
        query = (
            select(Store)
            .where(or_(Store.name.ilike(needle), Store.description.ilike(needle)))
            .order_by(Store.name.asc(), Store.slug.asc())
            .limit(limit)
        )
        return await self._fetch(query)

    async def near(
        self,
        lng: float,
        lat: float,
        *,
        max_distance_m: float,
        limit: int,
    ) -> list[tuple[Store, float]]:
        """Stores within max_distance_m of a point, closest first, with distances."""
        min_lng, min_lat, max_lng, max_lat = bounding_box(lng, lat, max_distance_m)
        query = select(Store).where(
            Store.longitude >= min_lng,
            Store.longitude <= max_lng,
            Store.latitude >= min_lat,
            Store.latitude <= max_lat,
        )
        result = await self.session.execute(query)

        ranked: list[tuple[Store, float]] = []
        for store in result.scalars().all():
            distance = haversine_m(lng, lat, store.longitude, store.latitude)
            if distance <= max_distance_m:
                ranked.append((store, distance))
        ranked.sort(key=lambda pair: (pair[1], pair[0].slug))
        ranked = ranked[:limit]

        await self.populate_reviews([store for store, _ in ranked])
        return ranked
