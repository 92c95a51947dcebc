"""Store endpoints.

GET  /v1/stores                   - Newest stores, paginated
POST /v1/stores                   - Create a store (slug assigned)
GET  /v1/stores/tags              - Tag frequency report
GET  /v1/stores/top               - Top-rated stores report
GET  /v1/stores/search?q=         - Name/description search
GET  /v1/stores/near?lng=&lat=    - Stores near a point
GET  /v1/stores/id/{store_id}     - Store by id
PUT  /v1/stores/{store_id}        - Update a store
POST /v1/stores/{store_id}/reviews - Review a store
GET  /v1/stores/{slug}            - Store by slug

Routers are thin: call services for business logic.
"""

from fastapi import APIRouter, Depends, Query

from storefront.routes.deps import get_report_cache, get_repository
from storefront.schemas import (
    NearbyStore,
    ReviewCreate,
    ReviewOut,
    StoreCreate,
    StoreOut,
    StorePage,
    StoreUpdate,
    TagCount,
    TopStore,
)
from storefront.services import reports
from storefront.services import stores as store_service
from storefront.stores.redis import ReportCache
from storefront.stores.store_repository import StoreRepository

router = APIRouter()


@router.get("", response_model=StorePage)
async def list_stores(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=6, alias="perPage", ge=1, le=50),
    repo: StoreRepository = Depends(get_repository),
) -> StorePage:
    """Newest stores first."""
    stores, total, pages = await store_service.list_stores(repo, page=page, per_page=per_page)
    return StorePage(
        stores=[StoreOut.model_validate(s) for s in stores],
        page=page,
        per_page=per_page,
        total=total,
        pages=pages,
    )


@router.post("", response_model=StoreOut, status_code=201)
async def create_store(
    body: StoreCreate,
    repo: StoreRepository = Depends(get_repository),
    cache: ReportCache | None = Depends(get_report_cache),
) -> StoreOut:
    store = await store_service.create_store(repo, body, cache=cache)
    return StoreOut.model_validate(store)


@router.get("/tags", response_model=list[TagCount])
async def get_tags(
    repo: StoreRepository = Depends(get_repository),
    cache: ReportCache | None = Depends(get_report_cache),
) -> list[TagCount]:
    """Every tag with the number of stores using it, most used first."""
    return await reports.get_tags_list(repo, cache)


@router.get("/top", response_model=list[TopStore])
async def get_top_stores(
    repo: StoreRepository = Depends(get_repository),
    cache: ReportCache | None = Depends(get_report_cache),
) -> list[TopStore]:
    """Up to 10 stores with two or more reviews, best average rating first."""
    return await reports.get_top_stores(repo, cache)


@router.get("/search", response_model=list[StoreOut])
async def search_stores(
    q: str = Query(min_length=1, max_length=100, description="Text to look for in name or description"),
    repo: StoreRepository = Depends(get_repository),
) -> list[StoreOut]:
    stores = await store_service.search_stores(repo, q)
    return [StoreOut.model_validate(s) for s in stores]


@router.get("/near", response_model=list[NearbyStore])
async def stores_near(
    lng: float = Query(ge=-180, le=180),
    lat: float = Query(ge=-90, le=90),
    max_distance: float = Query(
        default=store_service.NEAR_MAX_DISTANCE_M,
        alias="maxDistance",
        gt=0,
        le=100_000,
        description="Search radius in meters",
    ),
    repo: StoreRepository = Depends(get_repository),
) -> list[NearbyStore]:
    ranked = await store_service.stores_near(repo, lng, lat, max_distance_m=max_distance)
    return [
        NearbyStore(store=StoreOut.model_validate(store), distance_m=round(distance, 1))
        for store, distance in ranked
    ]


@router.get("/id/{store_id}", response_model=StoreOut)
async def get_store(
    store_id: str,
    repo: StoreRepository = Depends(get_repository),
) -> StoreOut:
    store = await store_service.get_store(repo, store_id)
    return StoreOut.model_validate(store)


@router.put("/{store_id}", response_model=StoreOut)
async def update_store(
    store_id: str,
    body: StoreUpdate,
    repo: StoreRepository = Depends(get_repository),
    cache: ReportCache | None = Depends(get_report_cache),
) -> StoreOut:
    store = await store_service.update_store(repo, store_id, body, cache=cache)
    return StoreOut.model_validate(store)


@router.post("/{store_id}/reviews", response_model=ReviewOut, status_code=201)
async def add_review(
    store_id: str,
    body: ReviewCreate,
    repo: StoreRepository = Depends(get_repository),
    cache: ReportCache | None = Depends(get_report_cache),
) -> ReviewOut:
    review = await store_service.add_review(repo, store_id, body, cache=cache)
    return ReviewOut.model_validate(review)


@router.get("/{slug}", response_model=StoreOut)
async def get_store_by_slug(
    slug: str,
    repo: StoreRepository = Depends(get_repository),
) -> StoreOut:
    store = await store_service.get_store_by_slug(repo, slug)
    return StoreOut.model_validate(store)
