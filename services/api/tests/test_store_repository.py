"""Repository tests against an in-memory SQLite database."""

import re

import pytest

from storefront.models import Review, Store
from storefront.services.pipeline import Ne
from storefront.services.reports import TAGS_PIPELINE, TOP_STORES_PIPELINE
from storefront.services.slugs import SlugConflictError, slug_pattern
from storefront.stores.store_repository import StoreRepository

# Union Station, Toronto
ORIGIN = (-79.3806, 43.6453)


def _store(name: str, slug: str, *, lng: float = -79.3871, lat: float = 43.6426, **kw) -> Store:
    return Store(
        name=name,
        slug=slug,
        description=kw.pop("description", None),
        tags=kw.pop("tags", []),
        longitude=lng,
        latitude=lat,
        address="301 Front St W, Toronto",
        author_id="user-1",
        **kw,
    )


@pytest.mark.asyncio
async def test_find_by_slug_pattern_and_excluded_id(repo: StoreRepository) -> None:
    a = await repo.save(_store("Clean Eating", "clean-eating"))
    await repo.save(_store("Clean Eating", "clean-eating-2"))
    await repo.save(_store("Clean Eating Fresh", "clean-eating-fresh"))

    found = await repo.find({"slug": slug_pattern("clean-eating")})
    assert sorted(d["slug"] for d in found) == ["clean-eating", "clean-eating-2"]

    found = await repo.find({"slug": slug_pattern("clean-eating"), "id": Ne(a.id)})
    assert [d["slug"] for d in found] == ["clean-eating-2"]


@pytest.mark.asyncio
async def test_find_case_sensitive_pattern_and_nested_path(repo: StoreRepository) -> None:
    await repo.save(_store("Pasta", "pasta"))

    assert await repo.find({"slug": re.compile("^pas")})
    assert await repo.find({"location.address": "301 Front St W, Toronto"})
    assert await repo.find({"name": "Nope"}) == []


@pytest.mark.asyncio
async def test_find_rejects_unknown_path(repo: StoreRepository) -> None:
    with pytest.raises(ValueError):
        await repo.find({"nonsense": 1})


@pytest.mark.asyncio
async def test_duplicate_slug_raises_conflict(repo: StoreRepository) -> None:
    await repo.save(_store("Wes", "wes"))

    with pytest.raises(SlugConflictError) as exc_info:
        async with repo.savepoint():
            await repo.save(_store("Wes", "wes"))
    assert exc_info.value.slug == "wes"

    # Session stays usable after the rolled-back savepoint
    assert await repo.count() == 1
    await repo.save(_store("Wes", "wes-2"))
    assert await repo.count() == 2


@pytest.mark.asyncio
async def test_reads_populate_reviews(repo: StoreRepository) -> None:
    store = await repo.save(_store("Clean Eating", "clean-eating"))
    other = await repo.save(_store("Other", "other"))
    await repo.add_review(Review(store_id=store.id, author_id="u1", rating=5, text="great"))
    await repo.add_review(Review(store_id=store.id, author_id="u2", rating=3))

    fetched = await repo.get(store.id)
    assert fetched is not None
    assert sorted(r.rating for r in fetched.reviews) == [3, 5]

    by_slug = await repo.get_by_slug("other")
    assert by_slug is not None and by_slug.id == other.id
    assert by_slug.reviews == []

    assert await repo.get("missing") is None
    assert await repo.get_by_slug("missing") is None


@pytest.mark.asyncio
async def test_list_newest_and_count(repo: StoreRepository) -> None:
    for i in range(3):
        await repo.save(_store(f"Store {i}", f"store-{i}"))

    assert await repo.count() == 3
    newest = await repo.list_newest(limit=2)
    assert [s.slug for s in newest] == ["store-2", "store-1"]
    assert [s.slug for s in await repo.list_newest(limit=2, offset=2)] == ["store-0"]


@pytest.mark.asyncio
async def test_search_matches_name_or_description(repo: StoreRepository) -> None:
    await repo.save(_store("Clean Eating", "clean-eating", description="Salads and bowls"))
    await repo.save(_store("Pasta Bar", "pasta-bar", description="Fresh pasta"))
    await repo.save(_store("Juice", "juice", description="Cold-pressed SALADS on the side"))

    results = await repo.search("salad", limit=5)
    assert [s.slug for s in results] == ["clean-eating", "juice"]
    assert [s.slug for s in await repo.search("salad", limit=1)] == ["clean-eating"]
    assert await repo.search("sushi", limit=5) == []


@pytest.mark.asyncio
async def test_near_orders_by_distance_within_radius(repo: StoreRepository) -> None:
    await repo.save(_store("Near", "near", lng=-79.3832, lat=43.6532))  # ~0.9 km
    await repo.save(_store("Mid", "mid", lng=-79.4103, lat=43.6469))  # ~2.4 km
    await repo.save(_store("Far", "far", lng=-79.7624, lat=43.7315))  # ~32 km

    ranked = await repo.near(*ORIGIN, max_distance_m=10_000, limit=10)

    assert [s.slug for s, _ in ranked] == ["near", "mid"]
    distances = [d for _, d in ranked]
    assert distances == sorted(distances)
    assert all(d <= 10_000 for d in distances)
    assert ranked[0][0].reviews == []

    assert [s.slug for s, _ in await repo.near(*ORIGIN, max_distance_m=10_000, limit=1)] == ["near"]


@pytest.mark.asyncio
async def test_aggregate_runs_report_pipelines(repo: StoreRepository) -> None:
    a = await repo.save(_store("A", "a", tags=["Wifi", "Vegan"]))
    b = await repo.save(_store("B", "b", tags=["Wifi"]))
    for rating in (5, 4):
        await repo.add_review(Review(store_id=a.id, author_id="u", rating=rating))
    for rating in (3, 3):
        await repo.add_review(Review(store_id=b.id, author_id="u", rating=rating))

    tags = await repo.aggregate(TAGS_PIPELINE)
    assert tags == [{"tag": "Wifi", "count": 2}, {"tag": "Vegan", "count": 1}]

    top = await repo.aggregate(TOP_STORES_PIPELINE)
    assert [row["slug"] for row in top] == ["a", "b"]
    assert top[0]["average_rating"] == pytest.approx(4.5)
    assert len(top[1]["reviews"]) == 2
