"""Shared fixtures: in-memory collections, SQLite-backed database, fake cache."""

from collections.abc import Mapping, Sequence
from typing import Any

import pytest
from sqlalchemy.pool import StaticPool

import storefront.models  # noqa: F401  (registers tables on Base.metadata)
from storefront.schemas import Location, StoreCreate
from storefront.services.pipeline import Record, Stage, matches, run_pipeline
from storefront.stores.postgres import Database
from storefront.stores.store_repository import StoreRepository


class FakeCollection:
    """DocumentCollection over plain dicts."""

    def __init__(self, stores: Sequence[Record] = (), reviews: Sequence[Record] = ()) -> None:
        self.stores = list(stores)
        self.reviews = list(reviews)
        self.find_calls: list[Mapping[str, Any]] = []
        self.aggregate_calls = 0

    async def find(self, conditions: Mapping[str, Any]) -> list[Record]:
        self.find_calls.append(conditions)
        return [doc for doc in self.stores if matches(doc, conditions)]

    async def aggregate(self, stages: Sequence[Stage]) -> list[Record]:
        self.aggregate_calls += 1
        return run_pipeline(self.stores, stages, {"reviews": self.reviews})


class FakeCache:
    """ReportCache stand-in keeping payloads in a dict."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.invalidations = 0

    async def get_json(self, key: str) -> Any | None:
        return self.data.get(key)

    async def set_json(self, key: str, value: Any) -> None:
        self.data[key] = value

    async def invalidate(self) -> None:
        self.invalidations += 1
        self.data.clear()


def make_store_create(name: str, **overrides: Any) -> StoreCreate:
    payload: dict[str, Any] = {
        "name": name,
        "description": f"{name} description",
        "tags": [],
        "location": Location(coordinates=(-79.3871, 43.6426), address="301 Front St W, Toronto"),
        "author_id": "user-1",
    }
    payload.update(overrides)
    return StoreCreate(**payload)


@pytest.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    database = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await database.connect()
    await database.create_tables()
    yield database
    await database.dispose()


@pytest.fixture
async def repo(db: Database):
    async with db.session() as session:
        yield StoreRepository(session)
