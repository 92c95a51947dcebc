#!/usr/bin/env python3
"""Seed database with sample stores and reviews.

Creates:
- A handful of stores around one city, with overlapping tags
- Reviews so that some stores qualify for the top-stores report

Goes through the service layer, so slugs are assigned exactly as the API
would assign them. Re-running skips stores whose name already exists.

Usage:
    cd services/api
    python -m scripts.seed
"""

import asyncio
import os
import sys

# Add parent to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
from sqlalchemy import select

from storefront.models import Store
from storefront.schemas import Location, ReviewCreate, StoreCreate
from storefront.services import stores as store_service
from storefront.settings import get_settings
from storefront.stores.postgres import Database
from storefront.stores.store_repository import StoreRepository

load_dotenv()

SEED_AUTHOR = "seed-user"

STORES = [
    {
        "name": "Clean Eating",
        "description": "Salads, grain bowls and cold-pressed juice.",
        "tags": ["Vegetarian", "Vegan", "Family Friendly"],
        "coordinates": (-79.3871, 43.6426),
        "address": "301 Front St W, Toronto",
        "ratings": [5, 4, 5],
    },
    {
        "name": "Wi-Fi Café",
        "description": "Espresso bar with long tables and fast internet.",
        "tags": ["Wifi", "Open Late"],
        "coordinates": (-79.3957, 43.6544),
        "address": "480 Queen St W, Toronto",
        "ratings": [4, 4],
    },
    {
        "name": "Late Night Licensed",
        "description": "Small plates and natural wine until 2am.",
        "tags": ["Open Late", "Licensed"],
        "coordinates": (-79.4103, 43.6469),
        "address": "950 King St W, Toronto",
        "ratings": [3, 3, 3],
    },
    {
        "name": "Family Brunch House",
        "description": "Pancakes, eggs and a kids corner.",
        "tags": ["Family Friendly", "Vegetarian"],
        "coordinates": (-79.3832, 43.6532),
        "address": "100 Queen St W, Toronto",
        "ratings": [5],
    },
]


async def seed_database() -> None:
    """Seed database with sample stores."""
    db = Database.from_settings(get_settings())
    await db.connect()

    async with db.session() as session:
        repo = StoreRepository(session)
        print("Seeding stores...")
        for store_def in STORES:
            existing = await session.execute(select(Store.id).where(Store.name == store_def["name"]))
            if existing.scalar_one_or_none():
                print(f"  skip  {store_def['name']} (exists)")
                continue

            store = await store_service.create_store(
                repo,
                StoreCreate(
                    name=store_def["name"],
                    description=store_def["description"],
                    tags=store_def["tags"],
                    location=Location(coordinates=store_def["coordinates"], address=store_def["address"]),
                    author_id=SEED_AUTHOR,
                ),
            )
            for i, rating in enumerate(store_def["ratings"], start=1):
                await store_service.add_review(
                    repo,
                    store.id,
                    ReviewCreate(author_id=f"{SEED_AUTHOR}-{i}", rating=rating, text="Seeded review"),
                )
            print(f"  ok    {store.name} -> /{store.slug} ({len(store_def['ratings'])} reviews)")

    print("Done.")
    await db.dispose()


if __name__ == "__main__":
    asyncio.run(seed_database())
