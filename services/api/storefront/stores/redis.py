"""Redis store for caching report payloads.

Handles:
- Caching with TTL policies
- Invalidation after writes that change report inputs

TTL policies:
- Tag frequency report: settings.reports_cache_ttl (default 60 seconds)
- Top stores report: settings.reports_cache_ttl (default 60 seconds)

The cache is optional. When Redis is unreachable, callers log and fall back
to querying storage.
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from storefront.settings import Settings

# Key prefixes
PREFIX_REPORTS = "reports:"
KEY_TAGS = f"{PREFIX_REPORTS}tags"
KEY_TOP_STORES = f"{PREFIX_REPORTS}top-stores"

logger = logging.getLogger("uvicorn.error")


class ReportCache:
    """JSON cache for report results, backed by a redis client."""

    def __init__(self, client: redis.Redis, ttl: int = 60) -> None:
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportCache":
        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, ttl=settings.reports_cache_ttl)

    async def connect(self) -> None:
        """Validate connectivity early."""
        await self.client.ping()
        logger.info("Redis connected")

    async def close(self) -> None:
        await self.client.aclose()

    async def get_json(self, key: str) -> Any | None:
        """Get JSON value from cache.

        Args:
            key: Cache key.

        Returns:
            Parsed JSON or None if not found.
        """
        value = await self.client.get(key)
        if value:
            return json.loads(value)
        return None

    async def set_json(self, key: str, value: Any) -> None:
        """Set JSON value in cache with the configured TTL.

        A TTL of 0 disables caching.
        """
        if self.ttl <= 0:
            return
        await self.client.setex(key, self.ttl, json.dumps(value))

    async def invalidate(self) -> None:
        """Drop every cached report."""
        await self.client.delete(KEY_TAGS, KEY_TOP_STORES)
