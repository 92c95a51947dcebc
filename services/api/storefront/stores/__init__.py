"""Data stores for persistence and caching.

Stores handle:
- PostgreSQL: engine lifecycle, sessions, the Store repository
- Redis: report caching with TTL

No slug or report logic in stores - that belongs in services.
"""
