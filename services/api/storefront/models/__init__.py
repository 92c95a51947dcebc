"""SQLAlchemy ORM models.

Models represent database tables:
- stores: Store listings with slug, tags and location
- reviews: Ratings left on stores (looked up by store_id)
"""

from storefront.models.store import Store
from storefront.models.review import Review

__all__ = ["Store", "Review"]
