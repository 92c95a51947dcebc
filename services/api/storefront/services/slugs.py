"""Slug assignment for stores.

A slug is the URL-safe form of a store name ("Clean Eating" -> "clean-eating").
Sibling stores that share a base slug get a numeric suffix:

    clean-eating, clean-eating-2, clean-eating-3, ...

The suffix is derived from how many stores already match
`^(base)((-[0-9]+)?)$`, so assignment is a read followed by a write. Two
concurrent saves can compute the same slug; the unique index on stores.slug
rejects the second commit with SlugConflictError and the caller re-runs
assignment with a higher `attempt`.
"""

import logging
import re

from slugify import slugify as _slugify

from storefront.models import Store
from storefront.services.pipeline import Ne
from storefront.stores.collection import DocumentCollection

logger = logging.getLogger("uvicorn.error")

# Used when a name has no sluggable characters at all (e.g. "!!!")
FALLBACK_SLUG = "store"


class SlugConflictError(RuntimeError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug already taken: {slug}")
        self.slug = slug


def slugify(text: str) -> str:
    """Lowercase, transliterate, collapse non-alphanumeric runs into one dash.

    Idempotent: slugify(slugify(x)) == slugify(x).
    """
    return _slugify(text.strip())


def slug_pattern(base: str) -> re.Pattern[str]:
    """Pattern matching `base` itself or `base-<digits>`, case-insensitively."""
    return re.compile(rf"^({re.escape(base)})((-[0-9]+)?)$", re.IGNORECASE)


def next_slug(base: str, sibling_count: int, attempt: int = 0) -> str:
    """Pick the slug given how many siblings already use the base.

    Example:
        >>> next_slug("clean-eating", 0)
        'clean-eating'
        >>> next_slug("clean-eating", 1)
        'clean-eating-2'
    """
    if sibling_count == 0 and attempt == 0:
        return base
    return f"{base}-{sibling_count + 1 + attempt}"


async def assign_slug(
    store: Store,
    *,
    name_modified: bool,
    collection: DocumentCollection,
    attempt: int = 0,
) -> str:
    """Pre-save hook: recompute `store.slug` when its name changed.

    Args:
        store: Store about to be committed. `id` is None for new stores.
        name_modified: Whether `name` changed in this operation (always True for new stores).
        collection: Query capability over existing stores.
        attempt: Retry counter after a unique-index conflict; shifts the suffix.

    Returns:
        The slug now set on the store.
    """
    if not name_modified:
        return store.slug

    base = slugify(store.name) or FALLBACK_SLUG
    conditions: dict[str, object] = {"slug": slug_pattern(base)}
    if store.id is not None:
        conditions["id"] = Ne(store.id)

    siblings = await collection.find(conditions)
    store.slug = next_slug(base, len(siblings), attempt)

    if attempt:
        logger.info(f"Slug retry {attempt} for {store.name!r}: {store.slug}")
    return store.slug
