"""Pydantic schemas for API request/response validation."""

from storefront.schemas.common import ErrorDetail, ErrorResponse
from storefront.schemas.store import (
    Location,
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

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "Location",
    "NearbyStore",
    "ReviewCreate",
    "ReviewOut",
    "StoreCreate",
    "StoreOut",
    "StorePage",
    "StoreUpdate",
    "TagCount",
    "TopStore",
]
