"""Schemas for the store endpoints (/v1/stores)."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


def _strip_or_none(v: object) -> object:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class Location(BaseModel):
    """GeoJSON point plus street address. Coordinates are [longitude, latitude]."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]
    address: str = Field(min_length=1, max_length=500)

    @field_validator("coordinates")
    @classmethod
    def _check_ranges(cls, v: tuple[float, float]) -> tuple[float, float]:
        lng, lat = v
        if not -180.0 <= lng <= 180.0:
            raise ValueError("Longitude must be between -180 and 180")
        if not -90.0 <= lat <= 90.0:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("address", mode="before")
    @classmethod
    def _strip_address(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


def _normalize_tags(v: object) -> object:
    if isinstance(v, list):
        return [str(tag).strip() for tag in v if str(tag).strip()]
    return v


class StoreCreate(BaseModel):
    """Request body for creating a store."""

    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    location: Location
    photo: str | None = None
    author_id: str = Field(alias="authorId", min_length=1, max_length=64)

    model_config = {"populate_by_name": True}

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, v: object) -> object:
        return _strip_or_none(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v: object) -> object:
        return _normalize_tags(v)


class StoreUpdate(BaseModel):
    """Request body for updating a store. Only fields that are sent are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    tags: list[str] | None = None
    location: Location | None = None
    photo: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, v: object) -> object:
        return _strip_or_none(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v: object) -> object:
        return _normalize_tags(v)


class ReviewCreate(BaseModel):
    """Request body for reviewing a store."""

    author_id: str = Field(alias="authorId", min_length=1, max_length=64)
    rating: int = Field(ge=1, le=5, description="Rating must be between 1 and 5")
    text: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, v: object) -> object:
        return _strip_or_none(v)


class ReviewOut(BaseModel):
    """A review as returned alongside its store."""

    id: str
    store_id: str = Field(alias="storeId")
    author_id: str = Field(alias="authorId")
    text: str | None = None
    rating: int
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True, "from_attributes": True}


class StoreOut(BaseModel):
    """A store with its reviews attached."""

    id: str
    name: str
    slug: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    location: Location
    photo: str | None = None
    author_id: str = Field(alias="authorId")
    reviews: list[ReviewOut] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "from_attributes": True}


class StorePage(BaseModel):
    """One page of the newest stores."""

    stores: list[StoreOut]
    page: int = Field(ge=1)
    per_page: int = Field(alias="perPage", ge=1)
    total: int = Field(ge=0)
    pages: int = Field(ge=0)

    model_config = {"populate_by_name": True}


class NearbyStore(BaseModel):
    """A store near a point, with its great-circle distance."""

    store: StoreOut
    distance_m: float = Field(alias="distanceM", ge=0)

    model_config = {"populate_by_name": True}


class TagCount(BaseModel):
    """One row of the tag frequency report."""

    tag: str
    count: int = Field(ge=1)


class TopStore(BaseModel):
    """One row of the top-rated stores report."""

    photo: str | None = None
    name: str
    slug: str
    reviews: list[ReviewOut] = Field(min_length=2)
    average_rating: float = Field(alias="averageRating")

    model_config = {"populate_by_name": True}
